"""
Transaction status projection.

One process-wide status for display, tagged with the operation that set it.
Success and error statuses revert to idle after a display window, but a
revert only fires if the projection still shows the status that scheduled it.
"""

import asyncio
import logging
import uuid
from collections import deque
from typing import Optional

from ..refund.schema import (
    ErrorStatus,
    IdleStatus,
    Operation,
    PendingStatus,
    SuccessStatus,
    TransactionStatus,
)

logger = logging.getLogger(__name__)


# Status messages surfaced to the UI (exact text)
MSG_CREATING = "Creating tax refund with Zama FHE..."
MSG_WAITING_CONFIRMATION = "Waiting for transaction confirmation..."
MSG_CREATED = "Tax refund created successfully!"
MSG_CONNECT_FIRST = "Please connect wallet first"
MSG_REJECTED = "Transaction rejected by user"
MSG_SUBMISSION_FAILED = "Submission failed: "
MSG_ALREADY_VERIFIED = "Data already verified on-chain"
MSG_VERIFYING = "Verifying decryption on-chain..."
MSG_DECRYPTED = "Data decrypted and verified successfully!"
MSG_DECRYPTION_FAILED = "Decryption failed: "
MSG_LOAD_FAILED = "Failed to load data"
MSG_NO_CLAIMS = "No tax refund claims found"
MSG_FHE_INIT_FAILED = "FHEVM initialization failed. Please check your wallet connection."

HISTORY_SIZE = 100


def new_operation_id() -> str:
    return str(uuid.uuid4())[:8]


class StatusBoard:
    """The shared status projection plus a short history of what it showed."""

    def __init__(self, success_seconds: float = 2.0, error_seconds: float = 3.0):
        self.success_seconds = success_seconds
        self.error_seconds = error_seconds
        self._current: TransactionStatus = IdleStatus()
        self._timers: set[asyncio.TimerHandle] = set()
        self.history: deque = deque(maxlen=HISTORY_SIZE)

    @property
    def current(self) -> TransactionStatus:
        return self._current

    @property
    def visible(self) -> bool:
        return not isinstance(self._current, IdleStatus)

    def begin(self) -> str:
        """Allocate an id for a new operation."""
        return new_operation_id()

    def pending(self, operation_id: str, operation: Operation, message: str) -> PendingStatus:
        status = PendingStatus(message=message, operation_id=operation_id, operation=operation)
        self._publish(status)
        return status

    def success(self, operation_id: str, operation: Operation, message: str) -> SuccessStatus:
        status = SuccessStatus(message=message, operation_id=operation_id, operation=operation)
        self._publish(status, revert_after=self.success_seconds)
        return status

    def error(self, operation_id: str, operation: Operation, message: str) -> ErrorStatus:
        status = ErrorStatus(message=message, operation_id=operation_id, operation=operation)
        self._publish(status, revert_after=self.error_seconds)
        return status

    def messages(self, operation_id: Optional[str] = None) -> list[str]:
        """Messages shown so far, optionally for one operation only."""
        return [
            s.message for s in self.history
            if operation_id is None or s.operation_id == operation_id
        ]

    def clear(self) -> None:
        """Cancel pending reverts and go idle."""
        for timer in self._timers:
            timer.cancel()
        self._timers.clear()
        self._current = IdleStatus()

    def _publish(self, status: TransactionStatus, revert_after: Optional[float] = None) -> None:
        self._current = status
        self.history.append(status)
        if isinstance(status, ErrorStatus):
            logger.warning(f"[{status.operation.value}:{status.operation_id}] {status.message}")
        else:
            logger.info(f"[{status.operation.value}:{status.operation_id}] {status.message}")

        if revert_after is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # no loop to schedule on; the status stays until replaced
            return
        timer: Optional[asyncio.TimerHandle] = None

        def revert() -> None:
            self._timers.discard(timer)
            if self._current is status:
                self._current = IdleStatus()

        timer = loop.call_later(revert_after, revert)
        self._timers.add(timer)
