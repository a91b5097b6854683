"""
Per-claim decryption guard.

Maps a business key to the token of the flow currently decrypting it.
Acquisition is strictly exclusive and not re-entrant.
"""

import logging
import uuid
from contextlib import contextmanager
from typing import Iterator

from ..refund.errors import DecryptionInFlight

logger = logging.getLogger(__name__)


class DecryptionGuard:
    """
    Usage:
        guard = DecryptionGuard()
        with guard.hold("refund-1700000000000"):
            ...  # at most one flow per key gets here
    """

    def __init__(self):
        self._held: dict[str, str] = {}

    def is_held(self, business_key: str) -> bool:
        return business_key in self._held

    def held_keys(self) -> list[str]:
        return list(self._held)

    def acquire(self, business_key: str) -> str:
        """
        Take the guard for a claim.

        Returns:
            The acquisition token, needed to release

        Raises:
            DecryptionInFlight: another flow holds the guard
        """
        if business_key in self._held:
            raise DecryptionInFlight(
                f"decryption already in progress for {business_key}",
                {"key": business_key},
            )
        token = uuid.uuid4().hex
        self._held[business_key] = token
        logger.debug(f"Decryption guard acquired for {business_key}")
        return token

    def release(self, business_key: str, token: str) -> bool:
        """
        Release the guard if `token` still owns it.

        Returns:
            True if released, False if the token did not own the guard
        """
        if self._held.get(business_key) != token:
            logger.warning(f"Ignoring release of {business_key} with a stale token")
            return False
        del self._held[business_key]
        logger.debug(f"Decryption guard released for {business_key}")
        return True

    @contextmanager
    def hold(self, business_key: str) -> Iterator[str]:
        token = self.acquire(business_key)
        try:
            yield token
        finally:
            self.release(business_key, token)
