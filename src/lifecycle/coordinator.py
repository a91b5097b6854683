"""
Claim lifecycle coordination.

Sequences the client side of a refund claim:
- Create: validate, encrypt, submit, wait for confirmation, resync
- Reload: rebuild the claim set from the ledger, isolating bad records
- Decrypt-and-verify: request a decryption proof, submit it on-chain,
  resync, all under a per-claim guard

Every failure is caught at this boundary, mapped to a status message and
reported through the status board. Guards are released on every exit path.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from ..fhe.gateway import EncryptionGateway
from ..ledger.client import LedgerClient, LedgerSigner
from ..refund.errors import (
    AlreadyVerified,
    DecryptionInFlight,
    EncryptionFailure,
    InvalidClaimInput,
    LedgerReadFailure,
    NotConnected,
    RefundLifecycleError,
    TransactionRejected,
)
from ..refund.schema import Claim, ClaimDraft, ClaimState, Operation, parse_claim_id
from ..storage.claim_store import ClaimStore
from ..utils.config import Settings, get_settings
from .guard import DecryptionGuard
from .status import (
    MSG_ALREADY_VERIFIED,
    MSG_CONNECT_FIRST,
    MSG_CREATED,
    MSG_CREATING,
    MSG_DECRYPTED,
    MSG_DECRYPTION_FAILED,
    MSG_FHE_INIT_FAILED,
    MSG_LOAD_FAILED,
    MSG_NO_CLAIMS,
    MSG_REJECTED,
    MSG_SUBMISSION_FAILED,
    MSG_VERIFYING,
    MSG_WAITING_CONFIRMATION,
    StatusBoard,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Results
# =============================================================================


@dataclass
class OperationResult:
    """Outcome of one coordinator operation."""
    operation_id: str
    operation: Operation
    ok: bool
    message: str
    business_key: Optional[str] = None
    value: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "operation_id": self.operation_id,
            "operation": self.operation.value,
            "ok": self.ok,
            "message": self.message,
            "business_key": self.business_key,
            "value": self.value,
            "error": self.error,
        }


@dataclass
class ReloadResult:
    """Outcome of a full claim-set reload."""
    operation_id: str
    ok: bool
    loaded: int = 0
    skipped: list[str] = field(default_factory=list)
    message: str = ""

    def to_dict(self) -> dict:
        return {
            "operation_id": self.operation_id,
            "ok": self.ok,
            "loaded": self.loaded,
            "skipped": self.skipped,
            "message": self.message,
        }


def _empty_form() -> dict:
    return {"name": "", "amount": "", "tax_rate_percent": ""}


def _with_unique_ids(claims: list[Claim], prefix: str, base_millis: int) -> list[Claim]:
    """
    Make claim ids unique within one loaded set.

    Ids parsed from business keys are kept when free. Keys without a numeric
    suffix, and keys whose parsed id is already taken, get ids counting up
    from `base_millis`, skipping any id in use.
    """
    taken: set[int] = set()
    needs_id: set[int] = set()
    for index, claim in enumerate(claims):
        parsed = parse_claim_id(claim.business_key, prefix)
        if parsed is None or parsed in taken:
            needs_id.add(index)
        else:
            taken.add(parsed)

    unique = []
    next_id = base_millis
    for index, claim in enumerate(claims):
        if index in needs_id:
            while next_id in taken:
                next_id += 1
            taken.add(next_id)
            claim = claim.model_copy(update={"id": next_id})
        unique.append(claim)
    return unique


def _describe(error: Exception) -> str:
    if isinstance(error, RefundLifecycleError):
        return error.message or "Unknown error"
    return str(error) or "Unknown error"


# =============================================================================
# Coordinator
# =============================================================================


class LifecycleCoordinator:
    """
    Orchestrates create, reload, and decrypt-and-verify flows.

    Usage:
        coordinator = LifecycleCoordinator(ledger, gateway)
        await coordinator.connect("0xabc...")
        result = await coordinator.create_claim("Office chair", "250", "20")
        verified = await coordinator.decrypt_and_verify(result.business_key)
    """

    def __init__(
        self,
        ledger: LedgerClient,
        gateway: EncryptionGateway,
        store: Optional[ClaimStore] = None,
        status: Optional[StatusBoard] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.ledger = ledger
        self.gateway = gateway
        self.settings = settings or get_settings()
        self.store = store if store is not None else ClaimStore()
        self.status = status or StatusBoard(
            success_seconds=self.settings.success_display_seconds,
            error_seconds=self.settings.error_display_seconds,
        )
        self.clock = clock
        self.guard = DecryptionGuard()

        self.account: Optional[str] = None
        self._signer: Optional[LedgerSigner] = None
        self.contract_address: str = self.settings.contract_address or ""

        # Creation form state, cleared after a successful create
        self.form: dict = _empty_form()
        self.refreshing = False
        self._creating: set[str] = set()
        self._last_key_millis = 0

    # -------------------------------------------------------------------------
    # Wallet binding
    # -------------------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self.account is not None and self._signer is not None

    async def connect(self, account: str, signer: Optional[LedgerSigner] = None) -> OperationResult:
        """
        Bind a wallet account, initialize FHE, and load the claim set.

        Claims are loaded even when FHE initialization fails, since reads
        need no encryption; the result is then not ok.

        Args:
            account: Ledger address of the connected wallet
            signer: Signer-bound view to use (built from the ledger if None)
        """
        operation_id = self.status.begin()
        self.account = account
        self._signer = signer or self.ledger.signer(account)
        logger.info(f"Wallet connected: {account}")

        init_error: Optional[EncryptionFailure] = None
        try:
            await self.gateway.initialize()
        except EncryptionFailure as e:
            logger.error(f"Failed to initialize FHE: {e}")
            init_error = e

        try:
            await self._resolve_contract_address()
        except LedgerReadFailure as e:
            logger.error(f"Failed to resolve contract address: {e}")

        await self.reload()

        # published after the reload so its statuses cannot hide it
        if init_error is not None:
            return self._fail(operation_id, Operation.CONNECT, MSG_FHE_INIT_FAILED, init_error)
        return OperationResult(
            operation_id=operation_id,
            operation=Operation.CONNECT,
            ok=True,
            message=f"Connected {account}",
        )

    def disconnect(self) -> None:
        """Drop the wallet binding and the loaded claims."""
        logger.info(f"Wallet disconnected: {self.account}")
        self.account = None
        self._signer = None
        self.store.clear()

    def _require_signer(self) -> LedgerSigner:
        if not self.is_connected:
            raise NotConnected(MSG_CONNECT_FIRST)
        return self._signer

    async def _resolve_contract_address(self) -> str:
        if not self.contract_address:
            self.contract_address = await self.ledger.reader.contract_address()
        return self.contract_address

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    def update_form(self, **fields) -> dict:
        """Set raw creation form values (name, amount, tax_rate_percent)."""
        unknown = set(fields) - set(self.form)
        if unknown:
            raise ValueError(f"Unknown form fields: {', '.join(sorted(unknown))}")
        self.form.update(fields)
        return self.form

    def _new_business_key(self) -> str:
        millis = int(self.clock() * 1000)
        # two creates in the same millisecond must not collide
        if millis <= self._last_key_millis:
            millis = self._last_key_millis + 1
        self._last_key_millis = millis
        return f"{self.settings.business_key_prefix}{millis}"

    async def create_claim(self, name=None, amount=None, tax_rate_percent=None) -> OperationResult:
        """
        Encrypt an amount and submit it as a new claim.

        Arguments left as None are taken from the creation form.

        Returns:
            OperationResult with the new business key on success
        """
        operation_id = self.status.begin()

        try:
            signer = self._require_signer()
        except NotConnected as e:
            return self._fail(operation_id, Operation.CREATE, MSG_CONNECT_FIRST, e)

        try:
            draft = ClaimDraft.parse(
                self.form["name"] if name is None else name,
                self.form["amount"] if amount is None else amount,
                self.form["tax_rate_percent"] if tax_rate_percent is None else tax_rate_percent,
            )
        except InvalidClaimInput as e:
            return self._fail(operation_id, Operation.CREATE, MSG_SUBMISSION_FAILED + e.message, e)

        business_key = self._new_business_key()
        self._creating.add(business_key)
        self.status.pending(operation_id, Operation.CREATE, MSG_CREATING)
        logger.info(f"Creating claim {business_key}")

        try:
            contract_address = await self._resolve_contract_address()
            encrypted = await self.gateway.encrypt(contract_address, self.account, draft.amount)
            tx = await signer.create_claim(
                business_key,
                draft.name,
                encrypted.ciphertext,
                encrypted.proof,
                draft.tax_rate_percent,
                0,
                self.settings.claim_label,
            )
            self.status.pending(operation_id, Operation.CREATE, MSG_WAITING_CONFIRMATION)
            await tx.wait()
        except TransactionRejected as e:
            return self._fail(operation_id, Operation.CREATE, MSG_REJECTED, e, business_key)
        except RefundLifecycleError as e:
            return self._fail(operation_id, Operation.CREATE, MSG_SUBMISSION_FAILED + _describe(e), e, business_key)
        except Exception as e:
            logger.exception(f"Unexpected error creating claim {business_key}")
            return self._fail(operation_id, Operation.CREATE, MSG_SUBMISSION_FAILED + _describe(e), e, business_key)
        finally:
            self._creating.discard(business_key)

        await self.reload()
        self.form = _empty_form()
        self.status.success(operation_id, Operation.CREATE, MSG_CREATED)
        logger.info(f"Claim {business_key} created")

        return OperationResult(
            operation_id=operation_id,
            operation=Operation.CREATE,
            ok=True,
            message=MSG_CREATED,
            business_key=business_key,
        )

    # -------------------------------------------------------------------------
    # Reload
    # -------------------------------------------------------------------------

    async def reload(self) -> ReloadResult:
        """
        Replace the claim set with a fresh read of the ledger.

        A record that fails to load is logged and left out; only a failure to
        list keys (or an empty list) is reported as an error.
        """
        operation_id = self.status.begin()
        self.refreshing = True
        try:
            try:
                keys = await self.ledger.reader.list_claim_keys()
            except LedgerReadFailure as e:
                logger.error(f"Failed to list claims: {e}")
                self.status.error(operation_id, Operation.RELOAD, MSG_LOAD_FAILED)
                return ReloadResult(operation_id=operation_id, ok=False, message=MSG_LOAD_FAILED)

            claims = []
            skipped = []
            for key in keys:
                try:
                    claims.append(await self.ledger.reader.get_claim(key))
                except LedgerReadFailure as e:
                    logger.error(f"Error loading claim {key}: {e}")
                    skipped.append(key)

            claims = _with_unique_ids(claims, self.settings.business_key_prefix, int(self.clock() * 1000))
            self.store.replace_all(claims)
            logger.info(f"Loaded {len(claims)} claim(s), skipped {len(skipped)}")

            if not keys:
                self.status.error(operation_id, Operation.RELOAD, MSG_NO_CLAIMS)
                return ReloadResult(operation_id=operation_id, ok=False, message=MSG_NO_CLAIMS)

            return ReloadResult(
                operation_id=operation_id,
                ok=True,
                loaded=len(claims),
                skipped=skipped,
            )
        finally:
            self.refreshing = False

    # -------------------------------------------------------------------------
    # Decrypt and verify
    # -------------------------------------------------------------------------

    def is_decrypting(self, business_key: str) -> bool:
        return self.guard.is_held(business_key)

    async def decrypt_and_verify(self, business_key: str) -> OperationResult:
        """
        Decrypt a claim's amount and record it on-chain with its proof.

        Already-verified claims short-circuit to the stored value without a
        transaction. At most one call per claim runs at a time.

        Returns:
            OperationResult whose value is the cleartext, or None on failure
        """
        operation_id = self.status.begin()

        try:
            signer = self._require_signer()
        except NotConnected as e:
            return self._fail(operation_id, Operation.VERIFY, MSG_CONNECT_FIRST, e, business_key)

        try:
            with self.guard.hold(business_key):
                return await self._verify(operation_id, business_key, signer)
        except DecryptionInFlight as e:
            return self._fail(operation_id, Operation.VERIFY, MSG_DECRYPTION_FAILED + e.message, e, business_key)

    async def _verify(self, operation_id: str, business_key: str, signer: LedgerSigner) -> OperationResult:
        reader = self.ledger.reader
        try:
            claim = await reader.get_claim(business_key)
            if claim.is_verified:
                self.status.success(operation_id, Operation.VERIFY, MSG_ALREADY_VERIFIED)
                return self._ok(operation_id, MSG_ALREADY_VERIFIED, business_key, claim.decrypted_value)

            contract_address = await self._resolve_contract_address()
            handle = await reader.get_ciphertext_handle(business_key)
            proof = await self.gateway.request_decryption_proof([handle], contract_address, self.account)

            self.status.pending(operation_id, Operation.VERIFY, MSG_VERIFYING)
            tx = await signer.submit_verify_decryption(
                business_key,
                proof.abi_encoded_clear_values,
                proof.decryption_proof,
            )
            await tx.wait()
            value = proof.clear_value(handle)
        except AlreadyVerified:
            logger.info(f"Claim {business_key} was verified concurrently")
            await self.reload()
            stored = self.store.get(business_key)
            value = stored.decrypted_value if stored is not None else None
            self.status.success(operation_id, Operation.VERIFY, MSG_ALREADY_VERIFIED)
            return self._ok(operation_id, MSG_ALREADY_VERIFIED, business_key, value)
        except RefundLifecycleError as e:
            return self._fail(operation_id, Operation.VERIFY, MSG_DECRYPTION_FAILED + _describe(e), e, business_key)
        except Exception as e:
            logger.exception(f"Unexpected error verifying claim {business_key}")
            return self._fail(operation_id, Operation.VERIFY, MSG_DECRYPTION_FAILED + _describe(e), e, business_key)

        await self.reload()
        self.status.success(operation_id, Operation.VERIFY, MSG_DECRYPTED)
        logger.info(f"Claim {business_key} verified on-chain")
        return self._ok(operation_id, MSG_DECRYPTED, business_key, value)

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    def state_of(self, business_key: str) -> ClaimState:
        """Conceptual lifecycle state of a claim from this client's view."""
        claim = self.store.get(business_key)
        if claim is not None and claim.is_verified:
            return ClaimState.VERIFIED
        if self.guard.is_held(business_key):
            return ClaimState.PENDING_VERIFY
        if claim is not None:
            return ClaimState.CREATED
        if business_key in self._creating:
            return ClaimState.PENDING_CREATE
        return ClaimState.UNSUBMITTED

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _ok(self, operation_id: str, message: str, business_key: str, value: Optional[int]) -> OperationResult:
        return OperationResult(
            operation_id=operation_id,
            operation=Operation.VERIFY,
            ok=True,
            message=message,
            business_key=business_key,
            value=value,
        )

    def _fail(
        self,
        operation_id: str,
        operation: Operation,
        message: str,
        error: Exception,
        business_key: Optional[str] = None,
    ) -> OperationResult:
        self.status.error(operation_id, operation, message)
        return OperationResult(
            operation_id=operation_id,
            operation=operation,
            ok=False,
            message=message,
            business_key=business_key,
            error=error.__class__.__name__,
        )
