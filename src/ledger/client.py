"""
Ledger client for the refund contract.

Two views over the same remote contract:
- LedgerReader: read-only calls (claim keys, claim records, ciphertext handles)
- LedgerSigner: transactions bound to a signing account

Raw backend errors are classified into the lifecycle error taxonomy here, so
callers never have to inspect transport messages themselves.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from ..refund.errors import (
    AlreadyVerified,
    LedgerReadFailure,
    RefundLifecycleError,
    TransactionFailure,
    TransactionRejected,
)
from ..refund.schema import DEFAULT_KEY_PREFIX, Claim, claim_id_from_key

logger = logging.getLogger(__name__)


# Substrings the wallet / node put in error messages
USER_REJECTED_MARKER = "user rejected"
ALREADY_VERIFIED_MARKER = "already verified"


# =============================================================================
# Backend interface
# =============================================================================


class TransactionReceipt(BaseModel):
    """Confirmation of an included transaction."""
    model_config = ConfigDict(frozen=True)

    tx_hash: str
    block_number: int
    status: int = 1


class RawTransaction(ABC):
    """A submitted transaction as returned by a contract backend."""

    tx_hash: str

    @abstractmethod
    async def wait(self) -> TransactionReceipt:
        """Block until the transaction is included, raising if it reverts."""


class ContractBackend(ABC):
    """
    The contract surface consumed by this client.

    Implementations may raise any exception; LedgerReader and LedgerSigner
    translate them.
    """

    @abstractmethod
    async def get_address(self) -> str:
        ...

    @abstractmethod
    async def list_all_claim_keys(self) -> list[str]:
        ...

    @abstractmethod
    async def get_claim(self, key: str) -> dict:
        """
        Return the raw record: name, timestamp, creator, tax_rate_percent,
        reserved_public_value, is_verified, decrypted_value.
        """

    @abstractmethod
    async def get_ciphertext_handle(self, key: str) -> str:
        ...

    @abstractmethod
    async def create_claim(
        self,
        sender: str,
        key: str,
        name: str,
        ciphertext: str,
        proof: str,
        tax_rate_percent: int,
        reserved: int,
        label: str,
    ) -> RawTransaction:
        ...

    @abstractmethod
    async def verify_decryption(
        self,
        sender: str,
        key: str,
        abi_encoded_clear_values: str,
        proof: str,
    ) -> RawTransaction:
        ...


# =============================================================================
# Error classification
# =============================================================================


def classify_transaction_error(error: Exception) -> RefundLifecycleError:
    """
    Map a raw submission/inclusion error onto the error taxonomy.

    Already-classified errors are returned unchanged.
    """
    if isinstance(error, RefundLifecycleError):
        return error

    message = str(error) or error.__class__.__name__
    lowered = message.lower()
    if USER_REJECTED_MARKER in lowered:
        return TransactionRejected(message)
    if ALREADY_VERIFIED_MARKER in lowered:
        return AlreadyVerified(message)
    return TransactionFailure(message)


class PendingTransaction:
    """A submitted transaction whose inclusion can be awaited."""

    def __init__(self, raw: RawTransaction, description: str = ""):
        self._raw = raw
        self.description = description

    @property
    def tx_hash(self) -> str:
        return self._raw.tx_hash

    async def wait(self) -> TransactionReceipt:
        """Wait for inclusion; failures surface as classified lifecycle errors."""
        try:
            receipt = await self._raw.wait()
        except Exception as e:
            raise classify_transaction_error(e) from e
        logger.debug(f"{self.description or 'Transaction'} {receipt.tx_hash} included in block {receipt.block_number}")
        return receipt


# =============================================================================
# Views
# =============================================================================


class LedgerReader:
    """Read-only view of the refund contract."""

    def __init__(self, backend: ContractBackend, key_prefix: str = DEFAULT_KEY_PREFIX):
        self.backend = backend
        self.key_prefix = key_prefix

    async def contract_address(self) -> str:
        try:
            return await self.backend.get_address()
        except Exception as e:
            raise LedgerReadFailure(f"Failed to resolve contract address: {e}") from e

    async def list_claim_keys(self) -> list[str]:
        """Return every claim key, or fail as a whole."""
        try:
            keys = await self.backend.list_all_claim_keys()
        except Exception as e:
            raise LedgerReadFailure(f"Failed to list claim keys: {e}") from e
        return [str(k) for k in keys]

    async def get_claim(self, key: str) -> Claim:
        """Fetch and decode one claim record."""
        try:
            record = await self.backend.get_claim(key)
        except Exception as e:
            raise LedgerReadFailure(f"Failed to load claim: {e}", {"key": key}) from e
        return self._to_claim(key, record)

    async def get_ciphertext_handle(self, key: str) -> str:
        try:
            return await self.backend.get_ciphertext_handle(key)
        except Exception as e:
            raise LedgerReadFailure(f"Failed to load ciphertext handle: {e}", {"key": key}) from e

    def _to_claim(self, key: str, record: dict) -> Claim:
        is_verified = bool(record.get("is_verified", False))
        decrypted = record.get("decrypted_value")
        try:
            return Claim(
                id=claim_id_from_key(key, self.key_prefix),
                business_key=key,
                name=record["name"],
                tax_rate_percent=int(record.get("tax_rate_percent") or 0),
                created_at=int(record["timestamp"]),
                creator=record["creator"],
                reserved_public_value=int(record.get("reserved_public_value") or 0),
                is_verified=is_verified,
                # unverified records carry a zero placeholder on-chain
                decrypted_value=int(decrypted) if is_verified and decrypted is not None else None,
            )
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            raise LedgerReadFailure(f"Malformed claim record: {e}", {"key": key}) from e


class LedgerSigner:
    """Signer-bound view: submits transactions from one account."""

    def __init__(self, backend: ContractBackend, account: str):
        self.backend = backend
        self.account = account

    async def create_claim(
        self,
        key: str,
        name: str,
        ciphertext: str,
        proof: str,
        tax_rate_percent: int,
        reserved: int,
        label: str,
    ) -> PendingTransaction:
        try:
            raw = await self.backend.create_claim(
                self.account, key, name, ciphertext, proof, tax_rate_percent, reserved, label,
            )
        except Exception as e:
            raise classify_transaction_error(e) from e
        logger.info(f"Submitted createClaim for {key}: {raw.tx_hash}")
        return PendingTransaction(raw, description=f"createClaim({key})")

    async def submit_verify_decryption(
        self,
        key: str,
        abi_encoded_clear_values: str,
        proof: str,
    ) -> PendingTransaction:
        try:
            raw = await self.backend.verify_decryption(self.account, key, abi_encoded_clear_values, proof)
        except Exception as e:
            raise classify_transaction_error(e) from e
        logger.info(f"Submitted verifyDecryption for {key}: {raw.tx_hash}")
        return PendingTransaction(raw, description=f"verifyDecryption({key})")


class LedgerClient:
    """Both views over one contract backend."""

    def __init__(self, backend: ContractBackend, key_prefix: str = DEFAULT_KEY_PREFIX):
        self.backend = backend
        self.reader = LedgerReader(backend, key_prefix=key_prefix)

    def signer(self, account: Optional[str]) -> LedgerSigner:
        """Bind a signer view to an account."""
        if not account:
            raise ValueError("account address is required for a signer")
        return LedgerSigner(self.backend, account)
