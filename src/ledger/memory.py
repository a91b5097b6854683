"""
In-memory refund contract.

An append-only stand-in for the deployed contract, used for local runs and
tests. Transactions take effect when they are mined, i.e. on the first
wait(), and reads reflect the most recently mined state.
"""

import asyncio
import hashlib
import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from ..fhe.gateway import decode_clear_values
from ..fhe.mock import MockKeyService
from .client import ContractBackend, RawTransaction, TransactionReceipt

logger = logging.getLogger(__name__)


DEFAULT_CONTRACT_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"


@dataclass
class _ClaimRecord:
    """A claim row as the contract stores it."""
    name: str
    handle: str
    tax_rate_percent: int
    reserved_public_value: int
    label: str
    timestamp: int
    creator: str
    is_verified: bool = False
    decrypted_value: int = 0


class MemoryTransaction(RawTransaction):
    """A transaction that is mined on its first wait()."""

    def __init__(self, tx_hash: str, mine: Callable[[], Awaitable[int]], latency: float = 0.0):
        self.tx_hash = tx_hash
        self._mine = mine
        self._latency = latency
        self._receipt: Optional[TransactionReceipt] = None
        self._error: Optional[Exception] = None

    async def wait(self) -> TransactionReceipt:
        if self._receipt is not None:
            return self._receipt
        if self._error is not None:
            raise self._error
        await asyncio.sleep(self._latency)
        try:
            block_number = await self._mine()
        except Exception as e:
            self._error = e
            raise
        self._receipt = TransactionReceipt(tx_hash=self.tx_hash, block_number=block_number)
        return self._receipt


@dataclass
class _Faults:
    """One-shot and persistent failures to inject, keyed by contract method."""
    next_errors: dict[str, list[Exception]] = field(default_factory=dict)
    unreadable_keys: set[str] = field(default_factory=set)


class InMemoryContract(ContractBackend):
    """
    Mock of the refund contract surface.

    Usage:
        keys = MockKeyService()
        contract = InMemoryContract(keys)
        tx = await contract.create_claim(sender, "refund-1", "Lunch", handle, proof, 20, 0, "Tax Refund Claim")
        await tx.wait()
    """

    def __init__(
        self,
        key_service: MockKeyService,
        address: str = DEFAULT_CONTRACT_ADDRESS,
        clock: Callable[[], float] = time.time,
        latency: float = 0.0,
    ):
        self.key_service = key_service
        self.address = address
        self.clock = clock
        self.latency = latency
        self._records: dict[str, _ClaimRecord] = {}
        self._block = itertools.count(1)
        self._tx_counter = itertools.count(1)
        self._faults = _Faults()
        self.submitted: list[tuple[str, str]] = []

    # -------------------------------------------------------------------------
    # Fault injection
    # -------------------------------------------------------------------------

    def fail_next(self, method: str, error: Exception) -> None:
        """Make the next call to `method` raise `error`."""
        self._faults.next_errors.setdefault(method, []).append(error)

    def make_unreadable(self, key: str) -> None:
        """Make get_claim fail for `key` until restored."""
        self._faults.unreadable_keys.add(key)

    def restore(self, key: str) -> None:
        self._faults.unreadable_keys.discard(key)

    def _maybe_fail(self, method: str) -> None:
        queued = self._faults.next_errors.get(method)
        if queued:
            raise queued.pop(0)

    def _next_tx_hash(self, method: str, key: str) -> str:
        n = next(self._tx_counter)
        self.submitted.append((method, key))
        return "0x" + hashlib.sha256(f"{method}|{key}|{n}".encode("utf-8")).hexdigest()

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    async def get_address(self) -> str:
        return self.address

    async def list_all_claim_keys(self) -> list[str]:
        self._maybe_fail("list_all_claim_keys")
        return list(self._records)

    async def get_claim(self, key: str) -> dict:
        self._maybe_fail("get_claim")
        if key in self._faults.unreadable_keys:
            raise ConnectionError(f"RPC error while reading {key}")
        record = self._records.get(key)
        if record is None:
            raise LookupError("Business data does not exist")
        return {
            "name": record.name,
            "timestamp": record.timestamp,
            "creator": record.creator,
            "tax_rate_percent": record.tax_rate_percent,
            "reserved_public_value": record.reserved_public_value,
            "is_verified": record.is_verified,
            "decrypted_value": record.decrypted_value,
        }

    async def get_ciphertext_handle(self, key: str) -> str:
        self._maybe_fail("get_ciphertext_handle")
        record = self._records.get(key)
        if record is None:
            raise LookupError("Business data does not exist")
        return record.handle

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

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
        self._maybe_fail("create_claim")
        if key in self._records:
            raise RuntimeError("execution reverted: Business data already exists")
        if not self.key_service.check_input_proof(ciphertext, proof, self.address, sender):
            raise RuntimeError("execution reverted: Invalid input proof")

        async def mine() -> int:
            if key in self._records:
                raise RuntimeError("execution reverted: Business data already exists")
            self._records[key] = _ClaimRecord(
                name=name,
                handle=ciphertext,
                tax_rate_percent=tax_rate_percent,
                reserved_public_value=reserved,
                label=label,
                timestamp=int(self.clock()),
                creator=sender,
            )
            logger.debug(f"Mined createClaim for {key}")
            return next(self._block)

        return MemoryTransaction(self._next_tx_hash("create_claim", key), mine, self.latency)

    async def verify_decryption(
        self,
        sender: str,
        key: str,
        abi_encoded_clear_values: str,
        proof: str,
    ) -> RawTransaction:
        self._maybe_fail("verify_decryption")
        record = self._records.get(key)
        if record is None:
            raise RuntimeError("execution reverted: Business data does not exist")
        if record.is_verified:
            raise RuntimeError("execution reverted: Data already verified")
        if not self.key_service.check_decryption_proof([record.handle], abi_encoded_clear_values, proof):
            raise RuntimeError("execution reverted: Invalid decryption proof")
        (value,) = decode_clear_values(abi_encoded_clear_values)

        async def mine() -> int:
            if record.is_verified:
                raise RuntimeError("execution reverted: Data already verified")
            record.is_verified = True
            record.decrypted_value = value
            logger.debug(f"Mined verifyDecryption for {key}")
            return next(self._block)

        return MemoryTransaction(self._next_tx_hash("verify_decryption", key), mine, self.latency)
