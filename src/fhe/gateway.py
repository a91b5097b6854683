"""
Encryption gateway over an FHE capability.

The capability itself (relayer, KMS, the scheme's mathematics) is external.
This module wraps it with input checks, error translation, and the two-phase
decryption protocol: request a proof, then let the caller submit it.
"""

import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Sequence

from pydantic import BaseModel, ConfigDict

from ..refund.errors import DecryptionFailure, EncryptionFailure

logger = logging.getLogger(__name__)


# Refund amounts are encrypted as euint32
MAX_PLAINTEXT = 2**32 - 1

WORD_BYTES = 32


class EncryptedInput(BaseModel):
    """Ciphertext handle plus the input proof binding it to contract and owner."""
    model_config = ConfigDict(frozen=True)

    ciphertext: str
    proof: str


class DecryptionProof(BaseModel):
    """Cleartexts for a set of handles plus the proof the ledger can check."""
    model_config = ConfigDict(frozen=True)

    handles: list[str]
    clear_values: dict[str, int]
    abi_encoded_clear_values: str
    decryption_proof: str

    def clear_value(self, handle: str) -> int:
        if handle not in self.clear_values:
            raise DecryptionFailure("Decryption result is missing the requested handle", {"handle": handle})
        return self.clear_values[handle]


def encode_clear_values(values: Sequence[int]) -> str:
    """ABI-encode cleartexts as consecutive uint256 words."""
    encoded = b"".join(int(v).to_bytes(WORD_BYTES, "big") for v in values)
    return "0x" + encoded.hex()


def decode_clear_values(data: str) -> list[int]:
    """Inverse of encode_clear_values."""
    raw = bytes.fromhex(data[2:] if data.startswith("0x") else data)
    if len(raw) % WORD_BYTES:
        raise ValueError("ABI payload is not a whole number of words")
    return [int.from_bytes(raw[i:i + WORD_BYTES], "big") for i in range(0, len(raw), WORD_BYTES)]


class FheCapability(ABC):
    """The external encrypt / public-decrypt capability."""

    @abstractmethod
    async def initialize(self) -> None:
        ...

    @abstractmethod
    async def encrypt(self, contract_address: str, owner_address: str, value: int) -> EncryptedInput:
        ...

    @abstractmethod
    async def public_decrypt(
        self,
        handles: Sequence[str],
        contract_address: str,
        requester_address: str,
    ) -> DecryptionProof:
        ...


# Receives (abi_encoded_clear_values, decryption_proof) and returns a pending transaction
SubmitProofCallback = Callable[[str, str], Awaitable]


class EncryptionGateway:
    """
    Encrypt claim amounts and obtain decryption proofs.

    Usage:
        gateway = EncryptionGateway(capability)
        await gateway.initialize()
        encrypted = await gateway.encrypt(contract, owner, 250)
        proof = await gateway.request_decryption_proof([handle], contract, owner)
    """

    def __init__(self, capability: FheCapability):
        self.capability = capability
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Prepare the capability; safe to call more than once."""
        if self._initialized:
            return
        try:
            await self.capability.initialize()
        except Exception as e:
            raise EncryptionFailure(f"FHE initialization failed: {e}") from e
        self._initialized = True
        logger.info("FHE capability initialized")

    async def encrypt(self, contract_address: str, owner_address: str, plaintext: int) -> EncryptedInput:
        """
        Encrypt a non-negative integer bound to a contract and owner.

        Raises:
            EncryptionFailure: capability unavailable or plaintext unsupported
        """
        if not self._initialized:
            raise EncryptionFailure("FHE capability is not initialized")
        if isinstance(plaintext, bool) or not isinstance(plaintext, int):
            raise EncryptionFailure("Plaintext must be an integer", {"plaintext": plaintext})
        if plaintext < 0 or plaintext > MAX_PLAINTEXT:
            raise EncryptionFailure("Plaintext is outside the supported range", {"plaintext": plaintext})

        try:
            result = await self.capability.encrypt(contract_address, owner_address, plaintext)
        except Exception as e:
            raise EncryptionFailure(f"Encryption failed: {e}") from e
        logger.debug(f"Encrypted value for {owner_address} on {contract_address}")
        return result

    async def request_decryption_proof(
        self,
        handles: Sequence[str],
        contract_address: str,
        requester_address: str,
    ) -> DecryptionProof:
        """
        First phase of decrypt-then-verify: obtain cleartexts and their proof.

        Raises:
            DecryptionFailure: the proof cannot be constructed
        """
        handles = list(handles)
        if not handles:
            raise DecryptionFailure("At least one ciphertext handle is required")
        if not self._initialized:
            raise DecryptionFailure("FHE capability is not initialized")

        try:
            result = await self.capability.public_decrypt(handles, contract_address, requester_address)
        except Exception as e:
            raise DecryptionFailure(f"Could not build decryption proof: {e}") from e

        for handle in handles:
            result.clear_value(handle)
        return result

    async def verify_decryption(
        self,
        handles: Sequence[str],
        contract_address: str,
        requester_address: str,
        on_submit_proof: SubmitProofCallback,
    ) -> DecryptionProof:
        """
        Callback form: request the proof, hand it to on_submit_proof, and wait
        for the resulting transaction. Transaction errors propagate unchanged.
        """
        proof = await self.request_decryption_proof(handles, contract_address, requester_address)
        pending = await on_submit_proof(proof.abi_encoded_clear_values, proof.decryption_proof)
        await pending.wait()
        return proof
