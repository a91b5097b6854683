"""
Mock FHE capability.

Stands in for the relayer and KMS so the lifecycle runs offline. Plaintexts
are kept in process memory behind opaque handles; input and decryption proofs
are HMACs under a session key that the in-memory contract checks.
"""

import hashlib
import hmac
import itertools
import secrets
from typing import Optional, Sequence

from .gateway import DecryptionProof, EncryptedInput, FheCapability, encode_clear_values


class MockKeyService:
    """Holds plaintexts and signs / checks proofs for one session."""

    def __init__(self, secret: Optional[bytes] = None):
        self._secret = secret or secrets.token_bytes(32)
        self._plaintexts: dict[str, int] = {}
        self._bindings: dict[str, tuple[str, str]] = {}
        self._nonce = itertools.count(1)

    def _sign(self, *parts: str) -> str:
        message = "|".join(parts).encode("utf-8")
        return "0x" + hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    def seal(self, contract_address: str, owner_address: str, value: int) -> tuple[str, str]:
        """Store a plaintext and return (handle, input_proof)."""
        nonce = str(next(self._nonce))
        handle = "0x" + hashlib.sha256(
            self._secret + f"{contract_address}|{owner_address}|{nonce}".encode("utf-8")
        ).hexdigest()
        self._plaintexts[handle] = value
        self._bindings[handle] = (contract_address.lower(), owner_address.lower())
        return handle, self._sign("input", handle, contract_address.lower(), owner_address.lower())

    def check_input_proof(self, handle: str, proof: str, contract_address: str, owner_address: str) -> bool:
        expected = self._sign("input", handle, contract_address.lower(), owner_address.lower())
        return hmac.compare_digest(expected, proof)

    def reveal(self, handle: str) -> int:
        if handle not in self._plaintexts:
            raise KeyError(f"Unknown ciphertext handle {handle}")
        return self._plaintexts[handle]

    def is_bound_to(self, handle: str, contract_address: str) -> bool:
        binding = self._bindings.get(handle)
        return binding is not None and binding[0] == contract_address.lower()

    def sign_decryption(self, handles: Sequence[str], abi_encoded_clear_values: str) -> str:
        return self._sign("decrypt", ",".join(handles), abi_encoded_clear_values)

    def check_decryption_proof(self, handles: Sequence[str], abi_encoded_clear_values: str, proof: str) -> bool:
        expected = self.sign_decryption(handles, abi_encoded_clear_values)
        return hmac.compare_digest(expected, proof)


class MockFheCapability(FheCapability):
    """FHE capability backed by a MockKeyService."""

    def __init__(self, key_service: Optional[MockKeyService] = None, available: bool = True):
        self.key_service = key_service or MockKeyService()
        self.available = available
        self.decrypt_requests = 0

    async def initialize(self) -> None:
        if not self.available:
            raise RuntimeError("relayer unavailable")

    async def encrypt(self, contract_address: str, owner_address: str, value: int) -> EncryptedInput:
        if not self.available:
            raise RuntimeError("relayer unavailable")
        handle, proof = self.key_service.seal(contract_address, owner_address, value)
        return EncryptedInput(ciphertext=handle, proof=proof)

    async def public_decrypt(
        self,
        handles: Sequence[str],
        contract_address: str,
        requester_address: str,
    ) -> DecryptionProof:
        if not self.available:
            raise RuntimeError("relayer unavailable")
        self.decrypt_requests += 1

        clear_values = {}
        for handle in handles:
            if not self.key_service.is_bound_to(handle, contract_address):
                raise PermissionError(f"Handle {handle} is not decryptable for {contract_address}")
            clear_values[handle] = self.key_service.reveal(handle)

        abi = encode_clear_values([clear_values[h] for h in handles])
        return DecryptionProof(
            handles=list(handles),
            clear_values=clear_values,
            abi_encoded_clear_values=abi,
            decryption_proof=self.key_service.sign_decryption(handles, abi),
        )
