"""FHE encryption gateway and the offline mock capability."""

from .gateway import (
    MAX_PLAINTEXT,
    DecryptionProof,
    EncryptedInput,
    EncryptionGateway,
    FheCapability,
    decode_clear_values,
    encode_clear_values,
)
from .mock import MockFheCapability, MockKeyService

__all__ = [
    "MAX_PLAINTEXT",
    "DecryptionProof",
    "EncryptedInput",
    "EncryptionGateway",
    "FheCapability",
    "decode_clear_values",
    "encode_clear_values",
    "MockFheCapability",
    "MockKeyService",
]
