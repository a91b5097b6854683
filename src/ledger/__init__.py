"""
Ledger module for the refund contract.

Provides the read-only and signer-bound views over a contract backend, and
an in-memory backend for local runs.
"""

from .client import (
    ContractBackend,
    LedgerClient,
    LedgerReader,
    LedgerSigner,
    PendingTransaction,
    RawTransaction,
    TransactionReceipt,
    classify_transaction_error,
)
from .memory import DEFAULT_CONTRACT_ADDRESS, InMemoryContract

__all__ = [
    "ContractBackend",
    "LedgerClient",
    "LedgerReader",
    "LedgerSigner",
    "PendingTransaction",
    "RawTransaction",
    "TransactionReceipt",
    "classify_transaction_error",
    "DEFAULT_CONTRACT_ADDRESS",
    "InMemoryContract",
]
