"""
Storage module for loaded claims.

Provides a session-memory cache of the claim set read from the ledger.
"""

from .claim_store import ClaimStore

__all__ = [
    "ClaimStore",
]
