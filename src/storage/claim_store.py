"""
Session-scoped claim storage.

Caches the claim set loaded from the ledger. Nothing is persisted; the
whole collection is replaced on every reload, never merged.
"""

import logging
from datetime import datetime
from typing import Iterable, Optional

from ..refund.schema import Claim

logger = logging.getLogger(__name__)


class ClaimStore:
    """
    In-memory cache of ledger claims.

    Usage:
        store = ClaimStore()

        # Replace with a freshly loaded set
        store.replace_all(claims)

        # Retrieve
        claim = store.get("refund-1700000000000")

        # List all, newest first
        claims = store.list_all()
    """

    def __init__(self):
        """Initialize an empty store."""
        self._claims: dict[str, Claim] = {}
        self.last_loaded_at: Optional[datetime] = None

    def replace_all(self, claims: Iterable[Claim]) -> int:
        """
        Swap in a new claim set.

        Later records win when a business key appears twice.

        Returns:
            Number of claims now held
        """
        fresh: dict[str, Claim] = {}
        for claim in claims:
            if claim.business_key in fresh:
                logger.warning(f"Duplicate claim key in loaded set: {claim.business_key}")
            fresh[claim.business_key] = claim
        self._claims = fresh
        self.last_loaded_at = datetime.now()
        return len(self._claims)

    def get(self, business_key: str) -> Optional[Claim]:
        """
        Retrieve a claim by business key.

        Returns:
            Claim or None if not loaded
        """
        return self._claims.get(business_key)

    def list_all(self, verified: Optional[bool] = None) -> list[Claim]:
        """
        List claims, newest first.

        Args:
            verified: Filter by verification state when given
        """
        claims = self._claims.values()
        if verified is not None:
            claims = [c for c in claims if c.is_verified == verified]
        return sorted(claims, key=lambda c: (c.created_at, c.id), reverse=True)

    def count(self, verified: Optional[bool] = None) -> int:
        """Count claims, optionally by verification state."""
        if verified is None:
            return len(self._claims)
        return sum(1 for c in self._claims.values() if c.is_verified == verified)

    def clear(self) -> None:
        self._claims = {}
        self.last_loaded_at = None

    def __contains__(self, business_key: str) -> bool:
        return business_key in self._claims

    def __len__(self) -> int:
        return len(self._claims)
