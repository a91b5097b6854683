"""
State for one open claim detail view.

Holds the ephemeral LocalDecryption, which is dropped when the view closes
and never outranks the on-chain verified value.
"""

from typing import Optional

from ..refund.analysis import RefundAnalysis, analyze_claim
from ..refund.schema import Claim, LocalDecryption
from .coordinator import LifecycleCoordinator, OperationResult


class ClaimDetailSession:
    """Detail view of one claim, backed by the coordinator."""

    def __init__(self, coordinator: LifecycleCoordinator, business_key: str):
        self.coordinator = coordinator
        self.business_key = business_key
        self.local: Optional[LocalDecryption] = None

    @property
    def claim(self) -> Optional[Claim]:
        return self.coordinator.store.get(self.business_key)

    @property
    def is_decrypting(self) -> bool:
        return self.coordinator.is_decrypting(self.business_key)

    async def toggle_decryption(self) -> Optional[OperationResult]:
        """
        Hide a shown local decryption, or run decrypt-and-verify and keep the
        returned value for display.

        Returns None when it only hid the value.
        """
        if self.local is not None:
            self.local = None
            return None

        result = await self.coordinator.decrypt_and_verify(self.business_key)
        if result.ok and result.value is not None:
            self.local = LocalDecryption(business_key=self.business_key, value=result.value)
        return result

    def display_value(self) -> Optional[int]:
        claim = self.claim
        if claim is not None and claim.is_verified:
            return claim.decrypted_value
        if self.local is not None:
            return self.local.value
        return None

    def analysis(self) -> Optional[RefundAnalysis]:
        """Metrics for the claim, once a value is known."""
        claim = self.claim
        if claim is None or (not claim.is_verified and self.local is None):
            return None
        return analyze_claim(claim, self.local)

    def close(self) -> None:
        self.local = None
