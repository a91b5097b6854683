"""
Refund analysis metrics.

Pure, synchronous derivations from a claim's (amount, tax rate) pair plus
the dashboard summary over a loaded claim set. No I/O.

Rounding is round-half-up on exact decimal arithmetic, so results are
reproducible regardless of binary float representation.
"""

from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict

from .schema import Claim, LocalDecryption


DEFAULT_AMOUNT = 100
DEFAULT_TAX_RATE_PERCENT = 10

SAVINGS_FACTOR = Decimal("0.3")
MAX_EFFICIENCY = 100
MAX_CONFIDENCE = 95
MIN_PROCESSING_DAYS = 1


class RefundAnalysis(BaseModel):
    """Derived display metrics for one claim."""
    model_config = ConfigDict(frozen=True)

    refund_amount: int
    tax_savings: int
    efficiency: int
    processing_time: int
    confidence: int


class DashboardSummary(BaseModel):
    """Aggregate metrics over the loaded claim set."""
    model_config = ConfigDict(frozen=True)

    total_claims: int
    verified_claims: int
    average_refund: float
    recent_claims: int


def round_half_up(value: Decimal) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def analyze(amount: Optional[int] = None, tax_rate_percent: Optional[int] = None) -> RefundAnalysis:
    """
    Compute refund metrics for an amount and tax rate.

    Args:
        amount: Claim amount; defaults to 100 when unknown
        tax_rate_percent: Public tax rate; defaults to 10 when absent or zero

    Returns:
        RefundAnalysis with the five derived metrics
    """
    amount = DEFAULT_AMOUNT if amount is None else amount
    tax_rate_percent = tax_rate_percent or DEFAULT_TAX_RATE_PERCENT

    a = Decimal(amount)
    refund_amount = round_half_up(a * Decimal(tax_rate_percent) / 100)
    tax_savings = round_half_up(Decimal(refund_amount) * SAVINGS_FACTOR)
    efficiency = min(MAX_EFFICIENCY, round_half_up(a / 1000 * 100))
    processing_time = max(MIN_PROCESSING_DAYS, round_half_up(10 - a / 1000))
    confidence = min(MAX_CONFIDENCE, round_half_up(a / 500 * 100))

    return RefundAnalysis(
        refund_amount=refund_amount,
        tax_savings=tax_savings,
        efficiency=efficiency,
        processing_time=processing_time,
        confidence=confidence,
    )


def analyze_claim(claim: Claim, local: Optional[LocalDecryption] = None) -> RefundAnalysis:
    """
    Analyze a claim using the best amount available.

    The on-chain verified value always wins; a local decryption is only used
    for unverified claims.
    """
    if claim.is_verified:
        amount = claim.decrypted_value
    elif local is not None and local.business_key == claim.business_key:
        amount = local.value
    else:
        amount = None
    return analyze(amount, claim.tax_rate_percent)


def summarize(
    claims: Iterable[Claim],
    now: Optional[datetime] = None,
    recent_window_days: int = 7,
) -> DashboardSummary:
    """Summarize a claim set for the dashboard panels."""
    claims = list(claims)
    now = now or datetime.now()
    cutoff = (now - timedelta(days=recent_window_days)).timestamp()

    total = len(claims)
    verified = sum(1 for c in claims if c.is_verified)
    verified_sum = sum(c.decrypted_value or 0 for c in claims if c.is_verified)
    recent = sum(1 for c in claims if c.created_at > cutoff)

    return DashboardSummary(
        total_claims=total,
        verified_claims=verified,
        average_refund=verified_sum / total if total else 0.0,
        recent_claims=recent,
    )
