"""
Tax refund claim domain.

Claim records, form validation, status variants and refund analysis.
"""

from .analysis import DashboardSummary, RefundAnalysis, analyze, analyze_claim, summarize
from .errors import (
    AlreadyVerified,
    DecryptionFailure,
    DecryptionInFlight,
    EncryptionFailure,
    InvalidClaimInput,
    LedgerReadFailure,
    NotConnected,
    RefundLifecycleError,
    TransactionFailure,
    TransactionRejected,
)
from .schema import (
    # Enums
    ClaimState,
    Operation,
    # Models
    Claim,
    ClaimDraft,
    LocalDecryption,
    IdleStatus,
    PendingStatus,
    SuccessStatus,
    ErrorStatus,
    TransactionStatus,
    claim_id_from_key,
    parse_claim_id,
)

__all__ = [
    # Analysis
    "analyze",
    "analyze_claim",
    "summarize",
    "RefundAnalysis",
    "DashboardSummary",
    # Errors
    "RefundLifecycleError",
    "NotConnected",
    "InvalidClaimInput",
    "EncryptionFailure",
    "DecryptionFailure",
    "LedgerReadFailure",
    "TransactionRejected",
    "TransactionFailure",
    "AlreadyVerified",
    "DecryptionInFlight",
    # Enums
    "ClaimState",
    "Operation",
    # Models
    "Claim",
    "ClaimDraft",
    "LocalDecryption",
    "IdleStatus",
    "PendingStatus",
    "SuccessStatus",
    "ErrorStatus",
    "TransactionStatus",
    "claim_id_from_key",
    "parse_claim_id",
]
