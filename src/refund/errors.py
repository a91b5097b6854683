"""
Error taxonomy for the refund claim lifecycle.

All exceptions inherit from RefundLifecycleError so the coordinator can catch
them at its boundary and map them to status messages.
"""

from typing import Optional


class RefundLifecycleError(Exception):
    """Base exception for all claim lifecycle errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class NotConnected(RefundLifecycleError):
    """Raised when an operation needs a wallet/signer binding and none is active."""
    pass


class InvalidClaimInput(RefundLifecycleError):
    """Raised when claim form input fails validation before encryption."""
    pass


class EncryptionFailure(RefundLifecycleError):
    """Raised when the FHE capability is unavailable or refuses the plaintext."""
    pass


class DecryptionFailure(RefundLifecycleError):
    """Raised when a decryption proof cannot be constructed."""
    pass


class LedgerReadFailure(RefundLifecycleError):
    """Raised when a read-only contract call fails."""
    pass


class TransactionRejected(RefundLifecycleError):
    """Raised when the user declines to sign a transaction."""
    pass


class TransactionFailure(RefundLifecycleError):
    """Raised when a transaction fails to submit or is reverted."""
    pass


class AlreadyVerified(TransactionFailure):
    """Raised when the ledger already marks the claim verified (verifier race)."""
    pass


class DecryptionInFlight(RefundLifecycleError):
    """Raised when a decryption guard for a claim is already held."""
    pass
