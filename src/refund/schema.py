"""
Canonical schema for encrypted tax refund claims.

Defines Pydantic models for ledger-recorded claims, claim form input,
the transaction status projection, and ephemeral local decryptions.
"""

import time
from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import InvalidClaimInput


MIN_TAX_RATE_PERCENT = 1
MAX_TAX_RATE_PERCENT = 50

DEFAULT_KEY_PREFIX = "refund-"


# ============================================================================
# Enums
# ============================================================================


class ClaimState(str, Enum):
    """Conceptual lifecycle state of a claim, as seen by this client."""
    UNSUBMITTED = "unsubmitted"
    PENDING_CREATE = "pending_create"
    CREATED = "created"
    PENDING_VERIFY = "pending_verify"
    VERIFIED = "verified"


class Operation(str, Enum):
    """Coordinator operations that report into the status projection."""
    CONNECT = "connect"
    CREATE = "create"
    RELOAD = "reload"
    VERIFY = "verify"


# ============================================================================
# Claim
# ============================================================================


def parse_claim_id(business_key: str, prefix: str = DEFAULT_KEY_PREFIX) -> Optional[int]:
    """Numeric suffix of a business key, or None when it is not a number."""
    suffix = business_key[len(prefix):] if business_key.startswith(prefix) else business_key
    try:
        return int(suffix)
    except ValueError:
        return None


def claim_id_from_key(business_key: str, prefix: str = DEFAULT_KEY_PREFIX) -> int:
    """
    Derive the local numeric id of a claim from its business key.

    Falls back to the current time in epoch millis when the suffix is not
    a number. Callers loading a whole claim set must still make fallback
    ids unique within that set.
    """
    claim_id = parse_claim_id(business_key, prefix)
    if claim_id is None:
        return int(time.time() * 1000)
    return claim_id


class Claim(BaseModel):
    """
    A single receipt claim as recorded on the ledger.

    Only the verification fields ever change, and they change by reloading
    a fresh record from the ledger rather than mutating this one.
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(description="Local numeric id derived from the business key")
    business_key: str = Field(description="Ledger-side identifier, e.g. 'refund-1700000000000'")
    name: str = Field(description="Free-text receipt description")
    tax_rate_percent: int = Field(ge=0, description="Public tax rate fixed at creation")
    created_at: int = Field(description="Unix timestamp (seconds) of transaction inclusion")
    creator: str = Field(description="Ledger address of the submitter")
    reserved_public_value: int = Field(default=0, description="Second public slot, unused by refunds")
    is_verified: bool = Field(default=False, description="Whether a decrypt-verify transaction confirmed")
    decrypted_value: Optional[int] = Field(default=None, description="Verified cleartext amount")

    @model_validator(mode="after")
    def check_verified_value(self) -> "Claim":
        """A verified claim must carry its decrypted value."""
        if self.is_verified and self.decrypted_value is None:
            raise ValueError("verified claim must have a decrypted value")
        return self

    @property
    def created_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.created_at)


# ============================================================================
# Claim form input
# ============================================================================


def _parse_whole_number(value, label: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{label} must be a whole number")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError(f"{label} is required")
        if not (text.isascii() and text.isdigit()):
            raise ValueError(f"{label} must be a non-negative whole number")
        return int(text)
    raise ValueError(f"{label} must be a whole number")


class ClaimDraft(BaseModel):
    """
    Validated input for a new claim.

    Empty or non-numeric amounts are rejected instead of being coerced to 0.
    """

    name: str
    amount: int = Field(ge=0)
    tax_rate_percent: int = Field(ge=MIN_TAX_RATE_PERCENT, le=MAX_TAX_RATE_PERCENT)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Description cannot be empty")
        return v.strip()

    @field_validator("amount", mode="before")
    @classmethod
    def parse_amount(cls, v):
        return _parse_whole_number(v, "Amount")

    @field_validator("tax_rate_percent", mode="before")
    @classmethod
    def parse_tax_rate(cls, v):
        return _parse_whole_number(v, "Tax rate")

    @classmethod
    def parse(cls, name, amount, tax_rate_percent) -> "ClaimDraft":
        """Build a draft from raw form values, raising InvalidClaimInput on bad input."""
        try:
            return cls(name=name, amount=amount, tax_rate_percent=tax_rate_percent)
        except ValidationError as e:
            first = e.errors()[0]
            field = first["loc"][0] if first["loc"] else "input"
            message = first["msg"].removeprefix("Value error, ")
            raise InvalidClaimInput(message, {"field": field}) from e


# ============================================================================
# Transaction status projection
# ============================================================================


class IdleStatus(BaseModel):
    """Nothing to show."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["idle"] = "idle"


class _OperationStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    operation_id: str
    operation: Operation


class PendingStatus(_OperationStatus):
    kind: Literal["pending"] = "pending"


class SuccessStatus(_OperationStatus):
    kind: Literal["success"] = "success"


class ErrorStatus(_OperationStatus):
    kind: Literal["error"] = "error"


TransactionStatus = Annotated[
    Union[IdleStatus, PendingStatus, SuccessStatus, ErrorStatus],
    Field(discriminator="kind"),
]


# ============================================================================
# Local decryption
# ============================================================================


class LocalDecryption(BaseModel):
    """
    A value decrypted outside the ledger's trust boundary.

    Only good for optimistic display; never authoritative.
    """

    model_config = ConfigDict(frozen=True)

    business_key: str
    value: int
    obtained_at: datetime = Field(default_factory=datetime.now)
