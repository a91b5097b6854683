"""Claim lifecycle coordination: create, reload, decrypt-and-verify."""

from .coordinator import (
    LifecycleCoordinator,
    OperationResult,
    ReloadResult,
)
from .detail import ClaimDetailSession
from .factory import build_coordinator
from .guard import DecryptionGuard
from .status import StatusBoard

__all__ = [
    "LifecycleCoordinator",
    "OperationResult",
    "ReloadResult",
    "ClaimDetailSession",
    "build_coordinator",
    "DecryptionGuard",
    "StatusBoard",
]
