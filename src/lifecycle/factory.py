"""Build a coordinator from settings."""

import logging
import time
from typing import Callable, Optional

from ..fhe.gateway import EncryptionGateway
from ..fhe.mock import MockFheCapability, MockKeyService
from ..ledger.client import LedgerClient
from ..ledger.memory import DEFAULT_CONTRACT_ADDRESS, InMemoryContract
from ..utils.config import Settings, get_settings
from .coordinator import LifecycleCoordinator

logger = logging.getLogger(__name__)


def build_coordinator(
    settings: Optional[Settings] = None,
    clock: Callable[[], float] = time.time,
) -> LifecycleCoordinator:
    """
    Factory function to wire the configured ledger and FHE backends.

    Only the in-process backends ('memory' ledger, 'mock' FHE) ship with
    this package; they share one key service so proofs check out.
    """
    settings = settings or get_settings()

    if settings.ledger_backend != "memory":
        raise ValueError(f"Unsupported ledger backend: {settings.ledger_backend}")
    if settings.fhe_backend != "mock":
        raise ValueError(f"Unsupported FHE backend: {settings.fhe_backend}")

    key_service = MockKeyService()
    contract = InMemoryContract(
        key_service,
        address=settings.contract_address or DEFAULT_CONTRACT_ADDRESS,
        clock=clock,
    )
    gateway = EncryptionGateway(MockFheCapability(key_service))
    ledger = LedgerClient(contract, key_prefix=settings.business_key_prefix)

    logger.info(
        f"Initialized coordinator with ledger backend: {settings.ledger_backend}, "
        f"FHE backend: {settings.fhe_backend}"
    )
    return LifecycleCoordinator(ledger, gateway, settings=settings, clock=clock)
