"""
Shared fixtures: a fixed clock, the in-memory contract, the mock FHE
capability, and coordinators wired to them.
"""

import logging

import pytest
import pytest_asyncio

from helpers import ALICE, FakeClock
from src.fhe.gateway import EncryptionGateway
from src.fhe.mock import MockFheCapability, MockKeyService
from src.ledger.client import LedgerClient
from src.ledger.memory import InMemoryContract
from src.lifecycle.coordinator import LifecycleCoordinator
from src.utils.config import Settings


# Setup logging for tests
logging.basicConfig(level=logging.INFO)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def settings():
    """Settings isolated from the environment, with short status windows."""
    return Settings(
        _env_file=None,
        success_display_seconds=0.05,
        error_display_seconds=0.05,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def key_service():
    return MockKeyService(secret=b"test-secret")


@pytest.fixture
def contract(key_service, clock):
    return InMemoryContract(key_service, clock=clock)


@pytest.fixture
def capability(key_service):
    return MockFheCapability(key_service)


@pytest.fixture
def gateway(capability):
    return EncryptionGateway(capability)


@pytest.fixture
def ledger(contract, settings):
    return LedgerClient(contract, key_prefix=settings.business_key_prefix)


@pytest.fixture
def coordinator(ledger, gateway, settings, clock):
    """A coordinator with no wallet connected."""
    return LifecycleCoordinator(ledger, gateway, settings=settings, clock=clock)


@pytest_asyncio.fixture
async def connected(coordinator):
    """A coordinator connected as ALICE."""
    await coordinator.connect(ALICE)
    yield coordinator
    coordinator.status.clear()
