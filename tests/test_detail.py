"""
Tests for the claim detail session and its local decryption.
"""

import pytest

from src.lifecycle.detail import ClaimDetailSession
from src.refund.analysis import analyze
from src.refund.schema import LocalDecryption


@pytest.mark.asyncio
async def test_toggle_decrypts_then_hides(connected):
    created = await connected.create_claim("Office chair", "250", "20")
    session = ClaimDetailSession(connected, created.business_key)

    result = await session.toggle_decryption()

    assert result.ok is True
    assert session.local.value == 250
    assert session.display_value() == 250
    assert session.analysis() == analyze(250, 20)

    assert await session.toggle_decryption() is None
    assert session.local is None
    # verified on-chain, so the value is still shown
    assert session.display_value() == 250


@pytest.mark.asyncio
async def test_unverified_claim_without_local_value(connected):
    created = await connected.create_claim("Office chair", "250", "20")
    session = ClaimDetailSession(connected, created.business_key)

    assert session.display_value() is None
    assert session.analysis() is None
    assert session.is_decrypting is False


@pytest.mark.asyncio
async def test_local_value_shown_for_unverified_claim(connected):
    created = await connected.create_claim("Office chair", "250", "20")
    session = ClaimDetailSession(connected, created.business_key)
    session.local = LocalDecryption(business_key=created.business_key, value=250)

    assert session.display_value() == 250
    assert session.analysis() == analyze(250, 20)

    session.close()

    assert session.display_value() is None


@pytest.mark.asyncio
async def test_verified_value_outranks_local(connected):
    created = await connected.create_claim("Office chair", "250", "20")
    await connected.decrypt_and_verify(created.business_key)
    session = ClaimDetailSession(connected, created.business_key)
    session.local = LocalDecryption(business_key=created.business_key, value=7)

    assert session.display_value() == 250
    assert session.analysis() == analyze(250, 20)


@pytest.mark.asyncio
async def test_failed_decryption_keeps_nothing(connected, capability):
    created = await connected.create_claim("Office chair", "250", "20")
    capability.available = False
    session = ClaimDetailSession(connected, created.business_key)

    result = await session.toggle_decryption()

    assert result.ok is False
    assert session.local is None
