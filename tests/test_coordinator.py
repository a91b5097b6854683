"""
Tests for the claim lifecycle coordinator.

Runs create, reload, and decrypt-and-verify against the in-memory contract
and the mock FHE capability, including the failure and race paths.
"""

import asyncio

import pytest

from helpers import ALICE, BOB, create_claims
from src.fhe.gateway import EncryptionGateway
from src.fhe.mock import MockFheCapability
from src.lifecycle.coordinator import LifecycleCoordinator
from src.lifecycle.status import (
    MSG_ALREADY_VERIFIED,
    MSG_CONNECT_FIRST,
    MSG_CREATED,
    MSG_CREATING,
    MSG_DECRYPTED,
    MSG_FHE_INIT_FAILED,
    MSG_LOAD_FAILED,
    MSG_NO_CLAIMS,
    MSG_REJECTED,
    MSG_VERIFYING,
    MSG_WAITING_CONFIRMATION,
)
from src.refund.schema import ClaimState, ErrorStatus, IdleStatus, SuccessStatus


def verify_submissions(contract) -> list[str]:
    return [key for method, key in contract.submitted if method == "verify_decryption"]


async def seed_claim(ledger, key_service, contract, key: str, amount: int = 100) -> None:
    """Put a claim on the ledger directly, bypassing the coordinator's key scheme."""
    handle, proof = key_service.seal(contract.address, ALICE, amount)
    tx = await ledger.signer(ALICE).create_claim(key, "Receipt", handle, proof, 10, 0, "Tax Refund Claim")
    await tx.wait()


class RacingCapability(MockFheCapability):
    """Lets a rival verifier land its transaction while our proof is being built."""

    def __init__(self, key_service, contract):
        super().__init__(key_service)
        self.contract = contract

    async def public_decrypt(self, handles, contract_address, requester_address):
        proof = await super().public_decrypt(handles, contract_address, requester_address)
        rival = await self.contract.verify_decryption(
            BOB,
            self.race_key,
            proof.abi_encoded_clear_values,
            proof.decryption_proof,
        )
        await rival.wait()
        return proof


# ============================================================================
# Test: Connect
# ============================================================================


class TestConnect:

    @pytest.mark.asyncio
    async def test_connect_with_empty_ledger(self, coordinator):
        result = await coordinator.connect(ALICE)

        assert result.ok is True
        assert coordinator.is_connected
        assert coordinator.gateway.is_initialized
        assert coordinator.contract_address == coordinator.ledger.backend.address
        # the reload that follows finds nothing
        assert isinstance(coordinator.status.current, ErrorStatus)
        assert coordinator.status.current.message == MSG_NO_CLAIMS

    @pytest.mark.asyncio
    async def test_fhe_init_failure_still_loads_claims(self, connected, ledger, key_service, settings, clock):
        created = await connected.create_claim("Office chair", "250", "20")
        gateway = EncryptionGateway(MockFheCapability(key_service, available=False))
        coordinator = LifecycleCoordinator(ledger, gateway, settings=settings, clock=clock)

        result = await coordinator.connect(BOB)

        assert result.ok is False
        assert result.message == MSG_FHE_INIT_FAILED
        assert result.error == "EncryptionFailure"
        assert coordinator.account == BOB
        assert len(coordinator.store) == 1
        assert created.business_key in coordinator.store
        assert coordinator.contract_address == ledger.backend.address
        assert coordinator.status.current.message == MSG_FHE_INIT_FAILED
        coordinator.status.clear()

    @pytest.mark.asyncio
    async def test_disconnect_clears_claims(self, connected, clock):
        await create_claims(connected, clock, 2)

        connected.disconnect()

        assert not connected.is_connected
        assert len(connected.store) == 0


# ============================================================================
# Test: Create
# ============================================================================


class TestCreateClaim:

    @pytest.mark.asyncio
    async def test_create_claim(self, connected, contract):
        result = await connected.create_claim("Office chair", "250", "20")

        assert result.ok is True
        assert result.business_key == "refund-1700000000000"
        assert connected.status.messages(result.operation_id) == [
            MSG_CREATING,
            MSG_WAITING_CONFIRMATION,
            MSG_CREATED,
        ]

        claim = connected.store.get(result.business_key)
        assert claim is not None
        assert claim.id == 1700000000000
        assert claim.name == "Office chair"
        assert claim.tax_rate_percent == 20
        assert claim.creator == ALICE
        assert claim.created_at == 1700000000
        assert claim.is_verified is False
        assert claim.decrypted_value is None

    @pytest.mark.asyncio
    async def test_create_from_form_resets_form(self, connected):
        connected.update_form(name="Desk", amount="40", tax_rate_percent="15")

        result = await connected.create_claim()

        assert result.ok is True
        assert connected.store.get(result.business_key).name == "Desk"
        assert connected.form == {"name": "", "amount": "", "tax_rate_percent": ""}

    def test_update_form_rejects_unknown_fields(self, coordinator):
        with pytest.raises(ValueError):
            coordinator.update_form(colour="red")

    @pytest.mark.asyncio
    async def test_keys_unique_within_same_millisecond(self, connected):
        first = await connected.create_claim("A", "1", "10")
        second = await connected.create_claim("B", "2", "10")

        assert first.business_key == "refund-1700000000000"
        assert second.business_key == "refund-1700000000001"
        assert len(connected.store) == 2

    @pytest.mark.asyncio
    async def test_requires_connection(self, coordinator, contract):
        result = await coordinator.create_claim("Office chair", "250", "20")

        assert result.ok is False
        assert result.message == MSG_CONNECT_FIRST
        assert result.error == "NotConnected"
        assert contract.submitted == []
        coordinator.status.clear()

    @pytest.mark.asyncio
    async def test_rejects_empty_amount(self, connected, contract):
        result = await connected.create_claim("Office chair", "", "20")

        assert result.ok is False
        assert result.message == "Submission failed: Amount is required"
        assert result.error == "InvalidClaimInput"
        assert contract.submitted == []

    @pytest.mark.asyncio
    async def test_rejects_out_of_range_tax_rate(self, connected, contract):
        result = await connected.create_claim("Office chair", "250", "51")

        assert result.ok is False
        assert result.message.startswith("Submission failed: ")
        assert contract.submitted == []

    @pytest.mark.asyncio
    async def test_user_rejection(self, connected, contract):
        contract.fail_next("create_claim", RuntimeError("User rejected transaction"))

        result = await connected.create_claim("Office chair", "250", "20")

        assert result.ok is False
        assert result.message == MSG_REJECTED
        assert result.error == "TransactionRejected"
        assert len(connected.store) == 0
        assert connected.state_of(result.business_key) == ClaimState.UNSUBMITTED

    @pytest.mark.asyncio
    async def test_submission_failure(self, connected, contract):
        contract.fail_next("create_claim", RuntimeError("insufficient funds for gas"))

        result = await connected.create_claim("Office chair", "250", "20")

        assert result.ok is False
        assert result.message == "Submission failed: insufficient funds for gas"
        assert result.error == "TransactionFailure"


# ============================================================================
# Test: Reload
# ============================================================================


class TestReload:

    @pytest.mark.asyncio
    async def test_unreadable_claim_is_skipped(self, connected, contract, clock):
        keys = await create_claims(connected, clock, 5)
        contract.make_unreadable(keys[2])

        result = await connected.reload()

        assert result.ok is True
        assert result.loaded == 4
        assert result.skipped == [keys[2]]
        assert keys[2] not in connected.store
        assert connected.status.messages(result.operation_id) == []

    @pytest.mark.asyncio
    async def test_reload_does_not_need_a_wallet(self, connected, clock):
        await create_claims(connected, clock, 2)
        connected.disconnect()

        result = await connected.reload()

        assert result.ok is True
        assert len(connected.store) == 2

    @pytest.mark.asyncio
    async def test_list_failure_keeps_previous_claims(self, connected, contract, clock):
        await create_claims(connected, clock, 2)
        contract.fail_next("list_all_claim_keys", ConnectionError("RPC unavailable"))

        result = await connected.reload()

        assert result.ok is False
        assert result.message == MSG_LOAD_FAILED
        assert connected.status.current.message == MSG_LOAD_FAILED
        assert len(connected.store) == 2
        assert connected.refreshing is False

    @pytest.mark.asyncio
    async def test_empty_ledger(self, coordinator):
        result = await coordinator.reload()

        assert result.ok is False
        assert result.message == MSG_NO_CLAIMS
        assert len(coordinator.store) == 0
        coordinator.status.clear()

    @pytest.mark.asyncio
    async def test_keys_without_numeric_suffix_get_unique_ids(self, coordinator, ledger, key_service, contract):
        for key in ["refund-abc", "refund-xyz", "legacy-1"]:
            await seed_claim(ledger, key_service, contract, key)

        result = await coordinator.reload()

        ids = [coordinator.store.get(key).id for key in ["refund-abc", "refund-xyz", "legacy-1"]]
        assert result.loaded == 3
        assert len(set(ids)) == 3
        assert sorted(ids) == [1700000000000, 1700000000001, 1700000000002]

    @pytest.mark.asyncio
    async def test_fallback_ids_skip_parsed_ids(self, coordinator, ledger, key_service, contract):
        await seed_claim(ledger, key_service, contract, "refund-1700000000000")
        await seed_claim(ledger, key_service, contract, "refund-abc")
        await seed_claim(ledger, key_service, contract, "refund-1700000000001")

        await coordinator.reload()

        assert coordinator.store.get("refund-1700000000000").id == 1700000000000
        assert coordinator.store.get("refund-1700000000001").id == 1700000000001
        assert coordinator.store.get("refund-abc").id == 1700000000002

    @pytest.mark.asyncio
    async def test_replaces_rather_than_merges(self, connected, contract, clock):
        keys = await create_claims(connected, clock, 3)
        contract.make_unreadable(keys[0])

        await connected.reload()
        assert keys[0] not in connected.store

        contract.restore(keys[0])
        await connected.reload()
        assert keys[0] in connected.store


# ============================================================================
# Test: Decrypt and verify
# ============================================================================


class TestDecryptAndVerify:

    @pytest.mark.asyncio
    async def test_end_to_end(self, connected):
        created = await connected.create_claim("Office chair", "250", "20")

        result = await connected.decrypt_and_verify(created.business_key)

        assert result.ok is True
        assert result.value == 250
        assert connected.status.messages(result.operation_id) == [MSG_VERIFYING, MSG_DECRYPTED]

        claim = connected.store.get(created.business_key)
        assert claim.is_verified is True
        assert claim.decrypted_value == 250
        assert not connected.is_decrypting(created.business_key)

    @pytest.mark.asyncio
    async def test_already_verified_short_circuits(self, connected, contract, capability):
        created = await connected.create_claim("Office chair", "250", "20")
        await connected.decrypt_and_verify(created.business_key)

        again = await connected.decrypt_and_verify(created.business_key)

        assert again.ok is True
        assert again.value == 250
        assert again.message == MSG_ALREADY_VERIFIED
        assert connected.status.messages(again.operation_id) == [MSG_ALREADY_VERIFIED]
        assert verify_submissions(contract) == [created.business_key]
        assert capability.decrypt_requests == 1

    @pytest.mark.asyncio
    async def test_guard_released_after_failure(self, connected, contract):
        created = await connected.create_claim("Office chair", "250", "20")
        contract.fail_next("verify_decryption", RuntimeError("execution reverted: out of gas"))

        failed = await connected.decrypt_and_verify(created.business_key)

        assert failed.ok is False
        assert failed.message == "Decryption failed: execution reverted: out of gas"
        assert not connected.is_decrypting(created.business_key)

        retried = await connected.decrypt_and_verify(created.business_key)

        assert retried.ok is True
        assert retried.value == 250

    @pytest.mark.asyncio
    async def test_guard_released_when_verification_raises(self, connected, monkeypatch):
        created = await connected.create_claim("Office chair", "250", "20")

        async def broken_verify(operation_id, business_key, signer):
            assert connected.guard.held_keys() == [business_key]
            raise RuntimeError("event loop shut down")

        monkeypatch.setattr(connected, "_verify", broken_verify)

        with pytest.raises(RuntimeError):
            await connected.decrypt_and_verify(created.business_key)

        assert connected.guard.held_keys() == []

    @pytest.mark.asyncio
    async def test_proof_failure(self, connected, capability):
        created = await connected.create_claim("Office chair", "250", "20")
        capability.available = False

        result = await connected.decrypt_and_verify(created.business_key)

        assert result.ok is False
        assert result.message == "Decryption failed: Could not build decryption proof: relayer unavailable"
        assert result.error == "DecryptionFailure"
        assert connected.store.get(created.business_key).is_verified is False

    @pytest.mark.asyncio
    async def test_unknown_claim(self, connected):
        result = await connected.decrypt_and_verify("refund-42")

        assert result.ok is False
        assert result.message == "Decryption failed: Failed to load claim: Business data does not exist"
        assert result.error == "LedgerReadFailure"

    @pytest.mark.asyncio
    async def test_requires_connection(self, connected):
        created = await connected.create_claim("Office chair", "250", "20")
        connected.disconnect()

        result = await connected.decrypt_and_verify(created.business_key)

        assert result.ok is False
        assert result.message == MSG_CONNECT_FIRST

    @pytest.mark.asyncio
    async def test_concurrent_requests_submit_once(self, connected, contract):
        created = await connected.create_claim("Office chair", "250", "20")
        contract.latency = 0.05

        first, second = await asyncio.gather(
            connected.decrypt_and_verify(created.business_key),
            connected.decrypt_and_verify(created.business_key),
        )

        outcomes = sorted([first.ok, second.ok])
        assert outcomes == [False, True]
        refused = first if not first.ok else second
        assert refused.error == "DecryptionInFlight"
        assert verify_submissions(contract) == [created.business_key]
        assert not connected.is_decrypting(created.business_key)

    @pytest.mark.asyncio
    async def test_pending_verify_state_while_in_flight(self, connected, contract):
        created = await connected.create_claim("Office chair", "250", "20")
        contract.latency = 0.05

        task = asyncio.create_task(connected.decrypt_and_verify(created.business_key))
        await asyncio.sleep(0.01)

        assert connected.is_decrypting(created.business_key)
        assert connected.state_of(created.business_key) == ClaimState.PENDING_VERIFY

        result = await task

        assert result.ok is True
        assert connected.state_of(created.business_key) == ClaimState.VERIFIED

    @pytest.mark.asyncio
    async def test_lost_race_reports_already_verified(self, ledger, key_service, contract, settings, clock):
        capability = RacingCapability(key_service, contract)
        coordinator = LifecycleCoordinator(ledger, EncryptionGateway(capability), settings=settings, clock=clock)
        await coordinator.connect(ALICE)
        created = await coordinator.create_claim("Office chair", "250", "20")
        capability.race_key = created.business_key

        result = await coordinator.decrypt_and_verify(created.business_key)

        assert result.ok is True
        assert result.message == MSG_ALREADY_VERIFIED
        assert result.value == 250
        assert coordinator.store.get(created.business_key).is_verified is True
        assert not coordinator.is_decrypting(created.business_key)
        coordinator.status.clear()


# ============================================================================
# Test: State and status
# ============================================================================


class TestStateAndStatus:

    @pytest.mark.asyncio
    async def test_state_progression(self, connected):
        assert connected.state_of("refund-1700000000000") == ClaimState.UNSUBMITTED

        created = await connected.create_claim("Office chair", "250", "20")
        assert connected.state_of(created.business_key) == ClaimState.CREATED

        await connected.decrypt_and_verify(created.business_key)
        assert connected.state_of(created.business_key) == ClaimState.VERIFIED

    @pytest.mark.asyncio
    async def test_success_status_reverts_to_idle(self, connected):
        await connected.create_claim("Office chair", "250", "20")
        assert isinstance(connected.status.current, SuccessStatus)

        await asyncio.sleep(0.1)

        assert isinstance(connected.status.current, IdleStatus)
