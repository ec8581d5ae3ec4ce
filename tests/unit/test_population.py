"""
ProposalPopulationPipeline Unit Tests
=====================================
Tests for proposal creation, success-gated transaction indices,
recovery sets and sign-off gating.

These tests verify:
1. Indices are contiguous from 0 and only confirmed inserts take one
2. Failed items land in the recovery set in input order
3. Sign-off happens if and only if nothing failed
4. Fatal errors abort the run
5. Resuming a recovery set completes the same proposal
"""

import os

import pytest

from grant_proposer.config.settings import GovernanceSettings
from grant_proposer.execution.models import ProposalParams, WorkItem
from grant_proposer.execution.population import ProposalPopulationPipeline
from grant_proposer.governance import instructions as gov_ix
from grant_proposer.governance.addresses import (
    get_proposal_address,
    get_proposal_transaction_address,
    get_token_owner_record_address,
)
from grant_proposer.shared.errors import (
    ConfigurationError,
    PayloadDecodeError,
    ProposalCreationError,
    ProtocolPreconditionError,
    SignOffError,
    SigningError,
)
from tests.mocks import (
    MockSigner,
    fails_item,
    inserted_index,
    instruction_kind,
    make_work_items,
    marker,
)


PARAMS = ProposalParams(name="Q3 contributor grants", description="https://forum.example/q3")


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def pipeline(settings, ledger):
    return ProposalPopulationPipeline(settings, ledger)


def confirmed_inserts(ledger):
    return [tx for tx in ledger.confirmed if instruction_kind(tx) == gov_ix.INSERT_TRANSACTION]


# ============================================================================
# PROPOSAL IDENTITY
# ============================================================================


@pytest.mark.unit
class TestLoadProposal:

    def test_next_proposal_from_governance_count(self, pipeline, settings, realm, signer):
        proposal = pipeline.load_proposal(signer)

        assert proposal.proposal_index == 7
        assert proposal.realm == realm
        assert proposal.proposal_address == get_proposal_address(
            settings.governance_program, settings.governance, settings.council_mint, 7
        )
        assert proposal.owner_record == get_token_owner_record_address(
            settings.governance_program, realm, settings.council_mint, signer.pubkey()
        )
        assert proposal.authority == signer.pubkey()

    def test_missing_governance_account(self, settings, signer):
        from tests.mocks import MockLedgerClient

        ledger = MockLedgerClient()
        with pytest.raises(ProtocolPreconditionError, match="unreadable"):
            ProposalPopulationPipeline(settings, ledger).populate(PARAMS, make_work_items(2), signer)
        assert ledger.submit_calls == 0

    def test_malformed_governance_account(self, settings, ledger, signer):
        ledger.set_account(settings.governance, bytes(20))
        with pytest.raises(ProtocolPreconditionError):
            ProposalPopulationPipeline(settings, ledger).populate(PARAMS, make_work_items(2), signer)
        assert ledger.submit_calls == 0

    def test_governance_key_required(self, ledger, signer, tmp_path):
        from solders.pubkey import Pubkey

        settings = GovernanceSettings(governance_program=Pubkey.new_unique(), output_dir=str(tmp_path))
        with pytest.raises(ConfigurationError, match="GOVERNANCE"):
            ProposalPopulationPipeline(settings, ledger).load_proposal(signer)


# ============================================================================
# HAPPY PATH
# ============================================================================


@pytest.mark.unit
class TestPopulateAllConfirmed:

    def test_indices_contiguous_from_zero(self, pipeline, ledger, signer):
        result = pipeline.populate(PARAMS, make_work_items(4), signer)

        assert [slot.index for slot in result.inserted] == [0, 1, 2, 3]
        assert [inserted_index(tx) for tx in confirmed_inserts(ledger)] == [0, 1, 2, 3]

    def test_slot_addresses_are_proposal_transaction_pdas(self, pipeline, settings, signer):
        result = pipeline.populate(PARAMS, make_work_items(3), signer)

        for i, slot in enumerate(result.inserted):
            assert slot.address == get_proposal_transaction_address(
                settings.governance_program, result.proposal_address, 0, i
            )

    def test_transaction_sequence(self, pipeline, ledger, signer):
        pipeline.populate(PARAMS, make_work_items(2), signer)

        assert ledger.confirmed_kinds() == [
            gov_ix.CREATE_PROPOSAL,
            gov_ix.INSERT_TRANSACTION,
            gov_ix.INSERT_TRANSACTION,
            gov_ix.SIGN_OFF_PROPOSAL,
        ]
        # create proposal and add signatory travel together
        assert len(ledger.confirmed[0].message.instructions) == 2

    def test_signed_off_without_recovery(self, pipeline, settings, signer):
        result = pipeline.populate(PARAMS, make_work_items(3), signer)

        assert result.signed_off
        assert result.recovery is None
        assert not result.partial_failure
        assert os.path.exists(result.manifest_path)
        assert not os.path.exists(os.path.join(settings.output_dir, "erroneous_txs.json"))

    def test_payloads_preserved_byte_for_byte(self, pipeline, signer):
        items = make_work_items(3)
        result = pipeline.populate(PARAMS, items, signer)

        assert [slot.work_item.payload for slot in result.manifest.slots] == [i.payload for i in items]
        assert [slot.work_item.metadata for slot in result.manifest.slots] == [i.metadata for i in items]

    def test_retry_within_budget_does_not_skip_an_index(self, pipeline, ledger, signer):
        # submit calls: 1 = create, 2 = item 0, 3..5 = item 1 failing three times
        ledger.fail_submit(3, 4, 5)
        result = pipeline.populate(PARAMS, make_work_items(3), signer)

        assert [slot.index for slot in result.inserted] == [0, 1, 2]
        assert result.signed_off

    def test_empty_batch_signs_off_immediately(self, pipeline, ledger, signer):
        result = pipeline.populate(PARAMS, [], signer)

        assert ledger.confirmed_kinds() == [gov_ix.CREATE_PROPOSAL, gov_ix.SIGN_OFF_PROPOSAL]
        assert result.signed_off
        assert result.recovery is None
        assert len(result.manifest) == 0


# ============================================================================
# PARTIAL FAILURE
# ============================================================================


@pytest.mark.unit
class TestPopulatePartialFailure:

    def test_three_items_middle_fails(self, pipeline, ledger, signer):
        items = make_work_items(3)
        ledger.fail_when(fails_item(marker(1)))

        result = pipeline.populate(PARAMS, items, signer)

        assert [(s.work_item, s.index) for s in result.inserted] == [(items[0], 0), (items[2], 1)]
        assert result.recovery.items == [items[1]]
        assert not result.signed_off
        assert gov_ix.SIGN_OFF_PROPOSAL not in ledger.confirmed_kinds()

    def test_failed_item_exhausts_all_attempts(self, pipeline, ledger, signer):
        ledger.fail_when(fails_item(marker(1)))
        pipeline.populate(PARAMS, make_work_items(3), signer)

        attempts = [tx for tx in ledger.submitted if marker(1) in bytes(tx.message.instructions[0].data)]
        assert len(attempts) == 5

    def test_k_failures_leave_contiguous_indices(self, pipeline, ledger, signer):
        items = make_work_items(6)
        for n in (0, 3, 5):
            ledger.fail_when(fails_item(marker(n)))

        result = pipeline.populate(PARAMS, items, signer)

        assert [s.index for s in result.inserted] == [0, 1, 2]
        assert [s.work_item for s in result.inserted] == [items[1], items[2], items[4]]
        assert result.recovery.items == [items[0], items[3], items[5]]
        assert result.failed_count == 3

    def test_recovery_set_persisted(self, pipeline, ledger, signer):
        items = make_work_items(3)
        ledger.fail_when(fails_item(marker(2)))

        result = pipeline.populate(PARAMS, items, signer)
        recovery = pipeline.store.load_insertion_recovery(result.recovery_path)

        assert result.partial_failure
        assert recovery.proposal == result.proposal_address
        assert recovery.authority == signer.pubkey()
        assert recovery.items == [items[2]]
        assert len(pipeline.store.load_manifest(result.manifest_path)) == 2

    def test_every_item_fails(self, pipeline, ledger, signer):
        items = make_work_items(2)
        for n in range(2):
            ledger.fail_when(fails_item(marker(n)))

        result = pipeline.populate(PARAMS, items, signer)

        assert result.inserted == []
        assert result.recovery.items == items
        assert not result.signed_off


# ============================================================================
# FATAL ERRORS
# ============================================================================


@pytest.mark.unit
class TestPopulateFatal:

    def test_create_proposal_failure(self, pipeline, ledger, signer):
        ledger.fail_submit(1)
        with pytest.raises(ProposalCreationError):
            pipeline.populate(PARAMS, make_work_items(2), signer)
        assert ledger.submit_calls == 1

    def test_sign_off_failure(self, pipeline, ledger, signer, settings):
        # 1 = create, 2..3 = inserts, 4 = sign-off
        ledger.fail_submit(4)
        with pytest.raises(SignOffError, match="fully populated"):
            pipeline.populate(PARAMS, make_work_items(2), signer)

        manifest = pipeline.store.load_manifest(os.path.join(settings.output_dir, "transactions_to_execute.json"))
        assert len(manifest) == 2

    def test_signing_failure(self, pipeline, ledger):
        signer = MockSigner()
        signer.refuse = True
        with pytest.raises(SigningError):
            pipeline.populate(PARAMS, make_work_items(2), signer)
        assert ledger.submit_calls == 0

    def test_abort_mid_batch_saves_progress(self, pipeline, ledger, settings):
        items = make_work_items(3)
        signer = MockSigner()
        signer.refuse_after = 2  # create proposal, then item 0

        with pytest.raises(SigningError):
            pipeline.populate(PARAMS, items, signer)

        manifest = pipeline.store.load_manifest(os.path.join(settings.output_dir, "transactions_to_execute.json"))
        recovery = pipeline.store.load_insertion_recovery(os.path.join(settings.output_dir, "erroneous_txs.json"))
        assert [s.work_item for s in manifest.slots] == [items[0]]
        assert recovery.items == [items[1], items[2]]
        assert gov_ix.SIGN_OFF_PROPOSAL not in ledger.confirmed_kinds()

    def test_malformed_payload_aborts_before_submission(self, pipeline, ledger, signer):
        items = make_work_items(2) + [WorkItem(payload=b"\x00" * 10)]
        with pytest.raises(PayloadDecodeError, match="Work item 3"):
            pipeline.populate(PARAMS, items, signer)
        assert ledger.read_calls == 0
        assert ledger.submit_calls == 0


# ============================================================================
# RESUME
# ============================================================================


@pytest.mark.unit
class TestResume:

    @pytest.fixture
    def partial_run(self, pipeline, ledger, signer):
        items = make_work_items(3)
        ledger.fail_when(fails_item(marker(1)))
        result = pipeline.populate(PARAMS, items, signer)
        ledger.clear_failures()
        return items, result

    def test_resume_completes_the_same_proposal(self, pipeline, ledger, signer, partial_run):
        items, first = partial_run
        recovery = pipeline.store.load_insertion_recovery(first.recovery_path)
        manifest = pipeline.store.load_manifest(first.manifest_path)

        result = pipeline.resume(
            recovery, manifest, signer,
            manifest_path=first.manifest_path, recovery_path=first.recovery_path,
        )

        assert result.proposal_address == first.proposal_address
        assert [(s.work_item, s.index) for s in result.inserted] == [(items[1], 2)]
        assert result.recovery is None
        assert result.signed_off
        assert len(result.manifest) == len(items)
        assert not os.path.exists(first.recovery_path)
        assert len(pipeline.store.load_manifest(first.manifest_path)) == 3

    def test_resume_does_not_create_a_new_proposal(self, pipeline, ledger, signer, partial_run):
        _, first = partial_run
        recovery = pipeline.store.load_insertion_recovery(first.recovery_path)
        manifest = pipeline.store.load_manifest(first.manifest_path)
        before = ledger.confirmed_kinds().count(gov_ix.CREATE_PROPOSAL)

        pipeline.resume(recovery, manifest, signer, first.manifest_path, first.recovery_path)

        assert ledger.confirmed_kinds().count(gov_ix.CREATE_PROPOSAL) == before
        assert inserted_index(confirmed_inserts(ledger)[-1]) == 2

    def test_resume_still_failing(self, pipeline, ledger, signer, partial_run):
        items, first = partial_run
        recovery = pipeline.store.load_insertion_recovery(first.recovery_path)
        manifest = pipeline.store.load_manifest(first.manifest_path)
        ledger.fail_when(fails_item(marker(1)))

        result = pipeline.resume(recovery, manifest, signer, first.manifest_path, first.recovery_path)

        assert result.inserted == []
        assert result.recovery.items == [items[1]]
        assert not result.signed_off
        assert os.path.exists(first.recovery_path)

    def test_abort_during_resume_never_reinserts(self, pipeline, ledger, signer):
        items = make_work_items(4)
        ledger.fail_when(fails_item(marker(1)))
        ledger.fail_when(fails_item(marker(2)))
        first = pipeline.populate(PARAMS, items, signer)
        ledger.clear_failures()

        signer.refuse_after = signer.sign_count + 1
        with pytest.raises(SigningError):
            pipeline.resume(
                pipeline.store.load_insertion_recovery(first.recovery_path),
                pipeline.store.load_manifest(first.manifest_path),
                signer, first.manifest_path, first.recovery_path,
            )

        manifest = pipeline.store.load_manifest(first.manifest_path)
        recovery = pipeline.store.load_insertion_recovery(first.recovery_path)
        assert len(manifest) == 3
        assert recovery.items == [items[2]]

        signer.refuse_after = None
        result = pipeline.resume(recovery, manifest, signer, first.manifest_path, first.recovery_path)

        inserts = confirmed_inserts(ledger)
        item_1 = [inserted_index(tx) for tx in inserts if marker(1) in bytes(tx.message.instructions[0].data)]
        assert item_1 == [2]
        assert [(s.work_item, s.index) for s in result.inserted] == [(items[2], 3)]
        assert result.signed_off
        assert not os.path.exists(first.recovery_path)

    def test_resume_rejects_foreign_manifest(self, pipeline, signer, partial_run):
        from solders.pubkey import Pubkey

        _, first = partial_run
        recovery = pipeline.store.load_insertion_recovery(first.recovery_path)
        manifest = pipeline.store.load_manifest(first.manifest_path)
        manifest.proposal = Pubkey.new_unique()

        with pytest.raises(ProtocolPreconditionError, match="manifest"):
            pipeline.resume(recovery, manifest, signer)

    def test_resume_rejects_other_wallet(self, pipeline, partial_run):
        _, first = partial_run
        recovery = pipeline.store.load_insertion_recovery(first.recovery_path)
        manifest = pipeline.store.load_manifest(first.manifest_path)

        with pytest.raises(ProtocolPreconditionError, match="wallet"):
            pipeline.resume(recovery, manifest, MockSigner())
