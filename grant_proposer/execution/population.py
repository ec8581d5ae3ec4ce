"""
Proposal Population Pipeline
============================
Creates a governance proposal and attaches one proposal transaction per
work item.

Flow:
1. Snapshot the governance account (realm, proposals_count) once
2. Create the proposal and add the signer as signatory (single attempt)
3. Insert every work item in input order through the RetryingSubmitter
4. Persist the slot manifest, and the recovery set if anything failed
5. Sign off only if nothing failed

A run aborted during step 3 still writes the manifest and recovery set, so
the slots it confirmed are never inserted twice.

Transaction indices are assigned only on confirmation, so the index space
stays contiguous from 0 however many items fail. A failed item does not
consume an index: the next confirmed item takes it.

A later `resume` run re-targets the same proposal with a recovery set,
continuing the index space at the number of slots already inserted.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import List, Optional, Sequence

from solders.pubkey import Pubkey

from grant_proposer.config.settings import GovernanceSettings
from grant_proposer.execution.models import (
    GovernanceProposal,
    InsertedSlot,
    InsertionRecoverySet,
    PopulationResult,
    ProposalParams,
    SlotManifest,
    WorkItem,
)
from grant_proposer.execution.recovery_store import RecoveryStateStore
from grant_proposer.execution.submitter import RetryingSubmitter
from grant_proposer.governance import instructions as gov_ix
from grant_proposer.governance.accounts import GovernanceAccount
from grant_proposer.governance.addresses import (
    get_proposal_address,
    get_proposal_transaction_address,
    get_token_owner_record_address,
)
from grant_proposer.shared.errors import (
    GrantProposerError,
    PayloadDecodeError,
    ProposalCreationError,
    ProtocolPreconditionError,
    SignOffError,
    TransientNetworkError,
)
from grant_proposer.shared.infrastructure.ledger_client import LedgerClient
from grant_proposer.shared.infrastructure.signer import Signer
from grant_proposer.shared.system.logging import Logger

HOLD_UP_TIME = 0


def _check_payloads(work_items: Sequence[WorkItem]) -> None:
    """Decode every payload up front so a bad item aborts before anything is sent."""
    for position, item in enumerate(work_items, 1):
        try:
            item.instruction
        except PayloadDecodeError as e:
            raise PayloadDecodeError(f"Work item {position}: {e}") from e


@dataclass
class _InsertionFold:
    """Accumulator threaded through the batch: next index, successes, failures."""

    index: int
    recovery: InsertionRecoverySet
    slots: List[InsertedSlot] = field(default_factory=list)


class ProposalPopulationPipeline:
    """
    Usage:
        pipeline = ProposalPopulationPipeline(settings, ledger)
        result = pipeline.populate(params, work_items, signer)
        if result.partial_failure:
            print(f"Retry with {result.recovery_path}")
    """

    def __init__(
        self,
        settings: GovernanceSettings,
        ledger: LedgerClient,
        submitter: Optional[RetryingSubmitter] = None,
        store: Optional[RecoveryStateStore] = None,
    ):
        self.settings = settings
        self.ledger = ledger
        self.submitter = submitter or RetryingSubmitter(ledger)
        self.store = store or RecoveryStateStore(settings.output_dir)

    # =========================================================================
    # PRECONDITIONS
    # =========================================================================

    def _read_governance(self, governance: Pubkey) -> GovernanceAccount:
        try:
            data = self.ledger.read_account(governance)
        except TransientNetworkError as e:
            raise ProtocolPreconditionError(f"Governance account {governance} is unreadable: {e}") from e
        return GovernanceAccount.decode(data)

    def load_proposal(self, signer: Signer) -> GovernanceProposal:
        """Derive the identity of the proposal this run will create."""
        self.settings.require_population_keys()
        program_id = self.settings.governance_program
        governance = self.settings.governance
        council_mint = self.settings.council_mint
        authority = signer.pubkey()

        account = self._read_governance(governance)
        proposal = GovernanceProposal(
            governance_program=program_id,
            governance=governance,
            realm=account.realm,
            council_mint=council_mint,
            proposal_index=account.proposals_count,
            proposal_address=get_proposal_address(program_id, governance, council_mint, account.proposals_count),
            owner_record=get_token_owner_record_address(program_id, account.realm, council_mint, authority),
            authority=authority,
        )

        Logger.info(
            f"[POPULATE] Governance {governance} | realm {account.realm} | "
            f"proposal #{proposal.proposal_index} -> {proposal.proposal_address}"
        )
        return proposal

    # =========================================================================
    # STEPS
    # =========================================================================

    def _create_proposal(self, proposal: GovernanceProposal, params: ProposalParams, signer: Signer) -> None:
        program_id = proposal.governance_program
        create_ix = gov_ix.create_proposal(
            program_id=program_id,
            governance=proposal.governance,
            proposal_owner_record=proposal.owner_record,
            governance_authority=proposal.authority,
            payer=proposal.authority,
            realm=proposal.realm,
            name=params.name,
            description_link=params.description,
            governing_token_mint=proposal.council_mint,
            options=list(self.settings.vote_options),
            use_deny_option=self.settings.use_deny_option,
            proposal_index=proposal.proposal_index,
        )
        signatory_ix = gov_ix.add_signatory(
            program_id=program_id,
            proposal=proposal.proposal_address,
            token_owner_record=proposal.owner_record,
            governance_authority=proposal.authority,
            payer=proposal.authority,
            signatory=proposal.authority,
        )

        try:
            signature = self.submitter.submit_once([create_ix, signatory_ix], signer)
        except TransientNetworkError as e:
            raise ProposalCreationError(f"Proposal {proposal.proposal_address} was not created: {e}") from e

        Logger.success(f"[POPULATE] Proposal created: {signature}")

    def _insert_all(
        self,
        fold: _InsertionFold,
        target: InsertionRecoverySet,
        work_items: Sequence[WorkItem],
        signer: Signer,
    ) -> None:
        """Insert each work item in order. Only a confirmed insert advances the index."""
        total = len(work_items)

        for position, item in enumerate(work_items, 1):
            Logger.info(f"[POPULATE] Inserting transaction {position} of {total} at index {fold.index}...")

            insert_ix = gov_ix.insert_transaction(
                program_id=target.governance_program,
                governance=target.governance,
                proposal=target.proposal,
                token_owner_record=target.owner_record,
                governance_authority=target.authority,
                payer=signer.pubkey(),
                option_index=target.option_index,
                index=fold.index,
                hold_up_time=HOLD_UP_TIME,
                instructions=[item.instruction],
            )
            outcome = self.submitter.submit(insert_ix, signer)

            if outcome.confirmed:
                address = get_proposal_transaction_address(
                    target.governance_program, target.proposal, target.option_index, fold.index
                )
                fold.slots.append(InsertedSlot(address=address, work_item=item, index=fold.index))
                fold.index += 1
            else:
                Logger.warning(f"[POPULATE] Transaction {position} of {total} could not be inserted")
                fold.recovery.items.append(item)

    def _insert_or_save_progress(
        self,
        target: InsertionRecoverySet,
        start_index: int,
        manifest: SlotManifest,
        work_items: Sequence[WorkItem],
        signer: Signer,
        manifest_path: Optional[str],
        recovery_path: Optional[str],
    ) -> _InsertionFold:
        """
        Run the inserts. If the run aborts midway, the confirmed slots and the
        items not yet inserted are written out before the error propagates,
        so a later `resume` starts at the right index.
        """
        fold = _InsertionFold(index=start_index, recovery=replace(target, items=[]))
        try:
            self._insert_all(fold, target, work_items, signer)
        except (GrantProposerError, KeyboardInterrupt):
            processed = len(fold.slots) + len(fold.recovery)
            pending = replace(fold.recovery, items=fold.recovery.items + list(work_items[processed:]))
            progress = replace(manifest, slots=manifest.slots + fold.slots)

            saved_manifest = self.store.save_manifest(progress, manifest_path)
            saved_recovery = self.store.save_insertion_recovery(pending, recovery_path)
            Logger.error(
                f"[POPULATE] Run aborted after {len(fold.slots)} inserts: progress saved to "
                f"{saved_manifest}, {len(pending)} transactions left in {saved_recovery}"
            )
            raise

        return fold

    def _sign_off(self, target: InsertionRecoverySet, realm: Pubkey, signer: Signer) -> None:
        sign_off_ix = gov_ix.sign_off_proposal(
            program_id=target.governance_program,
            realm=realm,
            governance=target.governance,
            proposal=target.proposal,
            signatory=target.authority,
        )
        try:
            signature = self.submitter.submit_once([sign_off_ix], signer)
        except TransientNetworkError as e:
            raise SignOffError(
                f"Proposal {target.proposal} is fully populated but sign-off failed: {e}"
            ) from e

        Logger.success(f"[POPULATE] Proposal signed off: {signature}. Ready for voting")

    def _finish(
        self,
        target: InsertionRecoverySet,
        realm: Pubkey,
        manifest: SlotManifest,
        fold: _InsertionFold,
        signer: Signer,
        manifest_path: Optional[str],
        recovery_path: Optional[str],
        consumed_recovery_path: Optional[str] = None,
    ) -> PopulationResult:
        manifest.slots.extend(fold.slots)
        result = PopulationResult(
            proposal_address=target.proposal,
            manifest=manifest,
            inserted=fold.slots,
        )

        result.manifest_path = self.store.save_manifest(manifest, manifest_path)
        Logger.info(f"[POPULATE] {len(manifest)} transactions to execute saved to {result.manifest_path}")

        if fold.recovery.items:
            result.recovery = fold.recovery
            result.recovery_path = self.store.save_insertion_recovery(fold.recovery, recovery_path)
            Logger.warning(
                f"[POPULATE] {len(fold.recovery)} transactions failed, proposal was NOT signed off"
            )
            Logger.info(f"[POPULATE] Failed transactions saved to {result.recovery_path}; retry them with `retry`")
            return result

        if consumed_recovery_path:
            self.store.discard(consumed_recovery_path)

        self._sign_off(target, realm, signer)
        result.signed_off = True
        return result

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    def populate(
        self,
        params: ProposalParams,
        work_items: Sequence[WorkItem],
        signer: Signer,
        manifest_path: Optional[str] = None,
        recovery_path: Optional[str] = None,
    ) -> PopulationResult:
        Logger.section(f"Populating proposal: {params.name}")

        _check_payloads(work_items)
        proposal = self.load_proposal(signer)
        self._create_proposal(proposal, params, signer)

        target = InsertionRecoverySet.for_proposal(proposal)
        manifest = SlotManifest(governance=proposal.governance, proposal=proposal.proposal_address)
        fold = self._insert_or_save_progress(
            target, 0, manifest, work_items, signer, manifest_path, recovery_path
        )
        result = self._finish(target, proposal.realm, manifest, fold, signer, manifest_path, recovery_path)

        Logger.info(f"[POPULATE] Inserted {len(fold.slots)}/{len(work_items)} transactions")
        return result

    def resume(
        self,
        recovery: InsertionRecoverySet,
        manifest: SlotManifest,
        signer: Signer,
        manifest_path: Optional[str] = None,
        recovery_path: Optional[str] = None,
    ) -> PopulationResult:
        """
        Retry the items of a recovery set against the proposal it came from.

        The proposal's index space is contiguous from 0, so the next free
        index is the number of slots already in the manifest.
        """
        Logger.section(f"Resuming proposal {recovery.proposal}")

        _check_payloads(recovery.items)
        if recovery.proposal != manifest.proposal or recovery.governance != manifest.governance:
            raise ProtocolPreconditionError(
                f"Recovery set targets proposal {recovery.proposal} but manifest holds {manifest.proposal}"
            )
        if recovery.authority != signer.pubkey():
            raise ProtocolPreconditionError(
                f"Recovery set was created by {recovery.authority}, wallet is {signer.pubkey()}"
            )

        account = self._read_governance(recovery.governance)
        start_index = len(manifest)
        Logger.info(f"[POPULATE] {len(recovery)} transactions to retry, next index {start_index}")

        fold = self._insert_or_save_progress(
            recovery, start_index, manifest, recovery.items, signer, manifest_path, recovery_path
        )
        result = self._finish(
            recovery, account.realm, manifest, fold, signer,
            manifest_path, recovery_path, consumed_recovery_path=recovery_path,
        )

        Logger.info(f"[POPULATE] Inserted {len(fold.slots)}/{len(recovery)} retried transactions")
        return result
