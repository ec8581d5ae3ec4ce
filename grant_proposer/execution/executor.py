"""
Proposal Execution Pipeline
===========================
Executes the proposal transactions listed in a slot manifest.

For each slot, in input order:
1. Decode the stored instruction
2. Clear the signer flag on the two authority accounts; the governance
   program signs for them when it invokes the instruction
3. Submit ExecuteTransaction for the slot through the RetryingSubmitter

Slots are independent, so a failure never stops later slots. Failed slots
are written to a new manifest for the same proposal, which can be fed
straight back into another execute run.
"""

from typing import Optional

from grant_proposer.config.settings import GovernanceSettings
from grant_proposer.execution.instruction_codec import clear_authority_signers
from grant_proposer.execution.models import ExecutionResult, InsertedSlot, SlotManifest
from grant_proposer.execution.recovery_store import RecoveryStateStore
from grant_proposer.execution.submitter import RetryingSubmitter
from grant_proposer.governance import instructions as gov_ix
from grant_proposer.shared.infrastructure.ledger_client import LedgerClient
from grant_proposer.shared.infrastructure.signer import Signer
from grant_proposer.shared.system.logging import Logger


class ProposalExecutionPipeline:
    """
    Usage:
        pipeline = ProposalExecutionPipeline(settings, ledger)
        result = pipeline.execute(manifest, signer)
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

    def build_execute_instruction(self, manifest: SlotManifest, slot: InsertedSlot):
        instruction = clear_authority_signers(slot.work_item.instruction)
        Logger.debug(f"[EXECUTE] Instruction accounts: {list(instruction.accounts)}")

        return gov_ix.execute_transaction(
            program_id=self.settings.governance_program,
            governance=manifest.governance,
            proposal=manifest.proposal,
            proposal_transaction=slot.address,
            instruction_program_id=instruction.program_id,
            instruction_accounts=instruction.accounts,
        )

    def execute(
        self,
        manifest: SlotManifest,
        signer: Signer,
        recovery_path: Optional[str] = None,
        consumed_path: Optional[str] = None,
    ) -> ExecutionResult:
        """`consumed_path` names a previous recovery file to remove once every slot has executed."""
        Logger.section(f"Executing proposal {manifest.proposal}")

        result = ExecutionResult()
        failed = SlotManifest(governance=manifest.governance, proposal=manifest.proposal)
        total = len(manifest)

        # Decode every payload before the first submission
        execute_ixs = [self.build_execute_instruction(manifest, slot) for slot in manifest.slots]

        for position, (slot, execute_ix) in enumerate(zip(manifest.slots, execute_ixs), 1):
            Logger.info(f"[EXECUTE] Executing proposal transaction, {position} of {total}...")

            outcome = self.submitter.submit(execute_ix, signer)
            if outcome.confirmed:
                result.executed.append(slot)
            else:
                Logger.warning(f"[EXECUTE] Proposal transaction {slot.address} was not executed")
                failed.slots.append(slot)

        if failed.slots:
            result.recovery = failed
            result.recovery_path = self.store.save_execution_recovery(failed, recovery_path)
            Logger.warning(f"[EXECUTE] Not all transactions were executed: {len(failed)}/{total} failed")
            Logger.info(f"[EXECUTE] Failed transactions saved to {result.recovery_path}")
        else:
            Logger.success(f"[EXECUTE] All {total} proposal transactions executed")
            if consumed_path:
                self.store.discard(consumed_path)

        return result
