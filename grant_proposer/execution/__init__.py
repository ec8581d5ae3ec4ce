"""
Execution Pipeline
==================
Proposal population, retry and execution.

Components:
- RetryingSubmitter: one instruction, one transaction, bounded attempts
- ProposalPopulationPipeline: create, insert, sign off
- ProposalExecutionPipeline: execute inserted proposal transactions
- RecoveryStateStore: manifests and recovery files on disk
"""

from grant_proposer.execution.models import (
    WorkItem,
    WorkItemBatch,
    ProposalParams,
    GovernanceProposal,
    InsertedSlot,
    SlotManifest,
    InsertionRecoverySet,
    PopulationResult,
    ExecutionResult,
)

from grant_proposer.execution.submitter import (
    RetryingSubmitter,
    MAX_ATTEMPTS,
)

from grant_proposer.execution.population import ProposalPopulationPipeline

from grant_proposer.execution.executor import ProposalExecutionPipeline

from grant_proposer.execution.recovery_store import RecoveryStateStore


__all__ = [
    # Models
    "WorkItem",
    "WorkItemBatch",
    "ProposalParams",
    "GovernanceProposal",
    "InsertedSlot",
    "SlotManifest",
    "InsertionRecoverySet",
    "PopulationResult",
    "ExecutionResult",
    # Submitter
    "RetryingSubmitter",
    "MAX_ATTEMPTS",
    # Pipelines
    "ProposalPopulationPipeline",
    "ProposalExecutionPipeline",
    # Persistence
    "RecoveryStateStore",
]
