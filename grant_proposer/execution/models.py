"""
Pipeline Data Model
===================
Work items, proposal identity, inserted slots and the two recovery shapes
handed between pipeline stages.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from solders.instruction import Instruction
from solders.pubkey import Pubkey

from grant_proposer.execution.instruction_codec import decode_instruction, encode_instruction
from grant_proposer.shared.errors import PayloadDecodeError


def encode_payload(payload: bytes) -> str:
    return base64.b64encode(payload).decode("ascii")


def decode_payload(raw: Any) -> bytes:
    """Accept base64 text or the list-of-ints form written by older tooling."""
    if isinstance(raw, str):
        try:
            return base64.b64decode(raw, validate=True)
        except ValueError as e:
            raise PayloadDecodeError(f"Payload is not valid base64: {e}") from e
    if isinstance(raw, list):
        try:
            return bytes(raw)
        except (ValueError, TypeError) as e:
            raise PayloadDecodeError(f"Payload byte list is invalid: {e}") from e
    raise PayloadDecodeError(f"Unsupported payload type: {type(raw).__name__}")


# ═══════════════════════════════════════════════════════════════════════════════
# WORK ITEMS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class WorkItem:
    """
    One opaque operation to attach to a proposal.

    `payload` is the serialized instruction and is carried byte-for-byte
    through every stage. `metadata` is never interpreted.
    """

    payload: bytes
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def from_instruction(cls, instruction: Instruction, metadata: Optional[Dict[str, Any]] = None) -> WorkItem:
        return cls(payload=encode_instruction(instruction), metadata=dict(metadata or {}))

    @property
    def instruction(self) -> Instruction:
        return decode_instruction(self.payload)

    @property
    def program_id(self) -> Pubkey:
        return self.instruction.program_id

    @property
    def accounts(self) -> list:
        return list(self.instruction.accounts)

    @property
    def data(self) -> bytes:
        return bytes(self.instruction.data)

    def to_dict(self) -> Dict[str, Any]:
        return {"payload": encode_payload(self.payload), "metadata": dict(self.metadata)}

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> WorkItem:
        if "payload" in raw:
            payload = raw["payload"]
        elif "instruction" in raw:
            payload = raw["instruction"]
        else:
            raise PayloadDecodeError("Work item has neither 'payload' nor 'instruction'")

        metadata = raw.get("metadata")
        if metadata is None:
            metadata = {k: v for k, v in raw.items() if k not in ("payload", "instruction", "address")}
        return cls(payload=decode_payload(payload), metadata=dict(metadata))


@dataclass(frozen=True)
class ProposalParams:
    """Human-facing proposal fields."""

    name: str
    description: str = ""


@dataclass
class WorkItemBatch:
    """A proposal worth of work items, as produced by the instruction builder."""

    params: ProposalParams
    items: List[WorkItem] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        grants = []
        for item in self.items:
            entry = dict(item.metadata)
            entry["payload"] = encode_payload(item.payload)
            grants.append(entry)
        return {"name": self.params.name, "description": self.params.description, "grants": grants}

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> WorkItemBatch:
        return cls(
            params=ProposalParams(name=raw["name"], description=raw.get("description", "")),
            items=[WorkItem.from_dict(g) for g in raw.get("grants", [])],
        )


# ═══════════════════════════════════════════════════════════════════════════════
# PROPOSAL STATE
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class GovernanceProposal:
    """Identity of the proposal being populated. Computed once per run."""

    governance_program: Pubkey
    governance: Pubkey
    realm: Pubkey
    council_mint: Pubkey
    proposal_index: int
    proposal_address: Pubkey
    owner_record: Pubkey
    authority: Pubkey


@dataclass(frozen=True)
class InsertedSlot:
    """A work item confirmed as a proposal transaction."""

    address: Pubkey
    work_item: WorkItem
    index: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": str(self.address),
            "payload": encode_payload(self.work_item.payload),
            "metadata": dict(self.work_item.metadata),
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> InsertedSlot:
        return cls(
            address=Pubkey.from_string(raw["address"]),
            work_item=WorkItem.from_dict(raw),
        )


@dataclass
class SlotManifest:
    """
    Inserted proposal transactions of one proposal.

    Written by population, read by execution. A manifest holding only the
    slots that failed to execute is the execution recovery set.
    """

    governance: Pubkey
    proposal: Pubkey
    slots: List[InsertedSlot] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.slots)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "governance": str(self.governance),
            "proposal": str(self.proposal),
            "slots": [slot.to_dict() for slot in self.slots],
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> SlotManifest:
        # "transactions" is the key used by older manifests
        slots = raw["slots"] if "slots" in raw else raw.get("transactions", [])
        return cls(
            governance=Pubkey.from_string(raw["governance"]),
            proposal=Pubkey.from_string(raw["proposal"]),
            slots=[InsertedSlot.from_dict(s) for s in slots],
        )


@dataclass
class InsertionRecoverySet:
    """Work items that could not be inserted, with enough context to retry."""

    governance_program: Pubkey
    governance: Pubkey
    proposal: Pubkey
    owner_record: Pubkey
    authority: Pubkey
    option_index: int = 0
    items: List[WorkItem] = field(default_factory=list)

    @classmethod
    def for_proposal(cls, proposal: GovernanceProposal) -> InsertionRecoverySet:
        return cls(
            governance_program=proposal.governance_program,
            governance=proposal.governance,
            proposal=proposal.proposal_address,
            owner_record=proposal.owner_record,
            authority=proposal.authority,
        )

    def __len__(self) -> int:
        return len(self.items)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "governance_program": str(self.governance_program),
            "governance": str(self.governance),
            "proposal": str(self.proposal),
            "owner_record": str(self.owner_record),
            "authority": str(self.authority),
            "option_index": self.option_index,
            "items": [item.to_dict() for item in self.items],
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> InsertionRecoverySet:
        return cls(
            governance_program=Pubkey.from_string(raw["governance_program"]),
            governance=Pubkey.from_string(raw["governance"]),
            proposal=Pubkey.from_string(raw["proposal"]),
            owner_record=Pubkey.from_string(raw["owner_record"]),
            authority=Pubkey.from_string(raw["authority"]),
            option_index=int(raw.get("option_index", 0)),
            items=[WorkItem.from_dict(i) for i in raw.get("items", [])],
        )


# ═══════════════════════════════════════════════════════════════════════════════
# RUN RESULTS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class PopulationResult:
    """Outcome of a populate or resume run."""

    proposal_address: Pubkey
    manifest: SlotManifest
    inserted: List[InsertedSlot] = field(default_factory=list)
    recovery: Optional[InsertionRecoverySet] = None
    signed_off: bool = False
    manifest_path: Optional[str] = None
    recovery_path: Optional[str] = None

    @property
    def failed_count(self) -> int:
        return len(self.recovery) if self.recovery else 0

    @property
    def partial_failure(self) -> bool:
        return self.failed_count > 0


@dataclass
class ExecutionResult:
    """Outcome of an execute run."""

    executed: List[InsertedSlot] = field(default_factory=list)
    recovery: Optional[SlotManifest] = None
    recovery_path: Optional[str] = None

    @property
    def failed_count(self) -> int:
        return len(self.recovery) if self.recovery else 0

    @property
    def partial_failure(self) -> bool:
        return self.failed_count > 0
