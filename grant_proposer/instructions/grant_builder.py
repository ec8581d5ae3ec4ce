"""
Grant Instruction Builder
=========================
Pure, deterministic voter-stake-registry `grant` and `withdraw` instructions.

Turns a list of grants (wallet, lockup kind, amount, ...) into work items
ready to be attached to a proposal. No RPC, no wallet: every address is
derived from the configured registrar and mint.
"""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.sysvar import RENT
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID
from spl.token.instructions import get_associated_token_address

from grant_proposer.config.settings import GrantSettings
from grant_proposer.execution.models import ProposalParams, WorkItem, WorkItemBatch

VOTER_SEED = b"voter"
VOTER_WEIGHT_RECORD_SEED = b"voter-weight-record"

# Anchor instruction discriminator: sha256("global:<name>")[:8]
GRANT_DISCRIMINATOR = hashlib.sha256(b"global:grant").digest()[:8]
WITHDRAW_DISCRIMINATOR = hashlib.sha256(b"global:withdraw").digest()[:8]


class GrantType(Enum):
    """Lockup kind of the granted deposit (voter-stake-registry LockupKind)."""

    NONE = "None"
    DAILY = "Daily"
    MONTHLY = "Monthly"
    CLIFF = "Cliff"
    CONSTANT = "Constant"

    @property
    def lockup_kind(self) -> int:
        return list(GrantType).index(self)


@dataclass(frozen=True)
class Grant:
    """One grant as written in the grants file."""

    wallet: str
    grant_type: GrantType
    periods: int
    allow_clawback: bool
    amount: int
    start: Optional[int] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> Grant:
        return cls(
            wallet=raw["wallet"],
            grant_type=GrantType(raw["grant_type"]),
            periods=int(raw["periods"]),
            allow_clawback=bool(raw["allow_clawback"]),
            amount=int(raw["amount"]),
            start=raw.get("start"),
        )

    def to_metadata(self) -> Dict[str, Any]:
        return {
            "wallet": self.wallet,
            "grant_type": self.grant_type.value,
            "start": self.start,
            "periods": self.periods,
            "allow_clawback": self.allow_clawback,
            "amount": self.amount,
        }


def encode_grant_args(
    voter_bump: int,
    voter_weight_record_bump: int,
    grant_type: GrantType,
    start_ts: Optional[int],
    periods: int,
    allow_clawback: bool,
    amount: int,
) -> bytes:
    data = bytearray(GRANT_DISCRIMINATOR)
    data += struct.pack("<BBB", voter_bump, voter_weight_record_bump, grant_type.lockup_kind)
    if start_ts is None:
        data += b"\x00"
    else:
        data += b"\x01" + struct.pack("<Q", start_ts)
    data += struct.pack("<I?Q", periods, allow_clawback, amount)
    return bytes(data)


def encode_withdraw_args(deposit_entry_index: int, amount: int) -> bytes:
    return WITHDRAW_DISCRIMINATOR + struct.pack("<BQ", deposit_entry_index, amount)


class GrantInstructionBuilder:
    """
    Usage:
        builder = GrantInstructionBuilder(GrantSettings.from_env())
        batch = builder.build_batch(ProposalParams("Q3 grants"), grants)
    """

    def __init__(self, settings: GrantSettings):
        self.settings = settings

    def derive_voter(self, wallet: Pubkey):
        return Pubkey.find_program_address(
            [bytes(self.settings.registrar), VOTER_SEED, bytes(wallet)],
            self.settings.voter_stake_program,
        )

    def derive_voter_weight_record(self, wallet: Pubkey):
        return Pubkey.find_program_address(
            [bytes(self.settings.registrar), VOTER_WEIGHT_RECORD_SEED, bytes(wallet)],
            self.settings.voter_stake_program,
        )

    def build_instruction(self, grant: Grant) -> Instruction:
        s = self.settings
        voter_authority = Pubkey.from_string(grant.wallet)
        voter, voter_bump = self.derive_voter(voter_authority)
        voter_weight_record, voter_weight_record_bump = self.derive_voter_weight_record(voter_authority)
        vault = get_associated_token_address(voter, s.mint)

        # Positions 6 and 7 are the authorities the governance program signs for
        accounts = [
            AccountMeta(s.registrar, False, False),
            AccountMeta(voter, False, True),
            AccountMeta(voter_authority, False, False),
            AccountMeta(voter_weight_record, False, True),
            AccountMeta(vault, False, True),
            AccountMeta(s.deposit_token, False, True),
            AccountMeta(s.deposit_token_authority, True, False),
            AccountMeta(s.realm_authority, True, False),
            AccountMeta(s.payer, True, True),
            AccountMeta(s.mint, False, False),
            AccountMeta(SYSTEM_PROGRAM_ID, False, False),
            AccountMeta(TOKEN_PROGRAM_ID, False, False),
            AccountMeta(ASSOCIATED_TOKEN_PROGRAM_ID, False, False),
            AccountMeta(RENT, False, False),
        ]

        data = encode_grant_args(
            voter_bump,
            voter_weight_record_bump,
            grant.grant_type,
            grant.start,
            grant.periods,
            grant.allow_clawback,
            grant.amount,
        )
        return Instruction(s.voter_stake_program, data, accounts)

    def build_withdraw_instruction(self, wallet: Pubkey, deposit_entry_index: int, amount: int) -> Instruction:
        """Withdraw unlocked tokens of one deposit entry back to the wallet's token account."""
        s = self.settings
        voter, _ = self.derive_voter(wallet)
        voter_weight_record, _ = self.derive_voter_weight_record(wallet)

        # token_owner_record is the realm authority's record, as in the grant
        accounts = [
            AccountMeta(s.registrar, False, False),
            AccountMeta(voter, False, True),
            AccountMeta(wallet, True, False),
            AccountMeta(s.realm_authority, False, False),
            AccountMeta(voter_weight_record, False, True),
            AccountMeta(get_associated_token_address(voter, s.mint), False, True),
            AccountMeta(get_associated_token_address(wallet, s.mint), False, True),
            AccountMeta(TOKEN_PROGRAM_ID, False, False),
        ]
        return Instruction(s.voter_stake_program, encode_withdraw_args(deposit_entry_index, amount), accounts)

    def build_withdraw(self, wallet: Pubkey, deposit_entry_index: int, amount: int) -> WorkItem:
        instruction = self.build_withdraw_instruction(wallet, deposit_entry_index, amount)
        return WorkItem.from_instruction(
            instruction, {"wallet": str(wallet), "deposit": deposit_entry_index, "amount": amount}
        )

    def build(self, grants: List[Grant]) -> List[WorkItem]:
        return [WorkItem.from_instruction(self.build_instruction(g), g.to_metadata()) for g in grants]

    def build_batch(self, params: ProposalParams, grants: List[Grant]) -> WorkItemBatch:
        return WorkItemBatch(params=params, items=self.build(grants))
