"""
Governance Instruction Builders
===============================
Pure builders for the SPL Governance instructions the pipeline sends.
Instruction data is the borsh encoding of the GovernanceInstruction enum:
a u8 variant index followed by the variant fields.

    6   CreateProposal
    7   AddSignatory
    9   InsertTransaction
    12  SignOffProposal
    16  ExecuteTransaction
"""

import struct
from typing import List, Optional, Sequence

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.sysvar import RENT

from grant_proposer.governance.addresses import (
    get_proposal_address,
    get_proposal_transaction_address,
    get_realm_config_address,
    get_signatory_record_address,
)

CREATE_PROPOSAL = 6
ADD_SIGNATORY = 7
INSERT_TRANSACTION = 9
SIGN_OFF_PROPOSAL = 12
EXECUTE_TRANSACTION = 16

VOTE_TYPE_SINGLE_CHOICE = 0


# ═══════════════════════════════════════════════════════════════════════════════
# BORSH HELPERS
# ═══════════════════════════════════════════════════════════════════════════════

def _borsh_string(value: str) -> bytes:
    raw = value.encode("utf-8")
    return struct.pack("<I", len(raw)) + raw


def _borsh_bool(value: bool) -> bytes:
    return b"\x01" if value else b"\x00"


def encode_instruction_data(instruction: Instruction) -> bytes:
    """
    Borsh InstructionData as stored in a ProposalTransaction account:
    program_id, Vec<AccountMetaData>, Vec<u8> (u32 LE length prefixes).
    """
    out = bytearray(bytes(instruction.program_id))
    out += struct.pack("<I", len(instruction.accounts))
    for meta in instruction.accounts:
        out += bytes(meta.pubkey) + _borsh_bool(meta.is_signer) + _borsh_bool(meta.is_writable)
    out += struct.pack("<I", len(instruction.data)) + bytes(instruction.data)
    return bytes(out)


# ═══════════════════════════════════════════════════════════════════════════════
# INSTRUCTIONS
# ═══════════════════════════════════════════════════════════════════════════════

def create_proposal(
    program_id: Pubkey,
    governance: Pubkey,
    proposal_owner_record: Pubkey,
    governance_authority: Pubkey,
    payer: Pubkey,
    realm: Pubkey,
    name: str,
    description_link: str,
    governing_token_mint: Pubkey,
    options: Sequence[str],
    use_deny_option: bool,
    proposal_index: int,
    voter_weight_record: Optional[Pubkey] = None,
) -> Instruction:
    proposal_address = get_proposal_address(program_id, governance, governing_token_mint, proposal_index)

    accounts = [
        AccountMeta(realm, False, False),
        AccountMeta(proposal_address, False, True),
        AccountMeta(governance, False, True),
        AccountMeta(proposal_owner_record, False, True),
        AccountMeta(governing_token_mint, False, False),
        AccountMeta(governance_authority, True, False),
        AccountMeta(payer, True, True),
        AccountMeta(SYSTEM_PROGRAM_ID, False, False),
        AccountMeta(get_realm_config_address(program_id, realm), False, False),
    ]
    if voter_weight_record is not None:
        accounts.append(AccountMeta(voter_weight_record, False, False))

    data = bytearray([CREATE_PROPOSAL])
    data += _borsh_string(name)
    data += _borsh_string(description_link)
    data += bytes([VOTE_TYPE_SINGLE_CHOICE])
    data += struct.pack("<I", len(options))
    for option in options:
        data += _borsh_string(option)
    data += _borsh_bool(use_deny_option)

    return Instruction(program_id, bytes(data), accounts)


def add_signatory(
    program_id: Pubkey,
    proposal: Pubkey,
    token_owner_record: Pubkey,
    governance_authority: Pubkey,
    payer: Pubkey,
    signatory: Pubkey,
) -> Instruction:
    accounts = [
        AccountMeta(proposal, False, True),
        AccountMeta(token_owner_record, False, False),
        AccountMeta(governance_authority, True, False),
        AccountMeta(get_signatory_record_address(program_id, proposal, signatory), False, True),
        AccountMeta(payer, True, True),
        AccountMeta(SYSTEM_PROGRAM_ID, False, False),
    ]
    data = bytes([ADD_SIGNATORY]) + bytes(signatory)
    return Instruction(program_id, data, accounts)


def insert_transaction(
    program_id: Pubkey,
    governance: Pubkey,
    proposal: Pubkey,
    token_owner_record: Pubkey,
    governance_authority: Pubkey,
    payer: Pubkey,
    option_index: int,
    index: int,
    hold_up_time: int,
    instructions: List[Instruction],
) -> Instruction:
    proposal_transaction = get_proposal_transaction_address(program_id, proposal, option_index, index)

    accounts = [
        AccountMeta(governance, False, False),
        AccountMeta(proposal, False, True),
        AccountMeta(token_owner_record, False, False),
        AccountMeta(governance_authority, True, False),
        AccountMeta(proposal_transaction, False, True),
        AccountMeta(payer, True, True),
        AccountMeta(SYSTEM_PROGRAM_ID, False, False),
        AccountMeta(RENT, False, False),
    ]

    data = bytearray([INSERT_TRANSACTION])
    data += struct.pack("<BHI", option_index, index, hold_up_time)
    data += struct.pack("<I", len(instructions))
    for ix in instructions:
        data += encode_instruction_data(ix)

    return Instruction(program_id, bytes(data), accounts)


def sign_off_proposal(
    program_id: Pubkey,
    realm: Pubkey,
    governance: Pubkey,
    proposal: Pubkey,
    signatory: Pubkey,
    proposal_owner_record: Optional[Pubkey] = None,
) -> Instruction:
    accounts = [
        AccountMeta(realm, False, True),
        AccountMeta(governance, False, False),
        AccountMeta(proposal, False, True),
        AccountMeta(signatory, True, False),
    ]
    if proposal_owner_record is not None:
        accounts.append(AccountMeta(proposal_owner_record, False, False))
    else:
        accounts.append(AccountMeta(get_signatory_record_address(program_id, proposal, signatory), False, True))

    return Instruction(program_id, bytes([SIGN_OFF_PROPOSAL]), accounts)


def execute_transaction(
    program_id: Pubkey,
    governance: Pubkey,
    proposal: Pubkey,
    proposal_transaction: Pubkey,
    instruction_program_id: Pubkey,
    instruction_accounts: Sequence[AccountMeta],
) -> Instruction:
    accounts = [
        AccountMeta(governance, False, False),
        AccountMeta(proposal, False, True),
        AccountMeta(proposal_transaction, False, True),
        AccountMeta(instruction_program_id, False, False),
    ]
    accounts.extend(instruction_accounts)

    return Instruction(program_id, bytes([EXECUTE_TRANSACTION]), accounts)
