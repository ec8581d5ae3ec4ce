"""
Governance Program-Derived Addresses
====================================
Deterministic account addresses used by the SPL Governance program.
All seeds start with the literal b"governance" unless noted.
"""

import struct

from solders.pubkey import Pubkey

PROGRAM_AUTHORITY_SEED = b"governance"
REALM_CONFIG_SEED = b"realm-config"


def get_token_owner_record_address(
    program_id: Pubkey, realm: Pubkey, governing_token_mint: Pubkey, governing_token_owner: Pubkey
) -> Pubkey:
    """['governance', realm, governing_token_mint, governing_token_owner]"""
    return Pubkey.find_program_address(
        [PROGRAM_AUTHORITY_SEED, bytes(realm), bytes(governing_token_mint), bytes(governing_token_owner)],
        program_id,
    )[0]


def get_proposal_address(
    program_id: Pubkey, governance: Pubkey, governing_token_mint: Pubkey, proposal_index: int
) -> Pubkey:
    """['governance', governance, governing_token_mint, proposal_index (u32 LE)]"""
    return Pubkey.find_program_address(
        [PROGRAM_AUTHORITY_SEED, bytes(governance), bytes(governing_token_mint), struct.pack("<I", proposal_index)],
        program_id,
    )[0]


def get_proposal_transaction_address(
    program_id: Pubkey, proposal: Pubkey, option_index: int, transaction_index: int
) -> Pubkey:
    """['governance', proposal, option_index (u8), transaction_index (u16 LE)]"""
    return Pubkey.find_program_address(
        [PROGRAM_AUTHORITY_SEED, bytes(proposal), struct.pack("<B", option_index), struct.pack("<H", transaction_index)],
        program_id,
    )[0]


def get_signatory_record_address(program_id: Pubkey, proposal: Pubkey, signatory: Pubkey) -> Pubkey:
    """['governance', proposal, signatory]"""
    return Pubkey.find_program_address(
        [PROGRAM_AUTHORITY_SEED, bytes(proposal), bytes(signatory)],
        program_id,
    )[0]


def get_realm_config_address(program_id: Pubkey, realm: Pubkey) -> Pubkey:
    """['realm-config', realm]"""
    return Pubkey.find_program_address([REALM_CONFIG_SEED, bytes(realm)], program_id)[0]
