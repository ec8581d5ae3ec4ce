"""
Work-Item Payload Codec
=======================
Work items travel as the bincode serialization of a Solana instruction:

    program_id   32 bytes
    accounts     u64 LE count, then per account:
                     pubkey 32 bytes | is_signer u8 | is_writable u8
    data         u64 LE length, then the raw bytes

The pipeline never interprets the data bytes. The only rewrite it performs
clears the signer flag on the two authority accounts before execution.
"""

import struct
from typing import List

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from grant_proposer.shared.errors import PayloadDecodeError

# Account positions signed for by the governance program at execution time:
# token_authority and grant_authority of a voter-stake-registry grant.
AUTHORITY_ACCOUNT_POSITIONS = (6, 7)

_U64 = struct.Struct("<Q")
_ACCOUNT_META_SIZE = 34


def encode_instruction(instruction: Instruction) -> bytes:
    out = bytearray(bytes(instruction.program_id))
    out += _U64.pack(len(instruction.accounts))
    for meta in instruction.accounts:
        out += bytes(meta.pubkey)
        out += bytes([int(meta.is_signer), int(meta.is_writable)])
    out += _U64.pack(len(instruction.data))
    out += bytes(instruction.data)
    return bytes(out)


def decode_instruction(payload: bytes) -> Instruction:
    payload = bytes(payload)
    if len(payload) < 48:
        raise PayloadDecodeError(f"Truncated instruction payload ({len(payload)} bytes)")

    program_id = Pubkey(payload[0:32])
    (count,) = _U64.unpack_from(payload, 32)
    offset = 40
    accounts_end = offset + count * _ACCOUNT_META_SIZE
    if accounts_end + 8 > len(payload):
        raise PayloadDecodeError(f"Truncated instruction payload: {count} accounts declared")

    accounts: List[AccountMeta] = []
    while offset < accounts_end:
        chunk = payload[offset:offset + _ACCOUNT_META_SIZE]
        if chunk[32] > 1 or chunk[33] > 1:
            raise PayloadDecodeError(f"Malformed account meta at byte {offset}")
        accounts.append(AccountMeta(Pubkey(chunk[:32]), bool(chunk[32]), bool(chunk[33])))
        offset += _ACCOUNT_META_SIZE

    (data_len,) = _U64.unpack_from(payload, accounts_end)
    data_start = accounts_end + 8
    if data_start + data_len != len(payload):
        raise PayloadDecodeError(
            f"Instruction data length mismatch: declared {data_len}, payload has {len(payload) - data_start}"
        )

    return Instruction(program_id, payload[data_start:], accounts)


def clear_authority_signers(instruction: Instruction, positions=AUTHORITY_ACCOUNT_POSITIONS) -> Instruction:
    """
    Return a copy with is_signer cleared at the authority positions.
    Idempotent: rewriting an already rewritten instruction changes nothing.
    """
    accounts = list(instruction.accounts)
    for position in positions:
        if position >= len(accounts):
            raise PayloadDecodeError(
                f"Instruction has {len(accounts)} accounts, cannot clear signer at position {position}"
            )
        meta = accounts[position]
        accounts[position] = AccountMeta(meta.pubkey, False, meta.is_writable)
    return Instruction(instruction.program_id, bytes(instruction.data), accounts)
