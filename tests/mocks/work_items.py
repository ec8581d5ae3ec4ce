"""
Work Item Factory
=================
Grant-shaped instructions for pipeline tests.
"""

from typing import List

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from grant_proposer.execution.models import WorkItem


def make_instruction(n: int) -> Instruction:
    """
    9 accounts with positions 6 and 7 as signers, like a grant.
    The data bytes carry a unique marker so failures can target one item.
    """
    accounts = [AccountMeta(Pubkey.new_unique(), False, i in (1, 3, 4)) for i in range(9)]
    accounts[6] = AccountMeta(accounts[6].pubkey, True, False)
    accounts[7] = AccountMeta(accounts[7].pubkey, True, False)
    return Instruction(Pubkey.new_unique(), marker(n), accounts)


def marker(n: int) -> bytes:
    return f"grant-{n:03d}".encode()


def make_work_items(count: int) -> List[WorkItem]:
    return [WorkItem.from_instruction(make_instruction(n), {"n": n}) for n in range(count)]
