"""
Grant Proposer Test Mocks
=========================
Reusable mock classes for isolated testing.
"""

from tests.mocks.mock_ledger import (
    MockLedgerClient,
    governance_account_data,
    fails_item,
    inserted_index,
    instruction_kind,
)
from tests.mocks.mock_signer import MockSigner, MockDeviceTransport
from tests.mocks.work_items import make_instruction, make_work_items, marker

__all__ = [
    "MockLedgerClient",
    "governance_account_data",
    "fails_item",
    "inserted_index",
    "instruction_kind",
    "MockSigner",
    "MockDeviceTransport",
    "make_instruction",
    "make_work_items",
    "marker",
]
