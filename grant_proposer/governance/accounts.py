"""
Governance Account Reader
=========================
Decodes the fixed-offset prefix of a GovernanceV2 account.

Layout (borsh):
    account_type      u8     offset 0
    realm             Pubkey offset 1
    governed_account  Pubkey offset 33
    proposals_count   u32    offset 65
    config ...               offset 69
"""

import struct
from dataclasses import dataclass

from solders.pubkey import Pubkey

from grant_proposer.shared.errors import ProtocolPreconditionError

REALM_OFFSET = 1
GOVERNED_ACCOUNT_OFFSET = 33
PROPOSALS_COUNT_OFFSET = 65
MIN_GOVERNANCE_SIZE = 69

# GovernanceAccountType variants that are governance accounts
GOVERNANCE_ACCOUNT_TYPES = {
    3: "AccountGovernanceV1",
    4: "ProgramGovernanceV1",
    9: "MintGovernanceV1",
    10: "TokenGovernanceV1",
    18: "GovernanceV2",
    19: "ProgramGovernanceV2",
    20: "MintGovernanceV2",
    21: "TokenGovernanceV2",
}


@dataclass(frozen=True)
class GovernanceAccount:
    """The fields of a governance account the pipeline reads."""

    account_type: int
    realm: Pubkey
    governed_account: Pubkey
    proposals_count: int

    @classmethod
    def decode(cls, data: bytes) -> "GovernanceAccount":
        if len(data) < MIN_GOVERNANCE_SIZE:
            raise ProtocolPreconditionError(
                f"Governance account too short: {len(data)} bytes (need {MIN_GOVERNANCE_SIZE})"
            )

        account_type = data[0]
        if account_type not in GOVERNANCE_ACCOUNT_TYPES:
            raise ProtocolPreconditionError(f"Account type {account_type} is not a governance account")

        return cls(
            account_type=account_type,
            realm=Pubkey(data[REALM_OFFSET:REALM_OFFSET + 32]),
            governed_account=Pubkey(data[GOVERNED_ACCOUNT_OFFSET:GOVERNED_ACCOUNT_OFFSET + 32]),
            proposals_count=struct.unpack_from("<I", data, PROPOSALS_COUNT_OFFSET)[0],
        )
