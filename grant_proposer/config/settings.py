"""
Settings
========
Environment-derived configuration, loaded once from .env and frozen into
immutable dataclasses that are passed into the pipelines explicitly.

Governance keys:
    GOVERNANCE_PROGRAM   SPL Governance program id
    GOVERNANCE           Governance account the proposals are created under
    COUNCIL_MINT         Governing token mint used for the proposal owner record
    RPC_URL              JSON-RPC endpoint (default: mainnet-beta)
    COMMITMENT           processed | confirmed | finalized (default: confirmed)
    RPC_TIMEOUT_S        HTTP timeout per RPC call (default: 30)
    OUTPUT_DIR           Where manifest and recovery files are written (default: .)

Grant keys (only needed by the `grant` command):
    VOTER_STAKE_PROGRAM, MINT, REGISTRAR, DEPOSIT_TOKEN,
    DEPOSIT_TOKEN_AUTH, REALM_AUTH, PAYER
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv
from solders.pubkey import Pubkey

from grant_proposer.shared.errors import ConfigurationError

# Load Environment Variables from the working directory .env
load_dotenv(os.path.join(os.getcwd(), ".env"))

DEFAULT_RPC_URL = "https://api.mainnet-beta.solana.com"
COMMITMENT_LEVELS = ("processed", "confirmed", "finalized")


def _require_pubkey(key: str) -> Pubkey:
    raw = os.getenv(key)
    if not raw:
        raise ConfigurationError(key)
    try:
        return Pubkey.from_string(raw.strip())
    except ValueError as e:
        raise ConfigurationError(key, f"not a valid address ({e})") from e


def _optional_pubkey(key: str) -> Optional[Pubkey]:
    return _require_pubkey(key) if os.getenv(key) else None


@dataclass(frozen=True)
class GovernanceSettings:
    """Configuration for the populate / retry / execute stages."""

    governance_program: Pubkey
    governance: Optional[Pubkey] = None
    council_mint: Optional[Pubkey] = None
    rpc_url: str = DEFAULT_RPC_URL
    commitment: str = "confirmed"
    rpc_timeout_s: float = 30.0
    output_dir: str = "."

    # Proposal shape
    vote_options: tuple = ("Approve",)
    use_deny_option: bool = True

    @classmethod
    def from_env(cls, rpc_url: Optional[str] = None) -> "GovernanceSettings":
        commitment = os.getenv("COMMITMENT", "confirmed").lower()
        if commitment not in COMMITMENT_LEVELS:
            raise ConfigurationError("COMMITMENT", f"expected one of {', '.join(COMMITMENT_LEVELS)}")

        timeout_raw = os.getenv("RPC_TIMEOUT_S", "30")
        try:
            timeout = float(timeout_raw)
        except ValueError as e:
            raise ConfigurationError("RPC_TIMEOUT_S", f"not a number ({timeout_raw!r})") from e

        return cls(
            governance_program=_require_pubkey("GOVERNANCE_PROGRAM"),
            governance=_optional_pubkey("GOVERNANCE"),
            council_mint=_optional_pubkey("COUNCIL_MINT"),
            rpc_url=rpc_url or os.getenv("RPC_URL", DEFAULT_RPC_URL),
            commitment=commitment,
            rpc_timeout_s=timeout,
            output_dir=os.getenv("OUTPUT_DIR", "."),
        )

    def require_population_keys(self) -> None:
        """GOVERNANCE and COUNCIL_MINT are needed to create a proposal."""
        if self.governance is None:
            raise ConfigurationError("GOVERNANCE")
        if self.council_mint is None:
            raise ConfigurationError("COUNCIL_MINT")


@dataclass(frozen=True)
class GrantSettings:
    """Accounts shared by every voter-stake-registry grant instruction."""

    voter_stake_program: Pubkey
    mint: Pubkey
    registrar: Pubkey
    deposit_token: Pubkey
    deposit_token_authority: Pubkey
    realm_authority: Pubkey
    payer: Pubkey

    @classmethod
    def from_env(cls) -> "GrantSettings":
        return cls(
            voter_stake_program=_require_pubkey("VOTER_STAKE_PROGRAM"),
            mint=_require_pubkey("MINT"),
            registrar=_require_pubkey("REGISTRAR"),
            deposit_token=_require_pubkey("DEPOSIT_TOKEN"),
            deposit_token_authority=_require_pubkey("DEPOSIT_TOKEN_AUTH"),
            realm_authority=_require_pubkey("REALM_AUTH"),
            payer=_require_pubkey("PAYER"),
        )
