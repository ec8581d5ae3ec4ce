"""
Unit Test Configuration
=======================
Fixtures for pure logic tests - NO NETWORK ALLOWED.

All unit tests should be completely isolated from:
- Network (RPC, HTTP)
- Hardware wallets
- File system (except tmp_path)
"""

import pytest
from solders.pubkey import Pubkey

from grant_proposer.config.settings import GovernanceSettings
from tests.mocks import MockLedgerClient, MockSigner, governance_account_data


# ============================================================================
# AUTOUSE: ENFORCE I/O ISOLATION
# ============================================================================


@pytest.fixture(autouse=True)
def isolate_unit_tests(monkeypatch):
    """
    Automatically disable all network I/O for unit tests.
    Any test that accidentally tries to make a network call will fail.
    """
    def block_network(*args, **kwargs):
        raise RuntimeError(
            "Network I/O detected in unit test! "
            "Unit tests must use MockLedgerClient. "
            "Use integration tests for network-dependent code."
        )

    try:
        monkeypatch.setattr("httpx.Client.send", block_network)
    except Exception:
        pass

    try:
        monkeypatch.setattr("solana.rpc.providers.http.HTTPProvider.make_request", block_network)
    except Exception:
        pass


# ============================================================================
# GOVERNANCE FIXTURES
# ============================================================================


@pytest.fixture
def realm():
    return Pubkey.new_unique()


@pytest.fixture
def settings(tmp_path):
    """Governance settings writing every artifact under tmp_path."""
    return GovernanceSettings(
        governance_program=Pubkey.new_unique(),
        governance=Pubkey.new_unique(),
        council_mint=Pubkey.new_unique(),
        output_dir=str(tmp_path),
    )


@pytest.fixture
def signer():
    return MockSigner()


@pytest.fixture
def ledger(settings, realm):
    """Ledger holding a governance account with 7 existing proposals."""
    mock = MockLedgerClient()
    mock.set_account(settings.governance, governance_account_data(realm, proposals_count=7))
    return mock

