"""
Grant Proposer Test Configuration
=================================
Shared fixtures and pytest markers for the test suite.
"""

import pytest
import os
import sys
import tempfile

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Keep test runs quiet and out of ./logs; must be set before the Logger is imported
os.environ.setdefault("SILENT_MODE", "1")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="grant_proposer_logs_"))


# ============================================================================
# PYTEST MARKERS
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "unit: pure logic tests with no network access"
    )
    config.addinivalue_line(
        "markers", "network: marks tests that require network access"
    )
    config.addinivalue_line(
        "markers", "integration: marks integration tests"
    )


# ============================================================================
# SHARED FIXTURES
# ============================================================================

@pytest.fixture
def clean_env(monkeypatch):
    """Remove every setting the config layer reads."""
    for key in (
        "GOVERNANCE_PROGRAM", "GOVERNANCE", "COUNCIL_MINT", "RPC_URL", "COMMITMENT",
        "RPC_TIMEOUT_S", "OUTPUT_DIR", "VOTER_STAKE_PROGRAM", "MINT", "REGISTRAR",
        "DEPOSIT_TOKEN", "DEPOSIT_TOKEN_AUTH", "REALM_AUTH", "PAYER",
    ):
        monkeypatch.delenv(key, raising=False)
    yield monkeypatch
