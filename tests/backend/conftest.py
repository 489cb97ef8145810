"""
Backend-specific test fixtures and configuration.

These fixtures extend the global fixtures with ready-made services over the
mock database and helpers for asserting API error bodies.
"""

import pytest

from creditcore.services.feature_gateway import FeatureGateway
from creditcore.services.ledger import CreditLedger


# =============================================================================
# Service Fixtures
# =============================================================================

@pytest.fixture
def ledger(mock_db) -> CreditLedger:
    """CreditLedger over the mock core database."""
    return CreditLedger(mock_db)


@pytest.fixture
def gateway(ledger) -> FeatureGateway:
    return FeatureGateway(ledger)


# =============================================================================
# Response Assertion Helpers
# =============================================================================

@pytest.fixture
def assert_error_response():
    """Helper to assert error response structure."""
    def _assert(response, status_code: int, code: str = None, detail_contains: str = None):
        assert response.status_code == status_code
        data = response.json()
        assert "detail" in data
        if code:
            assert data["code"] == code
        if detail_contains:
            assert detail_contains.lower() in data["detail"].lower()
    return _assert
