"""
Pytest fixtures for Paystack adapter tests.

Sections:
    - HTTP Mocks
    - Test Data Fixtures
"""

from unittest.mock import patch

import pytest

from escrow.adapters import InitializeTransactionParams

# =============================================================================
# HTTP Mocks
# =============================================================================


@pytest.fixture
def mock_request():
    """Patch requests.request as used by the adapter."""
    with patch("escrow.adapters.paystack_adapter.requests.request") as mock:
        yield mock


@pytest.fixture
def mock_sleep():
    """Patch the backoff sleep so retries run instantly."""
    with patch("escrow.adapters.paystack_adapter.time.sleep") as mock:
        yield mock


# =============================================================================
# Test Data Fixtures
# =============================================================================


@pytest.fixture
def initialize_params():
    return InitializeTransactionParams(
        email="buyer@example.com",
        amount_kobo=10_160_000,
        reference="7f9c2f7e-2d1a-4a4e-9d7c-5c1f0e0a1b2c",
        callback_url="https://market.test/escrow/return?order=7f9c2f7e",
        metadata={"order_id": "7f9c2f7e-2d1a-4a4e-9d7c-5c1f0e0a1b2c"},
    )


@pytest.fixture
def verify_success_body():
    return {
        "status": True,
        "message": "Verification successful",
        "data": {
            "reference": "ref_abc",
            "status": "success",
            "amount": 10_160_000,
            "currency": "NGN",
            "paid_at": "2026-10-18T10:15:00.000Z",
        },
    }
