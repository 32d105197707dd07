"""
Pytest fixtures for escrow webhook tests.

Provides signed Paystack deliveries, stored WebhookEvent rows in each
processing state, and orders for them to fund.
"""

import json

import pytest
from django.test import Client

from escrow.adapters import PaystackAdapter
from escrow.state_machines import WebhookEventStatus
from escrow.tests.factories import EscrowOrderFactory, WebhookEventFactory
from escrow.webhooks.tests.payloads import WEBHOOK_URL

# =============================================================================
# Delivery
# =============================================================================


@pytest.fixture
def post_webhook():
    """
    POST a body to the webhook endpoint.

    Signs with the configured secret unless a signature is given; dicts
    are JSON-encoded, bytes are sent untouched.
    """
    client = Client()

    def _post(body, signature=None):
        raw = json.dumps(body).encode() if isinstance(body, dict) else body
        if signature is None:
            signature = PaystackAdapter.compute_signature(raw)
        return client.post(
            WEBHOOK_URL,
            data=raw,
            content_type="application/json",
            HTTP_X_PAYSTACK_SIGNATURE=signature,
        )

    return _post


# =============================================================================
# Orders and Events
# =============================================================================


@pytest.fixture
def unpaid_order(db):
    return EscrowOrderFactory()


@pytest.fixture
def pending_webhook_event(db, unpaid_order):
    return WebhookEventFactory(reference=unpaid_order.payment_reference)


@pytest.fixture
def failed_webhook_event(db, unpaid_order):
    return WebhookEventFactory(
        reference=unpaid_order.payment_reference,
        status=WebhookEventStatus.FAILED,
        error_message="database unavailable",
        retry_count=1,
    )


@pytest.fixture
def processed_webhook_event(db):
    return WebhookEventFactory(status=WebhookEventStatus.PROCESSED)
