"""Paystack webhook bodies shared by the webhook tests."""

from escrow.tests.factories import DEFAULT_TOTAL_KOBO

WEBHOOK_URL = "/api/v1/escrow/webhooks/paystack/"


def charge_success_payload(reference, amount_kobo=DEFAULT_TOTAL_KOBO, event_id=4099260516):
    """charge.success body as delivered by Paystack (event id inside data)."""
    return {
        "event": "charge.success",
        "data": {
            "id": event_id,
            "domain": "test",
            "status": "success",
            "reference": reference,
            "amount": amount_kobo,
            "currency": "NGN",
            "paid_at": "2026-10-18T10:15:00.000Z",
            "customer": {"email": "buyer@example.com"},
        },
    }
