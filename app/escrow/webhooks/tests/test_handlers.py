"""
Tests for webhook processing and the charge.success handler.
"""

from unittest.mock import patch

import pytest

from core.services import ServiceResult
from escrow.models import EscrowEvent, EscrowOrder
from escrow.services import EscrowEngine
from escrow.state_machines import EscrowEventType, EscrowStatus, WebhookEventStatus
from escrow.tests.factories import (
    DEFAULT_TOTAL_KOBO,
    EscrowOrderFactory,
    WebhookEventFactory,
    disputed_kwargs,
    funded_order_kwargs,
)
from escrow.webhooks.handlers import (
    WEBHOOK_HANDLERS,
    dispatch_webhook,
    handle_charge_success,
    process_webhook,
    register_handler,
)


def charge_event(reference, amount=DEFAULT_TOTAL_KOBO, **kwargs):
    event = WebhookEventFactory(reference=reference, **kwargs)
    event.payload["data"]["amount"] = amount
    event.save(update_fields=["payload"])
    return event


class TestRegistry:
    def test_charge_success_is_registered(self):
        assert WEBHOOK_HANDLERS["charge.success"] is handle_charge_success

    def test_register_handler(self, db):
        @register_handler("test.event")
        def handler(webhook_event):
            return ServiceResult.success({"handled": webhook_event.event_id})

        try:
            result = dispatch_webhook(WebhookEventFactory(event_type="test.event", event_id="evt_x"))
        finally:
            WEBHOOK_HANDLERS.pop("test.event")

        assert result.data == {"handled": "evt_x"}

    def test_unknown_type_is_acknowledged(self, db):
        result = dispatch_webhook(WebhookEventFactory(event_type="subscription.create"))

        assert result.success
        assert result.data is None


class TestHandleChargeSuccess:
    def test_funds_order(self, unpaid_order):
        event = charge_event(unpaid_order.payment_reference)

        result = handle_charge_success(event)

        assert result.data == {"outcome": "funded", "order_id": str(unpaid_order.pk)}
        order = EscrowOrder.objects.get(pk=unpaid_order.pk)
        assert order.status == EscrowStatus.FUNDED
        funded = EscrowEvent.objects.get(escrow_order=order, event_type=EscrowEventType.FUNDED)
        assert funded.actor is None
        assert funded.payload["source"] == "webhook"

    def test_links_event_to_order(self, unpaid_order):
        event = charge_event(unpaid_order.payment_reference)

        handle_charge_success(event)

        event.refresh_from_db()
        assert event.escrow_order_id == unpaid_order.pk

    def test_already_funded(self, db):
        order = EscrowOrderFactory(**funded_order_kwargs())

        result = handle_charge_success(charge_event(order.payment_reference))

        assert result.data["outcome"] == "already_funded"

    def test_order_outside_fundable_states_is_not_fundable(self, db):
        order = EscrowOrderFactory(status=EscrowStatus.DISPUTED, dispute_status="open")

        result = handle_charge_success(charge_event(order.payment_reference))

        assert result.success
        assert result.data["outcome"] == "not_fundable"
        assert EscrowOrder.objects.get(pk=order.pk).funded_at is None

    def test_amount_mismatch(self, unpaid_order):
        result = handle_charge_success(charge_event(unpaid_order.payment_reference, amount=DEFAULT_TOTAL_KOBO + 1))

        assert result.data["outcome"] == "amount_mismatch"
        assert EscrowOrder.objects.get(pk=unpaid_order.pk).status == EscrowStatus.INITIALIZED
        mismatch = EscrowEvent.objects.get(escrow_order=unpaid_order)
        assert mismatch.event_type == EscrowEventType.AMOUNT_MISMATCH
        assert mismatch.payload["expected_kobo"] == DEFAULT_TOTAL_KOBO
        assert mismatch.payload["paid_kobo"] == DEFAULT_TOTAL_KOBO + 1

    def test_missing_amount_is_a_mismatch(self, unpaid_order):
        result = handle_charge_success(charge_event(unpaid_order.payment_reference, amount=None))

        assert result.data["outcome"] == "amount_mismatch"

    def test_unknown_reference(self, db):
        result = handle_charge_success(charge_event("ref_nobody_knows"))

        assert result.data == {"outcome": "unknown_reference"}

    def test_no_reference(self, db):
        event = WebhookEventFactory(reference="", payload={"event": "charge.success", "data": {}})

        assert handle_charge_success(event).data == {"outcome": "no_reference"}

    def test_lost_race_reports_already_funded(self, unpaid_order):
        event = charge_event(unpaid_order.payment_reference)
        stale = EscrowOrder.objects.get(pk=unpaid_order.pk)

        with patch("escrow.webhooks.handlers.EscrowOrder.objects.by_reference") as by_reference:
            by_reference.return_value.first.return_value = stale
            EscrowEngine.fund(EscrowOrder.objects.get(pk=unpaid_order.pk))
            result = handle_charge_success(event)

        assert result.data["outcome"] == "already_funded"


class TestProcessWebhook:
    def test_success_marks_processed(self, pending_webhook_event, unpaid_order):
        result = process_webhook(pending_webhook_event)

        assert result.success
        pending_webhook_event.refresh_from_db()
        assert pending_webhook_event.status == WebhookEventStatus.PROCESSED
        assert pending_webhook_event.retry_count == 1
        assert EscrowOrder.objects.get(pk=unpaid_order.pk).status == EscrowStatus.FUNDED

    def test_failure_result_marks_failed(self, pending_webhook_event):
        with patch("escrow.webhooks.handlers.dispatch_webhook") as dispatch:
            dispatch.return_value = ServiceResult.failure("no good", error_code="BROKEN")
            result = process_webhook(pending_webhook_event)

        assert not result.success
        pending_webhook_event.refresh_from_db()
        assert pending_webhook_event.status == WebhookEventStatus.FAILED
        assert pending_webhook_event.error_message == "no good"

    def test_exception_marks_failed_and_reraises(self, pending_webhook_event):
        with patch("escrow.webhooks.handlers.dispatch_webhook", side_effect=ValueError("bad row")):
            with pytest.raises(ValueError):
                process_webhook(pending_webhook_event)

        pending_webhook_event.refresh_from_db()
        assert pending_webhook_event.status == WebhookEventStatus.FAILED
        assert pending_webhook_event.error_message == "ValueError: bad row"

    def test_funded_disputed_order_is_untouched(self, db):
        order = EscrowOrderFactory(**disputed_kwargs())
        event = charge_event(order.payment_reference)

        assert process_webhook(event).data["outcome"] == "already_funded"
        assert EscrowOrder.objects.get(pk=order.pk).status == EscrowStatus.DISPUTED
