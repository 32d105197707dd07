"""
Tests for escrow models: properties, query helpers and database constraints.
"""

import pytest
from django.db import IntegrityError, transaction
from django.test import override_settings
from django.utils import timezone

from authentication.tests.factories import UserFactory
from escrow.models import EscrowEvent, EscrowOrder
from escrow.state_machines import (
    EscrowEventType,
    EscrowStatus,
    WebhookEventStatus,
    normalize_status,
)
from escrow.tests.factories import (
    EscrowDisputeFactory,
    EscrowOrderFactory,
    WebhookEventFactory,
    funded_order_kwargs,
)


class TestEscrowOrderProperties:
    """Tests for EscrowOrder status helpers."""

    def test_new_order_is_initialized(self, db):
        order = EscrowOrderFactory()

        assert order.status == EscrowStatus.INITIALIZED
        assert order.is_funded is False
        assert order.is_terminal is False

    def test_funded_order(self, db):
        order = EscrowOrderFactory(**funded_order_kwargs())

        assert order.is_funded is True

    def test_legacy_alias_reads_as_funded(self, db):
        order = EscrowOrderFactory(status="escrow_active")

        assert order.canonical_status == EscrowStatus.FUNDED
        assert order.is_funded is True

    @pytest.mark.parametrize("status", [EscrowStatus.RELEASED_TO_SELLER, EscrowStatus.REFUND_TO_BUYER])
    def test_terminal_states(self, db, status):
        assert EscrowOrderFactory(status=status).is_terminal is True

    def test_party_checks(self, db):
        order = EscrowOrderFactory()
        outsider = UserFactory()

        assert order.is_buyer(order.buyer)
        assert order.is_seller(order.seller)
        assert not order.is_buyer(order.seller)
        assert order.is_party(order.buyer) and order.is_party(order.seller)
        assert not order.is_party(outsider)
        assert not order.is_party(None)

    def test_status_cannot_be_assigned_directly(self, db):
        order = EscrowOrderFactory()

        with pytest.raises(AttributeError):
            order.status = EscrowStatus.RELEASED_TO_SELLER

    def test_str_shows_naira_amount(self, db):
        order = EscrowOrderFactory()

        assert "101600.00 NGN" in str(order)


class TestNormalizeStatus:
    @pytest.mark.parametrize("alias", ["escrow_active", "awaiting_shipment", "payment_received"])
    def test_aliases_map_to_funded(self, alias):
        assert normalize_status(alias) == "funded"

    def test_canonical_values_pass_through(self):
        assert normalize_status("shipped") == "shipped"


class TestEscrowOrderQuerySet:
    def test_for_party_and_roles(self, db):
        order = EscrowOrderFactory()
        EscrowOrderFactory()  # unrelated

        assert list(EscrowOrder.objects.for_buyer(order.buyer)) == [order]
        assert list(EscrowOrder.objects.for_seller(order.seller)) == [order]
        assert list(EscrowOrder.objects.for_party(order.seller)) == [order]
        assert not EscrowOrder.objects.for_buyer(order.seller).exists()

    def test_by_reference(self, db):
        order = EscrowOrderFactory()

        assert EscrowOrder.objects.by_reference(order.payment_reference).get() == order

    def test_pending_release_and_disputed(self, db):
        pending = EscrowOrderFactory(status=EscrowStatus.PENDING_ADMIN_RELEASE)
        disputed = EscrowOrderFactory(status=EscrowStatus.DISPUTED)
        EscrowOrderFactory()

        assert list(EscrowOrder.objects.pending_release()) == [pending]
        assert list(EscrowOrder.objects.disputed()) == [disputed]


class TestEscrowOrderConstraints:
    """Invariants enforced by the database."""

    def test_total_must_equal_subtotal_plus_fee(self, db):
        with pytest.raises(IntegrityError), transaction.atomic():
            EscrowOrderFactory(total_kobo=1)

    def test_buyer_cannot_be_seller(self, db):
        user = UserFactory()

        with pytest.raises(IntegrityError), transaction.atomic():
            EscrowOrderFactory(buyer=user, seller=user)

    def test_cannot_be_both_released_and_refunded(self, db):
        now = timezone.now()

        with pytest.raises(IntegrityError), transaction.atomic():
            EscrowOrderFactory(released_at=now, refunded_at=now)

    def test_payment_reference_is_unique(self, db):
        order = EscrowOrderFactory()

        with pytest.raises(IntegrityError), transaction.atomic():
            EscrowOrderFactory(payment_reference=order.payment_reference)


class TestEscrowDispute:
    def test_only_one_open_dispute_per_order(self, db):
        dispute = EscrowDisputeFactory()

        with pytest.raises(IntegrityError), transaction.atomic():
            EscrowDisputeFactory(escrow_order=dispute.escrow_order)

    def test_resolved_dispute_allows_a_new_one(self, db):
        dispute = EscrowDisputeFactory(status="resolved", resolution="release")

        second = EscrowDisputeFactory(escrow_order=dispute.escrow_order)

        assert second.is_open
        assert not dispute.is_open


class TestEscrowEvent:
    def test_record_stores_payload(self, db):
        order = EscrowOrderFactory()

        event = EscrowEvent.record(
            order,
            EscrowEventType.ORDER_CREATED,
            actor=order.buyer,
            to_status=order.status,
            total_kobo=order.total_kobo,
        )

        assert event.escrow_order == order
        assert event.from_status == ""
        assert event.to_status == "initialized"
        assert event.payload == {"total_kobo": order.total_kobo}

    def test_events_are_ordered_oldest_first(self, db):
        order = EscrowOrderFactory()
        first = EscrowEvent.record(order, EscrowEventType.ORDER_CREATED)
        second = EscrowEvent.record(order, EscrowEventType.PAYSTACK_INITIALIZED)

        assert list(order.events.all()) == [first, second]


class TestWebhookEvent:
    def test_provider_event_id_is_unique(self, db):
        event = WebhookEventFactory()

        with pytest.raises(IntegrityError), transaction.atomic():
            WebhookEventFactory(event_id=event.event_id)

    def test_processing_lifecycle(self, db):
        event = WebhookEventFactory()

        event.mark_processing()
        assert event.status == WebhookEventStatus.PROCESSING
        assert event.retry_count == 1

        event.mark_failed("boom")
        assert event.is_failed
        assert event.error_message == "boom"

        event.mark_processed()
        assert event.is_processed
        assert event.processed_at is not None
        assert event.error_message is None

    @override_settings(ESCROW_WEBHOOK_MAX_RETRIES=2)
    def test_can_retry_respects_budget(self, db):
        event = WebhookEventFactory(status=WebhookEventStatus.FAILED, retry_count=1)
        exhausted = WebhookEventFactory(status=WebhookEventStatus.FAILED, retry_count=2)

        assert event.can_retry
        assert not exhausted.can_retry

    def test_get_data_tolerates_bad_payload(self, db):
        event = WebhookEventFactory(payload={"event": "charge.success", "data": "oops"})

        assert event.get_data() == {}
