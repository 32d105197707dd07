"""
Webhook event handlers for Paystack events.

This module provides a handler registry, the processing routine shared by
the webhook view and the retry task, and the handler implementations.

Handlers return a ServiceResult. A failed result or an exception marks
the WebhookEvent FAILED so retry_failed_webhooks picks it up again.
Outcomes that retrying cannot change (unknown reference, amount
mismatch, order no longer fundable) are recorded and succeed.

Usage:
    from escrow.webhooks.handlers import process_webhook, register_handler

    @register_handler("transfer.success")
    def handle_transfer_success(webhook_event: WebhookEvent) -> ServiceResult:
        ...

    result = process_webhook(webhook_event)
"""

from __future__ import annotations

import logging
from typing import Callable

from django.db import transaction

from core.services import ServiceResult
from escrow.exceptions import AmountMismatchError, InvalidTransitionError
from escrow.models import EscrowEvent, EscrowOrder, WebhookEvent
from escrow.services import EscrowEngine
from escrow.state_machines import FUNDABLE_STATES, EscrowEventType

logger = logging.getLogger(__name__)


# =============================================================================
# Handler Registry
# =============================================================================


# Maps event type strings to handler functions
WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEvent], ServiceResult]] = {}


def register_handler(event_type: str) -> Callable:
    """
    Decorator to register a webhook event handler.

    Args:
        event_type: The Paystack event type (e.g., "charge.success")
    """

    def decorator(func: Callable[[WebhookEvent], ServiceResult]) -> Callable:
        WEBHOOK_HANDLERS[event_type] = func
        logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def dispatch_webhook(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Dispatch a webhook event to its handler.

    Unknown event types are acknowledged with success so the gateway
    does not keep redelivering them.
    """
    handler = WEBHOOK_HANDLERS.get(webhook_event.event_type)

    if not handler:
        logger.info(
            f"No handler registered for event type: {webhook_event.event_type}",
            extra={"event_id": webhook_event.event_id},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Dispatching {webhook_event.event_type} to handler",
        extra={"event_id": webhook_event.event_id, "reference": webhook_event.reference},
    )
    return handler(webhook_event)


def process_webhook(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Run a stored webhook event through its handler and record the outcome.

    Raises:
        Exception: Whatever the handler raised, after the event is marked
            FAILED (the retry task relies on this to back off)
    """
    webhook_event.mark_processing()
    webhook_event.save(update_fields=["status", "retry_count", "updated_at"])

    try:
        with transaction.atomic():
            result = dispatch_webhook(webhook_event)
    except Exception as e:
        webhook_event.mark_failed(f"{type(e).__name__}: {e}")
        webhook_event.save(update_fields=["status", "error_message", "updated_at"])
        logger.exception(
            "Webhook processing failed with exception",
            extra={
                "webhook_event_id": str(webhook_event.id),
                "event_id": webhook_event.event_id,
                "retry_count": webhook_event.retry_count,
            },
        )
        raise

    if result.success:
        webhook_event.mark_processed()
        webhook_event.save(update_fields=["status", "processed_at", "error_message", "updated_at"])
        logger.info(
            "Webhook processed successfully",
            extra={"webhook_event_id": str(webhook_event.id), "event_id": webhook_event.event_id},
        )
    else:
        error_msg = result.error or "Handler returned failure"
        webhook_event.mark_failed(error_msg)
        webhook_event.save(update_fields=["status", "error_message", "updated_at"])
        logger.warning(
            f"Webhook handler failed: {error_msg}",
            extra={
                "webhook_event_id": str(webhook_event.id),
                "event_id": webhook_event.event_id,
                "error_code": result.error_code,
            },
        )
    return result


# =============================================================================
# Charge Handlers
# =============================================================================


@register_handler("charge.success")
def handle_charge_success(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Fund the escrow order referenced by a successful charge.

    The charged amount must equal the order total; a mismatch is audited
    and the order stays unfunded.
    """
    data = webhook_event.get_data()
    reference = str(data.get("reference") or webhook_event.reference or "")
    log_context = {"event_id": webhook_event.event_id, "reference": reference}

    if not reference:
        logger.warning("charge.success without reference", extra=log_context)
        return ServiceResult.success({"outcome": "no_reference"})

    order = EscrowOrder.objects.by_reference(reference).first()
    if order is None:
        logger.warning("charge.success for unknown reference", extra=log_context)
        return ServiceResult.success({"outcome": "unknown_reference"})

    if webhook_event.escrow_order_id != order.pk:
        WebhookEvent.objects.filter(pk=webhook_event.pk).update(escrow_order=order)
        webhook_event.escrow_order = order
    log_context["order_id"] = str(order.pk)

    if order.is_funded:
        logger.info("Escrow order already funded", extra=log_context)
        return ServiceResult.success({"outcome": "already_funded", "order_id": str(order.pk)})

    if order.status not in FUNDABLE_STATES:
        logger.warning(
            "charge.success for order that cannot be funded",
            extra={**log_context, "current_status": order.status},
        )
        return ServiceResult.success({"outcome": "not_fundable", "order_id": str(order.pk)})

    try:
        amount_kobo = int(data.get("amount"))
    except (TypeError, ValueError):
        amount_kobo = -1

    try:
        EscrowEngine.fund(order, amount_kobo=amount_kobo, source="webhook")
    except AmountMismatchError as e:
        EscrowEvent.record(
            order,
            EscrowEventType.AMOUNT_MISMATCH,
            source="webhook",
            event_id=webhook_event.event_id,
            currency=data.get("currency"),
            **e.details,
        )
        logger.error("Paid amount does not match order total", extra={**log_context, **e.details})
        return ServiceResult.success({"outcome": "amount_mismatch", "order_id": str(order.pk)})
    except InvalidTransitionError as e:
        logger.info(
            "Escrow order funded concurrently",
            extra={**log_context, "current_status": e.details.get("current_status")},
        )
        return ServiceResult.success({"outcome": "already_funded", "order_id": str(order.pk)})

    return ServiceResult.success({"outcome": "funded", "order_id": str(order.pk)})
