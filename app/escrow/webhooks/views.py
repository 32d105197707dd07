"""
Webhook endpoint view for Paystack.

The view:
1. Verifies the HMAC signature over the raw request body
2. Records the WebhookEvent (the unique constraint detects duplicates)
3. Processes the event inline
4. Answers 200 once the event is recorded, whatever the outcome

Response codes:
    200: Recorded (new, duplicate, or handler failure left for retry)
    400: Body is not JSON or lacks id/event
    401: Signature missing or wrong; nothing is written
    500: PAYSTACK_SECRET_KEY not configured
"""

from __future__ import annotations

import json
import logging

from django.core.exceptions import ImproperlyConfigured
from django.db import IntegrityError, transaction
from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from core.helpers import get_client_ip
from escrow.adapters import PaystackAdapter
from escrow.exceptions import SignatureInvalidError
from escrow.models import WebhookEvent
from escrow.state_machines import WebhookEventStatus, WebhookProvider
from escrow.webhooks.handlers import process_webhook

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-paystack-signature"


@csrf_exempt
@require_POST
def paystack_webhook(request: HttpRequest) -> JsonResponse:
    """Receive, record and process a Paystack webhook."""
    raw_body = request.body
    signature = request.headers.get(SIGNATURE_HEADER, "")

    # Step 1: Verify signature on the unparsed body
    try:
        PaystackAdapter.verify_webhook_signature(raw_body, signature)
    except ImproperlyConfigured:
        logger.error("Paystack webhook received but PAYSTACK_SECRET_KEY is not set")
        return JsonResponse({"error": "Webhook secret not configured"}, status=500)
    except SignatureInvalidError as e:
        return JsonResponse(e.to_dict(), status=e.http_status)

    # Step 2: Parse
    try:
        payload = json.loads(raw_body)
    except (UnicodeDecodeError, ValueError):
        logger.warning("Paystack webhook body is not valid JSON")
        return JsonResponse({"error": "Invalid JSON"}, status=400)
    if not isinstance(payload, dict):
        return JsonResponse({"error": "Invalid JSON"}, status=400)

    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    event_type = str(payload.get("event") or "")
    event_id = str(payload.get("id") or data.get("id") or "")

    if not event_id or not event_type:
        logger.warning("Paystack webhook missing id or event")
        return JsonResponse({"error": "Missing event id or type"}, status=400)

    reference = str(data.get("reference") or "")
    logger.info(
        f"Received Paystack webhook: {event_type}",
        extra={
            "event_id": event_id,
            "event_type": event_type,
            "reference": reference,
            "remote_ip": get_client_ip(request),
        },
    )

    # Step 3: Record (idempotent)
    try:
        with transaction.atomic():
            webhook_event = WebhookEvent.objects.create(
                provider=WebhookProvider.PAYSTACK,
                event_id=event_id,
                event_type=event_type,
                reference=reference,
                payload=payload,
                status=WebhookEventStatus.PENDING,
            )
    except IntegrityError:
        logger.info("Duplicate Paystack webhook ignored", extra={"event_id": event_id})
        return JsonResponse({"status": "duplicate"}, status=200)

    # Step 4: Process; failures stay FAILED for the retry task
    try:
        result = process_webhook(webhook_event)
    except Exception:
        logger.error(
            "Paystack webhook recorded but processing failed",
            extra={"event_id": event_id, "webhook_event_id": str(webhook_event.id)},
            exc_info=True,
        )
        return JsonResponse({"status": "failed"}, status=200)

    return JsonResponse({"status": "processed" if result.success else "failed"}, status=200)
