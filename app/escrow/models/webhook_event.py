"""
WebhookEvent model for payment gateway webhook tracking.

Every verified webhook is stored once per (provider, event_id). The
unique constraint is what makes delivery idempotent: a redelivered event
fails the insert and is acknowledged without being handled again.

Usage:
    from escrow.models import WebhookEvent

    try:
        with transaction.atomic():
            event = WebhookEvent.objects.create(
                provider=WebhookProvider.PAYSTACK,
                event_id=payload["data"]["id"],
                event_type=payload["event"],
                payload=payload,
            )
    except IntegrityError:
        return Response({"status": "duplicate"})  # Already seen
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from escrow.state_machines import WebhookEventStatus, WebhookProvider


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Stored gateway webhook, used for idempotency, retries and audit.

    Processing Flow:
        1. Verify HMAC signature over the raw body
        2. Insert WebhookEvent; IntegrityError means duplicate -> 200
        3. mark_processing, dispatch to the handler for event_type
        4. mark_processed or mark_failed
        5. Failed events are picked up by retry_failed_webhooks

    Fields:
        provider: Gateway that sent the event
        event_id: Gateway event/transaction id (unique per provider)
        event_type: e.g. 'charge.success'
        reference: Transaction reference from the payload, when present
        escrow_order: Matched order, once a handler has resolved it
        payload: Full JSON body
        status/processed_at/error_message/retry_count: Processing state
    """

    # ==========================================================================
    # Event Identification
    # ==========================================================================

    provider = models.CharField(
        max_length=20,
        choices=WebhookProvider.choices,
        default=WebhookProvider.PAYSTACK,
        help_text="Payment gateway that delivered the event",
    )
    event_id = models.CharField(
        max_length=255,
        help_text="Gateway event id - unique per provider for idempotency",
    )
    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Gateway event type (e.g., 'charge.success')",
    )
    reference = models.CharField(
        max_length=100,
        blank=True,
        default="",
        db_index=True,
        help_text="Transaction reference carried by the event",
    )
    escrow_order = models.ForeignKey(
        "escrow.EscrowOrder",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="webhook_events",
        help_text="Escrow order the event was matched to",
    )

    # ==========================================================================
    # Payload
    # ==========================================================================

    payload = models.JSONField(
        help_text="Full webhook payload (JSON)",
    )

    # ==========================================================================
    # Processing Status
    # ==========================================================================

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
        help_text="Current processing status",
    )
    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the event was successfully processed",
    )
    error_message = models.TextField(
        null=True,
        blank=True,
        help_text="Error message if processing failed",
    )
    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of processing attempts",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        constraints = [
            models.UniqueConstraint(
                fields=["provider", "event_id"],
                name="webhook_event_provider_event_unique",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "created_at"], name="webhook_status_idx"),
            models.Index(fields=["status", "retry_count"], name="webhook_retry_idx"),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.provider}:{self.event_id}, {self.event_type})"

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_processed(self) -> bool:
        return self.status == WebhookEventStatus.PROCESSED

    @property
    def is_failed(self) -> bool:
        return self.status == WebhookEventStatus.FAILED

    @property
    def can_retry(self) -> bool:
        """Failed and still under ESCROW_WEBHOOK_MAX_RETRIES attempts."""
        return self.is_failed and self.retry_count < settings.ESCROW_WEBHOOK_MAX_RETRIES

    # ==========================================================================
    # Helper Methods
    # ==========================================================================

    def mark_processing(self) -> None:
        """Mark as being processed. Does not save."""
        self.status = WebhookEventStatus.PROCESSING
        self.retry_count += 1

    def mark_processed(self) -> None:
        """Mark as successfully processed. Does not save."""
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.error_message = None

    def mark_failed(self, error_message: str) -> None:
        """Mark as failed with the error that stopped processing. Does not save."""
        self.status = WebhookEventStatus.FAILED
        self.error_message = error_message

    def get_data(self) -> dict:
        """The payload's 'data' object, or an empty dict."""
        data = self.payload.get("data") if isinstance(self.payload, dict) else None
        return data if isinstance(data, dict) else {}
