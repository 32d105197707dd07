"""
EscrowEvent model - append-only audit trail for escrow orders.

One row is written per state change and per notable gateway outcome
(initialization, amount mismatch, verification). Rows are never updated.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from escrow.state_machines import EscrowEventType


class EscrowEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Audit entry for an escrow order.

    Fields:
        escrow_order: Order the entry belongs to
        event_type: What happened
        actor: User who caused it (None for webhooks and system actions)
        from_status/to_status: Status change, blank when none occurred
        payload: Extra context (amounts, references, notes)
    """

    escrow_order = models.ForeignKey(
        "escrow.EscrowOrder",
        on_delete=models.PROTECT,
        related_name="events",
        help_text="Escrow order this entry belongs to",
    )
    event_type = models.CharField(
        max_length=40,
        choices=EscrowEventType.choices,
        db_index=True,
        help_text="Kind of audit entry",
    )
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="escrow_events",
        help_text="User who triggered the entry, if any",
    )
    from_status = models.CharField(
        max_length=40,
        blank=True,
        default="",
        help_text="Order status before the change",
    )
    to_status = models.CharField(
        max_length=40,
        blank=True,
        default="",
        help_text="Order status after the change",
    )
    payload = models.JSONField(
        default=dict,
        blank=True,
        help_text="Additional context for the entry",
    )

    class Meta:
        ordering = ["created_at"]
        verbose_name = "Escrow Event"
        verbose_name_plural = "Escrow Events"
        indexes = [
            models.Index(fields=["escrow_order", "created_at"], name="escrow_event_order_idx"),
        ]

    def __str__(self) -> str:
        return f"EscrowEvent({self.escrow_order_id}, {self.event_type})"

    @classmethod
    def record(
        cls,
        order,
        event_type: str,
        actor=None,
        from_status: str = "",
        to_status: str = "",
        **payload,
    ) -> EscrowEvent:
        return cls.objects.create(
            escrow_order=order,
            event_type=event_type,
            actor=actor,
            from_status=from_status or "",
            to_status=to_status or "",
            payload=payload,
        )
