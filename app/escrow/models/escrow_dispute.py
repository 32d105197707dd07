"""
EscrowDispute model - a buyer's complaint about an escrow order.

At most one dispute per order can be open at a time; a partial unique
constraint enforces it in the database so concurrent dispute requests
cannot both insert.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from escrow.state_machines import AdminDecisionType, EscrowDisputeStatus


class EscrowDispute(UUIDPrimaryKeyMixin, BaseModel):
    """
    Dispute raised by the buyer of an escrow order.

    Fields:
        escrow_order: Disputed order
        opened_by: The order's buyer
        reason: Why the buyer disputes (minimum length enforced by the engine)
        buyer_notes/seller_notes/admin_notes: Free-form notes per party
        status: open or resolved
        resolution: release or refund, once resolved
        resolved_by/resolved_at: Administrator and time of resolution
    """

    escrow_order = models.ForeignKey(
        "escrow.EscrowOrder",
        on_delete=models.PROTECT,
        related_name="disputes",
        help_text="Disputed escrow order",
    )
    opened_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="escrow_disputes_opened",
        help_text="Buyer who opened the dispute",
    )
    reason = models.TextField(
        help_text="Buyer's reason for the dispute",
    )
    buyer_notes = models.TextField(
        blank=True,
        default="",
        help_text="Additional notes from the buyer",
    )
    seller_notes = models.TextField(
        blank=True,
        default="",
        help_text="Response notes from the seller",
    )
    admin_notes = models.TextField(
        blank=True,
        default="",
        help_text="Notes recorded by the administrator on resolution",
    )
    status = models.CharField(
        max_length=20,
        choices=EscrowDisputeStatus.choices,
        default=EscrowDisputeStatus.OPEN,
        db_index=True,
        help_text="Dispute status",
    )
    resolution = models.CharField(
        max_length=20,
        choices=AdminDecisionType.choices,
        blank=True,
        default="",
        help_text="Outcome chosen by the administrator",
    )
    resolved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="escrow_disputes_resolved",
        help_text="Administrator who resolved the dispute",
    )
    resolved_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the dispute was resolved",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Escrow Dispute"
        verbose_name_plural = "Escrow Disputes"
        constraints = [
            models.UniqueConstraint(
                fields=["escrow_order"],
                condition=models.Q(status="open"),
                name="escrow_dispute_one_open_per_order",
            ),
        ]

    def __str__(self) -> str:
        return f"EscrowDispute({self.id}, {self.escrow_order_id}, {self.status})"

    @property
    def is_open(self) -> bool:
        return self.status == EscrowDisputeStatus.OPEN
