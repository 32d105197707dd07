"""
EscrowOrder model - one row per escrow-backed purchase.

The order status is a django-fsm FSMField. The @transition methods below
are the transition table: they declare the legal source states and set
the fields each transition owns (timestamps, sub-statuses, decision
fields) on the in-memory instance. They never save. EscrowEngine
persists the result with a conditional UPDATE guarded by the same source
set, so two racing requests cannot both apply a transition.

State Flow:
    INITIALIZED/PENDING -> FUNDED -> SHIPPED -> AWAITING_BUYER_CONFIRMATION
        -> BUYER_CONFIRMED -> PENDING_ADMIN_RELEASE -> RELEASED_TO_SELLER
    (non-terminal) -> DISPUTED -> RELEASED_TO_SELLER | REFUND_TO_BUYER

Usage:
    from escrow.models import EscrowOrder
    from escrow.services import EscrowEngine

    order = EscrowOrder.objects.get(pk=order_id)
    order = EscrowEngine.ship(order, seller, shipment_reference="GIG-123")
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from escrow.state_machines import (
    CONFIRMABLE_STATES,
    DISPUTABLE_STATES,
    FUNDABLE_STATES,
    FUNDED_OR_LATER_STATES,
    REFUNDABLE_STATES,
    RELEASABLE_STATES,
    SHIPPABLE_STATES,
    TERMINAL_STATES,
    AdminDecisionType,
    DeliveryStatus,
    DisputeStatus,
    EscrowStatus,
    normalize_status,
)


class EscrowOrderQuerySet(models.QuerySet):
    """Query helpers for buyer, seller and admin order lists."""

    def for_buyer(self, user):
        return self.filter(buyer=user)

    def for_seller(self, user):
        return self.filter(seller=user)

    def for_party(self, user):
        return self.filter(models.Q(buyer=user) | models.Q(seller=user))

    def pending_release(self):
        return self.filter(status=EscrowStatus.PENDING_ADMIN_RELEASE)

    def disputed(self):
        return self.filter(status=EscrowStatus.DISPUTED)

    def by_reference(self, reference: str):
        return self.filter(payment_reference=reference)


class EscrowOrder(UUIDPrimaryKeyMixin, BaseModel):
    """
    Escrow-backed purchase between a buyer and a seller.

    Fields:
        buyer/seller: Parties, fixed at creation
        product: Source listing (nullable, the snapshot is authoritative)
        subtotal_kobo/escrow_fee_kobo/total_kobo: Money in kobo,
            total = subtotal + fee (database constraint)
        payment_reference: Gateway reference, unique (defaults to order id)
        status: FSM-managed lifecycle status
        delivery_status/dispute_status: Sub-statuses for UI queries
        funded_at ... refunded_at: Set once by the owning transition
        admin_decision_*: Set only by admin settlement
        product_snapshot: Copy of title/price/location at order time
    """

    # ==========================================================================
    # Parties
    # ==========================================================================

    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="escrow_purchases",
        help_text="User paying into escrow",
    )
    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="escrow_sales",
        help_text="User receiving funds on release",
    )
    product = models.ForeignKey(
        "listings.Product",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="escrow_orders",
        help_text="Listing this order was created from",
    )

    # ==========================================================================
    # Money (kobo)
    # ==========================================================================

    subtotal_kobo = models.PositiveBigIntegerField(
        help_text="Item price in kobo",
    )
    escrow_fee_kobo = models.PositiveBigIntegerField(
        help_text="Escrow fee in kobo (flat + percentage, rounded up)",
    )
    total_kobo = models.PositiveBigIntegerField(
        help_text="Amount charged to the buyer in kobo (subtotal + fee)",
    )
    currency = models.CharField(
        max_length=3,
        default="NGN",
        help_text="ISO 4217 currency code",
    )

    # ==========================================================================
    # Payment Linkage
    # ==========================================================================

    payment_reference = models.CharField(
        max_length=100,
        unique=True,
        help_text="Gateway transaction reference",
    )
    authorization_url = models.URLField(
        max_length=500,
        blank=True,
        default="",
        help_text="Hosted checkout URL returned by the gateway",
    )
    access_code = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Gateway access code for the hosted checkout",
    )

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    status = FSMField(
        max_length=40,
        default=EscrowStatus.INITIALIZED,
        choices=EscrowStatus.choices,
        db_index=True,
        protected=True,
        help_text="Lifecycle status (managed by FSM, persisted by EscrowEngine)",
    )
    delivery_status = models.CharField(
        max_length=20,
        choices=DeliveryStatus.choices,
        default=DeliveryStatus.NONE,
        help_text="Delivery sub-status",
    )
    dispute_status = models.CharField(
        max_length=20,
        choices=DisputeStatus.choices,
        default=DisputeStatus.NONE,
        help_text="Dispute sub-status",
    )
    shipment_reference = models.CharField(
        max_length=200,
        blank=True,
        default="",
        help_text="Carrier or tracking reference supplied by the seller",
    )

    # ==========================================================================
    # Audit Timestamps
    # ==========================================================================

    funded_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When payment was confirmed",
    )
    shipped_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the seller marked the order shipped",
    )
    buyer_confirmed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the buyer confirmed delivery",
    )
    released_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When funds were released to the seller",
    )
    refunded_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When funds were refunded to the buyer",
    )

    # ==========================================================================
    # Admin Decision
    # ==========================================================================

    admin_decision_type = models.CharField(
        max_length=20,
        choices=AdminDecisionType.choices,
        blank=True,
        default="",
        help_text="Settlement decision taken by an administrator",
    )
    admin_decision_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="escrow_decisions",
        help_text="Administrator who settled the order",
    )
    admin_decision_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the settlement decision was taken",
    )
    admin_decision_note = models.TextField(
        blank=True,
        default="",
        help_text="Administrator note recorded with the decision",
    )

    # ==========================================================================
    # Snapshot
    # ==========================================================================

    product_snapshot = models.JSONField(
        default=dict,
        blank=True,
        help_text="Product title/price/location copied at order time",
    )

    objects = EscrowOrderQuerySet.as_manager()

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Escrow Order"
        verbose_name_plural = "Escrow Orders"
        indexes = [
            models.Index(fields=["buyer", "status"], name="escrow_order_buyer_idx"),
            models.Index(fields=["seller", "status"], name="escrow_order_seller_idx"),
            models.Index(fields=["status", "created_at"], name="escrow_order_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(
                    total_kobo=models.F("subtotal_kobo") + models.F("escrow_fee_kobo")
                ),
                name="escrow_order_total_is_subtotal_plus_fee",
            ),
            models.CheckConstraint(
                condition=~models.Q(buyer=models.F("seller")),
                name="escrow_order_buyer_is_not_seller",
            ),
            models.CheckConstraint(
                condition=models.Q(released_at__isnull=True)
                | models.Q(refunded_at__isnull=True),
                name="escrow_order_single_settlement",
            ),
        ]

    def __str__(self) -> str:
        amount_display = f"{self.total_kobo / 100:.2f} {self.currency}"
        return f"EscrowOrder({self.id}, {self.status}, {amount_display})"

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def canonical_status(self) -> str:
        """Status with legacy 'ready to ship' aliases mapped to funded."""
        return normalize_status(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    @property
    def is_funded(self) -> bool:
        """Payment was confirmed (legacy rows may predate funded_at)."""
        if self.funded_at is not None:
            return True
        return self.status in FUNDED_OR_LATER_STATES and self.status != EscrowStatus.DISPUTED

    @property
    def has_open_dispute(self) -> bool:
        return self.dispute_status == DisputeStatus.OPEN

    def is_buyer(self, user) -> bool:
        return user is not None and user.pk == self.buyer_id

    def is_seller(self, user) -> bool:
        return user is not None and user.pk == self.seller_id

    def is_party(self, user) -> bool:
        return self.is_buyer(user) or self.is_seller(user)

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(field=status, source=FUNDABLE_STATES, target=EscrowStatus.FUNDED)
    def fund(self, funded_at):
        """
        Record confirmed payment.

        Transition: INITIALIZED/PENDING -> FUNDED
        """
        self.funded_at = funded_at
        self.delivery_status = DeliveryStatus.AWAITING_SHIPMENT

    @transition(field=status, source=SHIPPABLE_STATES, target=EscrowStatus.SHIPPED)
    def mark_shipped(self, shipped_at, shipment_reference=""):
        """
        Seller hands the item to a carrier.

        Transition: FUNDED (or legacy alias) -> SHIPPED
        """
        self.shipped_at = shipped_at
        self.delivery_status = DeliveryStatus.SHIPPED
        if shipment_reference:
            self.shipment_reference = shipment_reference

    @transition(
        field=status,
        source=EscrowStatus.SHIPPED,
        target=EscrowStatus.AWAITING_BUYER_CONFIRMATION,
    )
    def await_buyer_confirmation(self):
        """Transition: SHIPPED -> AWAITING_BUYER_CONFIRMATION (automatic)."""

    @transition(
        field=status,
        source=CONFIRMABLE_STATES,
        target=EscrowStatus.BUYER_CONFIRMED,
    )
    def confirm_delivery(self, confirmed_at):
        """
        Buyer confirms the item arrived as described.

        Transition: SHIPPED/AWAITING_BUYER_CONFIRMATION -> BUYER_CONFIRMED
        """
        self.buyer_confirmed_at = confirmed_at
        self.delivery_status = DeliveryStatus.CONFIRMED

    @transition(
        field=status,
        source=EscrowStatus.BUYER_CONFIRMED,
        target=EscrowStatus.PENDING_ADMIN_RELEASE,
    )
    def queue_for_release(self):
        """Transition: BUYER_CONFIRMED -> PENDING_ADMIN_RELEASE (automatic)."""

    @transition(field=status, source=DISPUTABLE_STATES, target=EscrowStatus.DISPUTED)
    def open_dispute(self):
        """
        Buyer raises a dispute; settlement now needs an administrator.

        Transition: FUNDED (or legacy alias)/SHIPPED/AWAITING_BUYER_CONFIRMATION -> DISPUTED
        """
        self.dispute_status = DisputeStatus.OPEN

    @transition(
        field=status,
        source=RELEASABLE_STATES,
        target=EscrowStatus.RELEASED_TO_SELLER,
    )
    def release_to_seller(self, admin, decided_at, note=""):
        """
        Settle in the seller's favour.

        Transition: PENDING_ADMIN_RELEASE/DISPUTED -> RELEASED_TO_SELLER
        """
        self.released_at = decided_at
        self._record_decision(AdminDecisionType.RELEASE, admin, decided_at, note)

    @transition(
        field=status,
        source=REFUNDABLE_STATES,
        target=EscrowStatus.REFUND_TO_BUYER,
    )
    def refund_to_buyer(self, admin, decided_at, note):
        """
        Settle in the buyer's favour.

        Transition: DISPUTED -> REFUND_TO_BUYER
        """
        self.refunded_at = decided_at
        self._record_decision(AdminDecisionType.REFUND, admin, decided_at, note)

    def _record_decision(self, decision_type, admin, decided_at, note) -> None:
        self.admin_decision_type = decision_type
        self.admin_decision_by = admin
        self.admin_decision_at = decided_at
        self.admin_decision_note = note or ""
        if self.dispute_status == DisputeStatus.OPEN:
            self.dispute_status = DisputeStatus.RESOLVED
