"""
State enums for escrow models.

This module defines the closed enumerations used by escrow models with
django-fsm, plus the source-state sets that the engine uses both for the
@transition declarations and for the conditional UPDATE guards. Keeping
both in one place means the transition table cannot drift from the
persistence guard.

State Machines Overview:

EscrowOrder Status:
    initialized/pending → funded                       (payment webhook)
    funded → shipped → awaiting_buyer_confirmation     (seller ships)
    shipped/awaiting_buyer_confirmation
        → buyer_confirmed → pending_admin_release      (buyer confirms)
    pending_admin_release → released_to_seller         (admin releases)
    non-terminal (except buyer_confirmed, pending_admin_release)
        → disputed                                     (buyer disputes)
    disputed → released_to_seller | refund_to_buyer    (admin resolves)

WebhookEvent Status:
    pending → processing → processed
    pending → processing → failed → processing (retry)
"""

from django.db import models


class EscrowStatus(models.TextChoices):
    """
    Lifecycle status of an EscrowOrder.

    Terminal states: RELEASED_TO_SELLER, REFUND_TO_BUYER
    """

    INITIALIZED = "initialized", "Initialized"
    PENDING = "pending", "Pending Payment"
    FUNDED = "funded", "Funded"
    SHIPPED = "shipped", "Shipped"
    AWAITING_BUYER_CONFIRMATION = (
        "awaiting_buyer_confirmation",
        "Awaiting Buyer Confirmation",
    )
    BUYER_CONFIRMED = "buyer_confirmed", "Buyer Confirmed"
    PENDING_ADMIN_RELEASE = "pending_admin_release", "Pending Admin Release"
    DISPUTED = "disputed", "Disputed"
    RELEASED_TO_SELLER = "released_to_seller", "Released to Seller"
    REFUND_TO_BUYER = "refund_to_buyer", "Refunded to Buyer"


class DeliveryStatus(models.TextChoices):
    """Delivery sub-status tracked alongside the order status."""

    NONE = "none", "None"
    AWAITING_SHIPMENT = "awaiting_shipment", "Awaiting Shipment"
    SHIPPED = "shipped", "Shipped"
    CONFIRMED = "confirmed", "Confirmed"


class DisputeStatus(models.TextChoices):
    """Dispute sub-status tracked on the order."""

    NONE = "none", "None"
    OPEN = "open", "Open"
    RESOLVED = "resolved", "Resolved"


class EscrowDisputeStatus(models.TextChoices):
    """Status of an individual EscrowDispute record."""

    OPEN = "open", "Open"
    RESOLVED = "resolved", "Resolved"


class AdminDecisionType(models.TextChoices):
    """Settlement decision recorded by an administrator."""

    RELEASE = "release", "Release to Seller"
    REFUND = "refund", "Refund to Buyer"


class WebhookProvider(models.TextChoices):
    """Payment gateways that deliver webhooks."""

    PAYSTACK = "paystack", "Paystack"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for WebhookEvent records.

    State Flow:
        PENDING → PROCESSING → PROCESSED
        PENDING → PROCESSING → FAILED → PROCESSING (retry)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"


class EscrowEventType(models.TextChoices):
    """Audit trail entries written by checkout, the engine and webhooks."""

    ORDER_CREATED = "order_created", "Order Created"
    PAYSTACK_INITIALIZED = "paystack_initialized", "Paystack Initialized"
    PAYSTACK_INIT_FAILED = "paystack_init_failed", "Paystack Initialization Failed"
    FUNDED = "funded", "Funded"
    PAYMENT_VERIFIED = "payment_verified", "Payment Verified"
    AMOUNT_MISMATCH = "amount_mismatch", "Amount Mismatch"
    SHIPPED = "shipped", "Shipped"
    AWAITING_BUYER_CONFIRMATION = (
        "awaiting_buyer_confirmation",
        "Awaiting Buyer Confirmation",
    )
    DELIVERY_CONFIRMED = "delivery_confirmed", "Delivery Confirmed"
    PENDING_ADMIN_RELEASE = "pending_admin_release", "Pending Admin Release"
    DISPUTE_OPENED = "dispute_opened", "Dispute Opened"
    DISPUTE_RESOLVED = "dispute_resolved", "Dispute Resolved"
    RELEASED_TO_SELLER = "released_to_seller", "Released to Seller"
    REFUNDED_TO_BUYER = "refunded_to_buyer", "Refunded to Buyer"


# =============================================================================
# Legacy Status Aliases
# =============================================================================

# Older rows used several names for "paid, ready to ship". They are read as
# FUNDED and accepted as shipment sources, but never written.
LEGACY_FUNDED_ALIASES = ("escrow_active", "awaiting_shipment", "payment_received")


def normalize_status(value: str) -> str:
    """Map a stored status string to its canonical EscrowStatus value."""
    if value in LEGACY_FUNDED_ALIASES:
        return EscrowStatus.FUNDED.value
    return value


# =============================================================================
# Transition Source Sets
# =============================================================================

TERMINAL_STATES = (
    EscrowStatus.RELEASED_TO_SELLER,
    EscrowStatus.REFUND_TO_BUYER,
)

FUNDABLE_STATES = (
    EscrowStatus.INITIALIZED,
    EscrowStatus.PENDING,
)

SHIPPABLE_STATES = (EscrowStatus.FUNDED, *LEGACY_FUNDED_ALIASES)

CONFIRMABLE_STATES = (
    EscrowStatus.SHIPPED,
    EscrowStatus.AWAITING_BUYER_CONFIRMATION,
)

# Only paid orders can be disputed; confirmed orders are past the point of dispute
DISPUTABLE_STATES = (
    EscrowStatus.FUNDED,
    EscrowStatus.SHIPPED,
    EscrowStatus.AWAITING_BUYER_CONFIRMATION,
    *LEGACY_FUNDED_ALIASES,
)

RELEASABLE_STATES = (
    EscrowStatus.PENDING_ADMIN_RELEASE,
    EscrowStatus.DISPUTED,
)

REFUNDABLE_STATES = (EscrowStatus.DISPUTED,)

# Orders that count as paid for status verification responses
FUNDED_OR_LATER_STATES = (
    EscrowStatus.FUNDED,
    EscrowStatus.SHIPPED,
    EscrowStatus.AWAITING_BUYER_CONFIRMATION,
    EscrowStatus.BUYER_CONFIRMED,
    EscrowStatus.PENDING_ADMIN_RELEASE,
    EscrowStatus.DISPUTED,
    EscrowStatus.RELEASED_TO_SELLER,
    EscrowStatus.REFUND_TO_BUYER,
    *LEGACY_FUNDED_ALIASES,
)
