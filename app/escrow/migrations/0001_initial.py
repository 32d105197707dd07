import uuid

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("listings", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="EscrowOrder",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("subtotal_kobo", models.PositiveBigIntegerField(help_text="Item price in kobo")),
                (
                    "escrow_fee_kobo",
                    models.PositiveBigIntegerField(
                        help_text="Escrow fee in kobo (flat + percentage, rounded up)"
                    ),
                ),
                (
                    "total_kobo",
                    models.PositiveBigIntegerField(
                        help_text="Amount charged to the buyer in kobo (subtotal + fee)"
                    ),
                ),
                (
                    "currency",
                    models.CharField(default="NGN", help_text="ISO 4217 currency code", max_length=3),
                ),
                (
                    "payment_reference",
                    models.CharField(
                        help_text="Gateway transaction reference",
                        max_length=100,
                        unique=True,
                    ),
                ),
                (
                    "authorization_url",
                    models.URLField(
                        blank=True,
                        default="",
                        help_text="Hosted checkout URL returned by the gateway",
                        max_length=500,
                    ),
                ),
                (
                    "access_code",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Gateway access code for the hosted checkout",
                        max_length=100,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("initialized", "Initialized"),
                            ("pending", "Pending Payment"),
                            ("funded", "Funded"),
                            ("shipped", "Shipped"),
                            ("awaiting_buyer_confirmation", "Awaiting Buyer Confirmation"),
                            ("buyer_confirmed", "Buyer Confirmed"),
                            ("pending_admin_release", "Pending Admin Release"),
                            ("disputed", "Disputed"),
                            ("released_to_seller", "Released to Seller"),
                            ("refund_to_buyer", "Refunded to Buyer"),
                        ],
                        db_index=True,
                        default="initialized",
                        help_text="Lifecycle status (managed by FSM, persisted by EscrowEngine)",
                        max_length=40,
                        protected=True,
                    ),
                ),
                (
                    "delivery_status",
                    models.CharField(
                        choices=[
                            ("none", "None"),
                            ("awaiting_shipment", "Awaiting Shipment"),
                            ("shipped", "Shipped"),
                            ("confirmed", "Confirmed"),
                        ],
                        default="none",
                        help_text="Delivery sub-status",
                        max_length=20,
                    ),
                ),
                (
                    "dispute_status",
                    models.CharField(
                        choices=[("none", "None"), ("open", "Open"), ("resolved", "Resolved")],
                        default="none",
                        help_text="Dispute sub-status",
                        max_length=20,
                    ),
                ),
                (
                    "shipment_reference",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Carrier or tracking reference supplied by the seller",
                        max_length=200,
                    ),
                ),
                (
                    "funded_at",
                    models.DateTimeField(blank=True, help_text="When payment was confirmed", null=True),
                ),
                (
                    "shipped_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the seller marked the order shipped",
                        null=True,
                    ),
                ),
                (
                    "buyer_confirmed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the buyer confirmed delivery",
                        null=True,
                    ),
                ),
                (
                    "released_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When funds were released to the seller",
                        null=True,
                    ),
                ),
                (
                    "refunded_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When funds were refunded to the buyer",
                        null=True,
                    ),
                ),
                (
                    "admin_decision_type",
                    models.CharField(
                        blank=True,
                        choices=[("release", "Release to Seller"), ("refund", "Refund to Buyer")],
                        default="",
                        help_text="Settlement decision taken by an administrator",
                        max_length=20,
                    ),
                ),
                (
                    "admin_decision_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the settlement decision was taken",
                        null=True,
                    ),
                ),
                (
                    "admin_decision_note",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Administrator note recorded with the decision",
                    ),
                ),
                (
                    "product_snapshot",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Product title/price/location copied at order time",
                    ),
                ),
                (
                    "admin_decision_by",
                    models.ForeignKey(
                        blank=True,
                        help_text="Administrator who settled the order",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="escrow_decisions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "buyer",
                    models.ForeignKey(
                        help_text="User paying into escrow",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="escrow_purchases",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        blank=True,
                        help_text="Listing this order was created from",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="escrow_orders",
                        to="listings.product",
                    ),
                ),
                (
                    "seller",
                    models.ForeignKey(
                        help_text="User receiving funds on release",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="escrow_sales",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Escrow Order",
                "verbose_name_plural": "Escrow Orders",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["buyer", "status"], name="escrow_order_buyer_idx"),
                    models.Index(fields=["seller", "status"], name="escrow_order_seller_idx"),
                    models.Index(fields=["status", "created_at"], name="escrow_order_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            ("total_kobo", models.F("subtotal_kobo") + models.F("escrow_fee_kobo"))
                        ),
                        name="escrow_order_total_is_subtotal_plus_fee",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("buyer", models.F("seller")), _negated=True),
                        name="escrow_order_buyer_is_not_seller",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("released_at__isnull", True),
                            ("refunded_at__isnull", True),
                            _connector="OR",
                        ),
                        name="escrow_order_single_settlement",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="EscrowDispute",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("reason", models.TextField(help_text="Buyer's reason for the dispute")),
                (
                    "buyer_notes",
                    models.TextField(blank=True, default="", help_text="Additional notes from the buyer"),
                ),
                (
                    "seller_notes",
                    models.TextField(blank=True, default="", help_text="Response notes from the seller"),
                ),
                (
                    "admin_notes",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Notes recorded by the administrator on resolution",
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("open", "Open"), ("resolved", "Resolved")],
                        db_index=True,
                        default="open",
                        help_text="Dispute status",
                        max_length=20,
                    ),
                ),
                (
                    "resolution",
                    models.CharField(
                        blank=True,
                        choices=[("release", "Release to Seller"), ("refund", "Refund to Buyer")],
                        default="",
                        help_text="Outcome chosen by the administrator",
                        max_length=20,
                    ),
                ),
                (
                    "resolved_at",
                    models.DateTimeField(blank=True, help_text="When the dispute was resolved", null=True),
                ),
                (
                    "escrow_order",
                    models.ForeignKey(
                        help_text="Disputed escrow order",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="disputes",
                        to="escrow.escroworder",
                    ),
                ),
                (
                    "opened_by",
                    models.ForeignKey(
                        help_text="Buyer who opened the dispute",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="escrow_disputes_opened",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "resolved_by",
                    models.ForeignKey(
                        blank=True,
                        help_text="Administrator who resolved the dispute",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="escrow_disputes_resolved",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Escrow Dispute",
                "verbose_name_plural": "Escrow Disputes",
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status", "open")),
                        fields=("escrow_order",),
                        name="escrow_dispute_one_open_per_order",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="EscrowEvent",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "event_type",
                    models.CharField(
                        choices=[
                            ("order_created", "Order Created"),
                            ("paystack_initialized", "Paystack Initialized"),
                            ("paystack_init_failed", "Paystack Initialization Failed"),
                            ("funded", "Funded"),
                            ("payment_verified", "Payment Verified"),
                            ("amount_mismatch", "Amount Mismatch"),
                            ("shipped", "Shipped"),
                            ("awaiting_buyer_confirmation", "Awaiting Buyer Confirmation"),
                            ("delivery_confirmed", "Delivery Confirmed"),
                            ("pending_admin_release", "Pending Admin Release"),
                            ("dispute_opened", "Dispute Opened"),
                            ("dispute_resolved", "Dispute Resolved"),
                            ("released_to_seller", "Released to Seller"),
                            ("refunded_to_buyer", "Refunded to Buyer"),
                        ],
                        db_index=True,
                        help_text="Kind of audit entry",
                        max_length=40,
                    ),
                ),
                (
                    "from_status",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Order status before the change",
                        max_length=40,
                    ),
                ),
                (
                    "to_status",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Order status after the change",
                        max_length=40,
                    ),
                ),
                (
                    "payload",
                    models.JSONField(blank=True, default=dict, help_text="Additional context for the entry"),
                ),
                (
                    "actor",
                    models.ForeignKey(
                        blank=True,
                        help_text="User who triggered the entry, if any",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="escrow_events",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "escrow_order",
                    models.ForeignKey(
                        help_text="Escrow order this entry belongs to",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="events",
                        to="escrow.escroworder",
                    ),
                ),
            ],
            options={
                "verbose_name": "Escrow Event",
                "verbose_name_plural": "Escrow Events",
                "ordering": ["created_at"],
                "indexes": [
                    models.Index(fields=["escrow_order", "created_at"], name="escrow_event_order_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="WebhookEvent",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "provider",
                    models.CharField(
                        choices=[("paystack", "Paystack")],
                        default="paystack",
                        help_text="Payment gateway that delivered the event",
                        max_length=20,
                    ),
                ),
                (
                    "event_id",
                    models.CharField(
                        help_text="Gateway event id - unique per provider for idempotency",
                        max_length=255,
                    ),
                ),
                (
                    "event_type",
                    models.CharField(
                        db_index=True,
                        help_text="Gateway event type (e.g., 'charge.success')",
                        max_length=100,
                    ),
                ),
                (
                    "reference",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        default="",
                        help_text="Transaction reference carried by the event",
                        max_length=100,
                    ),
                ),
                ("payload", models.JSONField(help_text="Full webhook payload (JSON)")),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("processed", "Processed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current processing status",
                        max_length=20,
                    ),
                ),
                (
                    "processed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the event was successfully processed",
                        null=True,
                    ),
                ),
                (
                    "error_message",
                    models.TextField(blank=True, help_text="Error message if processing failed", null=True),
                ),
                (
                    "retry_count",
                    models.PositiveSmallIntegerField(default=0, help_text="Number of processing attempts"),
                ),
                (
                    "escrow_order",
                    models.ForeignKey(
                        blank=True,
                        help_text="Escrow order the event was matched to",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="webhook_events",
                        to="escrow.escroworder",
                    ),
                ),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="webhook_status_idx"),
                    models.Index(fields=["status", "retry_count"], name="webhook_retry_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("provider", "event_id"),
                        name="webhook_event_provider_event_unique",
                    ),
                ],
            },
        ),
    ]
