"""
Escrow admin configuration.

Orders, disputes, webhook events and audit entries are read-only here.
Status changes go through EscrowEngine (via the admin API), never through
the Django admin, so the conditional-update guard and audit trail always
apply.
"""

from django.contrib import admin

from core.helpers import format_naira
from escrow.models import EscrowDispute, EscrowEvent, EscrowOrder, WebhookEvent


class EscrowEventInline(admin.TabularInline):
    """Audit trail shown on the order page."""

    model = EscrowEvent
    extra = 0
    fields = ["created_at", "event_type", "actor", "from_status", "to_status", "payload"]
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(EscrowOrder)
class EscrowOrderAdmin(admin.ModelAdmin):
    """
    Admin configuration for EscrowOrder.

    Settlement is performed through /api/v1/escrow/admin/actions/.
    """

    list_display = [
        "id",
        "buyer",
        "seller",
        "total_display",
        "status",
        "delivery_status",
        "dispute_status",
        "created_at",
    ]
    list_filter = ["status", "delivery_status", "dispute_status", "created_at"]
    search_fields = ["id", "payment_reference", "buyer__email", "seller__email"]
    raw_id_fields = ["buyer", "seller", "product", "admin_decision_by"]
    readonly_fields = [
        "id",
        "status",
        "subtotal_kobo",
        "escrow_fee_kobo",
        "total_kobo",
        "payment_reference",
        "funded_at",
        "shipped_at",
        "buyer_confirmed_at",
        "released_at",
        "refunded_at",
        "admin_decision_type",
        "admin_decision_by",
        "admin_decision_at",
        "admin_decision_note",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]
    inlines = [EscrowEventInline]

    fieldsets = (
        (None, {"fields": ("id", "buyer", "seller", "product", "product_snapshot")}),
        ("Amounts", {"fields": ("subtotal_kobo", "escrow_fee_kobo", "total_kobo", "currency")}),
        (
            "Payment",
            {"fields": ("payment_reference", "authorization_url", "access_code")},
        ),
        (
            "Status",
            {"fields": ("status", "delivery_status", "dispute_status", "shipment_reference")},
        ),
        (
            "Timeline",
            {"fields": ("funded_at", "shipped_at", "buyer_confirmed_at", "released_at", "refunded_at")},
        ),
        (
            "Admin Decision",
            {
                "fields": (
                    "admin_decision_type",
                    "admin_decision_by",
                    "admin_decision_at",
                    "admin_decision_note",
                ),
            },
        ),
        ("Timestamps", {"fields": ("created_at", "updated_at")}),
    )

    def total_display(self, obj: EscrowOrder) -> str:
        return format_naira(obj.total_kobo)

    total_display.short_description = "Total"

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for escrow orders (audit trail)."""
        return False


@admin.register(EscrowDispute)
class EscrowDisputeAdmin(admin.ModelAdmin):
    list_display = ["id", "escrow_order", "opened_by", "status", "resolution", "created_at"]
    list_filter = ["status", "resolution"]
    search_fields = ["id", "escrow_order__id", "opened_by__email", "reason"]
    raw_id_fields = ["escrow_order", "opened_by", "resolved_by"]
    readonly_fields = ["id", "status", "resolution", "resolved_by", "resolved_at", "created_at", "updated_at"]

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    list_display = ["event_id", "provider", "event_type", "status", "retry_count", "created_at"]
    list_filter = ["provider", "event_type", "status"]
    search_fields = ["event_id", "reference"]
    raw_id_fields = ["escrow_order"]
    readonly_fields = [
        "id",
        "provider",
        "event_id",
        "event_type",
        "reference",
        "payload",
        "processed_at",
        "error_message",
        "retry_count",
        "created_at",
        "updated_at",
    ]

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(EscrowEvent)
class EscrowEventAdmin(admin.ModelAdmin):
    list_display = ["escrow_order", "event_type", "actor", "from_status", "to_status", "created_at"]
    list_filter = ["event_type"]
    search_fields = ["escrow_order__id"]
    raw_id_fields = ["escrow_order", "actor"]

    def has_add_permission(self, request) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False
