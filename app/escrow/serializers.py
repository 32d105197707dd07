"""
Serializers for the escrow API.

Serializer Hierarchy:
    EscrowOrderSerializer: Order detail for parties and admins
    EscrowOrderListSerializer: Compact order rows for lists
    EscrowDisputeSerializer: Dispute record
    EscrowEventSerializer: Audit entry

    CheckoutRequestSerializer: Create escrow order
    ShipRequestSerializer: Seller marks shipped
    DisputeRequestSerializer: Buyer opens dispute
    AdminActionSerializer: Admin console action
    FeeQuoteQuerySerializer / VerifyPaymentQuerySerializer: Query params

Design Decisions:
    - Read and write serializers are separate
    - Write serializers validate shape only; business rules (minimum
      price, reason length, actor) are enforced by the services
"""

from __future__ import annotations

from rest_framework import serializers

from escrow.models import EscrowDispute, EscrowEvent, EscrowOrder
from escrow.services.admin_service import ADMIN_ACTIONS
from escrow.state_machines import AdminDecisionType

# =============================================================================
# Read Serializers
# =============================================================================


class PartySerializer(serializers.Serializer):
    """Minimal user info for order parties."""

    id = serializers.IntegerField(read_only=True)
    full_name = serializers.CharField(read_only=True)
    email = serializers.EmailField(read_only=True)


class EscrowEventSerializer(serializers.ModelSerializer):
    class Meta:
        model = EscrowEvent
        fields = [
            "id",
            "event_type",
            "actor",
            "from_status",
            "to_status",
            "payload",
            "created_at",
        ]
        read_only_fields = fields


class EscrowOrderListSerializer(serializers.ModelSerializer):
    """Order row for buyer/seller lists and admin queues."""

    product_title = serializers.SerializerMethodField()

    class Meta:
        model = EscrowOrder
        fields = [
            "id",
            "status",
            "delivery_status",
            "dispute_status",
            "product",
            "product_title",
            "buyer",
            "seller",
            "total_kobo",
            "currency",
            "payment_reference",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_product_title(self, obj: EscrowOrder) -> str:
        return (obj.product_snapshot or {}).get("title", "")


class EscrowDisputeSerializer(serializers.ModelSerializer):
    """Dispute record with a summary of the disputed order."""

    order = EscrowOrderListSerializer(source="escrow_order", read_only=True)

    class Meta:
        model = EscrowDispute
        fields = [
            "id",
            "escrow_order",
            "order",
            "opened_by",
            "reason",
            "buyer_notes",
            "seller_notes",
            "admin_notes",
            "status",
            "resolution",
            "resolved_by",
            "resolved_at",
            "created_at",
        ]
        read_only_fields = fields


class EscrowOrderSerializer(serializers.ModelSerializer):
    """Full order detail including parties, amounts, timestamps and audit trail."""

    buyer = PartySerializer(read_only=True)
    seller = PartySerializer(read_only=True)
    canonical_status = serializers.CharField(read_only=True)
    events = EscrowEventSerializer(many=True, read_only=True)

    class Meta:
        model = EscrowOrder
        fields = [
            "id",
            "status",
            "canonical_status",
            "delivery_status",
            "dispute_status",
            "buyer",
            "seller",
            "product",
            "product_snapshot",
            "subtotal_kobo",
            "escrow_fee_kobo",
            "total_kobo",
            "currency",
            "payment_reference",
            "authorization_url",
            "shipment_reference",
            "funded_at",
            "shipped_at",
            "buyer_confirmed_at",
            "released_at",
            "refunded_at",
            "admin_decision_type",
            "admin_decision_at",
            "admin_decision_note",
            "events",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class CheckoutResponseSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    authorization_url = serializers.URLField()
    reference = serializers.CharField()
    subtotal_kobo = serializers.IntegerField()
    escrow_fee_kobo = serializers.IntegerField()
    total_kobo = serializers.IntegerField()


class FeeQuoteSerializer(serializers.Serializer):
    subtotal_kobo = serializers.IntegerField()
    escrow_fee_kobo = serializers.IntegerField()
    total_kobo = serializers.IntegerField()
    currency = serializers.CharField()
    eligible = serializers.BooleanField()
    ineligible_reason = serializers.CharField(allow_null=True)
    min_subtotal_kobo = serializers.IntegerField()


class PaymentVerificationSerializer(serializers.Serializer):
    reference = serializers.CharField()
    order_id = serializers.UUIDField()
    funded = serializers.BooleanField()
    status = serializers.CharField()
    funded_at = serializers.DateTimeField(allow_null=True)
    gateway_status = serializers.CharField(required=False)


# =============================================================================
# Write Serializers
# =============================================================================


class CheckoutRequestSerializer(serializers.Serializer):
    """
    Create an escrow order for a product.

    seller_id and amount_kobo are optional cross-checks; the server
    derives both from the product.
    """

    product_id = serializers.UUIDField()
    seller_id = serializers.IntegerField(required=False, allow_null=True)
    amount_kobo = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    currency = serializers.CharField(required=False, default="NGN", max_length=3)


class ShipRequestSerializer(serializers.Serializer):
    shipment_reference = serializers.CharField(
        required=False,
        allow_blank=True,
        default="",
        max_length=200,
    )


class DisputeRequestSerializer(serializers.Serializer):
    reason = serializers.CharField(allow_blank=True, trim_whitespace=True)
    buyer_notes = serializers.CharField(required=False, allow_blank=True, default="")


class AdminActionPayloadSerializer(serializers.Serializer):
    resolution = serializers.ChoiceField(choices=AdminDecisionType.choices, required=False)
    note = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class AdminActionSerializer(serializers.Serializer):
    """Admin console action: release a confirmed order or resolve a dispute."""

    action = serializers.ChoiceField(choices=[(a, a) for a in ADMIN_ACTIONS])
    escrow_order_id = serializers.UUIDField()
    payload = AdminActionPayloadSerializer(required=False, default=dict)

    def validate(self, attrs: dict) -> dict:
        payload = attrs.get("payload") or {}
        if attrs["action"] == "admin_resolve_dispute" and not payload.get("resolution"):
            raise serializers.ValidationError(
                {"payload": {"resolution": ["Resolution is required to resolve a dispute."]}}
            )
        return attrs


# =============================================================================
# Query Serializers
# =============================================================================


class FeeQuoteQuerySerializer(serializers.Serializer):
    subtotal_kobo = serializers.IntegerField(min_value=0)


class VerifyPaymentQuerySerializer(serializers.Serializer):
    reference = serializers.CharField(required=False, max_length=100)
    trxref = serializers.CharField(required=False, max_length=100)

    def validate(self, attrs: dict) -> dict:
        reference = attrs.get("reference") or attrs.get("trxref")
        if not reference:
            raise serializers.ValidationError({"reference": ["This query parameter is required."]})
        attrs["reference"] = reference
        return attrs


class OrderListQuerySerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=[("buyer", "buyer"), ("seller", "seller")], required=False)
