"""
Views for the escrow API.

URL Structure (prefixed with /api/v1/escrow/):
    orders/                              GET (own orders), POST (checkout)
    orders/{id}/                         GET
    orders/{id}/initialize-payment/      POST
    orders/{id}/ship/                    POST (seller)
    orders/{id}/confirm-delivery/        POST (buyer)
    orders/{id}/dispute/                 POST (buyer)
    fees/quote/?subtotal_kobo=           GET
    verify/?reference=|trxref=           GET
    admin/actions/                       POST (staff)
    admin/disputes/                      GET (staff)
    admin/pending-releases/              GET (staff)
    webhooks/paystack/                   POST (see escrow.webhooks.views)

Design Decisions:
    - Views validate request shape and delegate to the service layer
    - Service failures carry an error_code; ERROR_CODE_STATUS maps it to
      the HTTP status
"""

from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import (
    OpenApiParameter,
    OpenApiResponse,
    extend_schema,
    extend_schema_view,
)
from rest_framework import generics, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.services import ServiceResult
from escrow.permissions import IsEscrowAdmin
from escrow.serializers import (
    AdminActionSerializer,
    CheckoutRequestSerializer,
    CheckoutResponseSerializer,
    DisputeRequestSerializer,
    EscrowDisputeSerializer,
    EscrowOrderListSerializer,
    EscrowOrderSerializer,
    FeeQuoteQuerySerializer,
    FeeQuoteSerializer,
    OrderListQuerySerializer,
    PaymentVerificationSerializer,
    ShipRequestSerializer,
    VerifyPaymentQuerySerializer,
)
from escrow.services import (
    CheckoutService,
    EscrowAdminService,
    EscrowOrderService,
)

# =============================================================================
# Error Mapping
# =============================================================================

ERROR_CODE_STATUS = {
    "ESCROW_BELOW_MINIMUM": status.HTTP_403_FORBIDDEN,
    "UNAUTHORIZED": status.HTTP_403_FORBIDDEN,
    "ESCROW_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "SELLER_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "INVALID_TRANSITION": status.HTTP_409_CONFLICT,
    "DISPUTE_ALREADY_OPEN": status.HTTP_409_CONFLICT,
    "ALREADY_SETTLED": status.HTTP_409_CONFLICT,
    "PAYMENT_INIT_FAILED": status.HTTP_502_BAD_GATEWAY,
    "PAYSTACK_ERROR": status.HTTP_502_BAD_GATEWAY,
    "PAYSTACK_UNAVAILABLE": status.HTTP_502_BAD_GATEWAY,
    "PAYSTACK_TIMEOUT": status.HTTP_502_BAD_GATEWAY,
    "PAYSTACK_INVALID_RESPONSE": status.HTTP_502_BAD_GATEWAY,
}


def error_response(result: ServiceResult) -> Response:
    """Build the error response for a failed ServiceResult."""
    http_status = ERROR_CODE_STATUS.get(result.error_code, status.HTTP_400_BAD_REQUEST)
    return Response(result.to_response(), status=http_status)


# =============================================================================
# Buyer / Seller
# =============================================================================


@extend_schema_view(
    list=extend_schema(
        operation_id="list_escrow_orders",
        summary="List my escrow orders",
        parameters=[
            OpenApiParameter("role", OpenApiTypes.STR, enum=["buyer", "seller"], required=False),
        ],
        responses={200: EscrowOrderListSerializer(many=True)},
        tags=["Escrow - Orders"],
    ),
    create=extend_schema(
        operation_id="create_escrow_order",
        summary="Create escrow order and start payment",
        request=CheckoutRequestSerializer,
        responses={
            201: CheckoutResponseSerializer,
            400: OpenApiResponse(description="Invalid product, seller or amount"),
            403: OpenApiResponse(description="Item below the escrow minimum"),
            404: OpenApiResponse(description="Product or seller not found"),
            502: OpenApiResponse(description="Payment gateway unavailable; retry"),
        },
        tags=["Escrow - Orders"],
    ),
    retrieve=extend_schema(
        operation_id="get_escrow_order",
        summary="Get escrow order",
        responses={200: EscrowOrderSerializer, 404: OpenApiResponse(description="Not found")},
        tags=["Escrow - Orders"],
    ),
)
class EscrowOrderViewSet(viewsets.GenericViewSet):
    """Escrow orders for the authenticated buyer or seller."""

    permission_classes = [IsAuthenticated]
    serializer_class = EscrowOrderSerializer
    lookup_value_regex = "[0-9a-fA-F-]{36}"

    def get_queryset(self):
        return EscrowOrderService.list_orders(self.request.user)

    def list(self, request):
        query = OrderListQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        queryset = EscrowOrderService.list_orders(request.user, role=query.validated_data.get("role"))
        page = self.paginate_queryset(queryset)
        if page is not None:
            return self.get_paginated_response(EscrowOrderListSerializer(page, many=True).data)
        return Response(EscrowOrderListSerializer(queryset, many=True).data)

    def create(self, request):
        serializer = CheckoutRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = CheckoutService.create_escrow_order(
            buyer=request.user,
            product_id=data["product_id"],
            seller_id=data.get("seller_id"),
            amount_kobo=data.get("amount_kobo"),
            currency=data.get("currency") or "NGN",
        )
        if not result.success:
            return error_response(result)
        return Response(result.data.as_response(), status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        result = EscrowOrderService.get_order(pk, request.user)
        if not result.success:
            return error_response(result)
        return Response(EscrowOrderSerializer(result.data).data)

    @extend_schema(
        operation_id="initialize_escrow_payment",
        summary="Retry payment initialization",
        request=None,
        responses={200: CheckoutResponseSerializer},
        tags=["Escrow - Orders"],
    )
    @action(detail=True, methods=["post"], url_path="initialize-payment")
    def initialize_payment(self, request, pk=None):
        result = CheckoutService.retry_initialization(request.user, pk)
        if not result.success:
            return error_response(result)
        return Response(result.data.as_response())

    @extend_schema(
        operation_id="ship_escrow_order",
        summary="Mark order shipped (seller)",
        request=ShipRequestSerializer,
        responses={200: EscrowOrderSerializer},
        tags=["Escrow - Orders"],
    )
    @action(detail=True, methods=["post"])
    def ship(self, request, pk=None):
        serializer = ShipRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = EscrowOrderService.ship(
            pk,
            request.user,
            shipment_reference=serializer.validated_data.get("shipment_reference", ""),
        )
        if not result.success:
            return error_response(result)
        return Response(EscrowOrderSerializer(result.data).data)

    @extend_schema(
        operation_id="confirm_escrow_delivery",
        summary="Confirm delivery (buyer)",
        request=None,
        responses={200: EscrowOrderSerializer},
        tags=["Escrow - Orders"],
    )
    @action(detail=True, methods=["post"], url_path="confirm-delivery")
    def confirm_delivery(self, request, pk=None):
        result = EscrowOrderService.confirm_delivery(pk, request.user)
        if not result.success:
            return error_response(result)
        return Response(EscrowOrderSerializer(result.data).data)

    @extend_schema(
        operation_id="open_escrow_dispute",
        summary="Open dispute (buyer)",
        request=DisputeRequestSerializer,
        responses={201: EscrowDisputeSerializer},
        tags=["Escrow - Orders"],
    )
    @action(detail=True, methods=["post"])
    def dispute(self, request, pk=None):
        serializer = DisputeRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = EscrowOrderService.open_dispute(
            pk,
            request.user,
            reason=serializer.validated_data["reason"],
            buyer_notes=serializer.validated_data.get("buyer_notes", ""),
        )
        if not result.success:
            return error_response(result)
        return Response(EscrowDisputeSerializer(result.data).data, status=status.HTTP_201_CREATED)


class FeeQuoteView(APIView):
    """Fee breakdown and eligibility for a subtotal."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="quote_escrow_fee",
        summary="Quote escrow fee",
        parameters=[OpenApiParameter("subtotal_kobo", OpenApiTypes.INT, required=True)],
        responses={200: FeeQuoteSerializer},
        tags=["Escrow - Payments"],
    )
    def get(self, request):
        query = FeeQuoteQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        result = EscrowOrderService.quote_fee(query.validated_data["subtotal_kobo"])
        if not result.success:
            return error_response(result)
        return Response(result.data)


class VerifyPaymentView(APIView):
    """Check a payment after the buyer returns from the hosted checkout."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="verify_escrow_payment",
        summary="Verify escrow payment",
        parameters=[
            OpenApiParameter("reference", OpenApiTypes.STR, required=False),
            OpenApiParameter("trxref", OpenApiTypes.STR, required=False),
        ],
        responses={
            200: PaymentVerificationSerializer,
            404: OpenApiResponse(description="Order not found"),
            502: OpenApiResponse(description="Payment gateway unavailable"),
        },
        tags=["Escrow - Payments"],
    )
    def get(self, request):
        query = VerifyPaymentQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        result = EscrowOrderService.verify_payment(query.validated_data["reference"], request.user)
        if not result.success:
            return error_response(result)
        return Response(result.data)


# =============================================================================
# Admin
# =============================================================================


class AdminActionView(APIView):
    """Admin settlement actions."""

    permission_classes = [IsAuthenticated, IsEscrowAdmin]

    @extend_schema(
        operation_id="escrow_admin_action",
        summary="Release or resolve an escrow order",
        request=AdminActionSerializer,
        responses={
            200: EscrowOrderSerializer,
            400: OpenApiResponse(description="Invalid action or missing note"),
            409: OpenApiResponse(description="Order state does not allow the action"),
        },
        tags=["Escrow - Admin"],
    )
    def post(self, request):
        serializer = AdminActionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = EscrowAdminService.perform_action(
            action=data["action"],
            order_id=data["escrow_order_id"],
            admin=request.user,
            payload=data.get("payload") or {},
        )
        if not result.success:
            return error_response(result)
        return Response(EscrowOrderSerializer(result.data).data)


@extend_schema(
    operation_id="escrow_admin_open_disputes",
    summary="Open disputes awaiting resolution",
    tags=["Escrow - Admin"],
)
class AdminDisputeListView(generics.ListAPIView):
    permission_classes = [IsAuthenticated, IsEscrowAdmin]
    serializer_class = EscrowDisputeSerializer

    def get_queryset(self):
        return EscrowAdminService.list_open_disputes()


@extend_schema(
    operation_id="escrow_admin_pending_releases",
    summary="Confirmed orders awaiting release",
    tags=["Escrow - Admin"],
)
class AdminPendingReleaseListView(generics.ListAPIView):
    permission_classes = [IsAuthenticated, IsEscrowAdmin]
    serializer_class = EscrowOrderListSerializer

    def get_queryset(self):
        return EscrowAdminService.list_pending_releases()
