"""
Checkout service: creates escrow orders and starts the hosted payment.

The order row is committed before the gateway is called, so a gateway
failure never loses the order. It stays 'initialized' and the buyer can
retry with retry_initialization().

Usage:
    from escrow.services import CheckoutService

    result = CheckoutService.create_escrow_order(
        buyer=request.user,
        product_id=product.id,
    )
    if result.success:
        redirect_to(result.data.authorization_url)
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.utils import timezone

from core.exceptions import BaseApplicationError
from core.services import BaseService, ServiceResult
from escrow.adapters import IdempotencyKeyGenerator, InitializeTransactionParams, PaystackAdapter
from escrow.exceptions import (
    AmountMismatchError,
    EscrowNotFoundError,
    EscrowValidationError,
    InvalidTransitionError,
    PaymentInitFailedError,
    PaystackError,
    UnauthorizedActorError,
)
from escrow.fees import FeeBreakdown, calculate_escrow_fee, ensure_escrow_eligible
from escrow.models import EscrowEvent, EscrowOrder
from escrow.state_machines import FUNDABLE_STATES, EscrowEventType, EscrowStatus
from listings.models import Product

if TYPE_CHECKING:
    from authentication.models import User


logger = logging.getLogger(__name__)


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class CheckoutResult:
    """
    Outcome of a successful checkout initialization.

    Attributes:
        order: The created (or retried) escrow order
        authorization_url: Hosted checkout URL for the buyer
        reference: Gateway transaction reference
        breakdown: Fee breakdown in kobo
    """

    order: EscrowOrder
    authorization_url: str
    reference: str
    breakdown: FeeBreakdown

    def as_response(self) -> dict[str, Any]:
        return {
            "order_id": str(self.order.id),
            "authorization_url": self.authorization_url,
            "reference": self.reference,
            **self.breakdown.as_dict(),
        }


# =============================================================================
# Checkout Service
# =============================================================================


class CheckoutService(BaseService):
    """Buyer-initiated escrow order creation and payment initialization."""

    @classmethod
    def create_escrow_order(
        cls,
        buyer: User,
        product_id: uuid.UUID | str,
        seller_id: int | str | None = None,
        amount_kobo: int | None = None,
        currency: str = "NGN",
    ) -> ServiceResult[CheckoutResult]:
        """
        Create an escrow order for a product and initialize payment.

        The subtotal always comes from the product price; a client-sent
        amount_kobo or seller_id is only checked against it.

        Returns:
            ServiceResult with CheckoutResult, or a failure carrying
            ESCROW_NOT_FOUND, SELLER_MISMATCH, AMOUNT_MISMATCH,
            ESCROW_BELOW_MINIMUM, AMOUNT_OUT_OF_BOUNDS or PAYMENT_INIT_FAILED
        """
        log = cls.get_logger()
        log.info(
            "Creating escrow order",
            extra={"buyer_id": str(buyer.pk), "product_id": str(product_id)},
        )

        try:
            order, breakdown = cls._create_order(buyer, product_id, seller_id, amount_kobo, currency)
            authorization_url = cls._initialize_payment(order, buyer)
        except BaseApplicationError as e:
            log.warning(
                "Escrow checkout failed",
                extra={
                    "buyer_id": str(buyer.pk),
                    "product_id": str(product_id),
                    "error_code": e.error_code,
                },
            )
            return ServiceResult.from_error(e)

        return ServiceResult.success(
            CheckoutResult(
                order=order,
                authorization_url=authorization_url,
                reference=order.payment_reference,
                breakdown=breakdown,
            )
        )

    @classmethod
    def retry_initialization(
        cls,
        buyer: User,
        order_id: uuid.UUID | str,
    ) -> ServiceResult[CheckoutResult]:
        """
        Retry the gateway call for an order still awaiting payment.

        Returns the stored checkout URL when a previous attempt succeeded.
        """
        try:
            order = EscrowOrder.objects.select_related("buyer").filter(pk=order_id).first()
            if order is None or not order.is_party(buyer):
                raise EscrowNotFoundError("Escrow order not found", details={"order_id": str(order_id)})
            if not order.is_buyer(buyer):
                raise UnauthorizedActorError(
                    "Only the buyer can initialize payment",
                    details={"order_id": str(order.pk)},
                )
            if order.status not in FUNDABLE_STATES:
                raise InvalidTransitionError.for_order(order, EscrowStatus.PENDING)

            authorization_url = order.authorization_url or cls._initialize_payment(order, buyer)
        except BaseApplicationError as e:
            cls.get_logger().warning(
                "Escrow payment re-initialization failed",
                extra={"order_id": str(order_id), "error_code": e.error_code},
            )
            return ServiceResult.from_error(e)

        return ServiceResult.success(
            CheckoutResult(
                order=order,
                authorization_url=authorization_url,
                reference=order.payment_reference,
                breakdown=FeeBreakdown(
                    subtotal_kobo=order.subtotal_kobo,
                    fee_kobo=order.escrow_fee_kobo,
                    total_kobo=order.total_kobo,
                ),
            )
        )

    # =========================================================================
    # Internals
    # =========================================================================

    @classmethod
    def _create_order(
        cls,
        buyer: User,
        product_id: uuid.UUID | str,
        seller_id: int | str | None,
        amount_kobo: int | None,
        currency: str,
    ) -> tuple[EscrowOrder, FeeBreakdown]:
        currency = (currency or settings.ESCROW_CURRENCY).upper()
        if currency != settings.ESCROW_CURRENCY:
            raise EscrowValidationError(
                f"Only {settings.ESCROW_CURRENCY} is supported",
                error_code="UNSUPPORTED_CURRENCY",
                details={"currency": currency},
            )

        product = (
            Product.objects.select_related("business")
            .filter(pk=product_id, is_active=True)
            .first()
        )
        if product is None:
            raise EscrowNotFoundError("Product not found", details={"product_id": str(product_id)})

        resolved_seller_id = product.resolve_seller_id()
        if resolved_seller_id is None:
            raise EscrowNotFoundError(
                "Seller account not found",
                error_code="SELLER_NOT_FOUND",
                details={"product_id": str(product.pk)},
            )
        if seller_id not in (None, "") and str(seller_id) != str(resolved_seller_id):
            raise EscrowValidationError(
                "Seller mismatch",
                error_code="SELLER_MISMATCH",
                details={"product_id": str(product.pk)},
            )
        if resolved_seller_id == buyer.pk:
            raise EscrowValidationError(
                "You cannot buy your own product through escrow",
                error_code="BUYER_IS_SELLER",
            )

        subtotal_kobo = product.price_kobo
        if amount_kobo is not None and amount_kobo != subtotal_kobo:
            raise AmountMismatchError(
                "Amount does not match the product price",
                details={"expected_kobo": subtotal_kobo, "amount_kobo": amount_kobo},
            )

        ensure_escrow_eligible(subtotal_kobo)
        breakdown = calculate_escrow_fee(subtotal_kobo)

        with cls.atomic():
            order = EscrowOrder(
                buyer=buyer,
                seller_id=resolved_seller_id,
                product=product,
                subtotal_kobo=breakdown.subtotal_kobo,
                escrow_fee_kobo=breakdown.fee_kobo,
                total_kobo=breakdown.total_kobo,
                currency=currency,
                product_snapshot=product.snapshot(),
            )
            order.payment_reference = str(order.id)
            order.save()
            EscrowEvent.record(
                order,
                EscrowEventType.ORDER_CREATED,
                actor=buyer,
                to_status=order.status,
                **breakdown.as_dict(),
            )

        cls.get_logger().info(
            "Escrow order created",
            extra={
                "order_id": str(order.pk),
                "buyer_id": str(buyer.pk),
                "seller_id": str(resolved_seller_id),
                "total_kobo": order.total_kobo,
            },
        )
        return order, breakdown

    @classmethod
    def _initialize_payment(cls, order: EscrowOrder, buyer: User) -> str:
        """
        Call the gateway and store the checkout URL on the order.

        Raises:
            PaymentInitFailedError: Gateway error; the order stays initialized
        """
        attempt = (
            EscrowEvent.objects.filter(
                escrow_order=order,
                event_type=EscrowEventType.PAYSTACK_INIT_FAILED,
            ).count()
            + 1
        )
        site_url = settings.SITE_URL.rstrip("/")
        params = InitializeTransactionParams(
            email=buyer.email,
            amount_kobo=order.total_kobo,
            reference=order.payment_reference,
            callback_url=f"{site_url}/escrow/return?order={order.id}",
            currency=order.currency,
            metadata={
                "order_id": str(order.id),
                "product_id": str(order.product_id) if order.product_id else None,
                "buyer_id": str(order.buyer_id),
                "seller_id": str(order.seller_id),
                "amount_kobo": order.total_kobo,
                "idempotency_key": IdempotencyKeyGenerator.generate("initialize", order.id, attempt),
            },
        )

        try:
            result = PaystackAdapter.initialize_transaction(params)
        except PaystackError as e:
            EscrowEvent.record(
                order,
                EscrowEventType.PAYSTACK_INIT_FAILED,
                actor=buyer,
                error_code=e.error_code,
                attempt=attempt,
            )
            raise PaymentInitFailedError(
                "Could not start payment. Please retry.",
                details={
                    "order_id": str(order.id),
                    "reference": order.payment_reference,
                    "retryable": True,
                },
            ) from e

        now = timezone.now()
        EscrowOrder.objects.filter(pk=order.pk).update(
            authorization_url=result.authorization_url,
            access_code=result.access_code,
            updated_at=now,
        )
        order.authorization_url = result.authorization_url
        order.access_code = result.access_code
        order.updated_at = now
        EscrowEvent.record(
            order,
            EscrowEventType.PAYSTACK_INITIALIZED,
            actor=buyer,
            reference=result.reference,
            access_code=result.access_code,
        )
        return result.authorization_url
