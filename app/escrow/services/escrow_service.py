"""
Buyer and seller escrow operations.

EscrowOrderService loads orders on behalf of a user, hides orders the
user is not party to, and wraps EscrowEngine so views receive a
ServiceResult instead of exceptions.

Usage:
    from escrow.services import EscrowOrderService

    result = EscrowOrderService.ship(order_id, request.user, "GIG-123")
    if not result.success:
        return error_response(result)
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.db.models import QuerySet

from core.exceptions import BaseApplicationError
from core.services import BaseService, ServiceResult
from escrow.adapters import PaystackAdapter
from escrow.exceptions import (
    AmountMismatchError,
    EscrowNotFoundError,
    EscrowValidationError,
    InvalidTransitionError,
)
from escrow.fees import calculate_escrow_fee, ensure_escrow_eligible, minimum_escrow_subtotal_kobo
from escrow.models import EscrowDispute, EscrowEvent, EscrowOrder
from escrow.services.escrow_engine import EscrowEngine
from escrow.state_machines import FUNDABLE_STATES, EscrowEventType

if TYPE_CHECKING:
    from authentication.models import User


logger = logging.getLogger(__name__)


class EscrowOrderService(BaseService):
    """Order lookups and party-initiated transitions."""

    # =========================================================================
    # Lookups
    # =========================================================================

    @classmethod
    def list_orders(cls, user: User, role: str | None = None) -> QuerySet[EscrowOrder]:
        """
        Orders the user is party to.

        Args:
            role: 'buyer', 'seller' or None for both
        """
        queryset = EscrowOrder.objects.select_related("buyer", "seller", "product")
        if role == "buyer":
            return queryset.for_buyer(user)
        if role == "seller":
            return queryset.for_seller(user)
        return queryset.for_party(user)

    @classmethod
    def get_order_for_user(cls, order_id: uuid.UUID | str, user: User) -> EscrowOrder:
        """
        Load an order visible to the user (a party or an escrow admin).

        Raises:
            EscrowNotFoundError: Missing, or the user may not see it
        """
        order = (
            EscrowOrder.objects.select_related("buyer", "seller", "product")
            .filter(pk=order_id)
            .first()
        )
        if order is None or not (order.is_party(user) or user.is_escrow_admin):
            raise EscrowNotFoundError("Escrow order not found", details={"order_id": str(order_id)})
        return order

    @classmethod
    def get_order(cls, order_id: uuid.UUID | str, user: User) -> ServiceResult[EscrowOrder]:
        try:
            return ServiceResult.success(cls.get_order_for_user(order_id, user))
        except BaseApplicationError as e:
            return ServiceResult.from_error(e)

    # =========================================================================
    # Party Transitions
    # =========================================================================

    @classmethod
    def ship(
        cls,
        order_id: uuid.UUID | str,
        user: User,
        shipment_reference: str = "",
    ) -> ServiceResult[EscrowOrder]:
        try:
            order = cls.get_order_for_user(order_id, user)
            order = EscrowEngine.ship(order, user, shipment_reference=shipment_reference)
        except BaseApplicationError as e:
            return cls._failure("ship", order_id, user, e)
        return ServiceResult.success(order)

    @classmethod
    def confirm_delivery(cls, order_id: uuid.UUID | str, user: User) -> ServiceResult[EscrowOrder]:
        try:
            order = cls.get_order_for_user(order_id, user)
            order = EscrowEngine.confirm_delivery(order, user)
        except BaseApplicationError as e:
            return cls._failure("confirm_delivery", order_id, user, e)
        return ServiceResult.success(order)

    @classmethod
    def open_dispute(
        cls,
        order_id: uuid.UUID | str,
        user: User,
        reason: str,
        buyer_notes: str = "",
    ) -> ServiceResult[EscrowDispute]:
        try:
            order = cls.get_order_for_user(order_id, user)
            dispute = EscrowEngine.open_dispute(order, user, reason, buyer_notes=buyer_notes)
        except BaseApplicationError as e:
            return cls._failure("open_dispute", order_id, user, e)
        return ServiceResult.success(dispute)

    # =========================================================================
    # Payment Verification
    # =========================================================================

    @classmethod
    def verify_payment(cls, reference: str, user: User) -> ServiceResult[dict[str, Any]]:
        """
        Check a payment with the gateway and fund the order if it succeeded.

        Orders already funded are answered from the database without a
        gateway call. A concurrent webhook that funds the order first is
        reported as funded.

        Returns:
            ServiceResult with {reference, funded, status, funded_at}
        """
        log = cls.get_logger()
        try:
            order = EscrowOrder.objects.by_reference(reference).select_related("buyer", "seller").first()
            if order is None or not (order.is_party(user) or user.is_escrow_admin):
                raise EscrowNotFoundError("Escrow order not found", details={"reference": reference})

            if order.is_funded or order.status not in FUNDABLE_STATES:
                return ServiceResult.success(cls._verification_payload(order))

            verification = PaystackAdapter.verify_transaction(reference)
            if not verification.is_successful:
                log.info(
                    "Payment not successful yet",
                    extra={"reference": reference, "gateway_status": verification.status},
                )
                return ServiceResult.success(
                    {**cls._verification_payload(order), "gateway_status": verification.status}
                )

            try:
                with cls.atomic():
                    EscrowEngine.fund(
                        order,
                        amount_kobo=verification.amount_kobo,
                        source="verification",
                        actor=user,
                    )
                    EscrowEvent.record(
                        order,
                        EscrowEventType.PAYMENT_VERIFIED,
                        actor=user,
                        reference=reference,
                        amount_kobo=verification.amount_kobo,
                    )
            except AmountMismatchError as e:
                EscrowEvent.record(
                    order,
                    EscrowEventType.AMOUNT_MISMATCH,
                    actor=user,
                    source="verification",
                    **e.details,
                )
                log.error("Verified amount does not match order total", extra=e.details)
                raise
            except InvalidTransitionError:
                order = EscrowOrder.objects.get(pk=order.pk)
                if not order.is_funded:
                    raise
        except BaseApplicationError as e:
            return cls._failure("verify_payment", reference, user, e)

        return ServiceResult.success(cls._verification_payload(order))

    @staticmethod
    def _verification_payload(order: EscrowOrder) -> dict[str, Any]:
        return {
            "reference": order.payment_reference,
            "order_id": str(order.pk),
            "funded": order.is_funded,
            "status": order.status,
            "funded_at": order.funded_at.isoformat() if order.funded_at else None,
        }

    # =========================================================================
    # Fee Quote
    # =========================================================================

    @classmethod
    def quote_fee(cls, subtotal_kobo: int) -> ServiceResult[dict[str, Any]]:
        """Fee breakdown plus whether the subtotal is eligible for escrow."""
        try:
            breakdown = calculate_escrow_fee(subtotal_kobo)
        except EscrowValidationError as e:
            return ServiceResult.from_error(e)

        eligible = True
        reason = None
        try:
            ensure_escrow_eligible(subtotal_kobo)
        except EscrowValidationError as e:
            eligible = False
            reason = e.message

        return ServiceResult.success(
            {
                **breakdown.as_dict(),
                "currency": settings.ESCROW_CURRENCY,
                "eligible": eligible,
                "ineligible_reason": reason,
                "min_subtotal_kobo": minimum_escrow_subtotal_kobo(),
            }
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    @classmethod
    def _failure(cls, operation: str, target: Any, user: User, exc: BaseApplicationError) -> ServiceResult:
        cls.get_logger().warning(
            f"Escrow {operation} rejected",
            extra={
                "target": str(target),
                "user_id": str(user.pk),
                "error_code": exc.error_code,
            },
        )
        return ServiceResult.from_error(exc)
