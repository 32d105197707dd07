"""
Admin resolution service.

Final settlement of escrow orders by staff users: releasing confirmed
orders, resolving disputes either way, and the work queues that feed
those decisions.

Failures always carry order_id and current_status in details so the
admin console can show why an action was refused.

Usage:
    from escrow.services import EscrowAdminService

    result = EscrowAdminService.perform_action(
        action="admin_resolve_dispute",
        order_id=order.id,
        admin=request.user,
        payload={"resolution": "refund", "note": "Item never arrived"},
    )
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Any

from django.db.models import QuerySet

from core.exceptions import BaseApplicationError
from core.services import BaseService, ServiceResult
from escrow.exceptions import EscrowNotFoundError, EscrowValidationError, UnauthorizedActorError
from escrow.models import EscrowDispute, EscrowOrder
from escrow.services.escrow_engine import EscrowEngine
from escrow.state_machines import AdminDecisionType, EscrowDisputeStatus

if TYPE_CHECKING:
    from authentication.models import User


logger = logging.getLogger(__name__)

ACTION_RELEASE = "admin_release_to_seller"
ACTION_RESOLVE_DISPUTE = "admin_resolve_dispute"
ADMIN_ACTIONS = (ACTION_RELEASE, ACTION_RESOLVE_DISPUTE)


class EscrowAdminService(BaseService):
    """Staff-only settlement operations."""

    # =========================================================================
    # Actions
    # =========================================================================

    @classmethod
    def perform_action(
        cls,
        action: str,
        order_id: uuid.UUID | str,
        admin: User,
        payload: dict[str, Any] | None = None,
    ) -> ServiceResult[EscrowOrder]:
        """Route an admin console action to the matching settlement."""
        payload = payload or {}
        if action == ACTION_RELEASE:
            return cls.release_to_seller(order_id, admin, note=payload.get("note"))
        if action == ACTION_RESOLVE_DISPUTE:
            return cls.resolve_dispute(
                order_id,
                admin,
                resolution=payload.get("resolution") or "",
                note=payload.get("note"),
            )
        return ServiceResult.failure(
            "Unknown admin action",
            error_code="UNKNOWN_ACTION",
            details={"action": action, "allowed": list(ADMIN_ACTIONS)},
        )

    @classmethod
    def release_to_seller(
        cls,
        order_id: uuid.UUID | str,
        admin: User,
        note: str | None = None,
    ) -> ServiceResult[EscrowOrder]:
        """Release a buyer-confirmed order that is pending admin release."""
        order = None
        try:
            order = cls._load(order_id, admin)
            order = EscrowEngine.release_to_seller(order, admin, note=note or "")
        except BaseApplicationError as e:
            return cls._failure("release_to_seller", order_id, order, e)
        cls._log_decision(order, admin, AdminDecisionType.RELEASE)
        return ServiceResult.success(order)

    @classmethod
    def resolve_dispute(
        cls,
        order_id: uuid.UUID | str,
        admin: User,
        resolution: str,
        note: str | None = None,
    ) -> ServiceResult[EscrowOrder]:
        """
        Settle a disputed order.

        Args:
            resolution: 'release' pays the seller, 'refund' returns funds
                to the buyer (note mandatory)
        """
        order = None
        try:
            if resolution not in AdminDecisionType.values:
                raise EscrowValidationError(
                    "Resolution must be 'release' or 'refund'",
                    error_code="INVALID_RESOLUTION",
                    details={"resolution": resolution},
                )
            order = cls._load(order_id, admin)
            if resolution == AdminDecisionType.RELEASE:
                order = EscrowEngine.release_to_seller(order, admin, note=note or "", via_dispute=True)
            else:
                order = EscrowEngine.refund_to_buyer(order, admin, note or "")
        except BaseApplicationError as e:
            return cls._failure("resolve_dispute", order_id, order, e)
        cls._log_decision(order, admin, resolution)
        return ServiceResult.success(order)

    @classmethod
    def refund_to_buyer(
        cls,
        order_id: uuid.UUID | str,
        admin: User,
        note: str,
    ) -> ServiceResult[EscrowOrder]:
        """Refund branch of resolve_dispute."""
        return cls.resolve_dispute(order_id, admin, AdminDecisionType.REFUND, note)

    # =========================================================================
    # Work Queues
    # =========================================================================

    @classmethod
    def list_open_disputes(cls) -> QuerySet[EscrowDispute]:
        return (
            EscrowDispute.objects.filter(status=EscrowDisputeStatus.OPEN)
            .select_related("escrow_order", "escrow_order__buyer", "escrow_order__seller", "opened_by")
            .order_by("created_at")
        )

    @classmethod
    def list_pending_releases(cls) -> QuerySet[EscrowOrder]:
        return (
            EscrowOrder.objects.pending_release()
            .select_related("buyer", "seller", "product")
            .order_by("buyer_confirmed_at")
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _load(order_id: uuid.UUID | str, admin: User) -> EscrowOrder:
        if admin is None or not admin.is_escrow_admin:
            raise UnauthorizedActorError(
                "Only escrow administrators can settle orders",
                details={"order_id": str(order_id)},
            )
        order = EscrowOrder.objects.select_related("buyer", "seller").filter(pk=order_id).first()
        if order is None:
            raise EscrowNotFoundError("Escrow order not found", details={"order_id": str(order_id)})
        return order

    @classmethod
    def _failure(
        cls,
        operation: str,
        order_id: uuid.UUID | str,
        order: EscrowOrder | None,
        exc: BaseApplicationError,
    ) -> ServiceResult[EscrowOrder]:
        result = ServiceResult.from_error(exc)
        details = dict(result.details or {})
        details.setdefault("order_id", str(order_id))
        if order is not None:
            current = EscrowOrder.objects.filter(pk=order.pk).values_list("status", flat=True).first()
            details.setdefault("current_status", current)
        result.details = details

        cls.get_logger().warning(
            f"Admin {operation} rejected",
            extra={"order_id": str(order_id), "error_code": exc.error_code},
        )
        return result

    @classmethod
    def _log_decision(cls, order: EscrowOrder, admin: User, decision: str) -> None:
        cls.get_logger().info(
            "Admin settled escrow order",
            extra={
                "order_id": str(order.pk),
                "admin_id": str(admin.pk),
                "decision": decision,
                "status": order.status,
            },
        )
