"""
Escrow state machine engine.

EscrowEngine is the only code path that changes EscrowOrder.status.
Each operation checks, in order:

    1. Actor     - UnauthorizedActorError
    2. Terminal  - AlreadySettledError
    3. Dispute   - DisputeAlreadyOpenError (opening a dispute only)
    4. Legality  - InvalidTransitionError (django-fsm can_proceed)
    5. Input     - EscrowValidationError

and then applies the model's @transition in memory and persists it with
a conditional UPDATE filtered on the transition's source states. If the
UPDATE touches zero rows another request changed the order first; the
caller gets InvalidTransitionError and should refetch the order. A failed
operation leaves the caller's order object with the values it was loaded
with.

Every persisted step writes an EscrowEvent and schedules
escrow_status_changed for after commit.

Usage:
    from escrow.services import EscrowEngine

    order = EscrowEngine.ship(order, seller, shipment_reference="GIG-123")
    order.status  # 'awaiting_buyer_confirmation'
"""

from __future__ import annotations

import copy
import functools
import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone
from django_fsm import can_proceed

from escrow.exceptions import (
    AlreadySettledError,
    AmountMismatchError,
    DisputeAlreadyOpenError,
    EscrowValidationError,
    InvalidTransitionError,
    UnauthorizedActorError,
)
from escrow.models import EscrowDispute, EscrowEvent, EscrowOrder
from escrow.signals import send_status_changed
from escrow.state_machines import (
    CONFIRMABLE_STATES,
    DISPUTABLE_STATES,
    FUNDABLE_STATES,
    REFUNDABLE_STATES,
    RELEASABLE_STATES,
    SHIPPABLE_STATES,
    AdminDecisionType,
    EscrowDisputeStatus,
    EscrowEventType,
    EscrowStatus,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator

    from authentication.models import User


logger = logging.getLogger(__name__)

SHIPMENT_REFERENCE_MAX_LENGTH = 200

# Order fields a transition may change in memory before it is persisted
TRANSITION_FIELDS = (
    "funded_at",
    "shipped_at",
    "buyer_confirmed_at",
    "released_at",
    "refunded_at",
    "delivery_status",
    "dispute_status",
    "shipment_reference",
    "admin_decision_type",
    "admin_decision_by_id",
    "admin_decision_at",
    "admin_decision_note",
    "updated_at",
)


@contextmanager
def _restore_on_failure(order: EscrowOrder) -> Iterator[None]:
    """Put the in-memory order back to its loaded values if the operation fails."""
    status = order.status
    saved = {name: getattr(order, name) for name in TRANSITION_FIELDS}
    try:
        yield
    except Exception:
        # status is a protected FSMField; only the instance dict can reset it
        order.__dict__["status"] = status
        for name, value in saved.items():
            setattr(order, name, value)
        raise


class EscrowEngine:
    """
    Transition operations for escrow orders.

    All methods are classmethods and take the acting user explicitly.
    They raise escrow exceptions; the service layer turns those into
    ServiceResult failures.
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # Funding
    # =========================================================================

    @classmethod
    def fund(
        cls,
        order: EscrowOrder,
        *,
        amount_kobo: int | None = None,
        source: str = "webhook",
        actor: User | None = None,
    ) -> EscrowOrder:
        """
        Mark an order as paid.

        Args:
            order: Order in initialized/pending
            amount_kobo: Amount confirmed by the gateway; must equal total_kobo
            source: 'webhook' or 'verification', recorded in the audit entry
            actor: User whose verification request confirmed payment, if any

        Raises:
            AlreadySettledError: Order is released or refunded
            InvalidTransitionError: Order is not fundable or was funded concurrently
            AmountMismatchError: amount_kobo differs from total_kobo
        """
        cls._ensure_not_settled(order, EscrowStatus.FUNDED)
        cls._ensure_can_proceed(order, order.fund, EscrowStatus.FUNDED)

        if amount_kobo is not None and amount_kobo != order.total_kobo:
            raise AmountMismatchError(
                "Paid amount does not match the order total",
                details={
                    "order_id": str(order.pk),
                    "expected_kobo": order.total_kobo,
                    "paid_kobo": amount_kobo,
                },
            )

        now = timezone.now()
        with _restore_on_failure(order), transaction.atomic():
            cls._commit(
                order,
                order.fund,
                now,
                sources=FUNDABLE_STATES,
                requested=EscrowStatus.FUNDED,
                event_type=EscrowEventType.FUNDED,
                fields=("funded_at", "delivery_status"),
                actor=actor,
                payload={"source": source, "amount_kobo": order.total_kobo},
            )
        return order

    # =========================================================================
    # Seller
    # =========================================================================

    @classmethod
    def ship(
        cls,
        order: EscrowOrder,
        actor: User,
        shipment_reference: str = "",
    ) -> EscrowOrder:
        """
        Seller marks the order shipped.

        Persists shipped and then awaiting_buyer_confirmation in one
        transaction; both steps are audited.

        Raises:
            UnauthorizedActorError: actor is not the order's seller
            AlreadySettledError: Order is released or refunded
            InvalidTransitionError: Order is not funded (or lost a race)
            EscrowValidationError: shipment_reference too long
        """
        if not order.is_seller(actor):
            raise UnauthorizedActorError(
                "Only the seller can mark this order as shipped",
                details={"order_id": str(order.pk)},
            )
        cls._ensure_not_settled(order, EscrowStatus.SHIPPED)
        cls._ensure_can_proceed(order, order.mark_shipped, EscrowStatus.SHIPPED)

        shipment_reference = (shipment_reference or "").strip()
        if len(shipment_reference) > SHIPMENT_REFERENCE_MAX_LENGTH:
            raise EscrowValidationError(
                "Shipment reference is too long",
                error_code="SHIPMENT_REFERENCE_TOO_LONG",
                details={"max_length": SHIPMENT_REFERENCE_MAX_LENGTH},
            )

        now = timezone.now()
        with _restore_on_failure(order), transaction.atomic():
            cls._commit(
                order,
                order.mark_shipped,
                now,
                shipment_reference,
                sources=SHIPPABLE_STATES,
                requested=EscrowStatus.SHIPPED,
                event_type=EscrowEventType.SHIPPED,
                fields=("shipped_at", "delivery_status", "shipment_reference"),
                actor=actor,
                payload={"shipment_reference": shipment_reference},
            )
            cls._commit(
                order,
                order.await_buyer_confirmation,
                sources=(EscrowStatus.SHIPPED,),
                requested=EscrowStatus.AWAITING_BUYER_CONFIRMATION,
                event_type=EscrowEventType.AWAITING_BUYER_CONFIRMATION,
            )
        return order

    # =========================================================================
    # Buyer
    # =========================================================================

    @classmethod
    def confirm_delivery(cls, order: EscrowOrder, actor: User) -> EscrowOrder:
        """
        Buyer confirms delivery; the order queues for admin release.

        Raises:
            UnauthorizedActorError: actor is not the order's buyer
            AlreadySettledError: Order is released or refunded
            InvalidTransitionError: Order is not shipped, is disputed, or lost a race
        """
        if not order.is_buyer(actor):
            raise UnauthorizedActorError(
                "Only the buyer can confirm delivery",
                details={"order_id": str(order.pk)},
            )
        cls._ensure_not_settled(order, EscrowStatus.BUYER_CONFIRMED)
        cls._ensure_can_proceed(order, order.confirm_delivery, EscrowStatus.BUYER_CONFIRMED)

        now = timezone.now()
        with _restore_on_failure(order), transaction.atomic():
            cls._commit(
                order,
                order.confirm_delivery,
                now,
                sources=CONFIRMABLE_STATES,
                requested=EscrowStatus.BUYER_CONFIRMED,
                event_type=EscrowEventType.DELIVERY_CONFIRMED,
                fields=("buyer_confirmed_at", "delivery_status"),
                actor=actor,
            )
            cls._commit(
                order,
                order.queue_for_release,
                sources=(EscrowStatus.BUYER_CONFIRMED,),
                requested=EscrowStatus.PENDING_ADMIN_RELEASE,
                event_type=EscrowEventType.PENDING_ADMIN_RELEASE,
            )
        return order

    @classmethod
    def open_dispute(
        cls,
        order: EscrowOrder,
        actor: User,
        reason: str,
        buyer_notes: str = "",
    ) -> EscrowDispute:
        """
        Buyer opens a dispute. Shipment confirmation is blocked until an
        administrator settles the order.

        Returns:
            The created EscrowDispute (order.status is 'disputed')

        Raises:
            UnauthorizedActorError: actor is not the order's buyer
            AlreadySettledError: Order is released or refunded
            DisputeAlreadyOpenError: Order is already disputed
            InvalidTransitionError: Order is unpaid, confirmed or pending release
            EscrowValidationError: reason shorter than the configured minimum
        """
        if not order.is_buyer(actor):
            raise UnauthorizedActorError(
                "Only the buyer can open a dispute",
                details={"order_id": str(order.pk)},
            )
        cls._ensure_not_settled(order, EscrowStatus.DISPUTED)
        if order.status == EscrowStatus.DISPUTED or order.has_open_dispute:
            raise DisputeAlreadyOpenError(
                "A dispute is already open for this order",
                details={"order_id": str(order.pk), "current_status": order.status},
            )
        cls._ensure_can_proceed(order, order.open_dispute, EscrowStatus.DISPUTED)

        reason = (reason or "").strip()
        min_length = settings.ESCROW_DISPUTE_REASON_MIN_LENGTH
        if len(reason) < min_length:
            raise EscrowValidationError(
                f"Dispute reason must be at least {min_length} characters",
                error_code="REASON_TOO_SHORT",
                details={"min_length": min_length},
            )

        with _restore_on_failure(order), transaction.atomic():
            cls._commit(
                order,
                order.open_dispute,
                sources=DISPUTABLE_STATES,
                requested=EscrowStatus.DISPUTED,
                event_type=EscrowEventType.DISPUTE_OPENED,
                fields=("dispute_status",),
                actor=actor,
                payload={"reason": reason},
            )
            try:
                with transaction.atomic():
                    dispute = EscrowDispute.objects.create(
                        escrow_order=order,
                        opened_by=actor,
                        reason=reason,
                        buyer_notes=(buyer_notes or "").strip(),
                    )
            except IntegrityError:
                raise DisputeAlreadyOpenError(
                    "A dispute is already open for this order",
                    details={"order_id": str(order.pk)},
                )
        return dispute

    # =========================================================================
    # Admin Settlement
    # =========================================================================

    @classmethod
    def release_to_seller(
        cls,
        order: EscrowOrder,
        admin: User,
        note: str = "",
        via_dispute: bool = False,
    ) -> EscrowOrder:
        """
        Release escrowed funds to the seller.

        Args:
            order: Order in pending_admin_release, or disputed when via_dispute
            admin: Staff user taking the decision
            note: Optional decision note; when given, at least
                ESCROW_ADMIN_NOTE_MIN_LENGTH characters
            via_dispute: Resolve the open dispute in the seller's favour

        Raises:
            UnauthorizedActorError: admin is not staff
            AlreadySettledError: Order is released or refunded
            InvalidTransitionError: Wrong source state for the chosen path,
                no open dispute to resolve, or a lost race
            EscrowValidationError: note given but shorter than the minimum
        """
        cls._ensure_admin(order, admin)
        cls._ensure_not_settled(order, EscrowStatus.RELEASED_TO_SELLER)

        expected = EscrowStatus.DISPUTED if via_dispute else EscrowStatus.PENDING_ADMIN_RELEASE
        if order.status != expected:
            raise InvalidTransitionError.for_order(order, EscrowStatus.RELEASED_TO_SELLER)
        cls._ensure_can_proceed(order, order.release_to_seller, EscrowStatus.RELEASED_TO_SELLER)

        if via_dispute:
            dispute = cls._single_open_dispute(order, EscrowStatus.RELEASED_TO_SELLER)
        else:
            if order.has_open_dispute or order.buyer_confirmed_at is None:
                raise InvalidTransitionError.for_order(order, EscrowStatus.RELEASED_TO_SELLER)
            dispute = None

        # Optional on release, but length-checked when given
        note = (note or "").strip()
        min_length = settings.ESCROW_ADMIN_NOTE_MIN_LENGTH
        if note and len(note) < min_length:
            raise EscrowValidationError(
                f"A release note must be at least {min_length} characters",
                error_code="NOTE_TOO_SHORT",
                details={"min_length": min_length, "order_id": str(order.pk)},
            )

        return cls._settle(
            order,
            admin,
            order.release_to_seller,
            note=note,
            sources=(expected,),
            requested=EscrowStatus.RELEASED_TO_SELLER,
            decision=AdminDecisionType.RELEASE,
            settled_field="released_at",
            event_type=EscrowEventType.RELEASED_TO_SELLER,
            dispute=dispute,
        )

    @classmethod
    def refund_to_buyer(cls, order: EscrowOrder, admin: User, note: str) -> EscrowOrder:
        """
        Refund escrowed funds to the buyer. Only disputed orders can be
        refunded, and the decision note is mandatory.

        Raises:
            UnauthorizedActorError: admin is not staff
            AlreadySettledError: Order is released or refunded
            InvalidTransitionError: Order is not disputed or has no open dispute
            EscrowValidationError: note shorter than the configured minimum
        """
        cls._ensure_admin(order, admin)
        cls._ensure_not_settled(order, EscrowStatus.REFUND_TO_BUYER)
        cls._ensure_can_proceed(order, order.refund_to_buyer, EscrowStatus.REFUND_TO_BUYER)
        dispute = cls._single_open_dispute(order, EscrowStatus.REFUND_TO_BUYER)

        note = (note or "").strip()
        min_length = settings.ESCROW_ADMIN_NOTE_MIN_LENGTH
        if len(note) < min_length:
            raise EscrowValidationError(
                f"A refund note of at least {min_length} characters is required",
                error_code="NOTE_REQUIRED",
                details={"min_length": min_length, "order_id": str(order.pk)},
            )

        return cls._settle(
            order,
            admin,
            order.refund_to_buyer,
            note=note,
            sources=REFUNDABLE_STATES,
            requested=EscrowStatus.REFUND_TO_BUYER,
            decision=AdminDecisionType.REFUND,
            settled_field="refunded_at",
            event_type=EscrowEventType.REFUNDED_TO_BUYER,
            dispute=dispute,
        )

    @classmethod
    def _settle(
        cls,
        order: EscrowOrder,
        admin: User,
        method: Callable[..., Any],
        *,
        note: str,
        sources: Iterable[str],
        requested: str,
        decision: str,
        settled_field: str,
        event_type: str,
        dispute: EscrowDispute | None,
    ) -> EscrowOrder:
        """Persist a release or refund and resolve the dispute it settles."""
        now = timezone.now()
        with _restore_on_failure(order), transaction.atomic():
            cls._commit(
                order,
                method,
                admin,
                now,
                note,
                sources=sources,
                requested=requested,
                event_type=event_type,
                fields=(
                    settled_field,
                    "dispute_status",
                    "admin_decision_type",
                    "admin_decision_by",
                    "admin_decision_at",
                    "admin_decision_note",
                ),
                actor=admin,
                payload={"decision": decision, "note": note},
            )
            if dispute is not None:
                resolved = EscrowDispute.objects.filter(
                    pk=dispute.pk,
                    status=EscrowDisputeStatus.OPEN,
                ).update(
                    status=EscrowDisputeStatus.RESOLVED,
                    resolution=decision,
                    resolved_by=admin,
                    resolved_at=now,
                    admin_notes=note,
                    updated_at=now,
                )
                if resolved == 0:
                    raise InvalidTransitionError.for_order(order, requested, current=EscrowStatus.DISPUTED)
                EscrowEvent.record(
                    order,
                    EscrowEventType.DISPUTE_RESOLVED,
                    actor=admin,
                    dispute_id=str(dispute.pk),
                    resolution=decision,
                )
        return order

    # =========================================================================
    # Guards
    # =========================================================================

    @staticmethod
    def _ensure_admin(order: EscrowOrder, user: User | None) -> None:
        if user is None or not getattr(user, "is_escrow_admin", False):
            raise UnauthorizedActorError(
                "Only escrow administrators can settle orders",
                details={"order_id": str(order.pk), "current_status": order.status},
            )

    @staticmethod
    def _ensure_not_settled(order: EscrowOrder, requested: str) -> None:
        if order.is_terminal:
            raise AlreadySettledError(
                "This escrow order has already been settled",
                details={
                    "order_id": str(order.pk),
                    "current_status": order.status,
                    "requested_status": requested,
                },
            )

    @staticmethod
    def _ensure_can_proceed(order: EscrowOrder, method: Callable[..., Any], requested: str) -> None:
        if not can_proceed(method):
            raise InvalidTransitionError.for_order(order, requested)

    @staticmethod
    def _single_open_dispute(order: EscrowOrder, requested: str) -> EscrowDispute:
        open_disputes = list(
            EscrowDispute.objects.filter(escrow_order=order, status=EscrowDisputeStatus.OPEN)[:2]
        )
        if len(open_disputes) != 1:
            raise InvalidTransitionError(
                "Order must have exactly one open dispute to resolve",
                details={
                    "order_id": str(order.pk),
                    "current_status": order.status,
                    "requested_status": requested,
                    "open_disputes": len(open_disputes),
                },
            )
        return open_disputes[0]

    # =========================================================================
    # Persistence
    # =========================================================================

    @classmethod
    def _commit(
        cls,
        order: EscrowOrder,
        method: Callable[..., Any],
        *args: Any,
        sources: Iterable[str],
        requested: str,
        event_type: str,
        fields: Iterable[str] = (),
        actor: User | None = None,
        payload: dict[str, Any] | None = None,
    ) -> None:
        """
        Apply one transition in memory and persist it conditionally.

        Must run inside transaction.atomic().

        Raises:
            InvalidTransitionError: The row was no longer in a source state
        """
        from_status = order.status
        method(*args)

        now = timezone.now()
        values = {name: getattr(order, name) for name in fields}
        updated = EscrowOrder.objects.filter(
            pk=order.pk,
            status__in=list(sources),
        ).update(status=order.status, updated_at=now, **values)

        if updated == 0:
            current = (
                EscrowOrder.objects.filter(pk=order.pk).values_list("status", flat=True).first()
            )
            cls.get_logger().info(
                "Escrow transition lost to a concurrent update",
                extra={
                    "order_id": str(order.pk),
                    "requested_status": requested,
                    "current_status": current,
                },
            )
            raise InvalidTransitionError.for_order(order, requested, current=current)

        order.updated_at = now
        EscrowEvent.record(
            order,
            event_type,
            actor=actor,
            from_status=from_status,
            to_status=order.status,
            **(payload or {}),
        )
        transaction.on_commit(
            functools.partial(send_status_changed, copy.copy(order), from_status, order.status, actor)
        )

        cls.get_logger().info(
            "Escrow order transitioned",
            extra={
                "order_id": str(order.pk),
                "from_status": from_status,
                "to_status": order.status,
                "actor_id": str(actor.pk) if actor is not None else None,
            },
        )
