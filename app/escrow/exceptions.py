"""
Escrow-specific exceptions.

Exception Hierarchy:
    EscrowError (base for the escrow domain)
    ├── SignatureInvalidError - Webhook HMAC mismatch (401)
    EscrowValidationError (core ValidationError)
    ├── EscrowBelowMinimumError - Subtotal under the escrow threshold
    └── AmountMismatchError - Paid amount differs from order total
    EscrowNotFoundError (core NotFoundError)
    UnauthorizedActorError (core PermissionDeniedError)
    InvalidTransitionError (core ConflictError) - Illegal or lost-race transition
    DisputeAlreadyOpenError (core ConflictError)
    AlreadySettledError (core ConflictError)
    PaystackError (core ExternalServiceError)
    ├── PaystackAPIUnavailableError - Network/5xx (transient)
    ├── PaystackTimeoutError - Request timed out (transient)
    └── PaystackInvalidResponseError - Unexpected/failed gateway response
    PaymentInitFailedError (core ExternalServiceError)

Usage:
    from escrow.exceptions import InvalidTransitionError

    rows = EscrowOrder.objects.filter(pk=pk, status__in=sources).update(...)
    if rows == 0:
        raise InvalidTransitionError.for_order(order, requested="shipped")

Note:
    InvalidTransitionError is an expected outcome when two requests race
    on the same order. Callers should refetch the order and re-evaluate,
    not treat it as a bug.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

if TYPE_CHECKING:
    from escrow.models import EscrowOrder


# =============================================================================
# Domain Exceptions
# =============================================================================


class EscrowError(BaseApplicationError):
    """Base exception for escrow errors that have no closer core category."""

    default_error_code: str = "ESCROW_ERROR"


class EscrowValidationError(ValidationError):
    """
    Raised when escrow input fails a business rule.

    Example:
        raise EscrowValidationError(
            "Dispute reason must be at least 10 characters",
            error_code="REASON_TOO_SHORT",
            details={"min_length": 10},
        )
    """

    default_error_code: str = "VALIDATION_ERROR"


class EscrowBelowMinimumError(EscrowValidationError):
    """
    Raised when the item price is below the escrow eligibility threshold.

    Distinct from generic validation so the client can explain that
    escrow is not offered for cheap items rather than that the request
    was malformed.
    """

    default_error_code: str = "ESCROW_BELOW_MINIMUM"
    http_status: int = 403


class AmountMismatchError(EscrowValidationError):
    """
    Raised when a confirmed payment amount differs from the order total.

    Attributes:
        details: expected_kobo, paid_kobo, order_id
    """

    default_error_code: str = "AMOUNT_MISMATCH"


class EscrowNotFoundError(NotFoundError):
    """Raised when an escrow order, product or seller cannot be found."""

    default_error_code: str = "ESCROW_NOT_FOUND"


class UnauthorizedActorError(PermissionDeniedError):
    """
    Raised when the acting user is not the party allowed to trigger a
    transition (buyer, seller or escrow administrator).
    """

    default_error_code: str = "UNAUTHORIZED"


class InvalidTransitionError(ConflictError):
    """
    Raised when the current status does not permit the requested
    transition, including when a concurrent request won the race.

    Attributes:
        details: current_status, requested_status, order_id
    """

    default_error_code: str = "INVALID_TRANSITION"

    @classmethod
    def for_order(
        cls,
        order: EscrowOrder,
        requested: str,
        current: str | None = None,
    ) -> InvalidTransitionError:
        current_status = current if current is not None else order.status
        return cls(
            f"Cannot move escrow order from '{current_status}' to '{requested}'",
            details={
                "order_id": str(order.pk),
                "current_status": current_status,
                "requested_status": requested,
            },
        )


class DisputeAlreadyOpenError(ConflictError):
    """Raised when a dispute is opened on an order that already has one."""

    default_error_code: str = "DISPUTE_ALREADY_OPEN"


class AlreadySettledError(ConflictError):
    """Raised for any transition attempted on a released or refunded order."""

    default_error_code: str = "ALREADY_SETTLED"


class SignatureInvalidError(EscrowError):
    """Raised when a webhook signature does not match the raw body."""

    default_error_code: str = "SIGNATURE_INVALID"
    http_status: int = 401


# =============================================================================
# Gateway Exceptions
# =============================================================================


class PaystackError(ExternalServiceError):
    """
    Base exception for Paystack API failures.

    Attributes:
        paystack_message: Message returned by Paystack, when any
        status_code: HTTP status returned by Paystack, when any
        is_retryable: Whether retrying the same call may succeed
    """

    default_error_code: str = "PAYSTACK_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict | None = None,
        paystack_message: str | None = None,
        status_code: int | None = None,
    ):
        self.paystack_message = paystack_message
        self.status_code = status_code
        details = dict(details or {})
        if paystack_message:
            details.setdefault("paystack_message", paystack_message)
        if status_code is not None:
            details.setdefault("status_code", status_code)
        super().__init__(message, error_code=error_code, details=details)


class PaystackAPIUnavailableError(PaystackError):
    """Connection failure or 5xx from Paystack (transient)."""

    default_error_code: str = "PAYSTACK_UNAVAILABLE"
    is_retryable: bool = True


class PaystackTimeoutError(PaystackError):
    """Paystack did not answer within the configured timeout (transient)."""

    default_error_code: str = "PAYSTACK_TIMEOUT"
    is_retryable: bool = True


class PaystackInvalidResponseError(PaystackError):
    """Paystack answered but rejected the call or returned an unusable body."""

    default_error_code: str = "PAYSTACK_INVALID_RESPONSE"


class PaymentInitFailedError(ExternalServiceError):
    """
    Raised when a hosted checkout could not be created.

    The order stays in 'initialized' and the buyer can retry.
    """

    default_error_code: str = "PAYMENT_INIT_FAILED"
