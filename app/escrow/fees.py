"""
Escrow fee calculation and eligibility checks.

The fee is a flat amount plus a percentage of the subtotal, with the
percentage part always rounded up to the next whole kobo:

    percent_fee = ceil(subtotal * percent / 100)
    fee         = flat + percent_fee
    total       = subtotal + fee

An empty subtotal carries no fee at all. Arithmetic goes through Decimal
so configured percentages like 1.5 never pick up float error.

Usage:
    from escrow.fees import calculate_escrow_fee, ensure_escrow_eligible

    ensure_escrow_eligible(product.price_kobo)
    breakdown = calculate_escrow_fee(product.price_kobo)
    breakdown.total_kobo
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_CEILING, Decimal

from django.conf import settings

from core.helpers import format_naira
from escrow.exceptions import EscrowBelowMinimumError, EscrowValidationError


@dataclass(frozen=True)
class FeeBreakdown:
    """
    Result of a fee calculation, all amounts in kobo.

    Invariant: total_kobo == subtotal_kobo + fee_kobo
    """

    subtotal_kobo: int
    fee_kobo: int
    total_kobo: int

    def as_dict(self) -> dict[str, int]:
        return {
            "subtotal_kobo": self.subtotal_kobo,
            "escrow_fee_kobo": self.fee_kobo,
            "total_kobo": self.total_kobo,
        }


def calculate_escrow_fee(
    subtotal_kobo: int,
    percent: float | Decimal | str | None = None,
    flat_kobo: int | None = None,
) -> FeeBreakdown:
    """
    Compute the escrow fee and total for a subtotal.

    Args:
        subtotal_kobo: Non-negative integer subtotal in kobo
        percent: Percentage fee (defaults to ESCROW_FEE_PERCENT)
        flat_kobo: Flat fee in kobo (defaults to ESCROW_FEE_FLAT_KOBO)

    Returns:
        FeeBreakdown with subtotal, fee and total

    Raises:
        EscrowValidationError: Negative/non-integer subtotal, non-positive
            percent or negative flat fee
    """
    if percent is None:
        percent = settings.ESCROW_FEE_PERCENT
    if flat_kobo is None:
        flat_kobo = settings.ESCROW_FEE_FLAT_KOBO

    if isinstance(subtotal_kobo, bool) or not isinstance(subtotal_kobo, int):
        raise EscrowValidationError(
            "Subtotal must be an integer amount in kobo",
            error_code="INVALID_AMOUNT",
            details={"subtotal_kobo": repr(subtotal_kobo)},
        )
    if subtotal_kobo < 0:
        raise EscrowValidationError(
            "Subtotal cannot be negative",
            error_code="INVALID_AMOUNT",
            details={"subtotal_kobo": subtotal_kobo},
        )

    percent_decimal = Decimal(str(percent))
    if percent_decimal <= 0:
        raise EscrowValidationError(
            "Escrow fee percent must be positive",
            error_code="INVALID_FEE_CONFIG",
            details={"percent": str(percent)},
        )
    if flat_kobo < 0:
        raise EscrowValidationError(
            "Escrow flat fee cannot be negative",
            error_code="INVALID_FEE_CONFIG",
            details={"flat_kobo": flat_kobo},
        )

    if subtotal_kobo == 0:
        return FeeBreakdown(subtotal_kobo=0, fee_kobo=0, total_kobo=0)

    percent_fee = (Decimal(subtotal_kobo) * percent_decimal / Decimal(100)).to_integral_value(
        rounding=ROUND_CEILING
    )
    fee_kobo = int(flat_kobo) + int(percent_fee)

    return FeeBreakdown(
        subtotal_kobo=subtotal_kobo,
        fee_kobo=fee_kobo,
        total_kobo=subtotal_kobo + fee_kobo,
    )


def minimum_escrow_subtotal_kobo() -> int:
    """Smallest subtotal for which escrow is offered (ESCROW_MIN_PRICE_NGN in kobo)."""
    return int(Decimal(str(settings.ESCROW_MIN_PRICE_NGN)) * 100)


def ensure_escrow_eligible(subtotal_kobo: int) -> None:
    """
    Reject subtotals that cannot go through escrow.

    Raises:
        EscrowValidationError: Non-positive or above ESCROW_MAX_SUBTOTAL_KOBO
        EscrowBelowMinimumError: Below the configured minimum price
    """
    maximum = settings.ESCROW_MAX_SUBTOTAL_KOBO
    if subtotal_kobo <= 0 or subtotal_kobo > maximum:
        raise EscrowValidationError(
            "Amount out of bounds",
            error_code="AMOUNT_OUT_OF_BOUNDS",
            details={"subtotal_kobo": subtotal_kobo, "max_subtotal_kobo": maximum},
        )

    minimum = minimum_escrow_subtotal_kobo()
    if subtotal_kobo < minimum:
        raise EscrowBelowMinimumError(
            f"Escrow is only available for {format_naira(minimum)}+ items.",
            details={"subtotal_kobo": subtotal_kobo, "min_subtotal_kobo": minimum},
        )
