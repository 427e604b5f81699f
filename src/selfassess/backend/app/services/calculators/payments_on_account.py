"""Advance payments towards the next year's bill and the balancing payment."""

from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

from selfassess.backend.app.models import AdvancePaymentDecision, ExemptionReason, TaxYear

from .utils import ZERO, round_currency, to_amount

LIABILITY_THRESHOLD = Decimal("1000")
WITHHELD_THRESHOLD = Decimal("80")

_MAX_PERCENT = Decimal("100")
_INSTALMENTS = 2


class InvalidPercentageError(ValueError):
    """Raised when the withheld-at-source percentage falls outside 0-100."""


def _validate_withheld_percent(value: Any) -> Decimal:
    if value is None:
        return ZERO
    try:
        percent = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as exc:
        raise InvalidPercentageError(f"Withheld percentage {value!r} is not a number") from exc
    if not percent.is_finite() or not ZERO <= percent <= _MAX_PERCENT:
        raise InvalidPercentageError(
            f"Withheld percentage must be between 0 and 100 (got {percent})"
        )
    return percent


def payment_deadlines(tax_year: TaxYear) -> tuple[date, date]:
    """Return the 31 January and 31 July deadlines for ``tax_year``.

    Both fall in the calendar year after the tax year ends: the January date
    is the first 31 January at least nine months past the 5 April year end.
    """

    deadline_year = tax_year.end_date.year + 1
    return date(deadline_year, 1, 31), date(deadline_year, 7, 31)


def exemption_for(
    previous_liability: Decimal, is_first_year: bool, withheld_percent: Decimal
) -> ExemptionReason | None:
    """Return the first exemption that applies, checked in priority order."""

    if is_first_year:
        return ExemptionReason.FIRST_YEAR
    if withheld_percent > WITHHELD_THRESHOLD:
        return ExemptionReason.WITHHELD_AT_SOURCE
    if previous_liability <= LIABILITY_THRESHOLD:
        return ExemptionReason.BELOW_THRESHOLD
    return None


def evaluate_advance_payment(
    previous_liability: Decimal | None,
    is_first_year: bool,
    withheld_percent: Decimal | None,
    tax_year: TaxYear,
) -> AdvancePaymentDecision:
    """Decide whether two advance instalments are due for ``tax_year``.

    Raises:
        InvalidPercentageError: ``withheld_percent`` lies outside 0-100.
    """

    percent = _validate_withheld_percent(withheld_percent)
    previous = to_amount(previous_liability)

    reason = exemption_for(previous, bool(is_first_year), percent)
    if reason is not None:
        return AdvancePaymentDecision.not_required(previous, reason, tax_year.start_year)

    instalment = round_currency(previous / _INSTALMENTS)
    first_deadline, second_deadline = payment_deadlines(tax_year)
    return AdvancePaymentDecision.requires(
        previous,
        instalment,
        first_deadline,
        second_deadline,
        tax_year.start_year,
    )


def calculate_balancing_payment(
    current_liability: Decimal | None, payments_made: Decimal | None
) -> Decimal:
    """Return what is still owed; a negative figure is a refund."""

    return round_currency(to_amount(current_liability) - to_amount(payments_made))


__all__ = [
    "InvalidPercentageError",
    "LIABILITY_THRESHOLD",
    "WITHHELD_THRESHOLD",
    "calculate_balancing_payment",
    "evaluate_advance_payment",
    "exemption_for",
    "payment_deadlines",
]
