"""Utility helpers for calculator modules."""

from __future__ import annotations

from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, NamedTuple

from selfassess.backend.app.models import MAX_AMOUNT, BandAllocation

ZERO = Decimal("0.00")
PENCE = Decimal("0.01")


class BandSpec(NamedTuple):
    """Band definition: ``width`` of ``None`` means unbounded."""

    name: str
    width: Decimal | None
    rate: Decimal


def round_currency(value: Decimal) -> Decimal:
    """Round monetary amounts to two decimals, halves away from zero."""

    return value.quantize(PENCE, rounding=ROUND_HALF_UP)


class InvalidAmountError(ValueError):
    """Raised when a monetary input is not a usable finite amount."""


def to_amount(value: Any) -> Decimal:
    """Coerce ``value`` to a ``Decimal``; absent or negative values become zero.

    Raises:
        InvalidAmountError: ``value`` is unparsable, not finite, or above
            ``MAX_AMOUNT``.
    """

    if value is None:
        return ZERO
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as exc:
        raise InvalidAmountError(f"Amount {value!r} is not a number") from exc
    if not amount.is_finite():
        raise InvalidAmountError(f"Amount {value!r} is not a finite number")
    if amount > MAX_AMOUNT:
        raise InvalidAmountError(f"Amount {value} exceeds the supported maximum of {MAX_AMOUNT}")
    if amount < 0:
        return ZERO
    return amount


def format_percentage(value: Decimal) -> str:
    """Return a human-readable percentage label for ``value``."""

    percentage = value * 100
    if percentage == percentage.to_integral_value():
        return f"{int(percentage)}%"
    return f"{percentage:.2f}%"


def allocate_bands(amount: Decimal, bands: Sequence[BandSpec]) -> tuple[BandAllocation, ...]:
    """Consume ``amount`` band by band in the given order.

    Each band takes ``min(remaining, width)``; the next band only receives
    income once the previous one is exhausted. Bands with nothing allocated
    are omitted. Tax per band is rounded half-up to pence.
    """

    allocations: list[BandAllocation] = []
    remaining = amount

    for band in bands:
        if remaining <= 0:
            break
        portion = remaining if band.width is None else min(remaining, band.width)
        if portion <= 0:
            continue
        allocations.append(
            BandAllocation(
                name=band.name,
                amount=round_currency(portion),
                rate=band.rate,
                tax=round_currency(portion * band.rate),
            )
        )
        remaining -= portion

    return tuple(allocations)


def sum_tax(allocations: Sequence[BandAllocation]) -> Decimal:
    return sum((allocation.tax for allocation in allocations), ZERO)


def round_rate(value: Decimal) -> Decimal:
    """Round percentage figures using the same half-up rule as currency."""

    return value.quantize(PENCE, rounding=ROUND_HALF_UP)
