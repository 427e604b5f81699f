"""Progressive income tax with a tapering personal allowance."""

from __future__ import annotations

from decimal import Decimal

from selfassess.backend.app.models import IncomeTaxResult
from selfassess.backend.config.year_config import IncomeTaxRates

from .utils import ZERO, BandSpec, allocate_bands, sum_tax, to_amount

BASIC = "basic"
HIGHER = "higher"
ADDITIONAL = "additional"

_TAPER_DIVISOR = Decimal("2")


def tapered_personal_allowance(profit: Decimal, rates: IncomeTaxRates) -> Decimal:
    """Return the allowance after the high-income taper.

    The standard allowance loses one unit for every two units of profit above
    the taper threshold and never drops below zero.
    """

    allowance = rates.personal_allowance
    if profit <= rates.taper_threshold:
        return allowance

    reduction = (profit - rates.taper_threshold) / _TAPER_DIVISOR
    return max(ZERO, allowance - reduction)


def income_tax_bands(rates: IncomeTaxRates) -> tuple[BandSpec, ...]:
    """Band widths measured in taxable income."""

    basic_width = rates.basic_band_width
    higher_width = rates.higher_rate_upper_limit - basic_width
    return (
        BandSpec(BASIC, basic_width, rates.basic_rate),
        BandSpec(HIGHER, higher_width, rates.higher_rate),
        BandSpec(ADDITIONAL, None, rates.additional_rate),
    )


def calculate_income_tax(profit: Decimal | None, rates: IncomeTaxRates) -> IncomeTaxResult:
    """Compute income tax on ``profit`` for the supplied year's rates."""

    gross = to_amount(profit)
    if gross <= 0:
        return IncomeTaxResult.zero(rates.personal_allowance)

    allowance = tapered_personal_allowance(gross, rates)
    taxable = max(ZERO, gross - allowance)
    if taxable <= 0:
        return IncomeTaxResult.zero(allowance, gross_profit=gross)

    bands = allocate_bands(taxable, income_tax_bands(rates))
    return IncomeTaxResult(
        gross_profit=gross,
        personal_allowance=allowance,
        taxable_income=taxable,
        bands=bands,
        total_tax=sum_tax(bands),
    )


__all__ = [
    "ADDITIONAL",
    "BASIC",
    "HIGHER",
    "calculate_income_tax",
    "income_tax_bands",
    "tapered_personal_allowance",
]
