"""Compose income tax and both contribution classes into one breakdown."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from selfassess.backend.app.models import (
    Class2Result,
    Class4Result,
    IncomeTaxResult,
    LiabilityBreakdown,
    TaxYear,
)
from selfassess.backend.config.year_config import TaxYearRates

from .income_tax import calculate_income_tax
from .national_insurance import calculate_class2, calculate_class4
from .utils import ZERO, round_rate, to_amount


def effective_rate(total: Decimal, profit: Decimal) -> Decimal:
    if profit <= 0:
        return ZERO
    return round_rate(total / profit * 100)


def zero_liability(rates: TaxYearRates, tax_year: TaxYear) -> LiabilityBreakdown:
    return LiabilityBreakdown(
        tax_year=tax_year.start_year,
        gross_profit=ZERO,
        income_tax=IncomeTaxResult.zero(rates.income_tax.personal_allowance),
        class4=Class4Result.zero(),
        class2=Class2Result.zero(rates.class2.weekly_rate),
        total_liability=ZERO,
    )


def build_liability(
    profit: Decimal | None,
    rates: TaxYearRates,
    tax_year: TaxYear,
    date_of_birth: date | None = None,
    voluntary_class2: bool = False,
) -> LiabilityBreakdown:
    """Return the full breakdown for ``profit`` under ``rates``.

    Absent or non-positive profit yields an all-zero breakdown that still
    records the standard personal allowance.
    """

    gross = to_amount(profit)
    if gross <= 0:
        return zero_liability(rates, tax_year)

    income_tax = calculate_income_tax(gross, rates.income_tax)
    class4 = calculate_class4(gross, rates.class4, tax_year, date_of_birth)
    class2 = calculate_class2(gross, rates.class2, voluntary_class2)

    total = income_tax.total_tax + class4.total + class2.total
    return LiabilityBreakdown(
        tax_year=tax_year.start_year,
        gross_profit=gross,
        income_tax=income_tax,
        class4=class4,
        class2=class2,
        total_liability=total,
        effective_rate=effective_rate(total, gross),
    )


__all__ = ["build_liability", "effective_rate", "zero_liability"]
