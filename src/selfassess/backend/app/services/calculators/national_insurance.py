"""Self-employed National Insurance: Class 4 (percentage) and Class 2 (flat)."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from selfassess.backend.app.models import Class2Result, Class4Result, TaxYear
from selfassess.backend.config.year_config import Class2Rates, Class4Rates

from .utils import BandSpec, allocate_bands, round_currency, sum_tax, to_amount

MAIN = "main"
ADDITIONAL = "additional"

WEEKS_PER_YEAR = 52

STATE_PENSION_AGE_REASON = "State Pension Age reached before tax year start"


def pension_age_date(date_of_birth: date, pension_age: int) -> date:
    """Return the date the taxpayer reaches ``pension_age``.

    People born on 29 February reach it on 1 March in non-leap years.
    """

    target_year = date_of_birth.year + pension_age
    try:
        return date_of_birth.replace(year=target_year)
    except ValueError:
        return date(target_year, 3, 1)


def is_pension_age_exempt(
    date_of_birth: date | None, tax_year: TaxYear, rates: Class4Rates
) -> bool:
    if date_of_birth is None:
        return False
    return pension_age_date(date_of_birth, rates.state_pension_age) <= tax_year.start_date


def calculate_class4(
    profit: Decimal | None,
    rates: Class4Rates,
    tax_year: TaxYear,
    date_of_birth: date | None = None,
) -> Class4Result:
    """Return Class 4 contributions for ``profit``.

    The pension-age exemption is checked before anything else, so an exempt
    taxpayer pays nothing however large the profit.
    """

    gross = to_amount(profit)
    if is_pension_age_exempt(date_of_birth, tax_year, rates):
        return Class4Result.zero(gross, exemption_reason=STATE_PENSION_AGE_REASON)

    if gross <= rates.lower_profits_limit:
        return Class4Result.zero(gross)

    bands = allocate_bands(
        gross - rates.lower_profits_limit,
        (
            BandSpec(
                MAIN,
                rates.upper_profits_limit - rates.lower_profits_limit,
                rates.main_rate,
            ),
            BandSpec(ADDITIONAL, None, rates.additional_rate),
        ),
    )
    return Class4Result(gross_profit=gross, bands=bands, total=sum_tax(bands))


def annual_class2_amount(rates: Class2Rates) -> Decimal:
    return round_currency(rates.weekly_rate * WEEKS_PER_YEAR)


def calculate_class2(
    profit: Decimal | None,
    rates: Class2Rates,
    voluntary: bool = False,
) -> Class2Result:
    """Return Class 2 contributions.

    Profit above the small profits threshold makes the charge mandatory.
    Below it, the same annual amount is only charged when paid voluntarily.
    """

    gross = to_amount(profit)
    mandatory = gross > rates.small_profits_threshold

    if not mandatory and not voluntary:
        return Class2Result.zero(rates.weekly_rate, gross)

    return Class2Result(
        gross_profit=gross,
        weekly_rate=rates.weekly_rate,
        weeks_liable=WEEKS_PER_YEAR,
        total=annual_class2_amount(rates),
        mandatory=mandatory,
        voluntary=not mandatory,
    )


__all__ = [
    "ADDITIONAL",
    "MAIN",
    "STATE_PENSION_AGE_REASON",
    "WEEKS_PER_YEAR",
    "annual_class2_amount",
    "calculate_class2",
    "calculate_class4",
    "is_pension_age_exempt",
    "pension_age_date",
]
