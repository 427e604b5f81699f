"""Income tax bands and the personal allowance taper."""

from __future__ import annotations

from decimal import Decimal

import pytest

from selfassess.backend.app.services.calculators import (
    calculate_income_tax,
    tapered_personal_allowance,
)
from selfassess.backend.app.services.calculators.income_tax import ADDITIONAL, BASIC, HIGHER
from selfassess.backend.config.year_config import RateTable


@pytest.fixture()
def rates(rate_table: RateTable):
    return rate_table.income_tax(2025)


def _blended_reference(taxable: Decimal) -> Decimal:
    """Tax from a cumulative table: (band floor, tax due at floor, marginal rate)."""

    table = (
        (Decimal("125140"), Decimal("42516.00"), Decimal("0.45")),
        (Decimal("37700"), Decimal("7540.00"), Decimal("0.40")),
        (Decimal("0"), Decimal("0.00"), Decimal("0.20")),
    )
    for floor, tax_at_floor, rate in table:
        if taxable > floor:
            return (tax_at_floor + (taxable - floor) * rate).quantize(Decimal("0.01"))
    return Decimal("0.00")


def test_worked_example_sixty_thousand(rates) -> None:
    result = calculate_income_tax(Decimal("60000"), rates)

    assert result.personal_allowance == Decimal("12570")
    assert result.taxable_income == Decimal("47430")
    assert result.band_tax(BASIC) == Decimal("7540.00")
    assert result.band_tax(HIGHER) == Decimal("3892.00")
    assert result.band(ADDITIONAL) is None
    assert result.total_tax == Decimal("11432.00")


@pytest.mark.parametrize(
    "profit",
    [Decimal("20000"), Decimal("50270"), Decimal("90000.55"), Decimal("180000")],
)
def test_band_totals_match_blended_reference(rates, profit: Decimal) -> None:
    result = calculate_income_tax(profit, rates)

    assert result.total_tax == _blended_reference(result.taxable_income)
    assert result.total_tax == sum(band.tax for band in result.bands)


@pytest.mark.parametrize("profit", [None, Decimal("0"), Decimal("-2500")])
def test_non_positive_profit_yields_zero_with_allowance(rates, profit) -> None:
    result = calculate_income_tax(profit, rates)

    assert result.total_tax == Decimal("0.00")
    assert result.taxable_income == Decimal("0.00")
    assert result.bands == ()
    assert result.personal_allowance == Decimal("12570")


def test_profit_within_allowance_is_untaxed(rates) -> None:
    result = calculate_income_tax(Decimal("12570"), rates)

    assert result.total_tax == Decimal("0.00")
    assert result.gross_profit == Decimal("12570")
    assert result.personal_allowance == Decimal("12570")


def test_allowance_tapers_above_threshold(rates) -> None:
    assert tapered_personal_allowance(Decimal("100000"), rates) == Decimal("12570")
    assert tapered_personal_allowance(Decimal("110000"), rates) == Decimal("7570")
    assert tapered_personal_allowance(Decimal("100001"), rates) == Decimal("12569.5")
    assert tapered_personal_allowance(Decimal("125140"), rates) == Decimal("0")
    assert tapered_personal_allowance(Decimal("400000"), rates) == Decimal("0")


def test_tapered_allowance_feeds_taxable_income(rates) -> None:
    result = calculate_income_tax(Decimal("110000"), rates)

    assert result.personal_allowance == Decimal("7570")
    assert result.taxable_income == Decimal("102430")
    assert result.band_tax(HIGHER) == Decimal("25892.00")
    assert result.total_tax == Decimal("33432.00")


def test_additional_band_above_higher_limit(rates) -> None:
    result = calculate_income_tax(Decimal("150000"), rates)

    assert result.personal_allowance == Decimal("0")
    assert [band.name for band in result.bands] == [BASIC, HIGHER, ADDITIONAL]
    assert result.band(HIGHER).amount == Decimal("87440.00")
    assert result.band_tax(ADDITIONAL) == Decimal("11187.00")
    assert result.total_tax == Decimal("53703.00")


def test_band_tax_rounds_half_up(rates) -> None:
    result = calculate_income_tax(Decimal("12570.025"), rates)

    # 0.025 x 20% = 0.005 which rounds up to a penny.
    assert result.band_tax(BASIC) == Decimal("0.01")
