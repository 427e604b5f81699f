"""Unit tests for the calculation service entry points."""

from __future__ import annotations

import logging
from decimal import Decimal

import pytest

from selfassess.backend.app.models import ExemptionReason, LiabilityRequest, TaxYear
from selfassess.backend.app.services import calculation_service
from selfassess.backend.app.services.calculation_service import (
    calculate_balancing_payment_payload,
    calculate_liability,
    calculate_liability_payload,
    evaluate_advance_payment,
    evaluate_advance_payment_payload,
)
from selfassess.backend.config.year_config import RateTable


def test_calculate_liability_accepts_int_or_tax_year(rate_table: RateTable) -> None:
    by_int = calculate_liability(Decimal("60000"), 2025, rate_table=rate_table)
    by_year = calculate_liability(Decimal("60000"), TaxYear(2025), rate_table=rate_table)

    assert by_int == by_year
    assert by_int.total_income_tax == Decimal("11432.00")


def test_calculate_liability_signals_oversized_profit(rate_table: RateTable) -> None:
    with pytest.raises(ValueError):
        calculate_liability(Decimal("1e30"), 2025, rate_table=rate_table)

def test_calculate_liability_falls_back_for_unknown_year(rate_table: RateTable) -> None:
    breakdown = calculate_liability(Decimal("60000"), 2031, rate_table=rate_table)

    assert breakdown.tax_year == 2031
    assert breakdown.total_income_tax == Decimal("11432.00")


def test_profiling_logs_section_timings(
    rate_table: RateTable,
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    monkeypatch.setenv("SELFASSESS_PROFILE_CALCULATIONS", "true")

    with caplog.at_level(logging.DEBUG, logger=calculation_service.__name__):
        calculate_liability(Decimal("1000"), 2025, rate_table=rate_table)

    assert "calculate_liability timings" in caplog.text


def test_evaluate_advance_payment_accepts_int_year() -> None:
    decision = evaluate_advance_payment(Decimal("900"), False, Decimal("90"), 2025)

    assert decision.exemption_reason is ExemptionReason.WITHHELD_AT_SOURCE
    assert decision.tax_year == 2025


def test_liability_payload_includes_rate_metadata(rate_table: RateTable) -> None:
    result = calculate_liability_payload(
        {"tax_year": 2030, "profit": "60000"}, rate_table=rate_table
    )

    assert result["total_income_tax"] == "11432.00"
    assert result["meta"] == {"tax_year": "2030/31", "rates_year": 2025, "fallback": True}


def test_liability_payload_accepts_model_instances(rate_table: RateTable) -> None:
    request_model = LiabilityRequest(tax_year=2024, profit=Decimal("5000"), voluntary_class2=True)

    result = calculate_liability_payload(request_model, rate_table=rate_table)

    assert result["class2"]["voluntary"] is True
    assert result["total_liability"] == "179.40"


def test_liability_payload_rejects_unknown_fields(rate_table: RateTable) -> None:
    with pytest.raises(ValueError, match="Invalid request payload"):
        calculate_liability_payload(
            {"tax_year": 2025, "profit": "1", "bonus": True}, rate_table=rate_table
        )


def test_liability_payload_requires_mapping(rate_table: RateTable) -> None:
    with pytest.raises(ValueError, match="mapping"):
        calculate_liability_payload(["not", "a", "mapping"], rate_table=rate_table)  # type: ignore[arg-type]


def test_advance_payment_payload_reports_bad_percentage() -> None:
    with pytest.raises(ValueError, match="between 0 and 100"):
        evaluate_advance_payment_payload(
            {"tax_year": 2025, "previous_liability": "4000", "withheld_percent": "120"}
        )


def test_balancing_payload_flags_refunds() -> None:
    result = calculate_balancing_payment_payload(
        {"current_liability": "1000", "payments_made": "1500.50"}
    )

    assert result == {"balancing_payment": "-500.50", "is_refund": True}
