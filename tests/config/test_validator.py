from decimal import Decimal

from selfassess.backend.config.validator import (
    main,
    validate_all_years,
    validate_year_rates,
)
from selfassess.backend.config.year_config import load_year_rates


def test_current_rate_files_are_valid() -> None:
    results = validate_all_years()
    assert all(not issues for issues in results.values()), results


def test_validator_flags_wrong_label() -> None:
    rates = load_year_rates(2024)
    broken = rates.model_copy(update={"meta": {"label": "2024-25"}})

    errors = validate_year_rates(broken)

    assert any(error.startswith("meta:") and "2024/25" in error for error in errors)


def test_validator_flags_mismatched_profit_limit() -> None:
    rates = load_year_rates(2024)
    class4 = rates.class4.model_copy(update={"upper_profits_limit": Decimal("50000")})
    broken = rates.model_copy(update={"class4": class4})

    errors = validate_year_rates(broken)

    assert any("class4" in error and "upper profits limit" in error for error in errors)


def test_validator_flags_small_profits_threshold_above_lower_limit() -> None:
    rates = load_year_rates(2025)
    class2 = rates.class2.model_copy(update={"small_profits_threshold": Decimal("20000")})
    broken = rates.model_copy(update={"class2": class2})

    errors = validate_year_rates(broken)

    assert any(error.startswith("class2:") for error in errors)


def test_validator_flags_allowance_still_available_above_higher_limit() -> None:
    rates = load_year_rates(2025)
    income_tax = rates.income_tax.model_copy(update={"taper_threshold": Decimal("110000")})
    broken = rates.model_copy(update={"income_tax": income_tax})

    errors = validate_year_rates(broken)

    assert any("full withdrawal" in error for error in errors)


def test_cli_reports_success(capsys) -> None:
    exit_code = main(["2024", "2025"])

    output = capsys.readouterr().out
    assert exit_code == 0
    assert "[2024] OK" in output
    assert "[2025] OK" in output


def test_cli_reports_unknown_year(capsys) -> None:
    exit_code = main(["1999"])

    assert exit_code == 1
    assert "failed to load rates" in capsys.readouterr().out
