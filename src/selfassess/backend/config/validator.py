"""Utilities for validating tax year rate files and surfacing issues."""

from __future__ import annotations

import argparse
from decimal import Decimal
from typing import Sequence

from .year_config import (
    Class2Rates,
    Class4Rates,
    ConfigurationError,
    IncomeTaxRates,
    TaxYearRates,
    available_years,
    load_year_rates,
)


def _format_scope(scope: str, message: str) -> str:
    return f"{scope}: {message}"


def _validate_income_tax(rates: IncomeTaxRates) -> list[str]:
    errors: list[str] = []
    scope = "income_tax"

    thresholds = [
        rates.personal_allowance,
        rates.basic_rate_upper_limit,
        rates.higher_rate_upper_limit,
    ]
    if thresholds != sorted(set(thresholds)):
        errors.append(_format_scope(scope, "band thresholds must be strictly ascending"))

    band_rates = [rates.basic_rate, rates.higher_rate, rates.additional_rate]
    if band_rates != sorted(set(band_rates)):
        errors.append(_format_scope(scope, "band rates must be strictly ascending"))

    if rates.taper_threshold <= rates.basic_rate_upper_limit:
        errors.append(
            _format_scope(
                scope,
                "allowance taper threshold should sit above the basic rate upper limit",
            )
        )

    # The allowance is fully withdrawn at taper_threshold + 2 x allowance.
    withdrawn_at = rates.taper_threshold + rates.personal_allowance * 2
    if withdrawn_at > rates.higher_rate_upper_limit:
        errors.append(
            _format_scope(
                scope,
                (
                    f"allowance is still partly available at {rates.higher_rate_upper_limit}; "
                    f"expected full withdrawal by the higher rate upper limit (got {withdrawn_at})"
                ),
            )
        )

    return errors


def _validate_class4(rates: Class4Rates, income_tax: IncomeTaxRates) -> list[str]:
    errors: list[str] = []
    scope = "class4"

    if rates.lower_profits_limit >= rates.upper_profits_limit:
        errors.append(_format_scope(scope, "profit limits must be strictly ascending"))

    if rates.main_rate <= rates.additional_rate:
        errors.append(_format_scope(scope, "main rate must exceed the additional rate"))

    if rates.upper_profits_limit != income_tax.basic_rate_upper_limit:
        errors.append(
            _format_scope(
                scope,
                (
                    f"upper profits limit {rates.upper_profits_limit} differs from the "
                    f"income tax basic rate upper limit {income_tax.basic_rate_upper_limit}"
                ),
            )
        )

    return errors


def _validate_class2(rates: Class2Rates, class4: Class4Rates) -> list[str]:
    errors: list[str] = []
    scope = "class2"

    if rates.weekly_rate <= Decimal("0"):
        errors.append(_format_scope(scope, "weekly rate must be positive"))

    if rates.small_profits_threshold >= class4.lower_profits_limit:
        errors.append(
            _format_scope(
                scope,
                "small profits threshold should sit below the Class 4 lower profits limit",
            )
        )

    return errors


def _validate_meta(rates: TaxYearRates) -> list[str]:
    label = rates.meta.get("label") if rates.meta else None
    if label is None:
        return [_format_scope("meta", "missing display label")]

    expected = f"{rates.year}/{(rates.year + 1) % 100:02d}"
    if str(label) != expected:
        return [_format_scope("meta", f"label '{label}' should read '{expected}'")]
    return []


def validate_year_rates(rates: TaxYearRates) -> list[str]:
    """Return human readable issues detected for ``rates``."""

    issues: list[str] = []
    issues.extend(_validate_meta(rates))
    issues.extend(_validate_income_tax(rates.income_tax))
    issues.extend(_validate_class4(rates.class4, rates.income_tax))
    issues.extend(_validate_class2(rates.class2, rates.class4))
    return issues


def validate_all_years(years: Sequence[int] | None = None) -> dict[int, list[str]]:
    """Validate all configured years and return issues keyed by year."""

    targets = years or available_years()
    results: dict[int, list[str]] = {}

    for year in targets:
        rates = load_year_rates(year)
        results[int(year)] = validate_year_rates(rates)

    return results


def _build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate configured tax year rates and report issues.",
    )
    parser.add_argument(
        "years",
        nargs="*",
        type=int,
        help="Specific years to validate (defaults to all configured years)",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for running validations from the command line."""

    parser = _build_argument_parser()
    args = parser.parse_args(argv)
    years = args.years or available_years()

    if not years:
        parser.print_help()
        return 1

    exit_code = 0

    for year in years:
        try:
            rates = load_year_rates(year)
        except (FileNotFoundError, ConfigurationError) as error:
            print(f"[{year}] failed to load rates: {error}")
            exit_code = 1
            continue

        issues = validate_year_rates(rates)
        if issues:
            exit_code = 1
            print(f"[{year}] {len(issues)} issue(s) detected:")
            for issue in issues:
                print(f"  - {issue}")
        else:
            print(f"[{year}] OK")

    return exit_code


if __name__ == "__main__":  # pragma: no cover - CLI invocation
    raise SystemExit(main())
