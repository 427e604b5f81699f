"""Orchestrate request validation, rate lookup, and liability calculations.

The calculation service is the single entry point callers use: it resolves
the tax year's rates from an injected ``RateTable`` and hands immutable
values to the calculators, which never look anything up themselves. The
``*_payload`` variants accept raw JSON mappings, validate them with the
shared request models and return JSON-ready dictionaries.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from time import perf_counter
from typing import Any

from pydantic import BaseModel, ValidationError

from selfassess.backend.app.models import (
    AdvancePaymentDecision,
    AdvancePaymentRequest,
    BalancingPaymentRequest,
    LiabilityBreakdown,
    LiabilityRequest,
    TaxYear,
    format_validation_error,
)
from selfassess.backend.config.year_config import RateTable

from .calculators import (
    build_liability,
    calculate_balancing_payment,
    evaluate_advance_payment as _evaluate_advance_payment,
)

_LOGGER = logging.getLogger(__name__)


def _profiling_enabled() -> bool:
    """Return ``True`` when calculation profiling should be captured."""

    flag = os.getenv("SELFASSESS_PROFILE_CALCULATIONS", "")
    return flag.strip().lower() in {"1", "true", "yes", "on"}


@contextmanager
def _profile_section(name: str, store: dict[str, float] | None):
    """Capture the duration of a named section when profiling is enabled."""

    if store is None:
        yield
        return

    start = perf_counter()
    try:
        yield
    finally:
        store[name] = perf_counter() - start


def _as_tax_year(value: TaxYear | int) -> TaxYear:
    if isinstance(value, TaxYear):
        return value
    return TaxYear(int(value))


def calculate_liability(
    profit: Decimal | None,
    tax_year: TaxYear | int,
    date_of_birth: date | None = None,
    voluntary_class2: bool = False,
    *,
    rate_table: RateTable,
) -> LiabilityBreakdown:
    """Return the liability breakdown for ``profit`` in ``tax_year``.

    An unconfigured year is computed with the nearest configured year's
    rates; ``rate_table`` logs the substitution.
    """

    year = _as_tax_year(tax_year)
    timings: dict[str, float] | None = {} if _profiling_enabled() else None

    with _profile_section("rates", timings):
        rates = rate_table.rates(year.start_year)

    with _profile_section("liability", timings):
        breakdown = build_liability(
            profit,
            rates,
            year,
            date_of_birth=date_of_birth,
            voluntary_class2=voluntary_class2,
        )

    if timings is not None:
        _LOGGER.debug(
            "calculate_liability timings (ms): %s",
            {name: round(duration * 1000, 3) for name, duration in timings.items()},
        )

    return breakdown


def evaluate_advance_payment(
    previous_liability: Decimal | None,
    is_first_year: bool,
    withheld_percent: Decimal | None,
    tax_year: TaxYear | int,
) -> AdvancePaymentDecision:
    """Decide whether advance payments are due; see ``payments_on_account``."""

    return _evaluate_advance_payment(
        previous_liability, is_first_year, withheld_percent, _as_tax_year(tax_year)
    )


def _validate_payload(payload: Mapping[str, Any] | BaseModel, model: type[BaseModel]) -> Any:
    if isinstance(payload, model):
        return payload
    if not isinstance(payload, Mapping):
        raise ValueError("Payload must be a mapping")
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise ValueError(format_validation_error(exc)) from exc


def calculate_liability_payload(
    payload: Mapping[str, Any] | LiabilityRequest,
    *,
    rate_table: RateTable,
) -> dict[str, Any]:
    """Validate ``payload`` and return the breakdown as a JSON-ready mapping."""

    request_model: LiabilityRequest = _validate_payload(payload, LiabilityRequest)
    rates = rate_table.rates(request_model.tax_year)

    breakdown = calculate_liability(
        request_model.profit,
        request_model.tax_year,
        request_model.date_of_birth,
        request_model.voluntary_class2,
        rate_table=rate_table,
    )

    result = breakdown.as_dict()
    result["meta"] = {
        "tax_year": TaxYear(request_model.tax_year).label,
        "rates_year": rates.source_year,
        "fallback": rates.fallback,
    }
    return result


def evaluate_advance_payment_payload(
    payload: Mapping[str, Any] | AdvancePaymentRequest,
) -> dict[str, Any]:
    request_model: AdvancePaymentRequest = _validate_payload(payload, AdvancePaymentRequest)
    decision = evaluate_advance_payment(
        request_model.previous_liability,
        request_model.first_year,
        request_model.withheld_percent,
        request_model.tax_year,
    )
    return decision.as_dict()


def calculate_balancing_payment_payload(
    payload: Mapping[str, Any] | BalancingPaymentRequest,
) -> dict[str, Any]:
    request_model: BalancingPaymentRequest = _validate_payload(
        payload, BalancingPaymentRequest
    )
    balance = calculate_balancing_payment(
        request_model.current_liability, request_model.payments_made
    )
    return {
        "balancing_payment": str(balance),
        "is_refund": balance < 0,
    }


__all__ = [
    "calculate_balancing_payment_payload",
    "calculate_liability",
    "calculate_liability_payload",
    "evaluate_advance_payment",
    "evaluate_advance_payment_payload",
]
