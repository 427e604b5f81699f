"""Shape JSON responses for the calculation endpoints."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from flask import Response, jsonify

RATES_YEAR_HEADER = "X-Rates-Year"


def build_calculation_response(payload: Mapping[str, Any]) -> Response:
    """Return ``payload`` as an uncacheable JSON response.

    Liability payloads carry a ``meta`` block naming the year whose rates
    were applied. That year is echoed in ``X-Rates-Year``. When no rates are
    configured for the requested year, a ``Warning`` header marks the
    figures as provisional.
    """

    response = jsonify(payload)
    response.headers["Cache-Control"] = "no-store"

    meta = payload.get("meta")
    if isinstance(meta, Mapping) and meta.get("rates_year") is not None:
        response.headers[RATES_YEAR_HEADER] = str(meta["rates_year"])
        if meta.get("fallback"):
            response.headers["Warning"] = (
                f'299 - "No rates configured for {meta.get("tax_year")}; '
                f'{meta["rates_year"]} rates applied"'
            )
    return response


__all__ = ["RATES_YEAR_HEADER", "build_calculation_response"]
