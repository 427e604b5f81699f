"""Unit tests for calculation response formatting."""

from __future__ import annotations

from flask import Flask

from selfassess.backend.services.response_builder import (
    RATES_YEAR_HEADER,
    build_calculation_response,
)


def test_plain_payload_is_uncached_json(app: Flask) -> None:
    with app.app_context():
        response = build_calculation_response({"balancing_payment": "1200.10"})

    assert response.status_code == 200
    assert response.get_json() == {"balancing_payment": "1200.10"}
    assert response.headers["Cache-Control"] == "no-store"
    assert RATES_YEAR_HEADER not in response.headers


def test_configured_year_exposes_rates_year_only(app: Flask) -> None:
    payload = {"meta": {"tax_year": "2025/26", "rates_year": 2025, "fallback": False}}

    with app.app_context():
        response = build_calculation_response(payload)

    assert response.headers[RATES_YEAR_HEADER] == "2025"
    assert "Warning" not in response.headers


def test_fallback_year_adds_warning(app: Flask) -> None:
    payload = {"meta": {"tax_year": "2031/32", "rates_year": 2025, "fallback": True}}

    with app.app_context():
        response = build_calculation_response(payload)

    assert response.headers[RATES_YEAR_HEADER] == "2025"
    assert response.headers["Warning"].startswith("299 -")
    assert "2031/32" in response.headers["Warning"]
