"""Expose the configured tax years and their rates.

Front-ends use these endpoints to populate year pickers and to show which
thresholds a calculation used, without duplicating the YAML files.
"""

from __future__ import annotations

from typing import Any

from flask import Blueprint, jsonify

from selfassess.backend.app.extensions import get_services
from selfassess.backend.app.models import TaxYear
from selfassess.backend.config.year_config import RateTable, load_manifest
from selfassess.backend.version import get_project_version

blueprint = Blueprint("config", __name__, url_prefix="/api/v1/config")


def get_configuration_metadata(rate_table: RateTable | None = None) -> dict[str, Any]:
    """Expose runtime metadata derived from the configuration manifest."""

    if rate_table is not None:
        supported_years = list(rate_table.supported_years)
    else:
        supported_years = list(load_manifest().supported_years)
    default_year = supported_years[-1] if supported_years else None
    return {
        "version": get_project_version(),
        "supported_years": supported_years,
        "default_year": default_year,
    }


@blueprint.get("/years")
def list_years() -> tuple[Any, int]:
    """List the configured tax years, newest last."""

    rate_table = get_services().rate_table
    years: list[dict[str, Any]] = []
    for year in rate_table.supported_years:
        tax_year = TaxYear(year)
        years.append(
            {
                "year": year,
                "label": tax_year.label,
                "start_date": tax_year.start_date.isoformat(),
                "end_date": tax_year.end_date.isoformat(),
            }
        )

    payload = {"years": years, **get_configuration_metadata(rate_table)}
    return jsonify(payload), 200


@blueprint.get("/<int:year>")
def get_year_rates(year: int) -> tuple[Any, int]:
    """Return the rates used for ``year``, including any fallback."""

    rates = get_services().rate_table.rates(year)
    payload = {
        "year": year,
        "label": TaxYear(year).label,
        "rates_year": rates.source_year,
        "fallback": rates.fallback,
        "income_tax": rates.income_tax.model_dump(mode="json"),
        "class4": rates.class4.model_dump(mode="json"),
        "class2": rates.class2.model_dump(mode="json"),
    }
    return jsonify(payload), 200
