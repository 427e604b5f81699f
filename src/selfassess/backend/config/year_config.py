"""Configuration loader wrapping the tax year rate schema."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Any, Sequence

import yaml
from pydantic import ValidationError

from .schema import (
    Class2Rates,
    Class4Rates,
    ConfigurationError,
    IncomeTaxRates,
    RatesManifest,
    RatesManifestEntry,
    TaxYearRates,
)

CONFIG_DIRECTORY = Path(__file__).resolve().parent / "data"
MANIFEST_FILE = CONFIG_DIRECTORY / "manifest.yaml"

_LOGGER = logging.getLogger(__name__)


def _load_yaml(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ConfigurationError("Configuration file must define a mapping at the top level")
    return data


@lru_cache(maxsize=1)
def load_manifest() -> RatesManifest:
    """Load and cache the rates manifest."""

    if not MANIFEST_FILE.exists():
        raise FileNotFoundError("Rates manifest not found")

    raw_manifest = _load_yaml(MANIFEST_FILE)

    try:
        return RatesManifest.model_validate(raw_manifest)
    except ValidationError as error:
        raise ConfigurationError(f"Manifest validation failed: {error}") from error


def manifest_entries() -> Sequence[RatesManifestEntry]:
    """Expose the configured manifest entries."""

    return load_manifest().years


@lru_cache(maxsize=8)
def load_year_rates(year: int) -> TaxYearRates:
    """Load the rate file for exactly ``year`` from disk."""

    try:
        manifest_entry = load_manifest().get_entry(year)
    except KeyError as exc:
        raise FileNotFoundError(f"Rates for year {year} not declared in manifest") from exc

    rates_file = CONFIG_DIRECTORY / manifest_entry.resolved_filename
    if not rates_file.exists():
        raise FileNotFoundError(f"Rates file for year {year} missing: {rates_file.name}")

    raw_rates = _load_yaml(rates_file)
    raw_rates.setdefault("year", year)

    try:
        rates = TaxYearRates.model_validate(raw_rates)
    except ValidationError as error:
        raise ConfigurationError(f"Rates validation failed for {year}: {error}") from error

    if rates.year != year:
        raise ConfigurationError(
            f"Rates year mismatch: expected {year}, found {rates.year}"
        )

    return rates


def available_years() -> Sequence[int]:
    """Return the tax years declared in the manifest."""

    return load_manifest().supported_years


class RateTable:
    """Year-keyed lookup of immutable rates with nearest-year fallback.

    One table is built at start-up and handed to whichever calculators or
    services need it. Resolved years are cached on the instance, so repeated
    lookups return the same ``TaxYearRates`` object.
    """

    def __init__(
        self,
        manifest: RatesManifest | None = None,
        loader: Any = None,
    ) -> None:
        self._manifest = manifest or load_manifest()
        self._loader = loader or load_year_rates
        self._cache: dict[int, TaxYearRates] = {}
        self._lock = Lock()

    @classmethod
    def from_rates(cls, *rates: TaxYearRates) -> RateTable:
        """Build a table from already constructed rates (handy for tests)."""

        by_year = {entry.year: entry for entry in rates}
        manifest = RatesManifest(
            years=[RatesManifestEntry(year=year) for year in sorted(by_year)]
        )
        return cls(manifest=manifest, loader=by_year.__getitem__)

    @property
    def supported_years(self) -> tuple[int, ...]:
        return self._manifest.supported_years

    def is_supported(self, year: int) -> bool:
        return year in self._manifest.supported_years

    def rates(self, year: int) -> TaxYearRates:
        """Return the rates for ``year``, substituting the nearest known year."""

        with self._lock:
            cached = self._cache.get(year)
            if cached is not None:
                return cached

            if self.is_supported(year):
                resolved = self._loader(year)
            else:
                source_year = self._manifest.nearest_year(year)
                _LOGGER.warning(
                    "No rates configured for tax year %s; using %s rates instead",
                    year,
                    source_year,
                )
                resolved = self._loader(source_year).for_requested_year(year)

            self._cache[year] = resolved
            return resolved

    def income_tax(self, year: int) -> IncomeTaxRates:
        return self.rates(year).income_tax

    def class4(self, year: int) -> Class4Rates:
        return self.rates(year).class4

    def class2(self, year: int) -> Class2Rates:
        return self.rates(year).class2

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()


__all__ = [
    "CONFIG_DIRECTORY",
    "Class2Rates",
    "Class4Rates",
    "ConfigurationError",
    "IncomeTaxRates",
    "MANIFEST_FILE",
    "RateTable",
    "RatesManifest",
    "RatesManifestEntry",
    "TaxYearRates",
    "available_years",
    "load_manifest",
    "load_year_rates",
    "manifest_entries",
]
