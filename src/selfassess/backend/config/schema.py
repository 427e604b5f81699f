"""Pydantic models describing the tax year rate schema."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Mapping, Sequence

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    computed_field,
    model_validator,
)

_ZERO = Decimal("0")
_ONE = Decimal("1")


class ConfigurationError(ValueError):
    """Raised when configuration values violate schema expectations."""


class ImmutableModel(BaseModel):
    """Base class that freezes instances and rejects unknown fields."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)


def _require_rate(label: str, value: Decimal) -> None:
    if value < _ZERO or value > _ONE:
        raise ConfigurationError(f"{label} must be between 0 and 1, got {value}")


def _require_amount(label: str, value: Decimal) -> None:
    if value < _ZERO:
        raise ConfigurationError(f"{label} must be non-negative, got {value}")


class IncomeTaxRates(ImmutableModel):
    """Personal allowance, band limits and rates for income tax."""

    personal_allowance: Decimal
    basic_rate_upper_limit: Decimal
    higher_rate_upper_limit: Decimal
    taper_threshold: Decimal
    basic_rate: Decimal
    higher_rate: Decimal
    additional_rate: Decimal

    @model_validator(mode="after")
    def _validate_values(self) -> IncomeTaxRates:
        for label in (
            "personal_allowance",
            "basic_rate_upper_limit",
            "higher_rate_upper_limit",
            "taper_threshold",
        ):
            _require_amount(label, getattr(self, label))
        for label in ("basic_rate", "higher_rate", "additional_rate"):
            _require_rate(label, getattr(self, label))

        if not (
            self.personal_allowance
            < self.basic_rate_upper_limit
            < self.higher_rate_upper_limit
        ):
            raise ConfigurationError(
                "Income tax thresholds must be strictly ascending "
                "(personal allowance < basic upper limit < higher upper limit)"
            )
        if not self.basic_rate < self.higher_rate < self.additional_rate:
            raise ConfigurationError(
                "Income tax rates must be strictly ascending (basic < higher < additional)"
            )
        return self

    @computed_field
    @property
    def basic_band_width(self) -> Decimal:
        """Width of the basic band measured in taxable income."""

        return self.basic_rate_upper_limit - self.personal_allowance


class Class4Rates(ImmutableModel):
    """Percentage-based contribution limits and rates."""

    lower_profits_limit: Decimal
    upper_profits_limit: Decimal
    main_rate: Decimal
    additional_rate: Decimal
    state_pension_age: int = Field(default=66, ge=50, le=80)

    @model_validator(mode="after")
    def _validate_values(self) -> Class4Rates:
        _require_amount("lower_profits_limit", self.lower_profits_limit)
        _require_amount("upper_profits_limit", self.upper_profits_limit)
        _require_rate("class4 main_rate", self.main_rate)
        _require_rate("class4 additional_rate", self.additional_rate)

        if self.lower_profits_limit >= self.upper_profits_limit:
            raise ConfigurationError(
                "Class 4 lower profits limit must be below the upper profits limit"
            )
        if self.main_rate <= self.additional_rate:
            raise ConfigurationError(
                "Class 4 main rate must exceed the additional rate"
            )
        return self


class Class2Rates(ImmutableModel):
    """Flat weekly contribution and the threshold that makes it mandatory."""

    weekly_rate: Decimal
    small_profits_threshold: Decimal

    @model_validator(mode="after")
    def _validate_values(self) -> Class2Rates:
        _require_amount("weekly_rate", self.weekly_rate)
        _require_amount("small_profits_threshold", self.small_profits_threshold)
        return self


class TaxYearRates(ImmutableModel):
    """Every figure the calculators need for one tax year."""

    year: int
    meta: Mapping[str, Any] = Field(default_factory=dict)
    income_tax: IncomeTaxRates
    class4: Class4Rates
    class2: Class2Rates
    source_year: int | None = None
    fallback: bool = False

    @model_validator(mode="before")
    @classmethod
    def _default_source_year(cls, data: Any) -> Any:
        if isinstance(data, Mapping) and data.get("source_year") is None:
            prepared = dict(data)
            prepared["source_year"] = prepared.get("year")
            return prepared
        return data

    def for_requested_year(self, year: int) -> TaxYearRates:
        """Return a copy re-keyed to ``year`` that remembers its origin."""

        if year == self.year:
            return self
        return self.model_copy(
            update={"year": year, "source_year": self.year, "fallback": True}
        )


class RatesManifestEntry(ImmutableModel):
    """Entry describing a supported tax year in the manifest."""

    year: int
    filename: str | None = None
    notes_url: str | None = None

    @computed_field
    @property
    def resolved_filename(self) -> str:
        return self.filename or f"{self.year}.yaml"


class RatesManifest(ImmutableModel):
    """Manifest describing the available tax year rate files."""

    years: Sequence[RatesManifestEntry]

    @model_validator(mode="after")
    def _validate_years(self) -> RatesManifest:
        seen: set[int] = set()
        for entry in self.years:
            if entry.year in seen:
                raise ConfigurationError(
                    f"Duplicate year {entry.year} declared in the rates manifest"
                )
            seen.add(entry.year)
        return self

    def get_entry(self, year: int) -> RatesManifestEntry:
        for entry in self.years:
            if entry.year == year:
                return entry
        raise KeyError(year)

    @computed_field
    @property
    def supported_years(self) -> tuple[int, ...]:
        return tuple(sorted(entry.year for entry in self.years))

    def nearest_year(self, year: int) -> int:
        """Return the configured year closest to ``year`` (later wins ties)."""

        years = self.supported_years
        if not years:
            raise ConfigurationError("The rates manifest declares no tax years")
        return min(years, key=lambda candidate: (abs(candidate - year), -candidate))


__all__ = [
    "Class2Rates",
    "Class4Rates",
    "ConfigurationError",
    "ImmutableModel",
    "IncomeTaxRates",
    "RatesManifest",
    "RatesManifestEntry",
    "TaxYearRates",
    "ValidationError",
]
