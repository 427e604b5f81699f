"""Value objects shared across the calculators and the submission workflow.

Every result type here is a frozen dataclass holding ``Decimal`` amounts.
Results are either fully computed or fully zeroed; no constructor accepts a
partially filled breakdown. ``as_dict``/``from_dict`` give the JSON-safe
shape used by the HTTP layer and the saga stores.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from .api import (
    MAX_AMOUNT,
    AdvancePaymentRequest,
    BalancingPaymentRequest,
    LiabilityRequest,
    SubmissionAdvanceRequest,
    SubmissionRequest,
    format_validation_error,
)

__all__ = [
    "MAX_AMOUNT",
    "AdvancePaymentDecision",
    "AdvancePaymentRequest",
    "BalancingPaymentRequest",
    "BandAllocation",
    "Class2Result",
    "Class4Result",
    "ExemptionReason",
    "IncomeTaxResult",
    "LiabilityBreakdown",
    "LiabilityRequest",
    "SubmissionAdvanceRequest",
    "SubmissionRequest",
    "TaxYear",
    "format_validation_error",
]

ZERO = Decimal("0.00")

TAX_YEAR_START_MONTH = 4
TAX_YEAR_START_DAY = 6


def _decimal(value: Any) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True, order=True)
class TaxYear:
    """Twelve months running from 6 April to 5 April of the following year."""

    start_year: int

    def __post_init__(self) -> None:
        if not 1900 <= self.start_year <= 2100:
            raise ValueError(f"Tax year start {self.start_year} is out of range")

    @classmethod
    def for_date(cls, value: date) -> TaxYear:
        start = date(value.year, TAX_YEAR_START_MONTH, TAX_YEAR_START_DAY)
        return cls(value.year if value >= start else value.year - 1)

    @classmethod
    def current(cls) -> TaxYear:
        return cls.for_date(date.today())

    @property
    def start_date(self) -> date:
        return date(self.start_year, TAX_YEAR_START_MONTH, TAX_YEAR_START_DAY)

    @property
    def end_date(self) -> date:
        return date(self.start_year + 1, TAX_YEAR_START_MONTH, TAX_YEAR_START_DAY - 1)

    @property
    def label(self) -> str:
        return f"{self.start_year}/{(self.start_year + 1) % 100:02d}"

    @property
    def period_key(self) -> str:
        """Period identifier used by the tax authority (``2025-26``)."""

        return f"{self.start_year}-{(self.start_year + 1) % 100:02d}"

    def contains(self, value: date) -> bool:
        return self.start_date <= value <= self.end_date

    def __str__(self) -> str:
        return self.label


@dataclass(frozen=True)
class BandAllocation:
    """Portion of income falling in one band and the tax charged on it."""

    name: str
    amount: Decimal
    rate: Decimal
    tax: Decimal

    def as_dict(self) -> dict[str, str]:
        return {
            "name": self.name,
            "amount": str(self.amount),
            "rate": str(self.rate),
            "tax": str(self.tax),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BandAllocation:
        return cls(
            name=str(data["name"]),
            amount=_decimal(data.get("amount")),
            rate=_decimal(data.get("rate")),
            tax=_decimal(data.get("tax")),
        )


def _band(bands: tuple[BandAllocation, ...], name: str) -> BandAllocation | None:
    return next((band for band in bands if band.name == name), None)


@dataclass(frozen=True)
class IncomeTaxResult:
    gross_profit: Decimal
    personal_allowance: Decimal
    taxable_income: Decimal
    bands: tuple[BandAllocation, ...]
    total_tax: Decimal

    @classmethod
    def zero(cls, personal_allowance: Decimal, gross_profit: Decimal = ZERO) -> IncomeTaxResult:
        return cls(
            gross_profit=gross_profit,
            personal_allowance=personal_allowance,
            taxable_income=ZERO,
            bands=(),
            total_tax=ZERO,
        )

    def band(self, name: str) -> BandAllocation | None:
        return _band(self.bands, name)

    def band_tax(self, name: str) -> Decimal:
        allocation = self.band(name)
        return allocation.tax if allocation is not None else ZERO

    def as_dict(self) -> dict[str, Any]:
        return {
            "gross_profit": str(self.gross_profit),
            "personal_allowance": str(self.personal_allowance),
            "taxable_income": str(self.taxable_income),
            "bands": [band.as_dict() for band in self.bands],
            "total_tax": str(self.total_tax),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> IncomeTaxResult:
        return cls(
            gross_profit=_decimal(data.get("gross_profit")),
            personal_allowance=_decimal(data.get("personal_allowance")),
            taxable_income=_decimal(data.get("taxable_income")),
            bands=tuple(BandAllocation.from_dict(item) for item in data.get("bands", ())),
            total_tax=_decimal(data.get("total_tax")),
        )


@dataclass(frozen=True)
class Class4Result:
    """Percentage-based contributions on profit above the lower limit."""

    gross_profit: Decimal
    bands: tuple[BandAllocation, ...]
    total: Decimal
    exempt: bool = False
    exemption_reason: str | None = None

    @classmethod
    def zero(
        cls,
        gross_profit: Decimal = ZERO,
        *,
        exemption_reason: str | None = None,
    ) -> Class4Result:
        return cls(
            gross_profit=gross_profit,
            bands=(),
            total=ZERO,
            exempt=exemption_reason is not None,
            exemption_reason=exemption_reason,
        )

    def band(self, name: str) -> BandAllocation | None:
        return _band(self.bands, name)

    def as_dict(self) -> dict[str, Any]:
        return {
            "gross_profit": str(self.gross_profit),
            "bands": [band.as_dict() for band in self.bands],
            "total": str(self.total),
            "exempt": self.exempt,
            "exemption_reason": self.exemption_reason,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Class4Result:
        return cls(
            gross_profit=_decimal(data.get("gross_profit")),
            bands=tuple(BandAllocation.from_dict(item) for item in data.get("bands", ())),
            total=_decimal(data.get("total")),
            exempt=bool(data.get("exempt", False)),
            exemption_reason=data.get("exemption_reason"),
        )


@dataclass(frozen=True)
class Class2Result:
    """Flat weekly contributions; at most one of mandatory/voluntary is set."""

    gross_profit: Decimal
    weekly_rate: Decimal
    weeks_liable: int
    total: Decimal
    mandatory: bool = False
    voluntary: bool = False

    def __post_init__(self) -> None:
        if self.mandatory and self.voluntary:
            raise ValueError("Class 2 contributions cannot be both mandatory and voluntary")

    @classmethod
    def zero(cls, weekly_rate: Decimal, gross_profit: Decimal = ZERO) -> Class2Result:
        return cls(
            gross_profit=gross_profit,
            weekly_rate=weekly_rate,
            weeks_liable=0,
            total=ZERO,
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "gross_profit": str(self.gross_profit),
            "weekly_rate": str(self.weekly_rate),
            "weeks_liable": self.weeks_liable,
            "total": str(self.total),
            "mandatory": self.mandatory,
            "voluntary": self.voluntary,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Class2Result:
        return cls(
            gross_profit=_decimal(data.get("gross_profit")),
            weekly_rate=_decimal(data.get("weekly_rate")),
            weeks_liable=int(data.get("weeks_liable", 0)),
            total=_decimal(data.get("total")),
            mandatory=bool(data.get("mandatory", False)),
            voluntary=bool(data.get("voluntary", False)),
        )


@dataclass(frozen=True)
class LiabilityBreakdown:
    """Income tax plus both contribution classes for one profit figure."""

    tax_year: int
    gross_profit: Decimal
    income_tax: IncomeTaxResult
    class4: Class4Result
    class2: Class2Result
    total_liability: Decimal
    effective_rate: Decimal = ZERO

    @property
    def personal_allowance(self) -> Decimal:
        return self.income_tax.personal_allowance

    @property
    def taxable_income(self) -> Decimal:
        return self.income_tax.taxable_income

    @property
    def total_income_tax(self) -> Decimal:
        return self.income_tax.total_tax

    @property
    def total_national_insurance(self) -> Decimal:
        return self.class4.total + self.class2.total

    @property
    def net_profit_after_tax(self) -> Decimal:
        return self.gross_profit - self.total_liability

    def as_dict(self) -> dict[str, Any]:
        return {
            "tax_year": self.tax_year,
            "gross_profit": str(self.gross_profit),
            "personal_allowance": str(self.personal_allowance),
            "taxable_income": str(self.taxable_income),
            "income_tax": self.income_tax.as_dict(),
            "class4": self.class4.as_dict(),
            "class2": self.class2.as_dict(),
            "total_income_tax": str(self.total_income_tax),
            "total_national_insurance": str(self.total_national_insurance),
            "total_liability": str(self.total_liability),
            "net_profit_after_tax": str(self.net_profit_after_tax),
            "effective_rate": str(self.effective_rate),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> LiabilityBreakdown:
        income_tax = data.get("income_tax")
        class4 = data.get("class4")
        class2 = data.get("class2")
        if not isinstance(income_tax, Mapping) or not isinstance(class4, Mapping):
            raise ValueError("Liability breakdown is missing income tax or Class 4 sections")
        if not isinstance(class2, Mapping):
            raise ValueError("Liability breakdown is missing the Class 2 section")
        return cls(
            tax_year=int(data["tax_year"]),
            gross_profit=_decimal(data.get("gross_profit")),
            income_tax=IncomeTaxResult.from_dict(income_tax),
            class4=Class4Result.from_dict(class4),
            class2=Class2Result.from_dict(class2),
            total_liability=_decimal(data.get("total_liability")),
            effective_rate=_decimal(data.get("effective_rate")),
        )


class ExemptionReason(str, enum.Enum):
    """Why advance payments are not required, in priority order."""

    FIRST_YEAR = "first_year"
    WITHHELD_AT_SOURCE = "withheld_at_source"
    BELOW_THRESHOLD = "below_threshold"

    @property
    def description(self) -> str:
        return _EXEMPTION_DESCRIPTIONS[self]


_EXEMPTION_DESCRIPTIONS = {
    ExemptionReason.FIRST_YEAR: "First year of self-employment",
    ExemptionReason.WITHHELD_AT_SOURCE: "More than 80% of income already taxed at source",
    ExemptionReason.BELOW_THRESHOLD: "Previous year's liability was £1,000 or less",
}


@dataclass(frozen=True)
class AdvancePaymentDecision:
    """Outcome of the advance-payment check for one tax year."""

    tax_year: int
    previous_liability: Decimal
    required: bool
    exemption_reason: ExemptionReason | None = None
    first_payment: Decimal = ZERO
    second_payment: Decimal = ZERO
    first_deadline: date | None = None
    second_deadline: date | None = None

    @classmethod
    def not_required(
        cls,
        previous_liability: Decimal,
        reason: ExemptionReason,
        tax_year: int,
    ) -> AdvancePaymentDecision:
        return cls(
            tax_year=tax_year,
            previous_liability=previous_liability,
            required=False,
            exemption_reason=reason,
        )

    @classmethod
    def requires(
        cls,
        previous_liability: Decimal,
        instalment: Decimal,
        first_deadline: date,
        second_deadline: date,
        tax_year: int,
    ) -> AdvancePaymentDecision:
        return cls(
            tax_year=tax_year,
            previous_liability=previous_liability,
            required=True,
            first_payment=instalment,
            second_payment=instalment,
            first_deadline=first_deadline,
            second_deadline=second_deadline,
        )

    @property
    def total_payments(self) -> Decimal:
        return self.first_payment + self.second_payment

    def as_dict(self) -> dict[str, Any]:
        return {
            "tax_year": self.tax_year,
            "previous_liability": str(self.previous_liability),
            "required": self.required,
            "exemption_reason": (
                self.exemption_reason.value if self.exemption_reason else None
            ),
            "exemption_description": (
                self.exemption_reason.description if self.exemption_reason else None
            ),
            "first_payment": str(self.first_payment),
            "second_payment": str(self.second_payment),
            "first_deadline": self.first_deadline.isoformat() if self.first_deadline else None,
            "second_deadline": (
                self.second_deadline.isoformat() if self.second_deadline else None
            ),
        }
