"""Pydantic models describing the public API surface."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

__all__ = [
    "MAX_AMOUNT",
    "AdvancePaymentRequest",
    "BalancingPaymentRequest",
    "LiabilityRequest",
    "SubmissionAdvanceRequest",
    "SubmissionRequest",
    "format_validation_error",
]

# Largest amount the calculators accept; keeps pence arithmetic inside the
# default 28-digit decimal context.
MAX_AMOUNT = Decimal("1000000000000")


class LiabilityRequest(BaseModel):
    """Inputs for a full liability breakdown."""

    model_config = ConfigDict(extra="forbid")

    tax_year: int = Field(..., ge=1990, le=2100)
    profit: Decimal | None = Field(default=None, le=MAX_AMOUNT)
    date_of_birth: date | None = None
    voluntary_class2: bool = False


class AdvancePaymentRequest(BaseModel):
    """Inputs for the advance-payment check.

    ``withheld_percent`` is deliberately unconstrained here; the calculator
    owns the 0-100 rule and reports violations itself.
    """

    model_config = ConfigDict(extra="forbid")

    tax_year: int = Field(..., ge=1990, le=2100)
    previous_liability: Decimal | None = Field(default=None, le=MAX_AMOUNT)
    first_year: bool = False
    withheld_percent: Decimal | None = None


class BalancingPaymentRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    current_liability: Decimal | None = Field(default=None, le=MAX_AMOUNT)
    payments_made: Decimal | None = Field(default=None, le=MAX_AMOUNT)


class SubmissionRequest(BaseModel):
    """Identity of an annual submission."""

    model_config = ConfigDict(extra="forbid")

    identifier: str = Field(..., min_length=1, max_length=32)
    tax_year: int = Field(..., ge=1990, le=2100)
    confirm_declaration: bool = False

    @field_validator("identifier")
    @classmethod
    def _strip_identifier(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("identifier cannot be blank")
        return stripped


class SubmissionAdvanceRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    confirm_declaration: bool = False


def format_validation_error(error: ValidationError) -> str:
    """Return a concise human-readable description of validation issues."""

    messages: list[str] = []
    for issue in error.errors():
        location = ".".join(str(part) for part in issue.get("loc", ()))
        message = issue.get("msg", "Invalid value")
        if location:
            messages.append(f"{location}: {message}")
        else:
            messages.append(message)

    details = "; ".join(messages) if messages else str(error)
    return f"Invalid request payload: {details}"
