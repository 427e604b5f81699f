"""Domain-specific calculation helpers."""

from .income_tax import calculate_income_tax, tapered_personal_allowance
from .liability import build_liability, effective_rate
from .national_insurance import calculate_class2, calculate_class4
from .payments_on_account import (
    InvalidPercentageError,
    calculate_balancing_payment,
    evaluate_advance_payment,
    payment_deadlines,
)
from .utils import (
    InvalidAmountError,
    allocate_bands,
    format_percentage,
    round_currency,
    round_rate,
)

__all__ = [
    "InvalidAmountError",
    "InvalidPercentageError",
    "allocate_bands",
    "build_liability",
    "calculate_balancing_payment",
    "calculate_class2",
    "calculate_class4",
    "calculate_income_tax",
    "effective_rate",
    "evaluate_advance_payment",
    "format_percentage",
    "payment_deadlines",
    "round_currency",
    "round_rate",
    "tapered_personal_allowance",
]
