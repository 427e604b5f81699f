"""Service-layer helpers for the selfassess backend."""

from selfassess.backend.app.services.calculation_service import (
    calculate_balancing_payment_payload,
    calculate_liability_payload,
    evaluate_advance_payment_payload,
)

from .request_parser import parse_json_payload
from .response_builder import build_calculation_response

__all__ = [
    "build_calculation_response",
    "calculate_balancing_payment_payload",
    "calculate_liability_payload",
    "evaluate_advance_payment_payload",
    "parse_json_payload",
]
