"""REST endpoints for liability and advance-payment calculations."""

from __future__ import annotations

from flask import Blueprint, Response, request

from selfassess.backend.app.extensions import get_services
from selfassess.backend.services import (
    build_calculation_response,
    calculate_balancing_payment_payload,
    calculate_liability_payload,
    evaluate_advance_payment_payload,
    parse_json_payload,
)

blueprint = Blueprint("calculations", __name__, url_prefix="/api/v1")


@blueprint.post("/liability")
def create_liability() -> Response:
    """Compute the liability breakdown for the submitted profit figure."""

    payload = parse_json_payload(request)
    result = calculate_liability_payload(payload, rate_table=get_services().rate_table)

    return build_calculation_response(result)


@blueprint.post("/advance-payments")
def create_advance_payment_decision() -> Response:
    payload = parse_json_payload(request)
    return build_calculation_response(evaluate_advance_payment_payload(payload))


@blueprint.post("/advance-payments/balancing")
def create_balancing_payment() -> Response:
    payload = parse_json_payload(request)
    return build_calculation_response(calculate_balancing_payment_payload(payload))
