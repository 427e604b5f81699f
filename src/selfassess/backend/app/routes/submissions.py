"""Endpoints that start, inspect, and advance annual submissions."""

from __future__ import annotations

from typing import Any

from flask import Blueprint, jsonify, request
from pydantic import ValidationError

from selfassess.backend.app.extensions import get_services
from selfassess.backend.app.models import (
    SubmissionAdvanceRequest,
    SubmissionRequest,
    format_validation_error,
)
from selfassess.backend.services import parse_json_payload

blueprint = Blueprint("submissions", __name__, url_prefix="/api/v1/submissions")


def _confirmation_flag() -> bool:
    payload = parse_json_payload(request, allow_empty=True)
    try:
        model = SubmissionAdvanceRequest.model_validate(payload)
    except ValidationError as exc:
        raise ValueError(format_validation_error(exc)) from exc
    return model.confirm_declaration


@blueprint.post("")
def start_submission() -> tuple[Any, int]:
    """Start (or resume) a submission and drive it as far as it can go."""

    payload = parse_json_payload(request)
    try:
        submission = SubmissionRequest.model_validate(payload)
    except ValidationError as exc:
        raise ValueError(format_validation_error(exc)) from exc

    service = get_services().submissions
    saga = service.start_and_drive(
        submission.identifier,
        submission.tax_year,
        confirm_declaration=submission.confirm_declaration,
    )
    return jsonify(service.status(saga.identifier, saga.tax_year_start)), 200


@blueprint.get("/<identifier>/<int:year>")
def get_submission(identifier: str, year: int) -> tuple[Any, int]:
    service = get_services().submissions
    return jsonify(service.status(identifier, year)), 200


@blueprint.post("/<identifier>/<int:year>/advance")
def advance_submission(identifier: str, year: int) -> tuple[Any, int]:
    """Run the single next transition for the submission."""

    service = get_services().submissions
    saga = service.advance(identifier, year, confirm_declaration=_confirmation_flag())
    return jsonify(service.status(saga.identifier, saga.tax_year_start)), 200


@blueprint.post("/<identifier>/<int:year>/retry")
def retry_submission(identifier: str, year: int) -> tuple[Any, int]:
    """Re-run the transition that moved the submission to FAILED."""

    service = get_services().submissions
    saga = service.retry_failed(identifier, year, confirm_declaration=_confirmation_flag())
    return jsonify(service.status(saga.identifier, saga.tax_year_start)), 200
