"""Translate failures raised by the API into JSON problem responses.

Each handled exception type maps to an error code and status in
``PROBLEM_RULES``. Lookup walks the exception's MRO, so domain errors that
subclass ``ValueError`` surface as ``validation_error`` unless they carry a
rule of their own.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from flask import Flask, Response, jsonify
from werkzeug.exceptions import BadRequest

from .services.submission import (
    DeclarationNotConfirmedError,
    InvalidTransitionError,
    SagaNotFoundError,
)

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProblemResponse:
    error: str
    status: int
    message: str
    details: Mapping[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {"error": self.error, "message": self.message, **self.details}

    def to_response(self) -> Response:
        response = jsonify(self.as_dict())
        response.status_code = self.status
        response.headers["Cache-Control"] = "no-store"
        return response


@dataclass(frozen=True)
class ProblemRule:
    error: str
    status: int
    details: Callable[[Any], Mapping[str, Any]] | None = None


def _submission_state(error: InvalidTransitionError) -> Mapping[str, Any]:
    return {"state": error.current.value}


PROBLEM_RULES: dict[type[Exception], ProblemRule] = {
    BadRequest: ProblemRule("bad_request", 400),
    ValueError: ProblemRule("validation_error", 400),
    SagaNotFoundError: ProblemRule("not_found", 404),
    InvalidTransitionError: ProblemRule("invalid_transition", 409, _submission_state),
    DeclarationNotConfirmedError: ProblemRule("declaration_not_confirmed", 409),
}


def _rule_for(error: Exception) -> ProblemRule:
    for error_type in type(error).__mro__:
        rule = PROBLEM_RULES.get(error_type)
        if rule is not None:
            return rule
    raise LookupError(f"No problem rule registered for {type(error).__name__}")


def problem_for(error: Exception) -> ProblemResponse:
    """Build the problem response that ``error`` maps to."""

    rule = _rule_for(error)
    if isinstance(error, BadRequest):
        message = error.description or "Invalid request"
    else:
        message = str(error) or rule.error.replace("_", " ")
    details = rule.details(error) if rule.details is not None else {}
    return ProblemResponse(rule.error, rule.status, message, details)


def register_problem_handlers(app: Flask) -> None:
    """Install one error handler per entry in ``PROBLEM_RULES``."""

    def handle_problem(error: Exception) -> Response:
        problem = problem_for(error)
        _LOGGER.info("Request rejected with %s (%s)", problem.error, problem.status)
        return problem.to_response()

    for error_type in PROBLEM_RULES:
        app.register_error_handler(error_type, handle_problem)


__all__ = ["PROBLEM_RULES", "ProblemResponse", "problem_for", "register_problem_handlers"]
