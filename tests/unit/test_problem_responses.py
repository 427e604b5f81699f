"""Mapping of API failures onto problem responses."""

from __future__ import annotations

import pytest
from flask import Flask
from werkzeug.exceptions import BadRequest

from selfassess.backend.app.http import problem_for
from selfassess.backend.app.services.calculators import InvalidPercentageError
from selfassess.backend.app.services.identifiers import InvalidIdentifierError
from selfassess.backend.app.services.submission import (
    DeclarationNotConfirmedError,
    InvalidTransitionError,
    SagaNotFoundError,
    SagaState,
)


@pytest.mark.parametrize(
    ("error", "code", "status"),
    [
        (InvalidPercentageError("out of range"), "validation_error", 400),
        (InvalidIdentifierError("bad NINO"), "validation_error", 400),
        (SagaNotFoundError("missing"), "not_found", 404),
        (DeclarationNotConfirmedError("confirm first"), "declaration_not_confirmed", 409),
    ],
)
def test_domain_errors_map_through_their_base_classes(error, code, status) -> None:
    problem = problem_for(error)

    assert (problem.error, problem.status) == (code, status)
    assert problem.message == str(error)


def test_invalid_transition_reports_current_state() -> None:
    problem = problem_for(InvalidTransitionError(SagaState.CALCULATED, "retry"))

    assert problem.status == 409
    assert problem.as_dict()["state"] == "CALCULATED"


def test_bad_request_uses_description() -> None:
    problem = problem_for(BadRequest("Request body must be JSON"))

    assert problem.as_dict() == {"error": "bad_request", "message": "Request body must be JSON"}


def test_unmapped_errors_are_not_swallowed() -> None:
    with pytest.raises(LookupError):
        problem_for(RuntimeError("boom"))


def test_problem_response_is_uncached(app: Flask) -> None:
    with app.app_context():
        response = problem_for(SagaNotFoundError("missing")).to_response()

    assert response.status_code == 404
    assert response.headers["Cache-Control"] == "no-store"
    assert response.get_json() == {"error": "not_found", "message": "missing"}
