"""Integration tests for the annual submission endpoints."""

from decimal import Decimal
from http import HTTPStatus

import pytest
from flask.testing import FlaskClient

from selfassess.backend.app.services.submission import (
    SandboxTaxAuthority,
    TaxAuthorityRejectedError,
    TaxAuthorityUnavailableError,
)
from selfassess.backend.app.services.submission.gateway import SUBMIT, TRIGGER

NINO = "AB123456C"
BASE = f"/api/v1/submissions/{NINO}/2025"


@pytest.fixture(autouse=True)
def _figures(sandbox: SandboxTaxAuthority) -> None:
    sandbox.register_figures(NINO, 2025, Decimal("60000"))


def test_start_drives_until_confirmation(client: FlaskClient) -> None:
    response = client.post("/api/v1/submissions", json={"identifier": "ab123456c", "tax_year": 2025})

    assert response.status_code == HTTPStatus.OK
    payload = response.get_json()
    assert payload["identifier"] == NINO
    assert payload["state"] == "CALCULATED"
    assert payload["awaiting_confirmation"] is True
    assert payload["next_action"] == "confirm_declaration"
    assert payload["breakdown"]["total_liability"] == "14070.60"


def test_start_with_confirmation_completes(client: FlaskClient) -> None:
    response = client.post(
        "/api/v1/submissions",
        json={"identifier": NINO, "tax_year": 2025, "confirm_declaration": True},
    )

    payload = response.get_json()
    assert payload["state"] == "COMPLETED"
    assert payload["confirmation_reference"].startswith("DEC-")


def test_start_is_idempotent(client: FlaskClient, sandbox: SandboxTaxAuthority) -> None:
    first = client.post("/api/v1/submissions", json={"identifier": NINO, "tax_year": 2025})
    second = client.post("/api/v1/submissions", json={"identifier": NINO, "tax_year": 2025})

    assert first.get_json()["id"] == second.get_json()["id"]
    assert sandbox.calculations_created == 1


def test_start_rejects_invalid_identifier(client: FlaskClient) -> None:
    response = client.post("/api/v1/submissions", json={"identifier": "QQ123456Z", "tax_year": 2025})

    assert response.status_code == HTTPStatus.BAD_REQUEST
    assert "NINO" in response.get_json()["message"]


def test_status_for_unknown_submission_is_404(client: FlaskClient) -> None:
    response = client.get(BASE)

    assert response.status_code == HTTPStatus.NOT_FOUND
    assert response.get_json()["error"] == "not_found"


def test_advance_without_confirmation_is_conflict(client: FlaskClient) -> None:
    client.post("/api/v1/submissions", json={"identifier": NINO, "tax_year": 2025})

    response = client.post(f"{BASE}/advance")

    assert response.status_code == HTTPStatus.CONFLICT
    assert response.get_json()["error"] == "declaration_not_confirmed"
    assert client.get(BASE).get_json()["state"] == "CALCULATED"


def test_advance_with_confirmation_completes(client: FlaskClient) -> None:
    client.post("/api/v1/submissions", json={"identifier": NINO, "tax_year": 2025})

    response = client.post(f"{BASE}/advance", json={"confirm_declaration": True})

    assert response.status_code == HTTPStatus.OK
    assert response.get_json()["state"] == "COMPLETED"


def test_retryable_error_is_visible_in_status(
    client: FlaskClient, sandbox: SandboxTaxAuthority
) -> None:
    sandbox.fail_next(TRIGGER, TaxAuthorityUnavailableError("gateway timeout"))

    response = client.post("/api/v1/submissions", json={"identifier": NINO, "tax_year": 2025})

    payload = response.get_json()
    assert payload["state"] == "INITIATED"
    assert payload["last_error"] == "gateway timeout"
    assert payload["next_action"] == "advance"


def test_retry_endpoint_recovers_failed_declaration(
    client: FlaskClient, sandbox: SandboxTaxAuthority
) -> None:
    client.post("/api/v1/submissions", json={"identifier": NINO, "tax_year": 2025})
    sandbox.fail_next(SUBMIT, TaxAuthorityRejectedError("try later", code="SERVICE_CLOSED"))
    failed = client.post(f"{BASE}/advance", json={"confirm_declaration": True}).get_json()
    assert failed["state"] == "FAILED"
    assert failed["next_action"] == "retry"

    response = client.post(f"{BASE}/retry")

    assert response.status_code == HTTPStatus.OK
    assert response.get_json()["state"] == "COMPLETED"
    assert sandbox.declarations_created == 1


def test_retry_on_healthy_submission_is_conflict(client: FlaskClient) -> None:
    client.post("/api/v1/submissions", json={"identifier": NINO, "tax_year": 2025})

    response = client.post(f"{BASE}/retry")

    assert response.status_code == HTTPStatus.CONFLICT
    assert response.get_json()["state"] == "CALCULATED"


def test_advance_rejects_unknown_fields(client: FlaskClient) -> None:
    client.post("/api/v1/submissions", json={"identifier": NINO, "tax_year": 2025})

    response = client.post(f"{BASE}/advance", json={"confirm": True})

    assert response.status_code == HTTPStatus.BAD_REQUEST
