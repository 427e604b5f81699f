"""Test configuration utilities and shared fixtures."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Ensure the ``src`` directory is importable when tests are executed without an
# editable install.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

import pytest  # noqa: E402
from flask import Flask  # noqa: E402
from flask.testing import FlaskClient  # noqa: E402

from selfassess.backend.app import create_app  # noqa: E402
from selfassess.backend.app.services.submission import (  # noqa: E402
    AnnualSubmissionService,
    InMemorySagaRepository,
    SagaRepository,
    SandboxTaxAuthority,
    SQLiteSagaRepository,
)
from selfassess.backend.config.year_config import RateTable  # noqa: E402

VALID_NINO = "AB123456C"


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.current = start

    def advance(self, delta: timedelta) -> None:
        self.current += delta

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture()
def rate_table() -> RateTable:
    return RateTable()


@pytest.fixture()
def sandbox(rate_table: RateTable) -> SandboxTaxAuthority:
    return SandboxTaxAuthority(rate_table)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 5, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture(params=["memory", "sqlite"])
def repository(request: pytest.FixtureRequest, tmp_path: Path) -> SagaRepository:
    """Run saga-backed tests against both stores."""

    if request.param == "memory":
        return InMemorySagaRepository()
    return SQLiteSagaRepository(tmp_path / "sagas.db")


@pytest.fixture()
def submission_service(
    repository: SagaRepository,
    sandbox: SandboxTaxAuthority,
    clock: FakeClock,
) -> AnnualSubmissionService:
    return AnnualSubmissionService(repository, sandbox, clock=clock)


@pytest.fixture()
def app(
    rate_table: RateTable,
    repository: SagaRepository,
    sandbox: SandboxTaxAuthority,
) -> Flask:
    """Return a configured Flask application for integration tests."""

    application = create_app(rate_table=rate_table, repository=repository, gateway=sandbox)
    application.config.update(TESTING=True)
    return application


@pytest.fixture()
def client(app: Flask) -> FlaskClient:
    """Provide a test client bound to the configured Flask app."""

    return app.test_client()
