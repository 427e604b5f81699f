"""Shared contract for the in-memory and SQLite saga stores."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

import pytest

from selfassess.backend.app.models import TaxYear
from selfassess.backend.app.services.calculators import build_liability
from selfassess.backend.app.services.submission import (
    ConcurrentUpdateError,
    InMemorySagaRepository,
    InvalidTransitionError,
    SQLiteSagaRepository,
    SagaAlreadyExistsError,
    SagaNotFoundError,
    SagaState,
    SubmissionSaga,
)
from selfassess.backend.config.year_config import RateTable

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(params=["memory", "sqlite"])
def store(request: pytest.FixtureRequest, tmp_path: Path):
    if request.param == "memory":
        return InMemorySagaRepository()
    return SQLiteSagaRepository(tmp_path / "sagas.db")


def _new_saga(identifier: str = "AB123456C", year: int = 2025) -> SubmissionSaga:
    return SubmissionSaga.create(identifier, TaxYear(year), now=NOW)


def test_create_and_find(store) -> None:
    saga = store.create(_new_saga())

    assert store.get(saga.id) == saga
    assert store.find("AB123456C", 2025) == saga
    assert store.find("AB123456C", 2024) is None


def test_identity_is_unique(store) -> None:
    store.create(_new_saga())

    with pytest.raises(SagaAlreadyExistsError):
        store.create(_new_saga())

    store.create(_new_saga(year=2024))


def test_get_unknown_raises(store) -> None:
    with pytest.raises(SagaNotFoundError):
        store.get("missing")


def test_compare_and_update_checks_state_and_version(store) -> None:
    saga = store.create(_new_saga())
    moved = saga.with_calculating("calc-1", NOW)

    store.compare_and_update(moved, saga.state, saga.version)
    assert store.get(saga.id).state is SagaState.CALCULATING

    with pytest.raises(ConcurrentUpdateError):
        store.compare_and_update(moved, saga.state, saga.version)


def test_compare_and_update_unknown_saga(store) -> None:
    saga = _new_saga()

    with pytest.raises(SagaNotFoundError):
        store.compare_and_update(saga.with_calculating("calc-1", NOW), saga.state, saga.version)


def test_only_one_concurrent_update_wins(store) -> None:
    saga = store.create(_new_saga())

    def attempt(index: int) -> bool:
        candidate = saga.with_calculating(f"calc-{index}", NOW)
        try:
            store.compare_and_update(candidate, saga.state, saga.version)
        except ConcurrentUpdateError:
            return False
        return True

    with ThreadPoolExecutor(max_workers=4) as pool:
        outcomes = list(pool.map(attempt, range(8)))

    assert outcomes.count(True) == 1


def test_breakdown_and_failure_details_survive_storage(store) -> None:
    saga = store.create(_new_saga())
    breakdown = build_liability(
        Decimal("60000"), RateTable().rates(2025), TaxYear(2025)
    )
    calculating = saga.with_calculating("calc-1", NOW)
    store.compare_and_update(calculating, saga.state, saga.version)
    calculated = calculating.with_calculated(breakdown, NOW)
    store.compare_and_update(calculated, calculating.state, calculating.version)
    failed = calculated.with_failed("rejected", NOW)
    store.compare_and_update(failed, calculated.state, calculated.version)

    loaded = store.get(saga.id)

    assert loaded.breakdown == breakdown
    assert loaded.failed_state is SagaState.CALCULATED
    assert loaded.last_error == "rejected"
    assert loaded.version == 3
    assert loaded.updated_at == NOW


def test_list_by_state(store) -> None:
    first = store.create(_new_saga())
    store.create(_new_saga(identifier="CE123456A"))
    store.compare_and_update(first.with_calculating("calc-1", NOW), first.state, first.version)

    assert [saga.identifier for saga in store.list_by_state(SagaState.INITIATED)] == ["CE123456A"]
    assert [saga.id for saga in store.list_by_state(SagaState.CALCULATING)] == [first.id]
    assert store.list_by_state(SagaState.COMPLETED) == []


def test_stores_expose_no_delete(store) -> None:
    assert not hasattr(store, "delete")


def test_sqlite_records_survive_new_instance(tmp_path: Path) -> None:
    path = tmp_path / "sagas.db"
    saga = SQLiteSagaRepository(path).create(_new_saga())

    fresh = SQLiteSagaRepository(path)

    assert fresh.find("AB123456C", 2025) == saga


def test_saga_rejects_skipped_transition() -> None:
    saga = _new_saga()

    with pytest.raises(InvalidTransitionError):
        saga.with_declaring(NOW)


def test_terminal_saga_cannot_fail_again() -> None:
    failed = _new_saga().with_failed("boom", NOW)

    assert failed.is_terminal
    with pytest.raises(InvalidTransitionError):
        failed.with_failed("again", NOW)


def test_saga_as_dict_reports_progress() -> None:
    payload = _new_saga().as_dict()

    assert payload["state"] == "INITIATED"
    assert payload["tax_year_label"] == "2025/26"
    assert payload["breakdown"] is None
    assert payload["awaiting_confirmation"] is False
