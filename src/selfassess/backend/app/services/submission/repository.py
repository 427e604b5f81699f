"""Durable stores for submission sagas.

Both stores enforce one saga per (identifier, tax year) and only accept an
update when the stored state and version still match what the caller read.
Neither exposes a delete: records are kept for the statutory retention
period and removed out of band.
"""

from __future__ import annotations

import json
import os
import sqlite3
from datetime import datetime, timezone
from threading import Lock
from typing import Protocol

from selfassess.backend.app.models import LiabilityBreakdown

from .saga import SagaState, SubmissionSaga


class SagaNotFoundError(LookupError):
    """Raised when no saga exists for the requested identity."""


class SagaAlreadyExistsError(RuntimeError):
    """Raised when creating a second saga for the same identity."""


class ConcurrentUpdateError(RuntimeError):
    """Raised when the stored saga moved on since the caller read it."""


class SagaRepository(Protocol):
    def create(self, saga: SubmissionSaga) -> SubmissionSaga: ...

    def get(self, saga_id: str) -> SubmissionSaga: ...

    def find(self, identifier: str, tax_year_start: int) -> SubmissionSaga | None: ...

    def compare_and_update(
        self,
        saga: SubmissionSaga,
        expected_state: SagaState,
        expected_version: int,
    ) -> SubmissionSaga: ...

    def list_by_state(self, state: SagaState) -> list[SubmissionSaga]: ...


class InMemorySagaRepository:
    """Thread-safe in-memory saga storage."""

    def __init__(self) -> None:
        self._records: dict[str, SubmissionSaga] = {}
        self._index: dict[tuple[str, int], str] = {}
        self._lock = Lock()

    def create(self, saga: SubmissionSaga) -> SubmissionSaga:
        key = (saga.identifier, saga.tax_year_start)
        with self._lock:
            if key in self._index:
                raise SagaAlreadyExistsError(
                    f"A submission already exists for tax year {saga.tax_year_start}"
                )
            self._records[saga.id] = saga
            self._index[key] = saga.id
        return saga

    def get(self, saga_id: str) -> SubmissionSaga:
        with self._lock:
            record = self._records.get(saga_id)
        if record is None:
            raise SagaNotFoundError(saga_id)
        return record

    def find(self, identifier: str, tax_year_start: int) -> SubmissionSaga | None:
        with self._lock:
            saga_id = self._index.get((identifier, tax_year_start))
            return self._records.get(saga_id) if saga_id else None

    def compare_and_update(
        self,
        saga: SubmissionSaga,
        expected_state: SagaState,
        expected_version: int,
    ) -> SubmissionSaga:
        with self._lock:
            current = self._records.get(saga.id)
            if current is None:
                raise SagaNotFoundError(saga.id)
            if current.state is not expected_state or current.version != expected_version:
                raise ConcurrentUpdateError(
                    f"Saga {saga.id} is at {current.state.value} v{current.version}, "
                    f"expected {expected_state.value} v{expected_version}"
                )
            self._records[saga.id] = saga
        return saga

    def list_by_state(self, state: SagaState) -> list[SubmissionSaga]:
        with self._lock:
            matches = [record for record in self._records.values() if record.state is state]
        return sorted(matches, key=lambda record: record.created_at)


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class SQLiteSagaRepository:
    """SQLite-backed saga storage."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = str(path)
        self._lock = Lock()
        self._initialise()

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._path, check_same_thread=False)
        connection.execute("PRAGMA journal_mode=WAL")
        connection.execute("PRAGMA synchronous=NORMAL")
        connection.row_factory = sqlite3.Row
        return connection

    def _initialise(self) -> None:
        with self._connect() as connection:
            connection.execute(
                """
                CREATE TABLE IF NOT EXISTS submission_sagas (
                    id TEXT PRIMARY KEY,
                    identifier TEXT NOT NULL,
                    tax_year_start INTEGER NOT NULL,
                    state TEXT NOT NULL,
                    calculation_id TEXT,
                    breakdown TEXT,
                    confirmation_reference TEXT,
                    last_error TEXT,
                    failed_state TEXT,
                    version INTEGER NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            connection.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS submission_sagas_identity"
                " ON submission_sagas (identifier, tax_year_start)"
            )

    @staticmethod
    def _decode_record(row: sqlite3.Row) -> SubmissionSaga:
        breakdown = None
        if row["breakdown"]:
            breakdown = LiabilityBreakdown.from_dict(json.loads(row["breakdown"]))
        failed_state = SagaState(row["failed_state"]) if row["failed_state"] else None
        return SubmissionSaga(
            id=row["id"],
            identifier=row["identifier"],
            tax_year_start=int(row["tax_year_start"]),
            state=SagaState(row["state"]),
            calculation_id=row["calculation_id"],
            breakdown=breakdown,
            confirmation_reference=row["confirmation_reference"],
            last_error=row["last_error"],
            failed_state=failed_state,
            version=int(row["version"]),
            created_at=_parse_timestamp(row["created_at"]),
            updated_at=_parse_timestamp(row["updated_at"]),
        )

    @staticmethod
    def _encode_breakdown(saga: SubmissionSaga) -> str | None:
        if saga.breakdown is None:
            return None
        return json.dumps(saga.breakdown.as_dict())

    def create(self, saga: SubmissionSaga) -> SubmissionSaga:
        with self._lock:
            try:
                with self._connect() as connection:
                    connection.execute(
                        "INSERT INTO submission_sagas (id, identifier, tax_year_start, state,"
                        " calculation_id, breakdown, confirmation_reference, last_error,"
                        " failed_state, version, created_at, updated_at)"
                        " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                        (
                            saga.id,
                            saga.identifier,
                            saga.tax_year_start,
                            saga.state.value,
                            saga.calculation_id,
                            self._encode_breakdown(saga),
                            saga.confirmation_reference,
                            saga.last_error,
                            saga.failed_state.value if saga.failed_state else None,
                            saga.version,
                            saga.created_at.isoformat(),
                            saga.updated_at.isoformat(),
                        ),
                    )
            except sqlite3.IntegrityError as exc:
                raise SagaAlreadyExistsError(
                    f"A submission already exists for tax year {saga.tax_year_start}"
                ) from exc
        return saga

    def get(self, saga_id: str) -> SubmissionSaga:
        with self._lock:
            with self._connect() as connection:
                row = connection.execute(
                    "SELECT * FROM submission_sagas WHERE id = ?",
                    (saga_id,),
                ).fetchone()
        if row is None:
            raise SagaNotFoundError(saga_id)
        return self._decode_record(row)

    def find(self, identifier: str, tax_year_start: int) -> SubmissionSaga | None:
        with self._lock:
            with self._connect() as connection:
                row = connection.execute(
                    "SELECT * FROM submission_sagas WHERE identifier = ? AND tax_year_start = ?",
                    (identifier, tax_year_start),
                ).fetchone()
        return self._decode_record(row) if row is not None else None

    def compare_and_update(
        self,
        saga: SubmissionSaga,
        expected_state: SagaState,
        expected_version: int,
    ) -> SubmissionSaga:
        with self._lock:
            with self._connect() as connection:
                cursor = connection.execute(
                    "UPDATE submission_sagas SET state = ?, calculation_id = ?, breakdown = ?,"
                    " confirmation_reference = ?, last_error = ?, failed_state = ?,"
                    " version = ?, updated_at = ?"
                    " WHERE id = ? AND state = ? AND version = ?",
                    (
                        saga.state.value,
                        saga.calculation_id,
                        self._encode_breakdown(saga),
                        saga.confirmation_reference,
                        saga.last_error,
                        saga.failed_state.value if saga.failed_state else None,
                        saga.version,
                        saga.updated_at.isoformat(),
                        saga.id,
                        expected_state.value,
                        expected_version,
                    ),
                )
                if cursor.rowcount == 0:
                    exists = connection.execute(
                        "SELECT 1 FROM submission_sagas WHERE id = ?",
                        (saga.id,),
                    ).fetchone()
                    if exists is None:
                        raise SagaNotFoundError(saga.id)
                    raise ConcurrentUpdateError(
                        f"Saga {saga.id} changed since {expected_state.value} v{expected_version}"
                    )
        return saga

    def list_by_state(self, state: SagaState) -> list[SubmissionSaga]:
        with self._lock:
            with self._connect() as connection:
                rows = connection.execute(
                    "SELECT * FROM submission_sagas WHERE state = ? ORDER BY created_at ASC",
                    (state.value,),
                ).fetchall()
        return [self._decode_record(row) for row in rows]


__all__ = [
    "ConcurrentUpdateError",
    "InMemorySagaRepository",
    "SQLiteSagaRepository",
    "SagaAlreadyExistsError",
    "SagaNotFoundError",
    "SagaRepository",
]
