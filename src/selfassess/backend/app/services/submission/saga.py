"""State and record types for the annual submission workflow."""

from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from selfassess.backend.app.models import LiabilityBreakdown, TaxYear


class SagaState(str, enum.Enum):
    INITIATED = "INITIATED"
    CALCULATING = "CALCULATING"
    CALCULATED = "CALCULATED"
    DECLARING = "DECLARING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES

    @property
    def position(self) -> int:
        """Index along the happy path; ``FAILED`` sits off it at ``-1``."""

        try:
            return HAPPY_PATH.index(self)
        except ValueError:
            return -1


HAPPY_PATH: tuple[SagaState, ...] = (
    SagaState.INITIATED,
    SagaState.CALCULATING,
    SagaState.CALCULATED,
    SagaState.DECLARING,
    SagaState.COMPLETED,
)

TERMINAL_STATES = frozenset({SagaState.COMPLETED, SagaState.FAILED})

ALLOWED_TRANSITIONS: dict[SagaState, frozenset[SagaState]] = {
    SagaState.INITIATED: frozenset({SagaState.CALCULATING, SagaState.FAILED}),
    SagaState.CALCULATING: frozenset({SagaState.CALCULATED, SagaState.FAILED}),
    SagaState.CALCULATED: frozenset({SagaState.DECLARING, SagaState.FAILED}),
    SagaState.DECLARING: frozenset({SagaState.COMPLETED, SagaState.FAILED}),
    SagaState.COMPLETED: frozenset(),
    SagaState.FAILED: frozenset(),
}


class InvalidTransitionError(RuntimeError):
    """Raised when a transition is attempted from a state that forbids it."""

    def __init__(self, current: SagaState, attempted: SagaState | str) -> None:
        attempted_label = attempted.value if isinstance(attempted, SagaState) else attempted
        super().__init__(
            f"Cannot run transition '{attempted_label}' while the submission is {current.value}"
        )
        self.current = current
        self.attempted = attempted


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SubmissionSaga:
    """Durable record of one annual submission.

    Instances are immutable; every ``with_*`` helper returns the next version
    of the record with ``version`` bumped, ready for a compare-and-update
    against the version it was derived from.
    """

    id: str
    identifier: str
    tax_year_start: int
    state: SagaState
    created_at: datetime
    updated_at: datetime
    calculation_id: str | None = None
    breakdown: LiabilityBreakdown | None = None
    confirmation_reference: str | None = None
    last_error: str | None = None
    failed_state: SagaState | None = None
    version: int = 0

    @classmethod
    def create(cls, identifier: str, tax_year: TaxYear, now: datetime | None = None) -> SubmissionSaga:
        timestamp = now or utcnow()
        return cls(
            id=uuid4().hex,
            identifier=identifier,
            tax_year_start=tax_year.start_year,
            state=SagaState.INITIATED,
            created_at=timestamp,
            updated_at=timestamp,
        )

    @property
    def tax_year(self) -> TaxYear:
        return TaxYear(self.tax_year_start)

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def awaiting_confirmation(self) -> bool:
        return self.state is SagaState.CALCULATED

    def _move(self, target: SagaState, now: datetime, **changes: Any) -> SubmissionSaga:
        if target not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransitionError(self.state, target)
        return replace(
            self,
            state=target,
            updated_at=now,
            version=self.version + 1,
            last_error=None,
            **changes,
        )

    def with_calculating(self, calculation_id: str, now: datetime) -> SubmissionSaga:
        return self._move(SagaState.CALCULATING, now, calculation_id=calculation_id)

    def with_calculated(self, breakdown: LiabilityBreakdown, now: datetime) -> SubmissionSaga:
        return self._move(SagaState.CALCULATED, now, breakdown=breakdown)

    def with_declaring(self, now: datetime) -> SubmissionSaga:
        return self._move(SagaState.DECLARING, now)

    def with_completed(self, confirmation_reference: str, now: datetime) -> SubmissionSaga:
        return self._move(
            SagaState.COMPLETED, now, confirmation_reference=confirmation_reference
        )

    def with_failed(self, message: str, now: datetime) -> SubmissionSaga:
        failed = self._move(SagaState.FAILED, now, failed_state=self.state)
        return replace(failed, last_error=message)

    def with_error(self, message: str, now: datetime) -> SubmissionSaga:
        """Record a retryable error without leaving the current state."""

        return replace(self, last_error=message, updated_at=now, version=self.version + 1)

    def with_retry(self, now: datetime) -> SubmissionSaga:
        """Return to the state whose outgoing transition failed."""

        if self.state is not SagaState.FAILED or self.failed_state is None:
            raise InvalidTransitionError(self.state, "retry")
        return replace(
            self,
            state=self.failed_state,
            failed_state=None,
            last_error=None,
            updated_at=now,
            version=self.version + 1,
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "identifier": self.identifier,
            "tax_year": self.tax_year_start,
            "tax_year_label": self.tax_year.label,
            "state": self.state.value,
            "calculation_id": self.calculation_id,
            "breakdown": self.breakdown.as_dict() if self.breakdown else None,
            "confirmation_reference": self.confirmation_reference,
            "last_error": self.last_error,
            "failed_state": self.failed_state.value if self.failed_state else None,
            "awaiting_confirmation": self.awaiting_confirmation,
            "version": self.version,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


__all__ = [
    "ALLOWED_TRANSITIONS",
    "HAPPY_PATH",
    "InvalidTransitionError",
    "SagaState",
    "SubmissionSaga",
    "TERMINAL_STATES",
    "utcnow",
]
