"""Drive annual submissions through their persisted state machine.

Every call loads the saga, performs at most one external call, and persists
the outcome with a compare-and-update keyed on the state and version it
read. After a restart the driver simply reloads the saga and re-attempts
the transition leading out of its current state; earlier transitions are
never replayed.

::

    INITIATED -> CALCULATING -> CALCULATED -> DECLARING -> COMPLETED
         \\             \\             \\            \\
          +-------------+-------------+------------+--> FAILED
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable

from selfassess.backend.app.models import LiabilityBreakdown, TaxYear

from ..identifiers import mask_identifier, validate_nino
from .gateway import TaxAuthorityError, TaxAuthorityGateway
from .repository import (
    ConcurrentUpdateError,
    SagaAlreadyExistsError,
    SagaNotFoundError,
    SagaRepository,
)
from .saga import InvalidTransitionError, SagaState, SubmissionSaga, utcnow

_LOGGER = logging.getLogger(__name__)


class DeclarationNotConfirmedError(RuntimeError):
    """Raised when the final declaration is attempted without user consent."""


class SubmissionValidationError(ValueError):
    """Local checks rejected data needed to continue the submission."""


class AnnualSubmissionService:
    """Coordinates the repository and the tax authority for each transition."""

    def __init__(
        self,
        repository: SagaRepository,
        gateway: TaxAuthorityGateway,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repository = repository
        self._gateway = gateway
        self._clock = clock or utcnow

    @property
    def repository(self) -> SagaRepository:
        return self._repository

    def start_or_resume(self, identifier: str, tax_year: TaxYear | int) -> SubmissionSaga:
        """Return the saga for this identity, creating it when absent.

        Existing sagas are returned whatever their state, completed ones
        included. When two callers race to create the same saga the loser
        receives the winner's record.
        """

        nino = validate_nino(identifier)
        year = _as_tax_year(tax_year)

        existing = self._repository.find(nino, year.start_year)
        if existing is not None:
            _LOGGER.info(
                "Resuming submission %s for %s tax year %s in state %s",
                existing.id,
                mask_identifier(nino),
                year.label,
                existing.state.value,
            )
            return existing

        saga = SubmissionSaga.create(nino, year, now=self._clock())
        try:
            self._repository.create(saga)
        except SagaAlreadyExistsError:
            winner = self._repository.find(nino, year.start_year)
            if winner is None:  # pragma: no cover - unique index guarantees a row
                raise
            return winner

        _LOGGER.info(
            "Created submission %s for %s tax year %s",
            saga.id,
            mask_identifier(nino),
            year.label,
        )
        return saga

    def get(self, identifier: str, tax_year: TaxYear | int) -> SubmissionSaga:
        """Load an existing saga or raise ``SagaNotFoundError``."""

        nino = validate_nino(identifier)
        year = _as_tax_year(tax_year)
        saga = self._repository.find(nino, year.start_year)
        if saga is None:
            raise SagaNotFoundError(f"No submission found for tax year {year.label}")
        return saga

    def advance(
        self,
        identifier: str,
        tax_year: TaxYear | int,
        *,
        confirm_declaration: bool = False,
    ) -> SubmissionSaga:
        """Run the single transition leading out of the current state.

        When another caller moves the saga first, its stored record is
        returned and no further call is made to the tax authority.
        """

        saga, _ = self._step(self.get(identifier, tax_year), confirm_declaration)
        return saga

    def run_transition(
        self,
        identifier: str,
        tax_year: TaxYear | int,
        from_state: SagaState | str,
        *,
        confirm_declaration: bool = False,
    ) -> SubmissionSaga:
        """Run the transition leading out of ``from_state``.

        A saga already past ``from_state`` is returned unchanged. A saga that
        has not reached it yet is moved to ``FAILED`` and
        ``InvalidTransitionError`` is raised.
        """

        saga = self.get(identifier, tax_year)
        requested = SagaState(from_state)

        if saga.state is SagaState.FAILED:
            raise InvalidTransitionError(saga.state, requested)

        if requested.is_terminal:
            error = InvalidTransitionError(saga.state, requested)
            if not saga.is_terminal:
                self._fail(saga, str(error))
            raise error

        if saga.state is SagaState.COMPLETED or saga.state.position > requested.position:
            _LOGGER.info(
                "Submission %s already past %s (now %s); nothing to do",
                saga.id,
                requested.value,
                saga.state.value,
            )
            return saga

        if saga.state.position < requested.position:
            error = InvalidTransitionError(saga.state, requested)
            self._fail(saga, str(error))
            raise error

        saga, _ = self._step(saga, confirm_declaration)
        return saga

    def retry_failed(
        self,
        identifier: str,
        tax_year: TaxYear | int,
        *,
        confirm_declaration: bool = False,
    ) -> SubmissionSaga:
        """Re-run only the transition that failed.

        The saga returns to the state it failed in before the transition is
        attempted again. Any state past ``INITIATED`` needs the stored
        calculation id, since that id is what makes the retry idempotent.
        """

        saga = self.get(identifier, tax_year)
        if saga.state is not SagaState.FAILED or saga.failed_state is None:
            raise InvalidTransitionError(saga.state, "retry")

        if saga.failed_state is not SagaState.INITIATED and not saga.calculation_id:
            raise SubmissionValidationError(
                "Cannot retry without the calculation id recorded for this submission"
            )

        restored, applied = self._save(saga, saga.with_retry(self._clock()))
        if not applied:
            return restored

        _LOGGER.info("Retrying submission %s from %s", restored.id, restored.state.value)
        if restored.awaiting_confirmation and not confirm_declaration:
            return restored
        restored, _ = self._step(restored, confirm_declaration)
        return restored

    def drive(
        self,
        identifier: str,
        tax_year: TaxYear | int,
        *,
        confirm_declaration: bool = False,
    ) -> SubmissionSaga:
        """Advance until terminal, waiting for confirmation, or stuck on an error.

        Driving stops as soon as a write loses to a concurrent caller; that
        caller owns the transitions that follow.
        """

        saga = self.get(identifier, tax_year)
        while not saga.is_terminal:
            if saga.awaiting_confirmation and not confirm_declaration:
                break
            previous_state = saga.state
            saga, applied = self._step(saga, confirm_declaration)
            if not applied or saga.state is previous_state:
                break
        return saga

    def start_and_drive(
        self,
        identifier: str,
        tax_year: TaxYear | int,
        *,
        confirm_declaration: bool = False,
    ) -> SubmissionSaga:
        saga = self.start_or_resume(identifier, tax_year)
        return self.drive(
            saga.identifier, saga.tax_year_start, confirm_declaration=confirm_declaration
        )

    def status(self, identifier: str, tax_year: TaxYear | int) -> dict[str, Any]:
        """Summarise where the submission stands and why it may be stuck."""

        saga = self.get(identifier, tax_year)
        payload = saga.as_dict()
        payload["next_action"] = _next_action(saga)
        return payload

    def pending(self, state: SagaState | str) -> list[SubmissionSaga]:
        """List sagas sitting in ``state``, oldest first, for resumption sweeps."""

        return self._repository.list_by_state(SagaState(state))

    def _step(
        self, saga: SubmissionSaga, confirm_declaration: bool
    ) -> tuple[SubmissionSaga, bool]:
        """Run one transition; the flag is ``False`` when another caller won."""

        _LOGGER.info("Executing next step for submission %s in state %s", saga.id, saga.state.value)

        if saga.state is SagaState.INITIATED:
            return self._trigger_calculation(saga)
        if saga.state is SagaState.CALCULATING:
            return self._fetch_calculation(saga)
        if saga.state is SagaState.CALCULATED:
            if not confirm_declaration:
                raise DeclarationNotConfirmedError(
                    "The declaration must be confirmed before it is submitted"
                )
            return self._begin_declaration(saga)
        if saga.state is SagaState.DECLARING:
            return self._submit_declaration(saga)

        _LOGGER.warning(
            "Submission %s is in terminal state %s; no action taken", saga.id, saga.state.value
        )
        return saga, True

    def _trigger_calculation(self, saga: SubmissionSaga) -> tuple[SubmissionSaga, bool]:
        try:
            calculation_id = self._gateway.trigger_calculation(saga.identifier, saga.tax_year)
        except TaxAuthorityError as exc:
            return self._handle_authority_error(saga, exc)

        if not calculation_id:
            return self._fail(saga, "Tax authority returned an empty calculation id")

        return self._save(saga, saga.with_calculating(calculation_id, self._clock()))

    def _fetch_calculation(self, saga: SubmissionSaga) -> tuple[SubmissionSaga, bool]:
        if not saga.calculation_id:
            return self._fail(saga, "No calculation id recorded for this submission")

        try:
            breakdown = self._gateway.fetch_calculation(saga.calculation_id)
        except TaxAuthorityError as exc:
            return self._handle_authority_error(saga, exc)

        try:
            _check_breakdown(saga, breakdown)
        except SubmissionValidationError as exc:
            return self._fail(saga, str(exc))

        return self._save(saga, saga.with_calculated(breakdown, self._clock()))

    def _begin_declaration(self, saga: SubmissionSaga) -> tuple[SubmissionSaga, bool]:
        _LOGGER.info("Declaration confirmed for submission %s", saga.id)
        declaring, applied = self._save(saga, saga.with_declaring(self._clock()))
        if not applied:
            return declaring, False
        return self._submit_declaration(declaring)

    def _submit_declaration(self, saga: SubmissionSaga) -> tuple[SubmissionSaga, bool]:
        if not saga.calculation_id:
            return self._fail(saga, "No calculation id recorded for this submission")

        try:
            reference = self._gateway.submit_declaration(saga.calculation_id, saga.identifier)
        except TaxAuthorityError as exc:
            return self._handle_authority_error(saga, exc)

        completed, applied = self._save(saga, saga.with_completed(reference, self._clock()))
        if applied:
            _LOGGER.info(
                "Submission %s completed with confirmation %s", completed.id, reference
            )
        return completed, applied

    def _save(
        self, previous: SubmissionSaga, updated: SubmissionSaga
    ) -> tuple[SubmissionSaga, bool]:
        """Persist ``updated`` unless the stored saga moved on since ``previous``.

        A lost write yields the stored saga and ``False``; callers must not
        make further external calls for it.
        """

        try:
            self._repository.compare_and_update(updated, previous.state, previous.version)
        except ConcurrentUpdateError:
            latest = self._repository.get(previous.id)
            _LOGGER.info(
                "Submission %s was updated concurrently; keeping state %s",
                previous.id,
                latest.state.value,
            )
            return latest, False

        if updated.state is not previous.state:
            _LOGGER.info(
                "Submission %s moved %s -> %s",
                updated.id,
                previous.state.value,
                updated.state.value,
            )
        return updated, True

    def _handle_authority_error(
        self, saga: SubmissionSaga, error: TaxAuthorityError
    ) -> tuple[SubmissionSaga, bool]:
        message = error.describe()
        if not error.retryable:
            return self._fail(saga, message)

        _LOGGER.warning(
            "Retryable tax authority error for submission %s in state %s: %s",
            saga.id,
            saga.state.value,
            message,
        )
        return self._save(saga, saga.with_error(message, self._clock()))

    def _fail(self, saga: SubmissionSaga, message: str) -> tuple[SubmissionSaga, bool]:
        _LOGGER.error(
            "Submission %s failed in state %s: %s", saga.id, saga.state.value, message
        )
        return self._save(saga, saga.with_failed(message, self._clock()))


def _as_tax_year(value: TaxYear | int) -> TaxYear:
    if isinstance(value, TaxYear):
        return value
    return TaxYear(int(value))


def _check_breakdown(saga: SubmissionSaga, breakdown: LiabilityBreakdown) -> None:
    if breakdown.tax_year != saga.tax_year_start:
        raise SubmissionValidationError(
            f"Calculation is for tax year {breakdown.tax_year}, expected {saga.tax_year_start}"
        )
    if breakdown.total_liability < 0:
        raise SubmissionValidationError("Calculated liability cannot be negative")


def _next_action(saga: SubmissionSaga) -> str | None:
    if saga.state is SagaState.CALCULATED:
        return "confirm_declaration"
    if saga.state is SagaState.FAILED:
        return "retry"
    if saga.state is SagaState.COMPLETED:
        return None
    return "advance"


__all__ = [
    "AnnualSubmissionService",
    "DeclarationNotConfirmedError",
    "SubmissionValidationError",
]
