"""Boundary to the external tax authority.

The workflow only depends on the three operations of ``TaxAuthorityGateway``.
Each must be safe to repeat with the same arguments: the workflow resolves
ambiguous outcomes by calling again, never by compensating.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict, deque
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from threading import Lock
from typing import Deque, Protocol
from uuid import uuid4

from selfassess.backend.app.models import LiabilityBreakdown, TaxYear
from selfassess.backend.config.year_config import RateTable

from ..calculators import build_liability

_LOGGER = logging.getLogger(__name__)

TRIGGER = "trigger_calculation"
FETCH = "fetch_calculation"
SUBMIT = "submit_declaration"


class TaxAuthorityError(Exception):
    """Base class for failures reported by the tax authority boundary."""

    retryable = True

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code

    def describe(self) -> str:
        message = str(self)
        return f"{self.code}: {message}" if self.code else message


class TaxAuthorityUnavailableError(TaxAuthorityError):
    """Timeout or network failure; the outcome of the call is unknown."""


class TaxAuthorityResponseError(TaxAuthorityError):
    """The authority answered with something that could not be understood."""


class TaxAuthorityRejectedError(TaxAuthorityError):
    """The authority explicitly refused the request."""

    retryable = False


class TaxAuthorityGateway(Protocol):
    def trigger_calculation(self, identifier: str, tax_year: TaxYear) -> str: ...

    def fetch_calculation(self, calculation_id: str) -> LiabilityBreakdown: ...

    def submit_declaration(self, calculation_id: str, identifier: str) -> str: ...


@dataclass(frozen=True)
class TaxpayerFigures:
    profit: Decimal
    date_of_birth: date | None = None
    voluntary_class2: bool = False


class SandboxTaxAuthority:
    """In-process authority that calculates with the local engine.

    Calculations are keyed by (identifier, tax year) and declarations by
    calculation id, so repeated calls hand back the same references. Failures
    can be queued per operation with ``fail_next`` to rehearse outages.
    """

    def __init__(self, rate_table: RateTable) -> None:
        self._rate_table = rate_table
        self._figures: dict[tuple[str, int], TaxpayerFigures] = {}
        self._calculations: dict[tuple[str, int], str] = {}
        self._calculation_owners: dict[str, tuple[str, int]] = {}
        self._declarations: dict[str, str] = {}
        self._failures: defaultdict[str, Deque[TaxAuthorityError]] = defaultdict(deque)
        self._lock = Lock()
        self.calls: Counter[str] = Counter()

    def register_figures(
        self,
        identifier: str,
        tax_year: TaxYear | int,
        profit: Decimal,
        *,
        date_of_birth: date | None = None,
        voluntary_class2: bool = False,
    ) -> None:
        year = tax_year.start_year if isinstance(tax_year, TaxYear) else int(tax_year)
        with self._lock:
            self._figures[(identifier, year)] = TaxpayerFigures(
                profit=Decimal(profit),
                date_of_birth=date_of_birth,
                voluntary_class2=voluntary_class2,
            )

    def fail_next(self, operation: str, error: TaxAuthorityError) -> None:
        """Make the next call to ``operation`` raise ``error``."""

        if operation not in {TRIGGER, FETCH, SUBMIT}:
            raise ValueError(f"Unknown operation '{operation}'")
        with self._lock:
            self._failures[operation].append(error)

    @property
    def calculations_created(self) -> int:
        with self._lock:
            return len(self._calculations)

    @property
    def declarations_created(self) -> int:
        with self._lock:
            return len(self._declarations)

    def _raise_scripted_failure(self, operation: str) -> None:
        self.calls[operation] += 1
        queue = self._failures.get(operation)
        if queue:
            raise queue.popleft()

    def trigger_calculation(self, identifier: str, tax_year: TaxYear) -> str:
        key = (identifier, tax_year.start_year)
        with self._lock:
            self._raise_scripted_failure(TRIGGER)
            calculation_id = self._calculations.get(key)
            if calculation_id is None:
                calculation_id = f"calc-{uuid4().hex}"
                self._calculations[key] = calculation_id
                self._calculation_owners[calculation_id] = key
                _LOGGER.debug("Sandbox created calculation for tax year %s", tax_year.label)
            return calculation_id

    def fetch_calculation(self, calculation_id: str) -> LiabilityBreakdown:
        with self._lock:
            self._raise_scripted_failure(FETCH)
            owner = self._calculation_owners.get(calculation_id)
            if owner is None:
                raise TaxAuthorityRejectedError(
                    f"Calculation {calculation_id} does not exist",
                    code="MATCHING_CALCULATION_NOT_FOUND",
                )
            figures = self._figures.get(owner, TaxpayerFigures(profit=Decimal("0")))

        tax_year = TaxYear(owner[1])
        return build_liability(
            figures.profit,
            self._rate_table.rates(tax_year.start_year),
            tax_year,
            date_of_birth=figures.date_of_birth,
            voluntary_class2=figures.voluntary_class2,
        )

    def submit_declaration(self, calculation_id: str, identifier: str) -> str:
        with self._lock:
            self._raise_scripted_failure(SUBMIT)
            owner = self._calculation_owners.get(calculation_id)
            if owner is None or owner[0] != identifier:
                raise TaxAuthorityRejectedError(
                    f"Calculation {calculation_id} does not belong to this taxpayer",
                    code="INVALID_CALCULATION_ID",
                )
            reference = self._declarations.get(calculation_id)
            if reference is None:
                reference = f"DEC-{uuid4().hex[:12].upper()}"
                self._declarations[calculation_id] = reference
            return reference


__all__ = [
    "FETCH",
    "SUBMIT",
    "SandboxTaxAuthority",
    "TRIGGER",
    "TaxAuthorityError",
    "TaxAuthorityGateway",
    "TaxAuthorityRejectedError",
    "TaxAuthorityResponseError",
    "TaxAuthorityUnavailableError",
    "TaxpayerFigures",
]
