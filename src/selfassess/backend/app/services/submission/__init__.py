"""Annual submission workflow: saga records, stores, authority boundary, driver."""

from .gateway import (
    SandboxTaxAuthority,
    TaxAuthorityError,
    TaxAuthorityGateway,
    TaxAuthorityRejectedError,
    TaxAuthorityResponseError,
    TaxAuthorityUnavailableError,
)
from .repository import (
    ConcurrentUpdateError,
    InMemorySagaRepository,
    SQLiteSagaRepository,
    SagaAlreadyExistsError,
    SagaNotFoundError,
    SagaRepository,
)
from .saga import InvalidTransitionError, SagaState, SubmissionSaga
from .service import (
    AnnualSubmissionService,
    DeclarationNotConfirmedError,
    SubmissionValidationError,
)

__all__ = [
    "AnnualSubmissionService",
    "ConcurrentUpdateError",
    "DeclarationNotConfirmedError",
    "InMemorySagaRepository",
    "InvalidTransitionError",
    "SQLiteSagaRepository",
    "SagaAlreadyExistsError",
    "SagaNotFoundError",
    "SagaRepository",
    "SagaState",
    "SandboxTaxAuthority",
    "SubmissionSaga",
    "SubmissionValidationError",
    "TaxAuthorityError",
    "TaxAuthorityGateway",
    "TaxAuthorityRejectedError",
    "TaxAuthorityResponseError",
    "TaxAuthorityUnavailableError",
]
