"""Application factory for selfassess backend services."""

import logging
import os
from importlib import util as importlib_util
from pathlib import Path
from typing import TYPE_CHECKING, Callable, cast
from warnings import warn

from flask import Flask, jsonify, request
from flask.typing import ResponseReturnValue

from selfassess.backend.config.year_config import RateTable

from .extensions import AppServices, get_services, install
from .http import register_problem_handlers
from .routes import register_routes
from .routes.config import get_configuration_metadata
from .services.submission import (
    AnnualSubmissionService,
    InMemorySagaRepository,
    SagaRepository,
    SandboxTaxAuthority,
    SQLiteSagaRepository,
    TaxAuthorityGateway,
)

if TYPE_CHECKING:  # pragma: no cover - only for static type checkers
    from flask import Response
else:  # pragma: no cover - runtime branch
    from flask import Response  # type: ignore

CORS: Callable[..., None] | None

if importlib_util.find_spec("flask_cors") is not None:
    from flask_cors import CORS as _cors

    CORS = cast(Callable[..., None], _cors)
else:  # pragma: no cover - executed only when optional dependency missing
    CORS = None

_LOGGER = logging.getLogger(__name__)


def _parse_allowed_origins(raw: str | None) -> set[str]:
    """Convert an environment variable into a normalised set of origins."""

    if not raw:
        return set()

    return {origin.strip() for origin in raw.split(",") if origin.strip()}


def _apply_default_cors_headers(
    response: ResponseReturnValue,
    allowed_origins: set[str],
) -> ResponseReturnValue:
    """Attach CORS headers for allowed origins when Flask-Cors is unavailable."""

    if not isinstance(response, Response):
        return response

    origin = request.headers.get("Origin")
    if origin and origin in allowed_origins:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers.setdefault("Vary", "Origin")
        response.headers["Access-Control-Allow-Credentials"] = "false"
        response.headers["Access-Control-Allow-Headers"] = request.headers.get(
            "Access-Control-Request-Headers",
            "Content-Type",
        )
        response.headers["Access-Control-Allow-Methods"] = request.headers.get(
            "Access-Control-Request-Method",
            request.method,
        )
    else:
        response.headers.pop("Access-Control-Allow-Origin", None)
        response.headers.pop("Access-Control-Allow-Credentials", None)
        response.headers.pop("Access-Control-Allow-Headers", None)
        response.headers.pop("Access-Control-Allow-Methods", None)

        if origin and request.method == "OPTIONS":
            response.status_code = 403

    return response


def _build_repository() -> SagaRepository:
    db_path = os.getenv("SELFASSESS_SAGA_DB")
    if db_path:
        return SQLiteSagaRepository(Path(db_path).expanduser())

    _LOGGER.info("SELFASSESS_SAGA_DB not set; submissions are kept in memory only")
    return InMemorySagaRepository()


def _configure_cors(app: Flask, allowed_origins: set[str]) -> None:
    if CORS is not None:
        CORS(
            app,
            resources={r"/api/*": {"origins": sorted(allowed_origins)}},
            supports_credentials=False,
            methods=["GET", "OPTIONS", "POST"],
            allow_headers=["Content-Type"],
        )
        return

    warn(
        "Flask-Cors is not installed; falling back to a minimal CORS implementation. "
        "Install the 'cors' extra for production use.",
        stacklevel=1,
    )

    @app.before_request
    def _handle_preflight() -> ResponseReturnValue | None:
        if request.method == "OPTIONS":
            origin = request.headers.get("Origin")
            if origin and origin not in allowed_origins:
                response = app.make_response(("", 403))
                return _apply_default_cors_headers(response, allowed_origins)

            response = app.make_default_options_response()
            return _apply_default_cors_headers(response, allowed_origins)
        return None

    @app.after_request
    def _attach_cors_headers(response: ResponseReturnValue) -> ResponseReturnValue:
        return _apply_default_cors_headers(response, allowed_origins)


def create_app(
    *,
    rate_table: RateTable | None = None,
    repository: SagaRepository | None = None,
    gateway: TaxAuthorityGateway | None = None,
) -> Flask:
    """Create and configure the Flask application instance.

    Collaborators default to the packaged rate files, a store chosen from
    ``SELFASSESS_SAGA_DB``, and the in-process sandbox authority.
    """

    app = Flask(__name__)

    table = rate_table or RateTable()
    submissions = AnnualSubmissionService(
        repository or _build_repository(),
        gateway or SandboxTaxAuthority(table),
    )
    install(app, AppServices(rate_table=table, submissions=submissions))

    allowed_origins = _parse_allowed_origins(os.getenv("SELFASSESS_ALLOWED_ORIGINS"))
    if not allowed_origins:
        warn(
            "No allowed origins configured; cross-origin requests will be rejected.",
            stacklevel=1,
        )
    _configure_cors(app, allowed_origins)

    register_routes(app)

    @app.route("/health", methods=["GET"])
    def health_check():
        """Simple health check endpoint for infrastructure monitoring."""

        payload = {"status": "ok", **get_configuration_metadata(get_services().rate_table)}
        return jsonify(payload)

    register_problem_handlers(app)

    return app


__all__ = ["create_app"]
