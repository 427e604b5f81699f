"""Per-application service wiring stored on ``app.extensions``."""

from __future__ import annotations

from dataclasses import dataclass

from flask import Flask, current_app

from selfassess.backend.app.services.submission import AnnualSubmissionService
from selfassess.backend.config.year_config import RateTable

EXTENSION_KEY = "selfassess"


@dataclass(frozen=True)
class AppServices:
    rate_table: RateTable
    submissions: AnnualSubmissionService


def install(app: Flask, services: AppServices) -> None:
    app.extensions[EXTENSION_KEY] = services


def get_services() -> AppServices:
    """Return the services bound to the active application."""

    return current_app.extensions[EXTENSION_KEY]
