"""Helpers for extracting JSON request bodies."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from flask import Request
from werkzeug.exceptions import BadRequest


def parse_json_payload(req: Request, *, allow_empty: bool = False) -> dict[str, Any]:
    """Extract a JSON object from ``req``.

    With ``allow_empty`` an absent body is read as ``{}``.
    """

    data = req.get_json(silent=True)
    if data is None:
        if allow_empty and not req.get_data():
            return {}
        raise BadRequest("Request body must be valid JSON")
    if not isinstance(data, Mapping):
        raise BadRequest("Request JSON must be an object")

    return dict(data)
