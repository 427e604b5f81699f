"""National Insurance number handling for submission identities."""

from __future__ import annotations

import re

_NINO_PATTERN = re.compile(r"^[A-CEGHJ-PR-TW-Z][A-CEGHJ-NPR-TW-Z][0-9]{6}[A-D]$")
_DISALLOWED_PREFIXES = frozenset({"BG", "GB", "KN", "NK", "NT", "TN", "ZZ"})


class InvalidIdentifierError(ValueError):
    """Raised when a taxpayer identifier is not a well-formed NINO."""


def normalise_nino(value: str | None) -> str | None:
    """Upper-case ``value`` and drop all whitespace."""

    if value is None:
        return None
    return "".join(value.split()).upper()


def is_valid_nino(value: str | None) -> bool:
    if not value:
        return False
    if not _NINO_PATTERN.match(value):
        return False
    return value[:2] not in _DISALLOWED_PREFIXES


def validate_nino(value: str | None) -> str:
    """Return the normalised NINO or raise ``InvalidIdentifierError``."""

    normalised = normalise_nino(value)
    if not is_valid_nino(normalised):
        raise InvalidIdentifierError("Identifier must be a valid NINO (for example AB123456C)")
    return normalised  # type: ignore[return-value]


def mask_identifier(value: str) -> str:
    """Keep only the first two characters for log output."""

    return f"{value[:2]}****"


__all__ = [
    "InvalidIdentifierError",
    "is_valid_nino",
    "mask_identifier",
    "normalise_nino",
    "validate_nino",
]
