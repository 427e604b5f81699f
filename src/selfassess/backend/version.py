"""Report the running selfassess version.

Installed distributions answer from package metadata. Source checkouts that
were never installed fall back to the ``[project]`` table of the repository's
``pyproject.toml``.
"""

from __future__ import annotations

from functools import lru_cache
from importlib import metadata
from pathlib import Path
from typing import Final

DISTRIBUTION: Final = "selfassess"
PYPROJECT_PATH: Final = Path(__file__).resolve().parents[3] / "pyproject.toml"


class VersionLookupError(RuntimeError):
    """Raised when neither package metadata nor ``pyproject.toml`` names a version."""


def read_pyproject_version(path: Path = PYPROJECT_PATH) -> str:
    """Return ``version`` from the ``[project]`` table of ``path``."""

    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise VersionLookupError(f"No project metadata at {path}") from exc

    in_project = False
    for raw_line in text.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if line.startswith("["):
            in_project = line == "[project]"
            continue
        key, separator, value = line.partition("=")
        if in_project and separator and key.strip() == "version":
            version = value.strip().strip("\"'")
            if version:
                return version

    raise VersionLookupError(f"{path} does not declare a project version")


@lru_cache(maxsize=1)
def get_project_version() -> str:
    try:
        return metadata.version(DISTRIBUTION)
    except metadata.PackageNotFoundError:
        return read_pyproject_version(PYPROJECT_PATH)


__all__ = ["VersionLookupError", "get_project_version", "read_pyproject_version"]
