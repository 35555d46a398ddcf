"""Application version.

Read from the ``[project]`` table of pyproject.toml when running from a
checkout, otherwise from the installed distribution.
"""

from importlib.metadata import PackageNotFoundError, version as metadata_version
from pathlib import Path
from typing import Final

import tomllib

DISTRIBUTION: Final[str] = "taskbridge"
UNKNOWN_VERSION: Final[str] = "0.0.0"


def _checkout_version(root: Path) -> str | None:
    pyproject = root / "pyproject.toml"
    if not pyproject.is_file():
        return None
    try:
        with pyproject.open("rb") as file:
            project = tomllib.load(file).get("project", {})
    except (OSError, tomllib.TOMLDecodeError):
        return None
    if project.get("name") != DISTRIBUTION:
        return None
    return project.get("version")


def get_version() -> str:
    """Version string of the running code."""
    found = _checkout_version(Path(__file__).resolve().parents[1])
    if found:
        return found
    try:
        return metadata_version(DISTRIBUTION)
    except PackageNotFoundError:
        return UNKNOWN_VERSION
