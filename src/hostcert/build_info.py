"""Build metadata for hostcert.

The static version lives in :mod:`pyproject.toml` and is read back from the
installed distribution.  Packaged builds may inject a canonical version
through ``HOSTCERT_BUILD_VERSION``; source checkouts that were never installed
fall back to ``HOSTCERT_BASE_VERSION`` (or ``0.1.0``).
"""

from __future__ import annotations

from dataclasses import dataclass
from importlib import metadata
import os
from typing import Final


_BASE_VERSION: Final[str] = os.getenv("HOSTCERT_BASE_VERSION", "0.1.0")
_DISTRIBUTION: Final[str] = "hostcert"


def _compute_version() -> str:
    explicit = os.getenv("HOSTCERT_BUILD_VERSION")
    if explicit:
        return explicit
    try:
        return metadata.version(_DISTRIBUTION)
    except metadata.PackageNotFoundError:
        return _BASE_VERSION


@dataclass(frozen=True, slots=True)
class BuildInfo:
    version: str

    @property
    def user_agent(self) -> str:
        return f"{_DISTRIBUTION}/{self.version}"


BUILD_INFO: Final[BuildInfo] = BuildInfo(version=_compute_version())
