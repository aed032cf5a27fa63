"""Package version, from distribution metadata or the changelog."""

from __future__ import annotations

import re
from importlib import metadata
from pathlib import Path

from packaging.version import InvalidVersion, Version

__all__ = ["__version__"]


_DISTRIBUTION = "irkeys"
_RELEASE_HEADING = re.compile(r"^## v(?P<version>\d+\.\d+\.\d+)\b", re.MULTILINE)


def _version_from_sources() -> str:
    """Return the newest ``## vX.Y.Z`` heading of ``CHANGELOG.md``.

    Checkouts imported straight from ``src/`` have no distribution metadata.
    """

    changelog = Path(__file__).resolve().parents[2] / "CHANGELOG.md"
    if changelog.is_file():
        match = _RELEASE_HEADING.search(changelog.read_text(encoding="utf-8"))
        if match:
            return match.group("version")
    raise RuntimeError(f"No release heading found in {changelog}")


def _load_version() -> str:
    try:
        raw = metadata.version(_DISTRIBUTION)
    except metadata.PackageNotFoundError:
        raw = _version_from_sources()
    try:
        release = Version(raw).release
    except InvalidVersion as exc:
        raise RuntimeError(f"irkeys version {raw!r} is not a valid version") from exc
    if len(release) != 3:
        raise RuntimeError(f"irkeys version {raw!r} is not MAJOR.MINOR.PATCH")
    return raw


__version__ = _load_version()
