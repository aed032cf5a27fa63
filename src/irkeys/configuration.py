"""Read the ``[tool.irkeys]`` table of a project's ``pyproject.toml``.

The table supplies defaults for the command line::

    [tool.irkeys]
    patterns = "patterns.json"
    handlers = "handlers.yaml"

    [tool.irkeys.listen]
    port = 5100

    [tool.irkeys.logging]
    level = "debug"
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

try:  # Python 3.11+
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover - Python < 3.11 fallback
    import tomli as tomllib  # type: ignore

__all__ = ["PYPROJECT", "find_pyproject", "load_project_config"]


PYPROJECT = "pyproject.toml"


def find_pyproject(base: Path) -> Path | None:
    """Return the project file for a directory or a ``pyproject.toml`` path."""

    base = Path(base).expanduser()
    candidate = base / PYPROJECT if base.is_dir() else base
    if candidate.name != PYPROJECT or not candidate.is_file():
        return None
    return candidate.resolve()


def load_project_config(base: Path) -> tuple[dict[str, Any], Path] | None:
    """Return the irkeys table and the file it came from.

    ``None`` means there is no project file under ``base`` or it carries no
    ``[tool.irkeys]`` table.  Malformed TOML raises :class:`ValueError`.
    """

    pyproject = find_pyproject(base)
    if pyproject is None:
        return None
    with pyproject.open("rb") as handle:
        document = tomllib.load(handle)
    tool = document.get("tool")
    section = tool.get("irkeys") if isinstance(tool, dict) else None
    if not isinstance(section, dict):
        return None
    return dict(section), pyproject
