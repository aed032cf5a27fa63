"""Configuration and capture loading for the irkeys CLI."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from irkeys.cli.errors import CliError
from irkeys.configuration import load_project_config

__all__ = [
    "CONFIG_ENV_VAR",
    "DEFAULT_PATTERN_FILE",
    "load_capture",
    "load_cli_config",
]

CONFIG_ENV_VAR = "IRKEYS_CONFIG"
DEFAULT_PATTERN_FILE = "irkeys_patterns.json"


def load_cli_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load the ``[tool.irkeys]`` table used as CLI defaults.

    An explicit ``path`` is tried first, then ``$IRKEYS_CONFIG``, then the
    ``pyproject.toml`` of the working directory.
    """

    bases: List[Path] = []
    if path is not None:
        bases.append(Path(path))
    env_config = os.environ.get(CONFIG_ENV_VAR)
    if env_config:
        bases.append(Path(env_config))
    bases.append(Path.cwd())

    for base in bases:
        try:
            loaded = load_project_config(base)
        except ValueError as exc:
            raise CliError(
                f"Invalid project configuration under {base}: {exc}",
                category="usage",
                subject="config",
                path=base,
            ) from exc
        if not loaded:
            continue
        payload, resolved = loaded
        data = {str(key): value for key, value in payload.items()}
        data["_config_path"] = str(resolved)
        return data
    return {"_config_path": None}


def load_capture(source: Path) -> Dict[str, Any]:
    """Read a captured burst as a ``raw_ir_key`` message mapping.

    The file may hold a full controller message, an object with a
    ``periods`` list, or a bare list of periods.
    """

    try:
        with Path(source).open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except FileNotFoundError as exc:
        raise CliError(
            f"Capture file not found: {source}",
            category="not_found",
            subject="capture",
            path=source,
        ) from exc
    except (OSError, json.JSONDecodeError) as exc:
        raise CliError(
            f"Unable to read capture {source}: {exc}",
            category="io",
            subject="capture",
            path=source,
        ) from exc

    if isinstance(payload, list):
        payload = {"periods": payload}
    if not isinstance(payload, dict) or not isinstance(payload.get("periods"), list):
        raise CliError(
            f"Capture {source} does not contain a list of periods.",
            category="usage",
            subject="capture",
            path=source,
        )
    message = dict(payload)
    message["type"] = "raw_ir_key"
    return message
