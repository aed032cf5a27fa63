"""Failures reported by the irkeys command line.

Every failure names the exit status family it belongs to and what the
command was working on when it failed::

    capture    the JSON burst handed to ``decode`` or ``learn``
    patterns   the learned-pattern file
    handlers   the YAML handler configuration
    config     the ``[tool.irkeys]`` project table
    listener   the UDP socket opened by ``listen``
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping, Optional, Union

__all__ = [
    "EXIT_STATUS",
    "CliError",
    "handler_config_error",
    "log_cli_error",
    "pattern_file_error",
]


EXIT_STATUS: Mapping[str, int] = {
    "runtime": 1,
    "usage": 2,
    "io": 3,
    "not_found": 4,
}

_LOGGER_NAME = "irkeys.cli"


class CliError(RuntimeError):
    """A failed command, carrying the exit status to use.

    Unknown categories fall back to ``runtime``.
    """

    def __init__(
        self,
        message: str,
        *,
        category: str = "runtime",
        subject: Optional[str] = None,
        path: Union[str, Path, None] = None,
    ) -> None:
        super().__init__(message)
        self.category = category if category in EXIT_STATUS else "runtime"
        self.subject = subject
        self.path = str(path) if path is not None else None
        self.logged = False

    @property
    def status_code(self) -> int:
        return EXIT_STATUS[self.category]

    @property
    def message(self) -> str:
        return str(self)


def pattern_file_error(path: Union[str, Path], exc: Exception) -> CliError:
    return CliError(
        f"Unable to load patterns from {path}: {exc}",
        category="io",
        subject="patterns",
        path=path,
    )


def handler_config_error(path: Optional[Path], exc: Exception) -> CliError:
    """Translate a failure to load or build the handler chain."""

    if isinstance(exc, FileNotFoundError):
        return CliError(
            f"Handler configuration not found: {path}",
            category="not_found",
            subject="handlers",
            path=path,
        )
    return CliError(str(exc), category="usage", subject="handlers", path=path)


def log_cli_error(error: CliError, *, logger: Optional[logging.Logger] = None) -> None:
    """Log ``error`` once as a ``cli.error`` event."""

    if error.logged:
        return
    (logger or logging.getLogger(_LOGGER_NAME)).error(
        error.message,
        extra={
            "event": "cli.error",
            "category": error.category,
            "status_code": error.status_code,
            "subject": error.subject,
            "path": error.path,
        },
        exc_info=error,
    )
    error.logged = True
