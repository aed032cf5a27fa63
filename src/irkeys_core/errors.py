"""Exception types shared by the remote-control engine."""

from __future__ import annotations

__all__ = ["ConfigurationError"]


class ConfigurationError(ValueError):
    """Raised when a handler is constructed from an invalid configuration."""
