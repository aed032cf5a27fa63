"""Logging utilities for irkeys."""

from irkeys.logging.config import JsonFormatter, setup_logging

__all__ = ["JsonFormatter", "setup_logging"]
