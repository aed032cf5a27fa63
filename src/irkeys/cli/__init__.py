"""Command line utilities for irkeys."""

from irkeys.cli.app import main, run_cli

__all__ = ["main", "run_cli"]
