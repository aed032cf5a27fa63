"""Persistence helpers for learned pulse patterns."""

from irkeys.io.patterns import PatternFileRepository

__all__ = ["PatternFileRepository"]
