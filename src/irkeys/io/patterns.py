"""JSON persistence for :class:`~irkeys_core.patterns.PatternLibrary`.

The file holds a list of ``{"remote", "key", "periods"}`` records in the
order the patterns were learned; that order is the lookup order.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, List, Mapping

from irkeys_core.patterns import MatchSettings, PatternLibrary

__all__ = ["PatternFileRepository"]


logger = logging.getLogger(__name__)


class PatternFileRepository:
    """Load and save a pattern library as a JSON document."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def load(self, settings: MatchSettings | None = None) -> PatternLibrary:
        """Return the stored library, or an empty one if the file is absent."""

        if not self._path.exists():
            logger.info(
                "Pattern file not found, starting with an empty library.",
                extra={"event": "patterns.missing", "path": str(self._path)},
            )
            return PatternLibrary(settings=settings)
        with self._path.open("r", encoding="utf-8") as handle:
            try:
                payload = json.load(handle)
            except json.JSONDecodeError as exc:
                raise ValueError(f"Invalid JSON in pattern file: {self._path}") from exc
        records = self._records(payload)
        library = PatternLibrary.from_records(records, settings=settings)
        logger.debug(
            "Loaded pattern library.",
            extra={"event": "patterns.loaded", "path": str(self._path), "count": len(library)},
        )
        return library

    def save(self, library: PatternLibrary) -> None:
        """Atomically replace the pattern file with ``library``."""

        self._path.parent.mkdir(parents=True, exist_ok=True)
        temporary = self._path.with_name(self._path.name + ".tmp")
        with temporary.open("w", encoding="utf-8") as handle:
            json.dump(library.records(), handle, indent=2)
            handle.write("\n")
        os.replace(temporary, self._path)
        logger.debug(
            "Saved pattern library.",
            extra={"event": "patterns.saved", "path": str(self._path), "count": len(library)},
        )

    def _records(self, payload: Any) -> List[Mapping[str, Any]]:
        if isinstance(payload, Mapping):
            payload = payload.get("patterns", [])
        if not isinstance(payload, list):
            raise ValueError(f"Pattern file {self._path} must contain a list of records")
        records: List[Mapping[str, Any]] = []
        for record in payload:
            if not isinstance(record, Mapping):
                raise ValueError(f"Pattern record must be an object, got {record!r}")
            records.append(record)
        return records
