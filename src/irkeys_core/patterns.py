"""Learned pulse patterns and tolerant similarity lookup.

Each stored :class:`PulsePattern` is a raw capture of a button press that a
user labelled with a remote and key name.  Incoming captures are compared
element by element against the stored periods: a capture matches when every
ratio ``captured / stored`` stays inside a tolerance band up to the first
end-of-transmission gap.  Patterns are tried in insertion order and the first
one that passes wins.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence

import numpy as np

__all__ = [
    "MatchSettings",
    "PatternLibrary",
    "PatternMatch",
    "PulsePattern",
    "key_identity",
]


logger = logging.getLogger(__name__)


def key_identity(remote: str, key: str) -> str:
    """Return the ``remote:key`` identity naming a learned button."""

    return f"{remote}:{key}"


@dataclass(frozen=True)
class PulsePattern:
    """Periods (in microseconds) captured for a named remote key."""

    remote: str
    key: str
    periods: tuple[int, ...]

    def __post_init__(self) -> None:
        periods = tuple(int(value) for value in self.periods)
        if not periods:
            raise ValueError(f"Pattern {self.identity!r} requires at least one period")
        if any(value <= 0 for value in periods):
            raise ValueError(f"Pattern {self.identity!r} contains non-positive periods")
        object.__setattr__(self, "periods", periods)

    @property
    def identity(self) -> str:
        return key_identity(self.remote, self.key)

    def as_record(self) -> dict[str, Any]:
        return {"remote": self.remote, "key": self.key, "periods": list(self.periods)}

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "PulsePattern":
        return cls(
            remote=str(record["remote"]),
            key=str(record["key"]),
            periods=tuple(record["periods"]),
        )


@dataclass(frozen=True)
class MatchSettings:
    """Tolerance applied when comparing a capture with a stored pattern."""

    ratio_low: float = 0.7
    ratio_high: float = 1.4
    end_of_transmission_us: int = 30000

    def __post_init__(self) -> None:
        if not 0.0 < self.ratio_low <= 1.0 <= self.ratio_high:
            raise ValueError(
                "MatchSettings requires 0 < ratio_low <= 1 <= ratio_high "
                f"(got {self.ratio_low}, {self.ratio_high})"
            )
        if self.end_of_transmission_us <= 0:
            raise ValueError("end_of_transmission_us must be positive")


@dataclass(frozen=True)
class PatternMatch:
    """Outcome of :meth:`PatternLibrary.lookup`."""

    pattern: Optional[PulsePattern]
    periods: tuple[int, ...]

    @property
    def recognized(self) -> bool:
        return self.pattern is not None

    @property
    def remote(self) -> str:
        return self.pattern.remote if self.pattern is not None else ""

    @property
    def key(self) -> str:
        return self.pattern.key if self.pattern is not None else ""


def periods_match(
    captured: Sequence[int] | np.ndarray,
    stored: Sequence[int] | np.ndarray,
    settings: MatchSettings,
) -> bool:
    """Return ``True`` when ``captured`` falls within tolerance of ``stored``.

    An empty capture matches nothing.
    """

    captured_array = np.asarray(captured, dtype=float)
    stored_array = np.asarray(stored, dtype=float)
    if captured_array.size == 0:
        return False
    length = min(captured_array.size, stored_array.size)
    captured_array = captured_array[:length]
    stored_array = stored_array[:length]

    gaps = np.flatnonzero(captured_array > settings.end_of_transmission_us)
    if gaps.size:
        cut = int(gaps[0])
        captured_array = captured_array[:cut]
        stored_array = stored_array[:cut]
    if captured_array.size == 0:
        return True

    ratios = captured_array / stored_array
    return bool(np.all((ratios >= settings.ratio_low) & (ratios <= settings.ratio_high)))


class PatternLibrary:
    """Insertion-ordered collection of learned patterns keyed by identity."""

    def __init__(
        self,
        patterns: Iterable[PulsePattern] = (),
        *,
        settings: MatchSettings | None = None,
    ) -> None:
        self._settings = settings or MatchSettings()
        self._patterns: Dict[str, PulsePattern] = {}
        for pattern in patterns:
            self._patterns[pattern.identity] = pattern

    @property
    def settings(self) -> MatchSettings:
        return self._settings

    def __len__(self) -> int:
        return len(self._patterns)

    def __iter__(self) -> Iterator[PulsePattern]:
        return iter(list(self._patterns.values()))

    def __contains__(self, identity: object) -> bool:
        return identity in self._patterns

    def get(self, identity: str) -> Optional[PulsePattern]:
        return self._patterns.get(identity)

    def lookup(self, periods: Sequence[int]) -> PatternMatch:
        """Return the first stored pattern matching ``periods``."""

        captured = tuple(int(value) for value in periods)
        captured_array = np.asarray(captured, dtype=float)
        for pattern in self._patterns.values():
            if periods_match(captured_array, pattern.periods, self._settings):
                return PatternMatch(pattern=pattern, periods=captured)
        return PatternMatch(pattern=None, periods=captured)

    def upsert(self, remote: str, key: str, periods: Sequence[int]) -> PulsePattern:
        """Store ``periods`` under ``remote:key``, replacing any prior entry.

        When the periods currently resolve to a different identity the user is
        correcting a wrong label, so that older entry is dropped first.
        """

        pattern = PulsePattern(remote=remote, key=key, periods=tuple(periods))
        previous = self.lookup(pattern.periods)
        if previous.pattern is not None and previous.pattern.identity != pattern.identity:
            logger.info(
                "Relabelled pattern replaces an earlier identity.",
                extra={
                    "event": "patterns.relabel",
                    "previous": previous.pattern.identity,
                    "identity": pattern.identity,
                },
            )
            self._patterns.pop(previous.pattern.identity, None)
        self._patterns[pattern.identity] = pattern
        return pattern

    def remove(self, identity: str) -> Optional[PulsePattern]:
        return self._patterns.pop(identity, None)

    def records(self) -> List[dict[str, Any]]:
        return [pattern.as_record() for pattern in self._patterns.values()]

    @classmethod
    def from_records(
        cls,
        records: Iterable[Mapping[str, Any]],
        *,
        settings: MatchSettings | None = None,
    ) -> "PatternLibrary":
        return cls(
            (PulsePattern.from_record(record) for record in records),
            settings=settings,
        )
