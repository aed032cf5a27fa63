"""Clean raw IR bursts and resolve them against the pattern library."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from irkeys_core.patterns import PatternLibrary

__all__ = [
    "DecodedKey",
    "DecoderSettings",
    "LastCapture",
    "PulseDecoder",
]


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecoderSettings:
    """Thresholds used to clean a capture before pattern matching."""

    noise_floor_us: int = 50
    noise_ceiling_us: int = 100000
    start_marker_low_us: int = 4100
    start_marker_high_us: int = 4700
    min_periods: int = 20

    def __post_init__(self) -> None:
        if self.noise_floor_us >= self.noise_ceiling_us:
            raise ValueError("noise_floor_us must be below noise_ceiling_us")
        if self.start_marker_low_us >= self.start_marker_high_us:
            raise ValueError("start marker window is empty")
        if self.min_periods < 1:
            raise ValueError("min_periods must be positive")


@dataclass(frozen=True)
class DecodedKey:
    """Logical key produced from a capture; empty fields mean unrecognized."""

    remote: str = ""
    key: str = ""

    @property
    def recognized(self) -> bool:
        return bool(self.remote or self.key)


@dataclass(frozen=True)
class LastCapture:
    """Most recent capture exposed to the learning workflow."""

    controller_id: str
    timeseq: int
    raw_periods: tuple[int, ...]
    periods: tuple[int, ...]
    remote: str = ""
    key: str = ""
    noise: bool = False

    @property
    def best_guess(self) -> DecodedKey:
        return DecodedKey(self.remote, self.key)


class PulseDecoder:
    """Turn raw period bursts into :class:`DecodedKey` values.

    The decoder never raises for bad signal: short or unsynchronised captures
    are reported as noise (``None``).  Every capture, noise included, is kept
    in :attr:`last_capture` so a user can label it.
    """

    def __init__(
        self,
        library: PatternLibrary,
        *,
        settings: DecoderSettings | None = None,
    ) -> None:
        self._library = library
        self._settings = settings or DecoderSettings()
        self._last_capture: Optional[LastCapture] = None

    @property
    def library(self) -> PatternLibrary:
        return self._library

    @property
    def settings(self) -> DecoderSettings:
        return self._settings

    @property
    def last_capture(self) -> Optional[LastCapture]:
        return self._last_capture

    def clean(self, periods: Sequence[int]) -> Optional[tuple[int, ...]]:
        """Drop glitches and resynchronise on the start marker.

        Returns ``None`` when no start marker exists or too few periods
        remain after it.
        """

        settings = self._settings
        values = np.asarray(periods, dtype=np.int64)
        if values.size == 0:
            return None
        values = values[(values > settings.noise_floor_us) & (values < settings.noise_ceiling_us)]
        markers = np.flatnonzero(
            (values > settings.start_marker_low_us) & (values < settings.start_marker_high_us)
        )
        if markers.size == 0:
            return None
        values = values[int(markers[0]):]
        if values.size < settings.min_periods:
            return None
        return tuple(int(value) for value in values)

    def decode(
        self,
        periods: Sequence[int],
        *,
        controller_id: str = "",
        timeseq: int = 0,
    ) -> Optional[DecodedKey]:
        raw = tuple(int(value) for value in periods)
        cleaned = self.clean(raw)
        if cleaned is None:
            self._last_capture = LastCapture(
                controller_id=controller_id,
                timeseq=timeseq,
                raw_periods=raw,
                periods=(),
                noise=True,
            )
            logger.debug(
                "Capture classified as noise.",
                extra={
                    "event": "decoder.noise",
                    "controller": controller_id,
                    "timeseq": timeseq,
                    "periods": len(raw),
                },
            )
            return None

        match = self._library.lookup(cleaned)
        self._last_capture = LastCapture(
            controller_id=controller_id,
            timeseq=timeseq,
            raw_periods=raw,
            periods=cleaned,
            remote=match.remote,
            key=match.key,
        )
        if not match.recognized:
            logger.info(
                "Capture did not match any learned pattern.",
                extra={
                    "event": "decoder.unrecognized",
                    "controller": controller_id,
                    "timeseq": timeseq,
                    "periods": len(cleaned),
                },
            )
        return DecodedKey(match.remote, match.key)
