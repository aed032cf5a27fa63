"""Facade wiring the decoder, session buffer and learning workflow."""

from __future__ import annotations

import logging
from typing import Optional, Protocol, Sequence

from irkeys_core.decoder import DecodedKey, LastCapture, PulseDecoder
from irkeys_core.patterns import PatternLibrary, PulsePattern
from irkeys_core.session import SessionBuffer

__all__ = ["PatternRepository", "RemoteControlEngine"]


logger = logging.getLogger(__name__)


class PatternRepository(Protocol):
    """Persistence target notified whenever the library changes."""

    def save(self, library: PatternLibrary) -> None:
        ...


class RemoteControlEngine:
    """Entry point for hardware collaborators and the learning UI."""

    def __init__(
        self,
        decoder: PulseDecoder,
        buffer: SessionBuffer,
        *,
        repository: PatternRepository | None = None,
    ) -> None:
        self._decoder = decoder
        self._buffer = buffer
        self._repository = repository

    @property
    def decoder(self) -> PulseDecoder:
        return self._decoder

    @property
    def buffer(self) -> SessionBuffer:
        return self._buffer

    @property
    def library(self) -> PatternLibrary:
        return self._decoder.library

    def on_raw_signal(
        self,
        controller_id: str,
        timeseq: int,
        periods: Sequence[int],
    ) -> Optional[DecodedKey]:
        """Decode a raw burst and feed the recognised key to its session.

        Noise returns ``None`` and touches no session.  Unrecognised captures
        still reach the buffer with empty names, where no handler claims them.
        """

        decoded = self._decoder.decode(periods, controller_id=controller_id, timeseq=timeseq)
        if decoded is None:
            return None
        self._buffer.push(decoded.remote, decoded.key, controller_id=controller_id)
        return decoded

    def on_pre_decoded_key(self, controller_id: str, remote: str, key: str) -> None:
        self._buffer.push(remote, key, controller_id=controller_id)

    def get_last_capture(self) -> Optional[LastCapture]:
        return self._decoder.last_capture

    def assign_name(self, remote: str, key: str) -> PulsePattern:
        """Store the most recent capture under ``remote:key``."""

        capture = self._decoder.last_capture
        if capture is None:
            raise LookupError("No capture has been received yet")
        if not capture.periods:
            raise ValueError("The last capture was noise and cannot be learned")
        pattern = self.library.upsert(remote, key, capture.periods)
        logger.info(
            "Learned pattern from last capture.",
            extra={
                "event": "patterns.learned",
                "identity": pattern.identity,
                "periods": len(pattern.periods),
            },
        )
        if self._repository is not None:
            self._repository.save(self.library)
        return pattern
