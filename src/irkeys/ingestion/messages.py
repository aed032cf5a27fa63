"""JSON messages emitted by IR controllers.

Two message shapes are understood::

    {"type": "raw_ir_key", "timeseq": 1234, "periods": [9000, 4500, ...]}
    {"type": "ir_key", "remote": "tvtuner", "key": "n5"}

The first carries raw pulse periods still to be decoded, the second a key the
controller already recognised on its own.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from irkeys_core.decoder import DecodedKey
from irkeys_core.engine import RemoteControlEngine

__all__ = [
    "ControllerMessage",
    "DecodedKeyMessage",
    "MAX_PERIOD_US",
    "MessageError",
    "RawSignalMessage",
    "deliver_message",
    "parse_message",
]


logger = logging.getLogger(__name__)

MAX_PERIOD_US = 2**32 - 1


class MessageError(ValueError):
    """Raised when a controller payload cannot be interpreted."""


@dataclass(frozen=True)
class RawSignalMessage:
    timeseq: int
    periods: tuple[int, ...]


@dataclass(frozen=True)
class DecodedKeyMessage:
    remote: str
    key: str


ControllerMessage = Union[RawSignalMessage, DecodedKeyMessage]


def _require_text(payload: Mapping[str, Any], field: str) -> str:
    value = payload.get(field)
    if not isinstance(value, str) or not value:
        raise MessageError(f"'{field}' must be a non-empty string")
    return value


def parse_message(data: Union[bytes, str, Mapping[str, Any]]) -> ControllerMessage:
    """Parse raw bytes, text or a decoded mapping into a message object."""

    if isinstance(data, (bytes, bytearray)):
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MessageError("Payload is not valid UTF-8") from exc
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as exc:
            raise MessageError(f"Payload is not valid JSON: {exc.msg}") from exc
    if not isinstance(data, Mapping):
        raise MessageError("Payload must be a JSON object")

    kind = data.get("type")
    if kind == "raw_ir_key":
        periods = data.get("periods")
        if not isinstance(periods, list):
            raise MessageError("'periods' must be a list of integers")
        try:
            values = tuple(int(value) for value in periods)
            timeseq = int(data.get("timeseq", 0))
        except (TypeError, ValueError, OverflowError) as exc:
            raise MessageError(f"Invalid numeric field: {exc}") from exc
        if any(not 0 <= value <= MAX_PERIOD_US for value in values):
            raise MessageError("'periods' must hold unsigned 32-bit durations")
        return RawSignalMessage(timeseq=timeseq, periods=values)
    if kind == "ir_key":
        return DecodedKeyMessage(
            remote=_require_text(data, "remote"),
            key=_require_text(data, "key"),
        )
    raise MessageError(f"Unsupported message type {kind!r}")


def deliver_message(
    engine: RemoteControlEngine,
    controller_id: str,
    data: Union[bytes, str, Mapping[str, Any]],
) -> Optional[DecodedKey]:
    """Feed one payload to ``engine``; malformed payloads are logged and dropped."""

    try:
        message = parse_message(data)
    except MessageError as exc:
        logger.warning(
            "Dropping malformed controller message.",
            extra={
                "event": "ingestion.malformed",
                "controller": controller_id,
                "reason": str(exc),
            },
        )
        return None
    if isinstance(message, RawSignalMessage):
        return engine.on_raw_signal(controller_id, message.timeseq, message.periods)
    engine.on_pre_decoded_key(controller_id, message.remote, message.key)
    return DecodedKey(remote=message.remote, key=message.key)
