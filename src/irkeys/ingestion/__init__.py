"""Controller message parsing and the UDP transport feeding the engine."""

from irkeys.ingestion.messages import (
    ControllerMessage,
    DecodedKeyMessage,
    MessageError,
    RawSignalMessage,
    deliver_message,
    parse_message,
)
from irkeys.ingestion.udp import AsyncControllerUDPServer

__all__ = [
    "AsyncControllerUDPServer",
    "ControllerMessage",
    "DecodedKeyMessage",
    "MessageError",
    "RawSignalMessage",
    "deliver_message",
    "parse_message",
]
