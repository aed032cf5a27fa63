from __future__ import annotations

import asyncio
import json
import logging
import socket

import pytest

from irkeys.ingestion import (
    AsyncControllerUDPServer,
    DecodedKeyMessage,
    MessageError,
    RawSignalMessage,
    deliver_message,
    parse_message,
)
from irkeys_core.decoder import PulseDecoder
from irkeys_core.dispatch import Dispatcher
from irkeys_core.engine import RemoteControlEngine
from irkeys_core.handlers import ExactOrPrefixCommand, HandlerChain
from irkeys_core.patterns import PatternLibrary
from irkeys_core.session import LoopScheduler, SessionBuffer
from tests.helpers import DispatchRecorder, build_buffer, nec_capture


def _engine() -> tuple[RemoteControlEngine, DispatchRecorder]:
    library = PatternLibrary()
    library.upsert("tvtuner", "record", nec_capture(0x40BF)[1:])
    handler = ExactOrPrefixCommand([["record"]], "toggle_strip")
    buffer, _, recorder = build_buffer([handler])
    return RemoteControlEngine(PulseDecoder(library), buffer), recorder


def test_parse_raw_signal_message() -> None:
    message = parse_message(b'{"type": "raw_ir_key", "timeseq": 7, "periods": [4500, 560]}')

    assert message == RawSignalMessage(timeseq=7, periods=(4500, 560))


def test_parse_decoded_key_message() -> None:
    message = parse_message({"type": "ir_key", "remote": "encoder_right", "key": "click"})

    assert message == DecodedKeyMessage(remote="encoder_right", key="click")


@pytest.mark.parametrize(
    "payload",
    [
        b"\xff\xfe",
        "not json",
        "[1, 2]",
        '{"type": "raw_ir_key", "periods": "4500"}',
        '{"type": "raw_ir_key", "periods": [4500, "x"]}',
        '{"type": "raw_ir_key", "periods": [4500, 1e30]}',
        '{"type": "raw_ir_key", "periods": [4500, -560]}',
        '{"type": "raw_ir_key", "periods": [4500, 4294967296]}',
        '{"type": "raw_ir_key", "periods": [4500, Infinity]}',
        '{"type": "ir_key", "remote": "tv"}',
        '{"type": "ir_key", "remote": "", "key": "power"}',
        '{"type": "heartbeat"}',
    ],
)
def test_malformed_messages(payload: bytes | str) -> None:
    with pytest.raises(MessageError):
        parse_message(payload)


def test_deliver_decodes_and_feeds_the_engine() -> None:
    engine, _ = _engine()
    payload = json.dumps({"type": "raw_ir_key", "timeseq": 1, "periods": nec_capture(0x40BF)})

    decoded = deliver_message(engine, "10.0.0.3", payload)

    assert decoded is not None and decoded.key == "record"
    capture = engine.get_last_capture()
    assert capture is not None and capture.controller_id == "10.0.0.3"
    session = engine.buffer.arena.get("tvtuner")
    assert session is not None and session.keys == ["record"]


def test_deliver_pre_decoded_key() -> None:
    engine, _ = _engine()

    decoded = deliver_message(engine, "10.0.0.3", {"type": "ir_key", "remote": "tvtuner", "key": "record"})

    assert decoded is not None and decoded.recognized
    assert engine.buffer.arena.get("tvtuner") is not None


def test_deliver_drops_malformed_payloads(caplog: pytest.LogCaptureFixture) -> None:
    engine, _ = _engine()

    with caplog.at_level(logging.WARNING, logger="irkeys.ingestion.messages"):
        assert deliver_message(engine, "10.0.0.3", b"garbage") is None

    assert len(engine.buffer.arena) == 0
    assert any(getattr(record, "event", None) == "ingestion.malformed" for record in caplog.records)


def test_deliver_drops_out_of_range_periods(caplog: pytest.LogCaptureFixture) -> None:
    engine, _ = _engine()
    payload = b'{"type": "raw_ir_key", "timeseq": 1, "periods": [4500, 1e30]}'

    with caplog.at_level(logging.WARNING, logger="irkeys.ingestion.messages"):
        assert deliver_message(engine, "10.0.0.1", payload) is None

    assert engine.get_last_capture() is None
    assert any(getattr(record, "event", None) == "ingestion.malformed" for record in caplog.records)


def test_largest_unsigned_period_is_accepted() -> None:
    message = parse_message({"type": "raw_ir_key", "periods": [4500, 2**32 - 1]})

    assert isinstance(message, RawSignalMessage)
    assert message.periods[-1] == 2**32 - 1


def test_udp_server_dispatches_received_keys() -> None:
    recorder = DispatchRecorder()

    async def scenario() -> tuple[str, int]:
        buffer = SessionBuffer(
            HandlerChain([ExactOrPrefixCommand([["record"]], "toggle_strip")]),
            Dispatcher(on_action=recorder.on_action),
            LoopScheduler(),
        )
        engine = RemoteControlEngine(PulseDecoder(PatternLibrary()), buffer)
        async with AsyncControllerUDPServer(engine, host="127.0.0.1", port=0) as server:
            host, port = server.address
            sender = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            try:
                sender.sendto(
                    json.dumps({"type": "ir_key", "remote": "tvtuner", "key": "record"}).encode(),
                    (host, port),
                )
                sender.sendto(b"garbage", (host, port))
            finally:
                sender.close()
            for _ in range(50):
                if recorder.actions:
                    break
                await asyncio.sleep(0.01)
            return host, port

    host, port = asyncio.run(scenario())

    assert host == "127.0.0.1" and port > 0
    assert recorder.action_names == ["toggle_strip"]
    assert recorder.actions[0].controller_id == "127.0.0.1"
