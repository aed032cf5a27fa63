from __future__ import annotations

import asyncio
import logging
from typing import Optional, Sequence

import pytest

from irkeys_core.handlers import ExactOrPrefixCommand, HandlerChain, KeyHandler, RemoteContext
from irkeys_core.session import LoopScheduler, RemoteSession, Scheduler, SessionArena, SessionBuffer
from tests.helpers import DispatchRecorder, ManualScheduler, RecordingHandler, build_buffer


class _ExplodingHandler(KeyHandler):
    def __init__(self, *, on_commit: bool = False) -> None:
        super().__init__(name="exploding")
        self._on_commit = on_commit

    def _evaluate(
        self,
        context: RemoteContext,
        keys: Sequence[str],
        final: bool,
        timestamps: Sequence[float],
    ) -> Optional[int]:
        if not self._on_commit:
            raise RuntimeError("evaluate failed")
        return 100

    def commit(self, context: RemoteContext, keys: Sequence[str], timestamps: Sequence[float]) -> None:
        raise RuntimeError("commit failed")


class _LosesInterestHandler(KeyHandler):
    name = "fickle"

    def __init__(self) -> None:
        super().__init__()
        self.committed = False

    def _evaluate(
        self,
        context: RemoteContext,
        keys: Sequence[str],
        final: bool,
        timestamps: Sequence[float],
    ) -> Optional[int]:
        return None if final else 500

    def commit(self, context: RemoteContext, keys: Sequence[str], timestamps: Sequence[float]) -> None:
        self.committed = True


def test_burst_commits_once_after_last_key() -> None:
    handler = RecordingHandler(["a"], wait_ms=1000)
    buffer, scheduler, recorder = build_buffer([handler])

    buffer.push("tv", "a")
    scheduler.advance_to(100)
    buffer.push("tv", "a")
    scheduler.advance_to(900)
    buffer.push("tv", "a")

    scheduler.advance_to(1899)
    assert handler.commits == []

    scheduler.advance_to(1900)
    assert handler.commits == [(("a", "a", "a"), 1900.0)]
    assert recorder.action_names == ["recording"]

    scheduler.advance_to(10000)
    assert len(handler.commits) == 1


def test_session_is_reset_after_commit() -> None:
    handler = RecordingHandler(["a"], wait_ms=10)
    buffer, scheduler, _ = build_buffer([handler])

    buffer.push("tv", "a")
    scheduler.advance(10)

    session = buffer.arena.get("tv")
    assert session is not None
    assert session.keys == [] and session.timestamps == []
    assert session.active_handler is None

    buffer.push("tv", "a")
    assert session.keys == ["a"]


def test_sequence_no_handler_claims_is_ignored(caplog: pytest.LogCaptureFixture) -> None:
    handler = RecordingHandler(["a"])
    buffer, scheduler, recorder = build_buffer([handler])

    buffer.push("tv", "a")
    with caplog.at_level(logging.INFO, logger="irkeys_core.session"):
        selected = buffer.push("tv", "b")

    assert selected is None
    session = buffer.arena.get("tv")
    assert session is not None and session.idle
    assert any(getattr(record, "event", None) == "session.ignored" for record in caplog.records)

    scheduler.advance(5000)
    assert handler.commits == []
    assert recorder.actions == []


def test_sessions_of_different_remotes_are_independent() -> None:
    handler = RecordingHandler(["a"], wait_ms=1000)
    buffer, scheduler, recorder = build_buffer([handler])

    buffer.push("tv", "a")
    scheduler.advance_to(500)
    buffer.push("amp", "a")

    scheduler.advance_to(1000)
    assert [action.remote_id for action in recorder.actions] == ["tv"]
    scheduler.advance_to(1500)
    assert [action.remote_id for action in recorder.actions] == ["tv", "amp"]
    assert len(buffer.arena) == 2


def test_last_interested_handler_wins() -> None:
    first = RecordingHandler(["a"], wait_ms=100, name="first")
    second = RecordingHandler(["a"], wait_ms=700, name="second")
    buffer, scheduler, recorder = build_buffer([first, second])

    assert buffer.push("tv", "a") is second

    scheduler.advance(100)
    assert recorder.actions == []
    scheduler.advance(600)
    assert recorder.action_names == ["second"]
    assert first.commits == []


def test_commit_requires_continued_interest() -> None:
    handler = _LosesInterestHandler()
    buffer, scheduler, recorder = build_buffer([handler])

    buffer.push("tv", "x")
    scheduler.advance(500)

    assert not handler.committed
    session = buffer.arena.get("tv")
    assert session is not None and session.idle


def test_evaluate_failure_is_contained(caplog: pytest.LogCaptureFixture) -> None:
    buffer, scheduler, _ = build_buffer([_ExplodingHandler()])

    with caplog.at_level(logging.ERROR, logger="irkeys_core.session"):
        assert buffer.push("tv", "x") is None

    session = buffer.arena.get("tv")
    assert session is not None and session.idle
    assert scheduler.pending == 0
    assert any(
        getattr(record, "event", None) == "session.evaluate_failed" for record in caplog.records
    )


def test_commit_failure_is_contained(caplog: pytest.LogCaptureFixture) -> None:
    buffer, scheduler, _ = build_buffer([_ExplodingHandler(on_commit=True)])

    buffer.push("tv", "x")
    with caplog.at_level(logging.ERROR, logger="irkeys_core.session"):
        scheduler.advance(100)

    session = buffer.arena.get("tv")
    assert session is not None and session.idle
    assert any(
        getattr(record, "event", None) == "session.commit_failed" for record in caplog.records
    )


def test_controller_id_reaches_actions() -> None:
    handler = RecordingHandler(["a"], wait_ms=0)
    buffer, scheduler, recorder = build_buffer([handler])

    buffer.push("tv", "a", controller_id="192.168.1.20")
    scheduler.advance(0)

    assert recorder.actions[0].controller_id == "192.168.1.20"
    assert recorder.actions[0].keys == ("a",)


def test_timestamps_follow_scheduler_clock() -> None:
    handler = RecordingHandler(["a"], wait_ms=1000)
    buffer, scheduler, _ = build_buffer([handler], scheduler=ManualScheduler(start_ms=250))

    buffer.push("tv", "a")
    scheduler.advance(40)
    buffer.push("tv", "a")

    session = buffer.arena.get("tv")
    assert session is not None
    assert session.timestamps == [250.0, 290.0]
    assert session.last_event_time == 290.0
    assert session.generation == 2
    assert session.pending_wait_ms == 1000


def test_arena_creates_sessions_lazily() -> None:
    arena = SessionArena()

    assert "tv" not in arena
    session = arena.get_or_create("tv")
    assert isinstance(session, RemoteSession)
    assert arena.get_or_create("tv") is session
    assert list(arena) == [session]


def test_loop_scheduler_drives_commits() -> None:
    recorder = DispatchRecorder()

    async def scenario() -> None:
        scheduler = LoopScheduler()
        assert isinstance(scheduler, Scheduler)
        buffer = SessionBuffer(
            HandlerChain([ExactOrPrefixCommand([["power"]], "toggle_power")]),
            recorder.dispatcher(),
            scheduler,
        )
        buffer.push("tv", "power")
        await asyncio.sleep(0.05)

    asyncio.run(scenario())

    assert recorder.action_names == ["toggle_power"]
