"""Per-remote key accumulation and the debounce/commit protocol.

Each remote owns a :class:`RemoteSession`.  Every key appended to it is
evaluated by the whole handler chain and schedules its own commit check.
Checks are never cancelled: each one remembers the session generation it was
scheduled for and does nothing if a newer key has arrived since.  A burst of
keys therefore commits once, ``pending_wait_ms`` after the last key.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Protocol, runtime_checkable

from irkeys_core.dispatch import Dispatcher
from irkeys_core.handlers.base import KeyHandler, RemoteContext
from irkeys_core.handlers.chain import HandlerChain

__all__ = [
    "LoopScheduler",
    "RemoteSession",
    "Scheduler",
    "SessionArena",
    "SessionBuffer",
]


logger = logging.getLogger(__name__)


@runtime_checkable
class Scheduler(Protocol):
    """Clock and delayed-callback facility used by :class:`SessionBuffer`."""

    def now_ms(self) -> float:
        ...

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> Any:
        ...


class LoopScheduler:
    """:class:`Scheduler` backed by an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now_ms(self) -> float:
        return self.loop.time() * 1000.0

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self.loop.call_later(max(delay_ms, 0.0) / 1000.0, callback)


@dataclass
class RemoteSession:
    """In-flight key sequence of a single remote."""

    remote_id: str
    keys: List[str] = field(default_factory=list)
    timestamps: List[float] = field(default_factory=list)
    last_event_time: float = 0.0
    active_handler: Optional[KeyHandler] = None
    pending_wait_ms: int = 1500
    generation: int = 0
    controller_id: Optional[str] = None

    @property
    def idle(self) -> bool:
        return not self.keys

    def append(self, key: str, timestamp: float) -> None:
        self.keys.append(key)
        self.timestamps.append(timestamp)
        self.last_event_time = timestamp
        self.generation += 1

    def reset(self) -> None:
        self.keys.clear()
        self.timestamps.clear()
        self.active_handler = None


class SessionArena:
    """Owns the sessions of every remote seen so far, keyed by remote id."""

    def __init__(self) -> None:
        self._sessions: Dict[str, RemoteSession] = {}

    def get(self, remote_id: str) -> Optional[RemoteSession]:
        return self._sessions.get(remote_id)

    def get_or_create(self, remote_id: str) -> RemoteSession:
        session = self._sessions.get(remote_id)
        if session is None:
            session = RemoteSession(remote_id=remote_id)
            self._sessions[remote_id] = session
        return session

    def __contains__(self, remote_id: object) -> bool:
        return remote_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[RemoteSession]:
        return iter(list(self._sessions.values()))


class SessionBuffer:
    """Append keys to remote sessions and drive deferred commits."""

    def __init__(
        self,
        chain: HandlerChain,
        dispatcher: Dispatcher,
        scheduler: Scheduler,
        *,
        arena: SessionArena | None = None,
    ) -> None:
        self._chain = chain
        self._dispatcher = dispatcher
        self._scheduler = scheduler
        self._arena = arena if arena is not None else SessionArena()

    @property
    def arena(self) -> SessionArena:
        return self._arena

    @property
    def chain(self) -> HandlerChain:
        return self._chain

    def push(
        self,
        remote_id: str,
        key: str,
        *,
        controller_id: str | None = None,
    ) -> Optional[KeyHandler]:
        """Append ``key`` for ``remote_id`` and return the chosen handler."""

        session = self._arena.get_or_create(remote_id)
        if controller_id is not None:
            session.controller_id = controller_id
        session.append(key, self._scheduler.now_ms())
        keys = tuple(session.keys)
        timestamps = tuple(session.timestamps)

        try:
            selection = self._chain.select(self._context(session), keys, timestamps)
        except Exception:
            logger.exception(
                "Key handler failed while evaluating a sequence.",
                extra={"event": "session.evaluate_failed", "remote": remote_id, "keys": list(keys)},
            )
            session.reset()
            return None

        if selection is None:
            logger.info(
                "Ignored key sequence.",
                extra={"event": "session.ignored", "remote": remote_id, "keys": list(keys)},
            )
            session.reset()
            return None

        handler, wait_ms = selection
        session.active_handler = handler
        session.pending_wait_ms = wait_ms
        generation = session.generation
        self._scheduler.call_later(wait_ms, lambda: self._commit_check(session, generation))
        logger.debug(
            "Commit check scheduled.",
            extra={
                "event": "session.scheduled",
                "remote": remote_id,
                "handler": handler.name,
                "wait_ms": wait_ms,
                "generation": generation,
            },
        )
        return handler

    def _commit_check(self, session: RemoteSession, generation: int) -> None:
        if generation != session.generation:
            return
        handler = session.active_handler
        keys = tuple(session.keys)
        timestamps = tuple(session.timestamps)
        context = self._context(session)
        try:
            if handler is not None and handler.evaluate(context, keys, True, timestamps) is not None:
                logger.info(
                    "Committing key sequence.",
                    extra={
                        "event": "session.commit",
                        "remote": session.remote_id,
                        "handler": handler.name,
                        "keys": list(keys),
                    },
                )
                handler.commit(context, keys, timestamps)
        except Exception:
            logger.exception(
                "Key handler failed while committing a sequence.",
                extra={
                    "event": "session.commit_failed",
                    "remote": session.remote_id,
                    "keys": list(keys),
                },
            )
        finally:
            session.reset()

    def _context(self, session: RemoteSession) -> RemoteContext:
        return RemoteContext(
            remote_id=session.remote_id,
            dispatcher=self._dispatcher,
            controller_id=session.controller_id,
        )
