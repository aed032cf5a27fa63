"""Deliver committed actions and transient feedback to collaborators.

The dispatcher is the error boundary between the engine and the outside
world: sinks may raise or return coroutines, but nothing they do propagates
back into session handling.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

__all__ = [
    "ActionDescriptor",
    "ActionRouter",
    "ActionSink",
    "Dispatcher",
    "FeedbackSink",
]


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActionDescriptor:
    """Action resolved from a committed key sequence."""

    name: str
    remote_id: str
    keys: tuple[str, ...] = ()
    value: Optional[int] = None
    label: str = ""
    controller_id: Optional[str] = None


ActionSink = Callable[[ActionDescriptor], Any]
FeedbackSink = Callable[[str, str, int], Any]


class Dispatcher:
    """Invoke outbound sinks without ever raising into the caller."""

    def __init__(
        self,
        on_action: ActionSink | None = None,
        on_feedback: FeedbackSink | None = None,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._on_action = on_action
        self._on_feedback = on_feedback
        self._loop = loop
        self._pending: set[asyncio.Future[Any]] = set()

    def fire(self, action: ActionDescriptor) -> None:
        logger.info(
            "Dispatching action.",
            extra={
                "event": "dispatch.action",
                "action": action.name,
                "remote": action.remote_id,
                "keys": list(action.keys),
                "value": action.value,
            },
        )
        if self._on_action is None:
            return
        try:
            result = self._on_action(action)
        except Exception:
            logger.exception(
                "Action sink failed.",
                extra={"event": "dispatch.action_failed", "action": action.name},
            )
            return
        self._detach(result, action.name)

    def feedback(self, remote_id: str, label: str, duration_ms: int) -> None:
        if self._on_feedback is None or not label:
            return
        try:
            result = self._on_feedback(remote_id, label, duration_ms)
        except Exception:
            logger.exception(
                "Feedback sink failed.",
                extra={"event": "dispatch.feedback_failed", "remote": remote_id},
            )
            return
        self._detach(result, "feedback")

    def _detach(self, result: Any, name: str) -> None:
        if not inspect.isawaitable(result):
            return
        loop = self._loop
        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.error(
                    "Awaitable returned outside of an event loop was dropped.",
                    extra={"event": "dispatch.no_loop", "action": name},
                )
                if inspect.iscoroutine(result):
                    result.close()
                return
        future = asyncio.ensure_future(result, loop=loop)
        self._pending.add(future)
        future.add_done_callback(lambda done: self._on_done(done, name))

    def _on_done(self, future: asyncio.Future[Any], name: str) -> None:
        self._pending.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error(
                "Asynchronous action failed.",
                extra={"event": "dispatch.action_failed", "action": name},
                exc_info=exc,
            )


class ActionRouter:
    """Route :class:`ActionDescriptor` objects to callables by action name."""

    def __init__(self) -> None:
        self._routes: Dict[str, Callable[[ActionDescriptor], Any]] = {}

    def bind(
        self, name: str, callback: Callable[[ActionDescriptor], Any | Awaitable[Any]]
    ) -> None:
        self._routes[name] = callback

    def unbind(self, name: str) -> None:
        self._routes.pop(name, None)

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self._routes)

    def __call__(self, action: ActionDescriptor) -> Any:
        callback = self._routes.get(action.name)
        if callback is None:
            logger.warning(
                "No callback bound for action.",
                extra={"event": "dispatch.unbound", "action": action.name},
            )
            return None
        return callback(action)
