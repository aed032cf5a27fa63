"""Ordered collection of handlers with last-match-wins selection."""

from __future__ import annotations

import logging
from typing import Iterable, Iterator, List, Optional, Sequence

from irkeys_core.handlers.base import KeyHandler, RemoteContext

__all__ = ["HandlerChain"]


logger = logging.getLogger(__name__)


class HandlerChain:
    """Handlers evaluated in registration order.

    Every handler sees every sequence.  When several are interested the one
    registered *last* wins, so a later, more specific handler overrides an
    earlier generic one.  This is intentionally not first-match-wins.
    """

    def __init__(self, handlers: Iterable[KeyHandler] = ()) -> None:
        self._handlers: List[KeyHandler] = []
        for handler in handlers:
            self.register(handler)

    def register(self, handler: KeyHandler) -> None:
        if not isinstance(handler, KeyHandler):
            raise TypeError(f"Expected a KeyHandler, got {type(handler).__name__}")
        self._handlers.append(handler)
        logger.debug(
            "Registered key handler.",
            extra={"event": "handlers.registered", "handler": handler.name},
        )

    def __len__(self) -> int:
        return len(self._handlers)

    def __iter__(self) -> Iterator[KeyHandler]:
        return iter(tuple(self._handlers))

    def select(
        self,
        context: RemoteContext,
        keys: Sequence[str],
        timestamps: Sequence[float],
    ) -> Optional[tuple[KeyHandler, int]]:
        """Return the last interested handler and its requested wait."""

        chosen: Optional[tuple[KeyHandler, int]] = None
        for handler in self._handlers:
            wait_ms = handler.evaluate(context, keys, False, timestamps)
            if wait_ms is not None:
                chosen = (handler, wait_ms)
        return chosen
