"""Handler contract shared by every matching strategy."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from irkeys_core.dispatch import ActionDescriptor, Dispatcher

__all__ = [
    "KeyHandler",
    "RemoteContext",
    "digit_value",
    "digits_to_value",
]


@dataclass(frozen=True)
class RemoteContext:
    """Originating remote plus the outbound channel handlers talk through."""

    remote_id: str
    dispatcher: Dispatcher
    controller_id: Optional[str] = None

    def feedback(self, label: str, duration_ms: int) -> None:
        self.dispatcher.feedback(self.remote_id, label, duration_ms)

    def fire(
        self,
        name: str,
        keys: Sequence[str],
        *,
        value: Optional[int] = None,
        label: str = "",
    ) -> None:
        self.dispatcher.fire(
            ActionDescriptor(
                name=name,
                remote_id=self.remote_id,
                keys=tuple(keys),
                value=value,
                label=label,
                controller_id=self.controller_id,
            )
        )


class KeyHandler(ABC):
    """Stateless strategy deciding whether a key sequence is of interest.

    :meth:`evaluate` returns how many milliseconds to wait before the match is
    treated as final, or ``None`` when the sequence is not for this handler.
    Handlers never store per-session state; everything they need arrives as
    arguments.
    """

    name: str = "handler"

    def __init__(self, *, name: str | None = None, remotes: Iterable[str] | None = None) -> None:
        if name is not None:
            self.name = name
        self._remotes = frozenset(remotes) if remotes is not None else None

    @property
    def remotes(self) -> frozenset[str] | None:
        return self._remotes

    def accepts_remote(self, remote_id: str) -> bool:
        return self._remotes is None or remote_id in self._remotes

    def evaluate(
        self,
        context: RemoteContext,
        keys: Sequence[str],
        final: bool,
        timestamps: Sequence[float],
    ) -> Optional[int]:
        if not keys or not self.accepts_remote(context.remote_id):
            return None
        return self._evaluate(context, keys, final, timestamps)

    @abstractmethod
    def _evaluate(
        self,
        context: RemoteContext,
        keys: Sequence[str],
        final: bool,
        timestamps: Sequence[float],
    ) -> Optional[int]:
        """Strategy-specific part of :meth:`evaluate`."""

    def commit(
        self,
        context: RemoteContext,
        keys: Sequence[str],
        timestamps: Sequence[float],
    ) -> None:
        """Accept the sequence; the default does nothing."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


def digit_value(key: str, prefix: str = "n") -> Optional[int]:
    """Return the digit encoded by a numeric key such as ``n7``."""

    if len(key) == len(prefix) + 1 and key.startswith(prefix) and key[-1].isdigit():
        return int(key[-1])
    return None


def digits_to_value(keys: Sequence[str], *, limit: int = 3, prefix: str = "n") -> int:
    """Fold the last ``limit`` digit keys into an integer."""

    value = 0
    for key in list(keys)[-limit:] if limit > 0 else []:
        digit = digit_value(key, prefix)
        if digit is None:
            raise ValueError(f"{key!r} is not a digit key")
        value = value * 10 + digit
    return value
