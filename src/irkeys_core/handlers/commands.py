"""Command-style handlers: fixed sequences, numeric entry and repeats."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from irkeys_core.errors import ConfigurationError
from irkeys_core.handlers.base import KeyHandler, RemoteContext, digit_value, digits_to_value

__all__ = [
    "ContinuousRepeatCommand",
    "ExactOrPrefixCommand",
    "NumericMode",
    "NumericParameterizedCommand",
]


logger = logging.getLogger(__name__)


class ExactOrPrefixCommand(KeyHandler):
    """Fire ``action`` when the sequence equals one of ``sequences``.

    A strict prefix of a target keeps the handler interested for
    ``prefix_wait_ms`` so multi-key commands can complete.
    """

    name = "command"

    def __init__(
        self,
        sequences: Iterable[Sequence[str]],
        action: str,
        *,
        label: str = "",
        exact_wait_ms: int = 0,
        prefix_wait_ms: int = 1500,
        label_ms: int = 2000,
        name: str | None = None,
        remotes: Iterable[str] | None = None,
    ) -> None:
        super().__init__(name=name or action, remotes=remotes)
        targets = tuple(tuple(str(key) for key in sequence) for sequence in sequences)
        if not targets or any(not target for target in targets):
            raise ConfigurationError(f"Command {action!r} needs non-empty key sequences")
        if not action:
            raise ConfigurationError("Command requires an action name")
        self._sequences = targets
        self._action = action
        self._label = label
        self._exact_wait_ms = exact_wait_ms
        self._prefix_wait_ms = prefix_wait_ms
        self._label_ms = label_ms

    @property
    def sequences(self) -> tuple[tuple[str, ...], ...]:
        return self._sequences

    def _evaluate(
        self,
        context: RemoteContext,
        keys: Sequence[str],
        final: bool,
        timestamps: Sequence[float],
    ) -> Optional[int]:
        current = tuple(keys)
        if any(target == current for target in self._sequences):
            return self._exact_wait_ms
        if any(
            len(target) > len(current) and target[: len(current)] == current
            for target in self._sequences
        ):
            return self._prefix_wait_ms
        return None

    def commit(
        self,
        context: RemoteContext,
        keys: Sequence[str],
        timestamps: Sequence[float],
    ) -> None:
        context.feedback(self._label, self._label_ms)
        context.fire(self._action, keys, label=self._label)


@dataclass(frozen=True)
class NumericMode:
    """One of the actions a numeric command cycles through."""

    label: str
    action: str
    unit: str = ""


class NumericParameterizedCommand(KeyHandler):
    """Prefix key (pressed one or more times) followed by digit keys.

    Pressing the prefix ``n`` times selects ``modes[(n - 1) % len(modes)]``,
    letting a single button cycle through e.g. sleep, wake and plain timers.
    The digits that follow (only the last ``max_digits`` count) become the
    action's integer value.  With ``prefix=None`` a bare run of digits is
    accepted and the first mode is used.
    """

    name = "numeric"

    def __init__(
        self,
        prefix: Optional[str],
        modes: Sequence[NumericMode],
        *,
        max_digits: int = 3,
        digit_prefix: str = "n",
        mode_wait_ms: int = 3000,
        digits_wait_ms: int = 2000,
        label_ms: int = 2000,
        name: str | None = None,
        remotes: Iterable[str] | None = None,
    ) -> None:
        super().__init__(name=name or f"numeric:{prefix or 'digits'}", remotes=remotes)
        if not modes:
            raise ConfigurationError("Numeric command requires at least one mode")
        if max_digits < 1:
            raise ConfigurationError("max_digits must be positive")
        if prefix is not None and digit_value(prefix, digit_prefix) is not None:
            raise ConfigurationError(f"Numeric prefix {prefix!r} collides with a digit key")
        self._prefix = prefix
        self._modes = tuple(modes)
        self._max_digits = max_digits
        self._digit_prefix = digit_prefix
        self._mode_wait_ms = mode_wait_ms
        self._digits_wait_ms = digits_wait_ms
        self._label_ms = label_ms

    @property
    def modes(self) -> tuple[NumericMode, ...]:
        return self._modes

    def split(self, keys: Sequence[str]) -> Optional[tuple[int, list[str]]]:
        """Return ``(prefix_presses, digit_keys)`` or ``None`` if not ours."""

        if self._prefix is None:
            presses = 0
        else:
            presses = 0
            while presses < len(keys) and keys[presses] == self._prefix:
                presses += 1
            if presses == 0:
                return None
        digits = list(keys[presses:])
        if any(digit_value(key, self._digit_prefix) is None for key in digits):
            return None
        if self._prefix is None and not digits:
            return None
        return presses, digits

    def mode_for(self, presses: int) -> NumericMode:
        return self._modes[max(presses - 1, 0) % len(self._modes)]

    def _evaluate(
        self,
        context: RemoteContext,
        keys: Sequence[str],
        final: bool,
        timestamps: Sequence[float],
    ) -> Optional[int]:
        parsed = self.split(keys)
        if parsed is None:
            return None
        presses, digits = parsed
        mode = self.mode_for(presses)
        if not digits:
            context.feedback(mode.label, self._label_ms)
            return self._mode_wait_ms
        value = digits_to_value(digits, limit=self._max_digits, prefix=self._digit_prefix)
        context.feedback(f"{value}{mode.unit}", 0)
        return self._digits_wait_ms

    def commit(
        self,
        context: RemoteContext,
        keys: Sequence[str],
        timestamps: Sequence[float],
    ) -> None:
        parsed = self.split(keys)
        if parsed is None:
            return
        presses, digits = parsed
        value = digits_to_value(digits, limit=self._max_digits, prefix=self._digit_prefix)
        if not value:
            logger.debug(
                "Numeric command committed without a value.",
                extra={"event": "handler.numeric_empty", "handler": self.name},
            )
            return
        mode = self.mode_for(presses)
        context.fire(mode.action, keys, value=value, label=mode.label)


class ContinuousRepeatCommand(KeyHandler):
    """Act on every key press while the sequence stays inside ``keys``.

    Used for incremental controls such as volume or brightness ramps: the
    action runs immediately on each non-final evaluation and the commit step
    has nothing left to do.
    """

    name = "repeat"

    def __init__(
        self,
        keys: Iterable[str],
        action: str,
        *,
        wait_ms: int = 2500,
        name: str | None = None,
        remotes: Iterable[str] | None = None,
    ) -> None:
        super().__init__(name=name or action, remotes=remotes)
        whitelist = frozenset(str(key) for key in keys)
        if not whitelist:
            raise ConfigurationError(f"Repeat command {action!r} requires at least one key")
        if not action:
            raise ConfigurationError("Repeat command requires an action name")
        self._keys = whitelist
        self._action = action
        self._wait_ms = wait_ms

    @property
    def keys(self) -> frozenset[str]:
        return self._keys

    def _evaluate(
        self,
        context: RemoteContext,
        keys: Sequence[str],
        final: bool,
        timestamps: Sequence[float],
    ) -> Optional[int]:
        if not all(key in self._keys for key in keys):
            return None
        if not final:
            context.fire(self._action, (keys[-1],))
        return self._wait_ms
