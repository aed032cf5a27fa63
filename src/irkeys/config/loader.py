"""Build decoder settings and the handler chain from YAML configuration.

The configuration is a mapping with optional ``decoder``, ``matching``,
``menu_keymaps`` and ``handlers`` sections.  Handlers are registered in the
order they are listed, which matters: when several handlers claim the same
sequence the last one listed wins.

Example::

    menu_keymaps:
      tvtuner: {menu: n5, up: n2, down: n8, left: n4, right: n6}
    handlers:
      - type: command
        sequences: [[record]]
        action: toggle_wardrobe_strip
        label: Wardrobe strip
      - type: menu
        tree:
          label: ""
          children:
            - {label: Lights, children: [{label: Ceiling, action: toggle_ceiling}]}
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping as MappingABC
from importlib import resources
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Sequence

import yaml

from irkeys_core.decoder import DecoderSettings
from irkeys_core.errors import ConfigurationError
from irkeys_core.handlers import (
    ContinuousRepeatCommand,
    ExactOrPrefixCommand,
    HandlerChain,
    HierarchicalMenuNavigator,
    KeyHandler,
    MenuKeymap,
    MenuNode,
    NumericMode,
    NumericParameterizedCommand,
    PickerItem,
    RotaryPickerMenu,
)
from irkeys_core.patterns import MatchSettings

__all__ = [
    "build_decoder_settings",
    "build_handler",
    "build_handler_chain",
    "build_match_settings",
    "load_handler_config",
]


logger = logging.getLogger(__name__)


_RESOURCE_PACKAGE = "irkeys.resources.config"
_RESOURCE_NAME = "handlers.yaml"


def load_handler_config(
    path: str | Path | None = None,
    *,
    search_paths: Iterable[str | Path] | None = None,
) -> Mapping[str, Any]:
    """Load the handler configuration honouring site-specific fallbacks.

    Parameters
    ----------
    path:
        Path to a YAML file. When supplied the search order is skipped and a
        missing file raises :class:`FileNotFoundError`.
    search_paths:
        Optional directories or files to inspect. Directories are resolved
        against ``handlers.yaml``. The first existing file wins; otherwise the
        defaults bundled with :mod:`irkeys` are used.
    """

    if path is not None:
        candidate = Path(path).expanduser()
        if not candidate.is_file():
            raise FileNotFoundError(candidate)
        return _load_payload(candidate)

    for entry in search_paths or ():
        entry_path = Path(entry).expanduser()
        candidate = entry_path / _RESOURCE_NAME if entry_path.is_dir() else entry_path
        if candidate.is_file():
            return _load_payload(candidate)

    resource = resources.files(_RESOURCE_PACKAGE).joinpath(_RESOURCE_NAME)
    return _load_from_text(resource.read_text(encoding="utf-8"), source=str(resource))


def _load_payload(path: Path) -> Mapping[str, Any]:
    with path.open("r", encoding="utf-8") as buffer:
        payload = buffer.read()
    return _load_from_text(payload, source=str(path))


def _load_from_text(payload: str, *, source: str) -> Mapping[str, Any]:
    try:
        data = yaml.safe_load(payload)
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in handler configuration: {source}") from exc

    if data is None:
        return MappingProxyType({})
    if not isinstance(data, MappingABC):
        raise TypeError(f"Handler configuration in {source!s} must decode to a mapping")
    return MappingProxyType(dict(data))


def _section(config: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = config.get(name)
    if section is None:
        return {}
    if not isinstance(section, MappingABC):
        raise ConfigurationError(f"'{name}' section must be a mapping")
    return section


def build_match_settings(config: Mapping[str, Any]) -> MatchSettings:
    section = _section(config, "matching")
    defaults = MatchSettings()
    try:
        return MatchSettings(
            ratio_low=float(section.get("ratio_low", defaults.ratio_low)),
            ratio_high=float(section.get("ratio_high", defaults.ratio_high)),
            end_of_transmission_us=int(
                section.get("end_of_transmission_us", defaults.end_of_transmission_us)
            ),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid matching settings: {exc}") from exc


def build_decoder_settings(config: Mapping[str, Any]) -> DecoderSettings:
    section = _section(config, "decoder")
    defaults = DecoderSettings()
    marker = section.get("start_marker_us")
    if marker is None:
        marker_low, marker_high = defaults.start_marker_low_us, defaults.start_marker_high_us
    else:
        if not isinstance(marker, Sequence) or isinstance(marker, str) or len(marker) != 2:
            raise ConfigurationError("'start_marker_us' must be a [low, high] pair")
        try:
            marker_low, marker_high = int(marker[0]), int(marker[1])
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid start marker window: {marker!r}") from exc
    try:
        return DecoderSettings(
            noise_floor_us=int(section.get("noise_floor_us", defaults.noise_floor_us)),
            noise_ceiling_us=int(section.get("noise_ceiling_us", defaults.noise_ceiling_us)),
            start_marker_low_us=marker_low,
            start_marker_high_us=marker_high,
            min_periods=int(section.get("min_periods", defaults.min_periods)),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid decoder settings: {exc}") from exc


def _remotes(entry: Mapping[str, Any]) -> list[str] | None:
    remotes = entry.get("remotes")
    if remotes is None:
        return None
    if isinstance(remotes, str):
        return [remotes]
    return [str(remote) for remote in remotes]


def _entries(raw: Any, what: str) -> list[Mapping[str, Any]]:
    if not isinstance(raw, list):
        raise ConfigurationError(f"Expected a list of {what}")
    for entry in raw:
        if not isinstance(entry, MappingABC):
            raise ConfigurationError(f"Each of the {what} must be a mapping, got {entry!r}")
    return raw


def _build_command(entry: Mapping[str, Any], config: Mapping[str, Any]) -> KeyHandler:
    sequences = entry.get("sequences")
    if sequences is None and "keys" in entry:
        sequences = [entry["keys"]]
    if not isinstance(sequences, list):
        raise ConfigurationError("Command handler requires 'sequences'")
    return ExactOrPrefixCommand(
        [[str(key) for key in sequence] for sequence in sequences],
        str(entry.get("action", "")),
        label=str(entry.get("label", "")),
        prefix_wait_ms=int(entry.get("prefix_wait_ms", 1500)),
        name=entry.get("name"),
        remotes=_remotes(entry),
    )


def _build_numeric(entry: Mapping[str, Any], config: Mapping[str, Any]) -> KeyHandler:
    modes_raw = _entries(entry.get("modes"), "numeric 'modes'")
    modes = [
        NumericMode(
            label=str(mode.get("label", "")),
            action=str(mode["action"]),
            unit=str(mode.get("unit", "")),
        )
        for mode in modes_raw
    ]
    prefix = entry.get("prefix")
    return NumericParameterizedCommand(
        str(prefix) if prefix is not None else None,
        modes,
        max_digits=int(entry.get("max_digits", 3)),
        name=entry.get("name"),
        remotes=_remotes(entry),
    )


def _build_repeat(entry: Mapping[str, Any], config: Mapping[str, Any]) -> KeyHandler:
    keys = entry.get("keys")
    if not isinstance(keys, list):
        raise ConfigurationError("Repeat handler requires a list of 'keys'")
    return ContinuousRepeatCommand(
        [str(key) for key in keys],
        str(entry.get("action", "")),
        wait_ms=int(entry.get("wait_ms", 2500)),
        name=entry.get("name"),
        remotes=_remotes(entry),
    )


def _build_menu_node(payload: Any) -> MenuNode:
    if not isinstance(payload, MappingABC):
        raise ConfigurationError(f"Menu node must be a mapping, got {payload!r}")
    children = payload.get("children")
    value = payload.get("value")
    return MenuNode(
        label=str(payload.get("label", "")),
        children=[_build_menu_node(child) for child in children] if children is not None else None,
        action=str(payload["action"]) if payload.get("action") is not None else None,
        value=int(value) if value is not None else None,
    )


def _build_menu(entry: Mapping[str, Any], config: Mapping[str, Any]) -> KeyHandler:
    keymaps_raw = entry.get("keymaps", config.get("menu_keymaps"))
    if not isinstance(keymaps_raw, MappingABC):
        raise ConfigurationError("Menu handler requires 'keymaps' or top-level 'menu_keymaps'")
    keymaps: Dict[str, MenuKeymap] = {}
    for remote, payload in keymaps_raw.items():
        if not isinstance(payload, MappingABC):
            raise ConfigurationError(f"Keymap for remote {remote!r} must be a mapping")
        keymaps[str(remote)] = MenuKeymap.from_mapping(payload)
    tree = entry.get("tree")
    if tree is None:
        raise ConfigurationError("Menu handler requires a 'tree'")
    return HierarchicalMenuNavigator(
        keymaps,
        _build_menu_node(tree),
        wait_ms=int(entry.get("wait_ms", 8000)),
        name=entry.get("name"),
    )


def _build_picker(entry: Mapping[str, Any], config: Mapping[str, Any]) -> KeyHandler:
    items_raw = _entries(entry.get("items"), "picker 'items'")
    items = [
        PickerItem(
            label=str(item.get("label", "")),
            action=str(item["action"]),
            value=int(item["value"]) if item.get("value") is not None else None,
        )
        for item in items_raw
    ]
    return RotaryPickerMenu(
        str(entry.get("remote", "")),
        items,
        jitter_ms=float(entry.get("jitter_ms", 20)),
        name=entry.get("name"),
    )


_BUILDERS: Mapping[str, Callable[[Mapping[str, Any], Mapping[str, Any]], KeyHandler]] = {
    "command": _build_command,
    "numeric": _build_numeric,
    "repeat": _build_repeat,
    "menu": _build_menu,
    "picker": _build_picker,
}


def build_handler(entry: Mapping[str, Any], config: Mapping[str, Any] | None = None) -> KeyHandler:
    """Construct a single handler, raising :class:`ConfigurationError`."""

    if not isinstance(entry, MappingABC):
        raise ConfigurationError(f"Handler entry must be a mapping, got {entry!r}")
    kind = entry.get("type")
    builder = _BUILDERS.get(str(kind))
    if builder is None:
        raise ConfigurationError(f"Unknown handler type {kind!r}")
    try:
        return builder(entry, config or {})
    except ConfigurationError:
        raise
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigurationError(f"Malformed {kind} handler: {exc}") from exc


def build_handler_chain(config: Mapping[str, Any]) -> HandlerChain:
    """Build the chain, refusing (and logging) handlers that fail validation."""

    entries = config.get("handlers") or []
    if not isinstance(entries, list):
        raise ConfigurationError("'handlers' must be a list")
    chain = HandlerChain()
    for position, entry in enumerate(entries):
        try:
            handler = build_handler(entry, config)
        except ConfigurationError as exc:
            logger.warning(
                "Refusing to register misconfigured handler.",
                extra={
                    "event": "handlers.rejected",
                    "position": position,
                    "reason": str(exc),
                },
            )
            continue
        chain.register(handler)
    return chain
