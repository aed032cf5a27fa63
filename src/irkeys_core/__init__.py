"""Remote-control signal recognition and command dispatch engine.

The package is free of I/O: it matches pulse captures against learned
patterns, accumulates keys per remote and resolves sequences through a chain
of handlers.  Transport, persistence and configuration live in :mod:`irkeys`.
"""

from irkeys_core.decoder import DecodedKey, DecoderSettings, LastCapture, PulseDecoder
from irkeys_core.dispatch import ActionDescriptor, ActionRouter, Dispatcher
from irkeys_core.engine import PatternRepository, RemoteControlEngine
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
    RemoteContext,
    RotaryPickerMenu,
)
from irkeys_core.patterns import MatchSettings, PatternLibrary, PatternMatch, PulsePattern
from irkeys_core.session import LoopScheduler, RemoteSession, Scheduler, SessionArena, SessionBuffer

__all__ = [
    "ActionDescriptor",
    "ActionRouter",
    "ConfigurationError",
    "ContinuousRepeatCommand",
    "DecodedKey",
    "DecoderSettings",
    "Dispatcher",
    "ExactOrPrefixCommand",
    "HandlerChain",
    "HierarchicalMenuNavigator",
    "KeyHandler",
    "LastCapture",
    "LoopScheduler",
    "MatchSettings",
    "MenuKeymap",
    "MenuNode",
    "NumericMode",
    "NumericParameterizedCommand",
    "PatternLibrary",
    "PatternMatch",
    "PatternRepository",
    "PickerItem",
    "PulseDecoder",
    "PulsePattern",
    "RemoteContext",
    "RemoteControlEngine",
    "RemoteSession",
    "RotaryPickerMenu",
    "Scheduler",
    "SessionArena",
    "SessionBuffer",
]
