"""Key sequence handlers and the chain that selects between them."""

from irkeys_core.handlers.base import KeyHandler, RemoteContext, digit_value, digits_to_value
from irkeys_core.handlers.chain import HandlerChain
from irkeys_core.handlers.commands import (
    ContinuousRepeatCommand,
    ExactOrPrefixCommand,
    NumericMode,
    NumericParameterizedCommand,
)
from irkeys_core.handlers.menus import (
    HierarchicalMenuNavigator,
    MenuKeymap,
    MenuNode,
    MenuResolution,
    PickerItem,
    RotaryPickerMenu,
    replay_menu_path,
    replay_picker_index,
)

__all__ = [
    "ContinuousRepeatCommand",
    "ExactOrPrefixCommand",
    "HandlerChain",
    "HierarchicalMenuNavigator",
    "KeyHandler",
    "MenuKeymap",
    "MenuNode",
    "MenuResolution",
    "NumericMode",
    "NumericParameterizedCommand",
    "PickerItem",
    "RemoteContext",
    "RotaryPickerMenu",
    "digit_value",
    "digits_to_value",
    "replay_menu_path",
    "replay_picker_index",
]
