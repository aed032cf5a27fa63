"""Menu handlers replaying the whole key history on every evaluation.

Neither handler keeps a cursor.  The current position is recomputed from the
complete key sequence each time, so evaluations may run in any order (the
deferred final check included) and always agree with each other.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Mapping, Optional, Sequence, Union

from irkeys_core.errors import ConfigurationError
from irkeys_core.handlers.base import KeyHandler, RemoteContext

__all__ = [
    "HierarchicalMenuNavigator",
    "MenuKeymap",
    "MenuNode",
    "MenuResolution",
    "PickerItem",
    "RotaryPickerMenu",
    "replay_menu_path",
    "replay_picker_index",
]


@dataclass(frozen=True)
class MenuKeymap:
    """Physical keys of one remote mapped to the five navigation roles."""

    menu: str
    up: str
    down: str
    left: str
    right: str

    def __post_init__(self) -> None:
        roles = (self.menu, self.up, self.down, self.left, self.right)
        if any(not isinstance(role, str) or not role for role in roles):
            raise ConfigurationError(f"Menu keymap requires five key names: {roles!r}")
        if len(set(roles)) != len(roles):
            raise ConfigurationError(f"Menu keymap roles must be distinct: {roles!r}")

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> "MenuKeymap":
        missing = [role for role in ("menu", "up", "down", "left", "right") if role not in payload]
        if missing:
            raise ConfigurationError(f"Menu keymap is missing roles: {missing}")
        return cls(
            menu=str(payload["menu"]),
            up=str(payload["up"]),
            down=str(payload["down"]),
            left=str(payload["left"]),
            right=str(payload["right"]),
        )


ChildrenSource = Union[Sequence["MenuNode"], Callable[[], Sequence["MenuNode"]], None]


@dataclass(frozen=True)
class MenuNode:
    """Menu entry; either a submenu (``children``) or an actionable leaf."""

    label: str
    children: ChildrenSource = None
    action: Optional[str] = None
    value: Optional[int] = None

    def __post_init__(self) -> None:
        if self.children is not None and not callable(self.children):
            object.__setattr__(self, "children", tuple(self.children))

    @property
    def is_submenu(self) -> bool:
        return self.children is not None

    def resolve_children(self) -> tuple["MenuNode", ...]:
        source = self.children
        if source is None:
            return ()
        if callable(source):
            return tuple(source())
        return tuple(source)


@dataclass(frozen=True)
class MenuResolution:
    path: tuple[int, ...]
    node: MenuNode
    selected: bool


def replay_menu_path(keys: Sequence[str], keymap: MenuKeymap) -> tuple[int, ...]:
    """Fold the keys following the opening ``menu`` key into an index path.

    ``left`` on the top level is ignored rather than emptying the path, so
    the result always addresses an entry of the root menu or below it.
    """

    path = [0]
    for key in keys[1:]:
        if key == keymap.up:
            path[-1] -= 1
        elif key == keymap.down:
            path[-1] += 1
        elif key == keymap.menu:
            path = [0]
        elif key == keymap.left:
            if len(path) > 1:
                path.pop()
        elif key == keymap.right:
            path.append(0)
    return tuple(path)


class HierarchicalMenuNavigator(KeyHandler):
    """Navigate a menu tree with the menu/up/down/left/right keys of a remote.

    The sequence must open with the remote's ``menu`` key.  Moving ``right``
    from an actionable leaf selects it: the handler then asks for an immediate
    commit and the commit fires the leaf's action.
    """

    name = "menu"

    def __init__(
        self,
        keymaps: Mapping[str, MenuKeymap],
        root: MenuNode,
        *,
        wait_ms: int = 8000,
        name: str | None = None,
    ) -> None:
        super().__init__(name=name, remotes=keymaps.keys())
        if not keymaps:
            raise ConfigurationError("Menu navigator requires at least one remote keymap")
        for remote, keymap in keymaps.items():
            if not isinstance(keymap, MenuKeymap):
                raise ConfigurationError(f"Keymap for remote {remote!r} is malformed")
        if not root.is_submenu:
            raise ConfigurationError("Menu root must have children")
        if not callable(root.children) and not root.resolve_children():
            raise ConfigurationError("Menu tree is empty")
        self._keymaps = dict(keymaps)
        self._root = root
        self._wait_ms = wait_ms

    @property
    def root(self) -> MenuNode:
        return self._root

    def keymap_for(self, remote_id: str) -> Optional[MenuKeymap]:
        return self._keymaps.get(remote_id)

    def walk(self, path: Sequence[int]) -> tuple[MenuNode, bool]:
        """Return the node addressed by ``path`` and whether a leaf was passed."""

        node = self._root
        past_leaf = False
        for index in path:
            children = node.resolve_children()
            if children:
                node = children[index % len(children)]
                past_leaf = False
            else:
                past_leaf = True
        return node, past_leaf

    def resolve(self, remote_id: str, keys: Sequence[str]) -> Optional[MenuResolution]:
        keymap = self._keymaps.get(remote_id)
        if keymap is None or not keys or keys[0] != keymap.menu:
            return None
        path = replay_menu_path(keys, keymap)
        node, past_leaf = self.walk(path)
        return MenuResolution(
            path=path,
            node=node,
            selected=past_leaf and node.action is not None,
        )

    def _evaluate(
        self,
        context: RemoteContext,
        keys: Sequence[str],
        final: bool,
        timestamps: Sequence[float],
    ) -> Optional[int]:
        resolution = self.resolve(context.remote_id, keys)
        if resolution is None:
            return None
        if resolution.selected:
            return 0
        if not final:
            context.feedback(resolution.node.label, self._wait_ms)
        return self._wait_ms

    def commit(
        self,
        context: RemoteContext,
        keys: Sequence[str],
        timestamps: Sequence[float],
    ) -> None:
        resolution = self.resolve(context.remote_id, keys)
        if resolution is None or not resolution.selected:
            return
        node = resolution.node
        assert node.action is not None
        context.fire(node.action, keys, value=node.value, label=node.label)


@dataclass(frozen=True)
class PickerItem:
    label: str
    action: str
    value: Optional[int] = None


def replay_picker_index(
    keys: Sequence[str],
    timestamps: Sequence[float],
    *,
    forward: str = "rotate_cw",
    backward: str = "rotate_ccw",
    jitter_ms: float = 20.0,
) -> int:
    """Sum rotation steps, skipping events closer than ``jitter_ms`` apart."""

    index = 0
    for position, key in enumerate(keys):
        if position > 0 and (timestamps[position] - timestamps[position - 1]) < jitter_ms:
            continue
        if key == forward:
            index += 1
        elif key == backward:
            index -= 1
    return index


class RotaryPickerMenu(KeyHandler):
    """Flat picker driven by a rotary encoder remote.

    A lone ``click`` is contact bounce and ignored.  Two or more events ending
    in ``click`` select the highlighted item.
    """

    name = "picker"

    def __init__(
        self,
        remote: str,
        items: Union[Sequence[PickerItem], Callable[[], Sequence[PickerItem]]],
        *,
        forward: str = "rotate_cw",
        backward: str = "rotate_ccw",
        click: str = "click",
        jitter_ms: float = 20.0,
        wait_ms: int = 3000,
        select_wait_ms: int = 200,
        label_ms: int = 2000,
        selected_ms: int = 3000,
        name: str | None = None,
    ) -> None:
        super().__init__(name=name or f"picker:{remote}", remotes=(remote,))
        if not remote:
            raise ConfigurationError("Rotary picker requires a remote id")
        if not callable(items):
            items = tuple(items)
            if not items:
                raise ConfigurationError(f"Rotary picker for {remote!r} has no items")
        self._remote = remote
        self._items = items
        self._forward = forward
        self._backward = backward
        self._click = click
        self._jitter_ms = jitter_ms
        self._wait_ms = wait_ms
        self._select_wait_ms = select_wait_ms
        self._label_ms = label_ms
        self._selected_ms = selected_ms

    def items(self) -> tuple[PickerItem, ...]:
        source = self._items
        return tuple(source() if callable(source) else source)

    def current(self, keys: Sequence[str], timestamps: Sequence[float]) -> Optional[PickerItem]:
        items = self.items()
        if not items:
            return None
        index = replay_picker_index(
            keys,
            timestamps,
            forward=self._forward,
            backward=self._backward,
            jitter_ms=self._jitter_ms,
        )
        return items[index % len(items)]

    def _is_selection(self, keys: Sequence[str]) -> bool:
        return len(keys) >= 2 and keys[-1] == self._click

    def _evaluate(
        self,
        context: RemoteContext,
        keys: Sequence[str],
        final: bool,
        timestamps: Sequence[float],
    ) -> Optional[int]:
        if len(keys) == 1 and keys[0] == self._click:
            return None
        if self._is_selection(keys):
            return self._select_wait_ms
        item = self.current(keys, timestamps)
        if item is None:
            return None
        if not final:
            context.feedback(item.label, self._label_ms)
        return self._wait_ms

    def commit(
        self,
        context: RemoteContext,
        keys: Sequence[str],
        timestamps: Sequence[float],
    ) -> None:
        if not self._is_selection(keys):
            return
        item = self.current(keys, timestamps)
        if item is None:
            return
        context.feedback(item.label, self._selected_ms)
        context.fire(item.action, keys, value=item.value, label=item.label)
