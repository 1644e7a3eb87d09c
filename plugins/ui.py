"""Declarative UI trees for plugin trays.

A tray holds one render function. Rendering builds a fresh immutable UINode
tree which is handed to the publisher (the plugin instance sends it to the
UI client). The previous tree is simply replaced; diffing is left to the
client.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Sequence

from pydantic import BaseModel, ConfigDict, Field

from .boundary import call_guarded
from .field_refs import FieldRef
from .state import ReactiveStateStore

logger = logging.getLogger(__name__)

RenderFn = Callable[[], "UINode"]


class UINode(BaseModel):
    """Immutable description of one UI component.

    Attributes:
        type: Component kind ("stack", "button", "text", "input", ...)
        props: Component properties, camelCase keys as the client expects
        items: Ordered children
    """

    model_config = ConfigDict(frozen=True)

    type: str
    props: dict[str, Any] = Field(default_factory=dict)
    items: tuple["UINode", ...] = ()

    def to_wire(self) -> dict[str, Any]:
        """Serialize the tree for the UI client."""
        return self.model_dump(mode="json")

    def find(self, node_type: str) -> list["UINode"]:
        """Return every node of a type, depth first."""
        found = [self] if self.type == node_type else []
        for item in self.items:
            found.extend(item.find(node_type))
        return found


def _props(**kwargs: Any) -> dict[str, Any]:
    return {k: v for k, v in kwargs.items() if v is not None}


def _children(items: Sequence[UINode] | None) -> tuple[UINode, ...]:
    return tuple(item for item in (items or ()) if item is not None)


class Tray:
    """A tray UI surface contributed by a plugin.

    Attributes:
        plugin_id: Owning plugin
        tooltip_text: Tooltip shown on the tray icon
        icon_url: Icon image URL
        with_content: Whether the tray opens a content panel
        badge: Optional badge ``{"number": int, "intent": str}``
        last_tree: Tree produced by the latest successful render
        renders: Number of completed renders
    """

    def __init__(
        self,
        plugin_id: str,
        store: ReactiveStateStore,
        *,
        tooltip_text: str = "",
        icon_url: str = "",
        with_content: bool = True,
        on_render: Callable[["Tray", UINode], None] | None = None,
    ):
        self.plugin_id = plugin_id
        self.tooltip_text = tooltip_text
        self.icon_url = icon_url
        self.with_content = with_content
        self.badge: dict[str, Any] | None = None
        self.last_tree: UINode | None = None
        self.renders = 0
        self._store = store
        self._render_fn: RenderFn | None = None
        self._on_render = on_render
        self._dirty = False
        self._rendering = False
        self._reads: frozenset[str] | None = None

    # ------------------------------------------------------------------
    # Render lifecycle
    # ------------------------------------------------------------------

    def render(self, fn: RenderFn) -> None:
        """Install the render function. It runs when the current turn settles."""
        self._render_fn = fn
        self._dirty = True

    def invalidate(self) -> None:
        self._dirty = True

    def affected_by(self, cell_id: str) -> bool:
        """True if the latest render read the cell (or has not succeeded yet)."""
        return self._reads is None or cell_id in self._reads

    @property
    def dirty(self) -> bool:
        return self._dirty

    def flush(self) -> UINode | None:
        """Render if invalidated since the last render."""
        if not self._dirty:
            return None
        return self.render_now()

    def render_now(self) -> UINode | None:
        """Build a new tree and publish it.

        Returns:
            The new tree, or None if there is no render function or it failed
        """
        if self._render_fn is None:
            self._dirty = False
            return None
        if self._rendering:
            self._dirty = True
            return None

        self._rendering = True
        self._dirty = False
        try:
            with self._store.freeze(), self._store.track_reads() as reads:
                ok, tree = call_guarded(self.plugin_id, "tray render", self._render_fn)
        finally:
            self._rendering = False

        if not ok:
            # Unknown reads: any later state change retries the render.
            self._reads = None
            return None
        self._reads = frozenset(reads)
        if not isinstance(tree, UINode):
            logger.warning(
                "Plugin %s tray render returned %s, expected a UI node",
                self.plugin_id,
                type(tree).__name__,
            )
            return None

        self.last_tree = tree
        self.renders += 1
        if self._on_render is not None:
            self._on_render(self, tree)
        return tree

    def meta(self) -> dict[str, Any]:
        """Tray properties sent alongside each tree."""
        return _props(
            tooltipText=self.tooltip_text,
            iconUrl=self.icon_url,
            withContent=self.with_content,
            badge=self.badge,
        )

    def update_badge(self, number: int, intent: str = "info") -> None:
        """Show a numeric badge on the tray icon (0 hides it)."""
        self.badge = {"number": number, "intent": intent} if number else None
        self._dirty = True

    # ------------------------------------------------------------------
    # Node constructors
    # ------------------------------------------------------------------

    def stack(
        self,
        items: Sequence[UINode] | None = None,
        *,
        gap: int | None = None,
        style: dict[str, Any] | None = None,
    ) -> UINode:
        return UINode(type="stack", props=_props(gap=gap, style=style), items=_children(items))

    def flex(
        self,
        items: Sequence[UINode] | None = None,
        *,
        gap: int | None = None,
        direction: str | None = None,
        style: dict[str, Any] | None = None,
    ) -> UINode:
        return UINode(
            type="flex",
            props=_props(gap=gap, direction=direction, style=style),
            items=_children(items),
        )

    def div(
        self,
        items: Sequence[UINode] | None = None,
        *,
        style: dict[str, Any] | None = None,
    ) -> UINode:
        return UINode(type="div", props=_props(style=style), items=_children(items))

    def text(self, text: str, *, style: dict[str, Any] | None = None) -> UINode:
        return UINode(type="text", props=_props(text=text, style=style))

    def button(
        self,
        label: str,
        on_click: str | None = None,
        *,
        intent: str | None = None,
        disabled: bool | None = None,
        style: dict[str, Any] | None = None,
    ) -> UINode:
        """A button; ``on_click`` names an event handler of this plugin."""
        return UINode(
            type="button",
            props=_props(
                label=label,
                onClick=on_click,
                intent=intent,
                disabled=disabled,
                style=style,
            ),
        )

    def input(
        self,
        label: str | None = None,
        *,
        field_ref: FieldRef | str | None = None,
        value: Any = None,
        placeholder: str | None = None,
        on_change: str | None = None,
        style: dict[str, Any] | None = None,
    ) -> UINode:
        """A text input, bound to a field ref by id when ``field_ref`` is given."""
        ref_id = field_ref.id if isinstance(field_ref, FieldRef) else field_ref
        return UINode(
            type="input",
            props=_props(
                label=label,
                fieldRef=ref_id,
                value=value,
                placeholder=placeholder,
                onChange=on_change,
                style=style,
            ),
        )

    def anchor(self, text: str, href: str, *, target: str = "_blank") -> UINode:
        return UINode(type="anchor", props=_props(text=text, href=href, target=target))
