"""The UI context handed to a plugin's ``ui.register`` function.

Everything a plugin registers through the context (state, effects, field
refs, the tray, event handlers, timers, listeners) belongs to its instance
and is torn down with it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Sequence

from core import Channel, custom_channel

from .effects import Effect
from .field_refs import FieldRef
from .models import ScreenEvent
from .state import StateCell
from .ui import Tray

if TYPE_CHECKING:
    from .instance import PluginInstance


class ScreenCapability:
    """Client screen navigation."""

    def __init__(self, instance: "PluginInstance"):
        self._instance = instance

    def on_navigate(self, callback: Callable[[ScreenEvent], Any]) -> None:
        """Call ``callback(ScreenEvent)`` whenever the client changes screen."""
        self._instance.on_navigate(callback)

    def navigate_to(self, path: str) -> None:
        """Ask the client to navigate. Paths outside the allow-list are dropped."""
        self._instance.emit(Channel.SCREEN_NAVIGATE_TO, {"path": path})

    def reload(self) -> None:
        self._instance.emit(Channel.SCREEN_RELOAD)


class ToastCapability:
    """Toast notifications shown by the client."""

    def __init__(self, instance: "PluginInstance"):
        self._instance = instance

    def _show(self, kind: str, message: str) -> None:
        self._instance.emit(Channel.TOAST, {"type": kind, "message": str(message)})

    def info(self, message: str) -> None:
        self._show("info", message)

    def success(self, message: str) -> None:
        self._show("success", message)

    def warning(self, message: str) -> None:
        self._show("warning", message)

    def error(self, message: str) -> None:
        self._show("error", message)


class UIContext:
    """Per-instance UI API.

    Attributes:
        screen: Navigation listeners and requests
        toast: Toast notifications
    """

    def __init__(self, instance: "PluginInstance"):
        self._instance = instance
        self.screen = ScreenCapability(instance)
        self.toast = ToastCapability(instance)

    @property
    def plugin_id(self) -> str:
        return self._instance.id

    def state(self, initial: Any = None) -> StateCell[Any]:
        """Create a reactive state cell."""
        return self._instance.store.new_state(initial)

    def effect(self, body: Callable[[], Any], deps: Sequence[StateCell[Any]]) -> Effect:
        """Run ``body`` now and again whenever one of ``deps`` changes."""
        return self._instance.effects.register_effect(body, deps)

    def register_field_ref(self, ref_id: str, initial: Any = None) -> FieldRef:
        return self._instance.field_refs.register(ref_id, initial)

    def new_tray(
        self, tooltip_text: str = "", icon_url: str = "", with_content: bool = True
    ) -> Tray:
        """Create the plugin's tray.

        Raises:
            InvalidOperationError: If the plugin already created one
        """
        return self._instance.create_tray(
            tooltip_text=tooltip_text, icon_url=icon_url, with_content=with_content
        )

    def register_event_handler(self, name: str, callback: Callable[..., Any]) -> None:
        """Bind a name that UI components reference (e.g. a button's on_click).

        The callback receives the event payload dict sent by the client
        if it accepts an argument.
        """
        self._instance.handlers.register(name, callback)

    def set_timeout(self, callback: Callable[[], Any], delay_ms: float) -> None:
        """Run ``callback`` once after ``delay_ms`` milliseconds."""
        self._instance.timers.set_timeout(callback, delay_ms)

    def on(self, name: str, callback: Callable[[dict[str, Any]], Any]) -> None:
        """Listen to a custom event sent by the client to this plugin."""
        self._instance.listen_custom(name, callback)

    def emit(self, name: str, payload: dict[str, Any] | None = None) -> None:
        """Send a custom event to the client."""
        self._instance.emit(custom_channel(name), payload)
