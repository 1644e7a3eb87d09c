"""
Named event types and the EventBus protocol.

The EventBus is an abstract interface the plugin runtime uses to talk to the
UI client. The server layer provides the channel-registry implementation.
"""

from enum import Enum
from typing import Any, Callable, Protocol

from pydantic import BaseModel, Field

CUSTOM_CHANNEL_PREFIX = "custom:"


class Channel(str, Enum):
    """Built-in event channels between the runtime and the UI client."""

    # Client -> runtime
    SCREEN_CHANGED = "screen:changed"
    TRAY_HANDLER_TRIGGERED = "tray:handler-triggered"
    FIELD_REF_CHANGED = "field-ref:changed"
    TRAY_RENDER_REQUESTED = "tray:render-requested"

    # Runtime -> client
    TRAY_UPDATED = "tray:updated"
    SCREEN_NAVIGATE_TO = "screen:navigate-to"
    SCREEN_RELOAD = "screen:reload"
    TOAST = "toast"
    FIELD_REF_SET_VALUE = "field-ref:set-value"

    @property
    def is_inbound(self) -> bool:
        """True for channels the UI client sends to the runtime."""
        return self in INBOUND_CHANNELS


INBOUND_CHANNELS = frozenset(
    {
        Channel.SCREEN_CHANGED,
        Channel.TRAY_HANDLER_TRIGGERED,
        Channel.FIELD_REF_CHANGED,
        Channel.TRAY_RENDER_REQUESTED,
    }
)
_INBOUND_NAMES = frozenset(c.value for c in INBOUND_CHANNELS)


def custom_channel(name: str) -> str:
    """Return the namespaced channel for a plugin-defined event name."""
    if name.startswith(CUSTOM_CHANNEL_PREFIX):
        return name
    return f"{CUSTOM_CHANNEL_PREFIX}{name}"


def channel_name(channel: "Channel | str") -> str:
    """Normalize a Channel member or raw string to its wire name."""
    if isinstance(channel, Channel):
        return channel.value
    return channel


class NamedEvent(BaseModel):
    """An event crossing the runtime / UI client boundary.

    Attributes:
        channel: Wire name of the channel
        plugin_id: Sending plugin for outbound events, target plugin for
            inbound ones. Empty means broadcast.
        payload: Channel-specific data
    """

    channel: str
    plugin_id: str = ""
    payload: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_inbound(self) -> bool:
        """True if the event travels from the UI client to the runtime."""
        return self.channel in _INBOUND_NAMES

    @property
    def is_custom(self) -> bool:
        """Custom channels carry plugin-defined events in either direction."""
        return self.channel.startswith(CUSTOM_CHANNEL_PREFIX)

    @property
    def is_broadcast(self) -> bool:
        return not self.plugin_id


Listener = Callable[[NamedEvent], None]


class EventBus(Protocol):
    """Abstract interface for publishing and subscribing to named events."""

    def publish(self, event: NamedEvent) -> int:
        """Deliver an event to matching listeners. Returns delivery count."""
        ...

    def subscribe(
        self, channel: "Channel | str", listener: Listener, scope: str = ""
    ) -> Any:
        """Register a listener for a channel, optionally scoped to a plugin."""
        ...

    def unsubscribe(self, subscription: Any) -> None:
        """Remove a listener."""
        ...

