"""
Core runtime types.

This package contains the transport-agnostic event types, constants and
exceptions shared by the plugin runtime and the HTTP gateway.
"""

from .events import (
    INBOUND_CHANNELS,
    Channel,
    EventBus,
    Listener,
    NamedEvent,
    channel_name,
    custom_channel,
)
from .exceptions import (
    CoreError,
    InvalidOperationError,
    MiddlewareHaltedError,
    NotFoundError,
    PermissionDeniedError,
    PluginLoadError,
    PluginUnloadedError,
    RenderMutationError,
)

__all__ = [
    # Exceptions
    "CoreError",
    "NotFoundError",
    "InvalidOperationError",
    "PluginLoadError",
    "PluginUnloadedError",
    "RenderMutationError",
    "MiddlewareHaltedError",
    "PermissionDeniedError",
    # Events
    "Channel",
    "INBOUND_CHANNELS",
    "NamedEvent",
    "EventBus",
    "Listener",
    "channel_name",
    "custom_channel",
]
