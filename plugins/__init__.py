"""Plugin runtime.

Plugins are Python scripts executed with a set of host capabilities. Each
loaded script becomes a PluginInstance that owns:

1. Reactive state cells and effects over explicit dependency lists
2. A tray whose UI tree re-renders when the state it read changes
3. Named event handlers, field refs and one-shot timers
4. Middleware hooks on backend fetch interception points

All callbacks of one instance run one at a time on its serialized queue.
"""

from .context import ScreenCapability, ToastCapability, UIContext
from .decorators import (
    on_anime_collection_fetched,
    on_anime_fetched,
    on_raw_anime_collection_fetched,
)
from .effects import Effect, EffectScheduler
from .field_refs import FieldRef, FieldRefRegistry
from .handlers import EventHandlerRegistry, TimerScheduler
from .host import Command, CommandResult, HostServices, bind_capabilities
from .instance import PluginInstance
from .loader import LoadedPlugin, load_plugin_from_file, load_plugin_source, read_metadata
from .models import (
    AnimeCollection,
    AnimeCollectionFetchedEvent,
    AnimeFetchedEvent,
    HookEvent,
    HookPoint,
    Media,
    MediaList,
    MediaListCollection,
    MediaListEntry,
    MediaTitle,
    RawAnimeCollectionFetchedEvent,
    ScreenEvent,
    replace,
)
from .pipeline import ChainResult, HookManager, HookRegistration, HookResult
from .process_store import ProcessStore
from .registry import PluginRegistry
from .state import ReactiveStateStore, StateCell
from .storage import JsonFileStorage, MemoryStorage, NamespacedStorage
from .ui import Tray, UINode

__all__ = [
    # State and effects
    "StateCell",
    "ReactiveStateStore",
    "Effect",
    "EffectScheduler",
    # UI
    "UINode",
    "Tray",
    "UIContext",
    "ScreenCapability",
    "ToastCapability",
    "FieldRef",
    "FieldRefRegistry",
    "EventHandlerRegistry",
    "TimerScheduler",
    # Models
    "HookPoint",
    "HookEvent",
    "AnimeFetchedEvent",
    "AnimeCollectionFetchedEvent",
    "RawAnimeCollectionFetchedEvent",
    "Media",
    "MediaTitle",
    "MediaListEntry",
    "MediaList",
    "MediaListCollection",
    "AnimeCollection",
    "ScreenEvent",
    "replace",
    # Decorators
    "on_anime_fetched",
    "on_anime_collection_fetched",
    "on_raw_anime_collection_fetched",
    # Middleware
    "HookManager",
    "HookRegistration",
    "HookResult",
    "ChainResult",
    # Stores
    "NamespacedStorage",
    "MemoryStorage",
    "JsonFileStorage",
    "ProcessStore",
    # Host
    "HostServices",
    "Command",
    "CommandResult",
    "bind_capabilities",
    # Loading
    "PluginInstance",
    "LoadedPlugin",
    "load_plugin_from_file",
    "load_plugin_source",
    "read_metadata",
    "PluginRegistry",
]
