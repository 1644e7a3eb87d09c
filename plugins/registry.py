"""Plugin registry owning the live plugin instances of a host.

The registry holds the shared runtime services (event bus, middleware hook
manager, namespaced storage, process store) and hands the same handles to
every instance it loads.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from config.runtime_config import RuntimeConfig
from core import EventBus
from core.exceptions import NotFoundError, PluginLoadError

from .host import HostServices
from .instance import PluginInstance
from .loader import (
    LoadedPlugin,
    load_plugin_source,
    read_metadata,
    read_plugin_file,
    resolve_plugin_id,
)
from .pipeline import HookManager
from .process_store import ProcessStore
from .storage import NamespacedStorage

logger = logging.getLogger(__name__)


class PluginRegistry:
    """Loads, unloads and reloads plugin instances.

    Attributes:
        event_bus: Bus shared with the UI gateway
        hooks: Middleware chain shared by every plugin
        storage: Namespaced persistent storage
        process_store: Process-wide key-value store
        config: Runtime configuration
        host_services: Host operations plugins may request
    """

    def __init__(
        self,
        event_bus: EventBus,
        hooks: HookManager,
        storage: NamespacedStorage,
        process_store: ProcessStore | None = None,
        config: RuntimeConfig | None = None,
        host_services: HostServices | None = None,
    ):
        self.event_bus = event_bus
        self.hooks = hooks
        self.storage = storage
        self.process_store = process_store or ProcessStore()
        self.config = config or RuntimeConfig()
        self.host_services = host_services or HostServices()
        self._loaded: dict[str, LoadedPlugin] = {}

    def _deps(self) -> dict:
        return {
            "event_bus": self.event_bus,
            "hooks": self.hooks,
            "storage": self.storage,
            "process_store": self.process_store,
            "config": self.config,
            "host_services": self.host_services,
        }

    def load(self, path: Path | str, plugin_id: str | None = None) -> PluginInstance:
        """Load a plugin script from disk.

        Raises:
            PluginLoadError: If the script fails to load or its id is taken
        """
        path = Path(path)
        source = read_plugin_file(path)
        resolved_id = resolve_plugin_id(read_metadata(source, str(path)), plugin_id, path)
        self._ensure_free(resolved_id)
        plugin = load_plugin_source(source, plugin_id=resolved_id, path=path, **self._deps())
        return self._add(plugin)

    def load_source(self, plugin_id: str, source: str) -> PluginInstance:
        """Load a plugin from in-memory source."""
        self._ensure_free(plugin_id)
        plugin = load_plugin_source(source, plugin_id=plugin_id, **self._deps())
        return self._add(plugin)

    def load_many(self, paths: list[str]) -> list[PluginInstance]:
        """Load plugins in order, logging and skipping the ones that fail."""
        instances = []
        for path in paths:
            try:
                instances.append(self.load(path))
            except PluginLoadError as e:
                logger.error("%s", e)
        return instances

    def _ensure_free(self, plugin_id: str) -> None:
        if plugin_id in self._loaded:
            raise PluginLoadError(plugin_id, "a plugin with this id is already loaded")

    def _add(self, plugin: LoadedPlugin) -> PluginInstance:
        self._loaded[plugin.id] = plugin
        return plugin.instance

    def unload(self, plugin_id: str) -> bool:
        """Unload a plugin.

        Returns:
            True if the plugin was unloaded, False if it was not loaded
        """
        plugin = self._loaded.pop(plugin_id, None)
        if plugin is None:
            return False
        plugin.instance.unload()
        return True

    def reload(self, plugin_id: str) -> PluginInstance:
        """Unload a file-backed plugin and load it fresh from disk.

        Raises:
            NotFoundError: If the plugin is not loaded
            PluginLoadError: If it has no path or the new source fails to load
        """
        plugin = self.get_loaded(plugin_id)
        if plugin is None:
            raise NotFoundError("Plugin", plugin_id)
        path = plugin.instance.path
        if path is None:
            raise PluginLoadError(plugin_id, "loaded from source, cannot reload")
        self.unload(plugin_id)
        return self.load(path, plugin_id=plugin_id)

    def get(self, plugin_id: str) -> Optional[PluginInstance]:
        plugin = self._loaded.get(plugin_id)
        return plugin.instance if plugin else None

    def get_loaded(self, plugin_id: str) -> Optional[LoadedPlugin]:
        return self._loaded.get(plugin_id)

    def instances(self) -> list[PluginInstance]:
        """Loaded instances in load order."""
        return [plugin.instance for plugin in self._loaded.values()]

    def is_loaded(self, plugin_id: str) -> bool:
        return plugin_id in self._loaded

    def unload_all(self) -> int:
        """Unload every plugin, most recently loaded first.

        Returns:
            Number of plugins unloaded
        """
        ids = list(self._loaded)
        for plugin_id in reversed(ids):
            self.unload(plugin_id)
        return len(ids)

    async def drain(self) -> None:
        """Wait for every instance's queued callbacks."""
        for instance in self.instances():
            await instance.drain()

    def close(self) -> None:
        """Host stop: unload everything and close the process store."""
        count = self.unload_all()
        self.process_store.close()
        logger.info("Plugin registry closed (%d plugins unloaded)", count)

    def __len__(self) -> int:
        return len(self._loaded)

    def __contains__(self, plugin_id: str) -> bool:
        return plugin_id in self._loaded
