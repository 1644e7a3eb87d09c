"""Plugin loader for plugin scripts.

A plugin script is a Python file executed in a fresh module namespace with
the host capabilities bound as globals. It may declare metadata, register
UI and hooks at top level or from an ``init()`` function, and use the hook
decorators:

    __plugin__ = {"api": "1.0", "id": "banner-images", "name": "Banner images"}

    def init():
        ui.register(setup_tray)

    @on_anime_fetched
    def remember(e):
        store.set("mediaIds", e.anime.id)
        e.next()
"""

from __future__ import annotations

import ast
import logging
import random
import re
import types
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from config.runtime_config import RuntimeConfig
from core import EventBus
from core.constants import PLUGIN_API_VERSION
from core.exceptions import PluginLoadError

from . import decorators, models
from .host import AppCapability, HostServices, bind_capabilities
from .instance import PluginInstance
from .pipeline import HookManager, HookResult
from .process_store import ProcessStore
from .storage import NamespacedStorage

logger = logging.getLogger(__name__)

_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9_]")


@dataclass
class LoadedPlugin:
    """A plugin script executed into a live instance.

    Attributes:
        instance: The running plugin instance
        module: Namespace the script was executed in
        hooks: Decorated hook functions, by interception point
    """

    instance: PluginInstance
    module: types.ModuleType
    hooks: dict[str, list[Callable[..., Any]]]

    @property
    def id(self) -> str:
        return self.instance.id

    @property
    def name(self) -> str:
        return self.instance.name

    @property
    def metadata(self) -> dict[str, Any]:
        return self.instance.metadata


def read_metadata(source: str, filename: str = "<plugin>") -> dict[str, Any]:
    """Read the literal ``__plugin__`` dict without executing the script.

    Raises:
        PluginLoadError: If the script does not parse or the metadata is not a literal dict
    """
    try:
        tree = ast.parse(source, filename=filename)
    except SyntaxError as e:
        raise PluginLoadError(filename, f"syntax error at line {e.lineno}: {e.msg}") from e

    for node in tree.body:
        if not isinstance(node, ast.Assign):
            continue
        if not any(isinstance(t, ast.Name) and t.id == "__plugin__" for t in node.targets):
            continue
        try:
            metadata = ast.literal_eval(node.value)
        except ValueError as e:
            raise PluginLoadError(filename, "__plugin__ must be a literal dict") from e
        if not isinstance(metadata, dict):
            raise PluginLoadError(filename, "__plugin__ must be a literal dict")
        return metadata
    return {}


def load_plugin_source(
    source: str,
    *,
    plugin_id: str | None = None,
    path: Path | None = None,
    event_bus: EventBus,
    hooks: HookManager,
    storage: NamespacedStorage,
    process_store: ProcessStore,
    config: RuntimeConfig | None = None,
    host_services: HostServices | None = None,
) -> LoadedPlugin:
    """Execute a plugin script and return its live instance.

    The plugin id is, in order: ``plugin_id``, ``__plugin__["id"]``, the
    file stem.

    Raises:
        PluginLoadError: If the script fails to parse, declares an
            incompatible API version, raises while executing, or its
            ``init()`` fails. Anything it registered is torn down first.
    """
    filename = str(path) if path else "<plugin>"
    metadata = read_metadata(source, filename)

    plugin_api = str(metadata.get("api", PLUGIN_API_VERSION))
    if not _is_compatible_version(plugin_api, PLUGIN_API_VERSION):
        raise PluginLoadError(
            filename,
            f"incompatible plugin API version {plugin_api} (expected {PLUGIN_API_VERSION})",
        )

    resolved_id = resolve_plugin_id(metadata, plugin_id, path)

    instance = PluginInstance(
        resolved_id,
        event_bus=event_bus,
        hooks=hooks,
        storage=storage,
        process_store=process_store,
        config=config,
        name=metadata.get("name", resolved_id),
        path=path,
        metadata=metadata,
    )

    # Unique module name so reloads never share state
    safe_id = _UNSAFE_ID_CHARS.sub("_", resolved_id)
    module = types.ModuleType(f"plugin_{safe_id}_{random.randint(0, 2**32)}")
    module.__file__ = filename

    capabilities = bind_capabilities(instance, host_services)
    module.__dict__.update(capabilities)
    module.__dict__.update(
        on_anime_fetched=decorators.on_anime_fetched,
        on_anime_collection_fetched=decorators.on_anime_collection_fetched,
        on_raw_anime_collection_fetched=decorators.on_raw_anime_collection_fetched,
        HookResult=HookResult,
        AnimeCollection=models.AnimeCollection,
        Media=models.Media,
        ScreenEvent=models.ScreenEvent,
    )

    try:
        code = compile(source, filename, "exec")
        with instance.effects.batch():
            exec(code, module.__dict__)
    except Exception as e:
        instance.unload()
        raise PluginLoadError(resolved_id, f"{type(e).__name__}: {e}") from e

    collected = _register_decorated_hooks(module, capabilities["app"])

    init = module.__dict__.get("init")
    if callable(init) and not instance.run_sync(init, where="init"):
        instance.unload()
        raise PluginLoadError(resolved_id, "init() failed")

    logger.info(
        "Loaded plugin '%s' from %s with hooks: %s",
        resolved_id,
        filename,
        [h.point for h in _hooks_of(hooks, resolved_id)],
    )
    return LoadedPlugin(instance=instance, module=module, hooks=collected)


def load_plugin_from_file(plugin_path: Path, **kwargs: Any) -> LoadedPlugin:
    """Load a plugin script from disk.

    Args:
        plugin_path: Path to the .py file
        **kwargs: Passed to load_plugin_source

    Raises:
        PluginLoadError: If the file is missing or the script fails to load
    """
    return load_plugin_source(read_plugin_file(plugin_path), path=plugin_path, **kwargs)


def read_plugin_file(plugin_path: Path) -> str:
    """Read a plugin script.

    Raises:
        PluginLoadError: If the file is missing or unreadable
    """
    if not plugin_path.exists():
        raise PluginLoadError(str(plugin_path), "file not found")

    # Read source directly to bypass import caching
    try:
        return plugin_path.read_text()
    except OSError as e:
        raise PluginLoadError(str(plugin_path), str(e)) from e


def resolve_plugin_id(
    metadata: dict[str, Any], plugin_id: str | None = None, path: Path | None = None
) -> str:
    """Pick the plugin id: explicit id, then ``__plugin__["id"]``, then the file stem."""
    resolved = plugin_id or metadata.get("id") or (path.stem if path else None)
    if not resolved:
        raise PluginLoadError(str(path) if path else "<plugin>", "no plugin id")
    return str(resolved)


def _register_decorated_hooks(
    module: types.ModuleType, app: AppCapability
) -> dict[str, list[Callable[..., Any]]]:
    collected: dict[str, list[Callable[..., Any]]] = {}
    # Module dict order is definition order
    for obj in list(module.__dict__.values()):
        hook_name = getattr(obj, "_hook_name", None)
        if not callable(obj) or not isinstance(hook_name, str):
            continue
        app.on(hook_name, obj)
        collected.setdefault(hook_name, []).append(obj)
    return collected


def _hooks_of(hooks: HookManager, plugin_id: str) -> list[Any]:
    return [
        registration
        for point in models.HookPoint
        for registration in hooks.hooks(point)
        if registration.plugin_id == plugin_id
    ]


def _is_compatible_version(plugin_version: str, required_version: str) -> bool:
    """Check if plugin version is compatible with required version.

    For now, we require exact major version match.
    """
    try:
        plugin_major = plugin_version.split(".")[0]
        required_major = required_version.split(".")[0]
        return plugin_major == required_major
    except (IndexError, AttributeError):
        return False
