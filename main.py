"""
Plugin runtime server entry point.
"""
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI

from config import RuntimeConfig, get_config
from core.logging_config import setup_logging
from plugins import (
    HookManager,
    HostServices,
    JsonFileStorage,
    MemoryStorage,
    PluginRegistry,
    ProcessStore,
)
from server import app, set_registry
from server.event_bus import get_event_bus

# Initialize logging before anything else
setup_logging()
logger = logging.getLogger(__name__)


def build_storage(config: RuntimeConfig) -> MemoryStorage | JsonFileStorage:
    """Create the namespaced storage backend named in the config."""
    if config.storage.backend == "memory":
        return MemoryStorage()
    storage_dir = Path(config.storage.dir).expanduser() if config.storage.dir else None
    return JsonFileStorage(storage_dir)


def build_registry(config: RuntimeConfig) -> PluginRegistry:
    """Wire the shared runtime services into a plugin registry."""
    hooks = HookManager(
        timeout_s=config.middleware.hook_timeout_s,
        stall_policy=config.middleware.stall_policy,
    )

    def refresh_anime_collection() -> None:
        logger.info("Plugin requested an anime collection refresh")

    return PluginRegistry(
        event_bus=get_event_bus(),
        hooks=hooks,
        storage=build_storage(config),
        process_store=ProcessStore(),
        config=config,
        host_services=HostServices(refresh_anime_collection=refresh_anime_collection),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load configured plugins at startup and tear them down at shutdown."""
    config = get_config()
    logger.info("Starting plugin runtime")
    logger.info("Storage backend: %s", config.storage.backend)

    registry = build_registry(config)
    set_registry(registry)
    instances = registry.load_many(config.plugins)
    logger.info("Loaded %d of %d configured plugins", len(instances), len(config.plugins))

    yield

    logger.info("Stopping plugin runtime...")
    registry.close()
    set_registry(None)


app.router.lifespan_context = lifespan


def main() -> None:
    """Start the plugin runtime server."""
    server_config = get_config().server
    host = os.environ.get("HOST", server_config.host)
    port = int(os.environ.get("PORT", str(server_config.port)))

    logger.info("Server listening on %s:%d", host, port)
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
