"""
Shared pytest fixtures for all tests.
"""
import tempfile
from pathlib import Path
from typing import Any, Callable, Iterator

import pytest

from config import RuntimeConfig
from core import NamedEvent
from plugins.instance import PluginInstance
from plugins.pipeline import HookManager
from plugins.process_store import ProcessStore
from plugins.registry import PluginRegistry
from plugins.storage import MemoryStorage
from server.event_bus import PluginEventBus


class EventRecorder:
    """Collects every event published on a bus."""

    def __init__(self, bus: PluginEventBus):
        self.events: list[NamedEvent] = []
        self._bus = bus
        self._subscriptions: list[Any] = []

    def listen(self, *channels: str) -> "EventRecorder":
        for channel in channels:
            self._subscriptions.append(self._bus.subscribe(channel, self.events.append))
        return self

    def on(self, channel: str) -> list[NamedEvent]:
        return [e for e in self.events if e.channel == channel]

    def payloads(self, channel: str) -> list[dict[str, Any]]:
        return [e.payload for e in self.on(channel)]

    def clear(self) -> None:
        self.events.clear()


@pytest.fixture
def temp_dir() -> Iterator[Path]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def bus() -> PluginEventBus:
    return PluginEventBus()


@pytest.fixture
def recorder(bus: PluginEventBus) -> EventRecorder:
    """Records every runtime -> client event."""
    return EventRecorder(bus).listen(
        "tray:updated",
        "screen:navigate-to",
        "screen:reload",
        "toast",
        "field-ref:set-value",
    )


@pytest.fixture
def hooks() -> HookManager:
    return HookManager(timeout_s=1.0)


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def process_store() -> ProcessStore:
    return ProcessStore()


@pytest.fixture
def runtime_config() -> RuntimeConfig:
    return RuntimeConfig()


@pytest.fixture
def make_instance(
    bus: PluginEventBus,
    hooks: HookManager,
    storage: MemoryStorage,
    process_store: ProcessStore,
    runtime_config: RuntimeConfig,
) -> Iterator[Callable[..., PluginInstance]]:
    """Factory for bare plugin instances sharing the test's services."""
    created: list[PluginInstance] = []

    def factory(plugin_id: str = "test-plugin") -> PluginInstance:
        instance = PluginInstance(
            plugin_id,
            event_bus=bus,
            hooks=hooks,
            storage=storage,
            process_store=process_store,
            config=runtime_config,
        )
        created.append(instance)
        return instance

    yield factory
    for instance in created:
        instance.unload()


@pytest.fixture
def registry(
    bus: PluginEventBus,
    hooks: HookManager,
    storage: MemoryStorage,
    process_store: ProcessStore,
    runtime_config: RuntimeConfig,
) -> Iterator[PluginRegistry]:
    registry = PluginRegistry(
        event_bus=bus,
        hooks=hooks,
        storage=storage,
        process_store=process_store,
        config=runtime_config,
    )
    yield registry
    registry.close()
