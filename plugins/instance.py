"""A loaded plugin and its serialized execution queue.

All state mutation, effect execution, event-handler invocation, timer
callbacks, middleware hooks and renders of one instance run one at a time.
Each dispatched callback is one turn: state changes inside it are coalesced,
effects run when it returns, and the tray re-renders once everything the
turn changed is committed.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from pathlib import Path
from typing import Any, Callable

from config.runtime_config import RuntimeConfig
from core import Channel, EventBus, NamedEvent, channel_name, custom_channel
from core.exceptions import InvalidOperationError

from .boundary import acall_guarded, call_guarded
from .effects import EffectScheduler
from .field_refs import FieldRef, FieldRefRegistry
from .handlers import EventHandlerRegistry, TimerScheduler
from .models import ScreenEvent
from .pipeline import HookManager, HookResult
from .process_store import ProcessStore
from .state import ReactiveStateStore, StateCell
from .storage import NamespacedStorage
from .ui import Tray, UINode

logger = logging.getLogger(__name__)


def takes_argument(fn: Callable[..., Any]) -> bool:
    """True if ``fn`` can be called with one positional argument."""
    try:
        params = inspect.signature(fn).parameters.values()
    except (TypeError, ValueError):
        return True
    return any(
        p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD, p.VAR_POSITIONAL)
        for p in params
    )


class PluginInstance:
    """One plugin script and everything it registered.

    Attributes:
        id: Plugin identifier, also the event bus scope
        name: Display name
        path: Script path, None for in-memory sources
        metadata: The script's ``__plugin__`` dict
        store: Reactive state cells
        effects: Effect scheduler
        field_refs: Field references
        handlers: Named event handlers
        timers: One-shot timers
        tray: The plugin's tray, if it created one
        loaded: False once unloaded
    """

    def __init__(
        self,
        plugin_id: str,
        *,
        event_bus: EventBus,
        hooks: HookManager,
        storage: NamespacedStorage,
        process_store: ProcessStore,
        config: RuntimeConfig | None = None,
        name: str | None = None,
        path: Path | None = None,
        metadata: dict[str, Any] | None = None,
    ):
        self.id = plugin_id
        self.name = name or plugin_id
        self.path = path
        self.metadata = metadata or {}
        self.config = config or RuntimeConfig()
        self.event_bus = event_bus
        self.hooks = hooks
        self.storage = storage
        self.process_store = process_store

        self.store = ReactiveStateStore(plugin_id)
        self.effects = EffectScheduler(plugin_id, max_passes=self.config.effects.max_passes)
        self.field_refs = FieldRefRegistry(plugin_id)
        self.handlers = EventHandlerRegistry(plugin_id)
        self.timers = TimerScheduler(plugin_id, self.dispatch)
        self.tray: Tray | None = None
        self.loaded = True

        self._navigate_listeners: list[Callable[[ScreenEvent], Any]] = []
        self._custom_listeners: dict[str, list[Callable[[dict[str, Any]], Any]]] = {}
        self._subscriptions: list[Any] = []
        self._tasks: set[asyncio.Task[Any]] = set()
        self._lock = asyncio.Lock()
        self._owner_task: asyncio.Task[Any] | None = None
        self._emitting = False

        self.store.add_listener(self._on_state_changed)
        self.effects.on_settled(self._flush_surfaces)
        self.field_refs.on_script_write(self._on_field_ref_written)
        self._subscribe_inbound()

    # ------------------------------------------------------------------
    # Serialized execution
    # ------------------------------------------------------------------

    async def run(
        self,
        callback: Callable[..., Any],
        *args: Any,
        where: str = "callback",
        timeout_s: float | None = None,
    ) -> tuple[bool, Any]:
        """Run a callback as one turn on this instance's queue.

        Re-entrant calls from the task already holding the queue run inline.

        Returns:
            (ok, result); ok is False if the callback failed or the
            instance is unloaded
        """
        if not self.loaded:
            return False, None

        current = asyncio.current_task()
        if current is not None and self._owner_task is current:
            return await self._turn(callback, args, where, timeout_s)

        async with self._lock:
            if not self.loaded:
                logger.debug("Plugin %s unloaded, skipping %s", self.id, where)
                return False, None
            self._owner_task = current
            try:
                return await self._turn(callback, args, where, timeout_s)
            finally:
                self._owner_task = None

    async def dispatch(
        self, callback: Callable[..., Any], *args: Any, where: str = "callback"
    ) -> bool:
        """Run a callback as one turn and report whether it succeeded."""
        ok, _ = await self.run(callback, *args, where=where)
        return ok

    async def run_hook(
        self,
        callback: Callable[..., Any],
        event: Any,
        where: str = "hook",
        timeout_s: float | None = None,
    ) -> tuple[bool, Any]:
        """Middleware runner: an unloaded plugin's hook passes the event on."""
        if not self.loaded:
            return True, HookResult.CONTINUE
        return await self.run(callback, event, where=where, timeout_s=timeout_s)

    def run_sync(self, callback: Callable[..., Any], *args: Any, where: str = "callback") -> bool:
        """Run a synchronous callback as one turn without an event loop.

        Used while loading a script and by hosts that have no loop running.
        """
        if not self.loaded:
            return False
        with self.effects.batch():
            ok, result = call_guarded(self.id, where, callback, *args)
        if asyncio.iscoroutine(result):
            result.close()
            logger.warning(
                "Plugin %s %s is async but no event loop is running, skipped",
                self.id,
                where,
            )
            return False
        return ok

    def schedule(self, callback: Callable[..., Any], *args: Any, where: str = "callback") -> None:
        """Queue a callback on this instance.

        Queued callbacks run in the order they were scheduled. Without a
        running loop nothing else can interleave, so the turn runs inline.
        """
        if not self.loaded:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.run_sync(callback, *args, where=where)
            return
        task = loop.create_task(self.dispatch(callback, *args, where=where))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait until every queued callback has run."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _turn(
        self,
        callback: Callable[..., Any],
        args: tuple[Any, ...],
        where: str,
        timeout_s: float | None,
    ) -> tuple[bool, Any]:
        with self.effects.batch():
            return await acall_guarded(self.id, where, callback, *args, timeout_s=timeout_s)

    # ------------------------------------------------------------------
    # UI surface
    # ------------------------------------------------------------------

    def create_tray(
        self, tooltip_text: str = "", icon_url: str = "", with_content: bool = True
    ) -> Tray:
        """Create the plugin's tray. A plugin has at most one."""
        if self.tray is not None:
            raise InvalidOperationError(f"Plugin {self.id} already has a tray")
        self.tray = Tray(
            self.id,
            self.store,
            tooltip_text=tooltip_text,
            icon_url=icon_url,
            with_content=with_content,
            on_render=self._publish_tray,
        )
        return self.tray

    def request_render(self) -> None:
        """Re-render the tray at the end of the current turn."""
        if self.tray is None:
            return
        self.tray.invalidate()
        if not self.effects.in_batch:
            self._flush_surfaces()

    def _on_state_changed(self, cell: StateCell[Any]) -> None:
        if self.tray is not None and self.tray.affected_by(cell.id):
            self.tray.invalidate()
        self.effects.notify(cell)

    def _flush_surfaces(self) -> None:
        if self.loaded and self.tray is not None:
            self.tray.flush()

    def _publish_tray(self, tray: Tray, tree: UINode) -> None:
        self.emit(
            Channel.TRAY_UPDATED,
            {"tray": tray.meta(), "components": tree.to_wire()},
        )

    def _on_field_ref_written(self, ref: FieldRef) -> None:
        self.emit(Channel.FIELD_REF_SET_VALUE, {"fieldRef": ref.id, "value": ref.current})

    # ------------------------------------------------------------------
    # Event bus
    # ------------------------------------------------------------------

    def emit(self, channel: Channel | str, payload: dict[str, Any] | None = None) -> int:
        """Publish an event from this plugin to the UI client."""
        if not self.loaded:
            return 0
        event = NamedEvent(channel=channel_name(channel), plugin_id=self.id, payload=payload or {})
        self._emitting = True
        try:
            return self.event_bus.publish(event)
        finally:
            self._emitting = False

    def on_navigate(self, callback: Callable[[ScreenEvent], Any]) -> None:
        self._navigate_listeners.append(callback)

    def listen_custom(self, name: str, callback: Callable[[dict[str, Any]], Any]) -> None:
        """Listen to a plugin-defined channel addressed to this plugin."""
        channel = custom_channel(name)
        if channel not in self._custom_listeners:
            self._custom_listeners[channel] = []
            self._subscribe(channel, self._on_custom_event)
        self._custom_listeners[channel].append(callback)

    def _subscribe(self, channel: Channel | str, listener: Callable[[NamedEvent], None]) -> None:
        self._subscriptions.append(self.event_bus.subscribe(channel, listener, scope=self.id))

    def _subscribe_inbound(self) -> None:
        self._subscribe(Channel.SCREEN_CHANGED, self._on_screen_changed)
        self._subscribe(Channel.TRAY_HANDLER_TRIGGERED, self._on_handler_triggered)
        self._subscribe(Channel.FIELD_REF_CHANGED, self._on_field_ref_changed)
        self._subscribe(Channel.TRAY_RENDER_REQUESTED, self._on_render_requested)

    def _on_screen_changed(self, event: NamedEvent) -> None:
        screen = ScreenEvent.model_validate(event.payload)
        for listener in list(self._navigate_listeners):
            self.schedule(listener, screen, where="screen navigate listener")

    def _on_handler_triggered(self, event: NamedEvent) -> None:
        name = event.payload.get("handler", "")
        handler = self.handlers.get(name)
        if handler is None:
            logger.debug("Plugin %s has no event handler %r", self.id, name)
            return
        where = f"handler {name!r}"
        if takes_argument(handler):
            self.schedule(handler, dict(event.payload.get("event") or {}), where=where)
        else:
            self.schedule(handler, where=where)

    def _on_field_ref_changed(self, event: NamedEvent) -> None:
        # Applied immediately so reads are never stale; no render.
        ref_id = event.payload.get("fieldRef", "")
        self.field_refs.apply_client_value(ref_id, event.payload.get("value"))

    def _on_render_requested(self, event: NamedEvent) -> None:
        self.schedule(self.request_render, where="render request")

    def _on_custom_event(self, event: NamedEvent) -> None:
        if self._emitting:
            # Our own outbound event echoing back on the same channel.
            return
        for listener in list(self._custom_listeners.get(event.channel, [])):
            self.schedule(listener, dict(event.payload), where=f"listener {event.channel}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def unload(self) -> None:
        """Tear down everything the plugin registered.

        Pending timers are dropped and queued callbacks become no-ops.
        """
        if not self.loaded:
            return
        self.loaded = False
        self.timers.close()
        for subscription in self._subscriptions:
            self.event_bus.unsubscribe(subscription)
        self._subscriptions.clear()
        hooks_removed = self.hooks.unregister_plugin(self.id)
        self.process_store.unwatch_owner(self.id)
        self.effects.clear()
        self.store.clear()
        self.field_refs.clear()
        self.handlers.clear()
        self._navigate_listeners.clear()
        self._custom_listeners.clear()
        self.tray = None
        logger.info("Unloaded plugin '%s' (%d hooks removed)", self.id, hooks_removed)

    def describe(self) -> dict[str, Any]:
        """Summary used by the HTTP gateway."""
        return {
            "id": self.id,
            "name": self.name,
            "path": str(self.path) if self.path else None,
            "loaded": self.loaded,
            "handlers": self.handlers.names(),
            "fieldRefs": self.field_refs.values(),
            "hasTray": self.tray is not None,
            "pendingTimers": self.timers.pending,
        }

    def __repr__(self) -> str:
        return f"PluginInstance(id={self.id!r}, loaded={self.loaded})"
