"""Named event handlers and one-shot timers for a plugin instance.

Handlers are looked up by name when the UI client reports an interaction
(for example a button's ``on_click``). Timers hold their callback directly
and bypass name lookup. Both are executed through the instance's serialized
dispatcher, never concurrently with other callbacks of the same instance.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any, Awaitable, Callable

from core.exceptions import InvalidOperationError, PluginUnloadedError

logger = logging.getLogger(__name__)

HandlerFn = Callable[[dict[str, Any]], Any]
Dispatcher = Callable[..., Awaitable[bool]]


class EventHandlerRegistry:
    """Maps handler names to callbacks for one plugin instance."""

    def __init__(self, owner: str = ""):
        self.owner = owner
        self._handlers: dict[str, HandlerFn] = {}

    def register(self, name: str, callback: HandlerFn) -> None:
        """Bind ``name`` to a callback taking the event payload."""
        if name in self._handlers:
            logger.warning(
                "Plugin %s: Duplicate event handler %r, using the latest", self.owner, name
            )
        self._handlers[name] = callback

    def get(self, name: str) -> HandlerFn | None:
        return self._handlers.get(name)

    def names(self) -> list[str]:
        return list(self._handlers)

    def clear(self) -> None:
        self._handlers.clear()

    def __contains__(self, name: str) -> bool:
        return name in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)


class TimerScheduler:
    """Fire-and-forget timers tied to a plugin instance's lifetime.

    There is no cancel handle. Pending timers are dropped only when the
    instance closes the scheduler on unload.

    Attributes:
        owner: Plugin id, used in log records
    """

    def __init__(self, owner: str, dispatch: Dispatcher):
        self.owner = owner
        self._dispatch = dispatch
        self._handles: dict[int, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task[Any]] = set()
        self._ids = itertools.count(1)
        self._closed = False

    def set_timeout(self, callback: Callable[[], Any], delay_ms: float) -> None:
        """Run ``callback`` after at least ``delay_ms`` milliseconds.

        Raises:
            PluginUnloadedError: If the owning instance was unloaded
            InvalidOperationError: If no event loop is running
        """
        if self._closed:
            raise PluginUnloadedError(self.owner)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            raise InvalidOperationError("set_timeout requires a running event loop")

        timer_id = next(self._ids)
        delay_s = max(float(delay_ms), 0.0) / 1000
        self._handles[timer_id] = loop.call_later(delay_s, self._fire, timer_id, callback)
        logger.debug("Plugin %s scheduled timer %d in %.0fms", self.owner, timer_id, delay_ms)

    @property
    def pending(self) -> int:
        """Number of timers that have not fired yet."""
        return len(self._handles)

    def close(self) -> None:
        """Drop every pending timer. Dropped timers never fire."""
        self._closed = True
        for handle in self._handles.values():
            handle.cancel()
        if self._handles:
            logger.debug("Plugin %s dropped %d pending timers", self.owner, len(self._handles))
        self._handles.clear()

    def _fire(self, timer_id: int, callback: Callable[[], Any]) -> None:
        self._handles.pop(timer_id, None)
        if self._closed:
            return
        task = asyncio.get_running_loop().create_task(
            self._dispatch(callback, where=f"timer {timer_id}")
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
