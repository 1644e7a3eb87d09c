"""Process-wide key-value store shared by every plugin instance.

The host creates one ProcessStore at start and closes it at stop, and hands
the same handle to every plugin instance. Writes are last-write-wins with no
transactions. Watchers are notified synchronously in registration order;
plugin instances wrap their watch callbacks so the actual work is queued on
the watching instance.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Any, Callable

from core.exceptions import InvalidOperationError

logger = logging.getLogger(__name__)

WatchFn = Callable[[Any], None]


@dataclass(frozen=True)
class Watch:
    """A registered watcher.

    Attributes:
        id: Store-assigned identifier
        key: Watched key
        owner: Plugin id of the watcher ("" for host code)
    """

    id: int
    key: str
    owner: str


class ProcessStore:
    """Global mutable store with per-key watchers."""

    def __init__(self) -> None:
        self._values: dict[str, Any] = {}
        self._watchers: dict[int, tuple[Watch, WatchFn]] = {}
        self._ids = itertools.count(1)
        self._closed = False

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Store a value and notify the key's watchers."""
        if self._closed:
            raise InvalidOperationError("Process store is closed")
        self._values[key] = value
        for watch, callback in list(self._watchers.values()):
            if watch.key != key:
                continue
            try:
                callback(value)
            except Exception as e:
                logger.warning(
                    "Process store watcher %d (%s) failed for %r: %s",
                    watch.id,
                    watch.owner or "host",
                    key,
                    e,
                )

    def watch(self, key: str, callback: WatchFn, owner: str = "") -> Watch:
        """Call ``callback(value)`` after every write to ``key``."""
        if self._closed:
            raise InvalidOperationError("Process store is closed")
        watch = Watch(id=next(self._ids), key=key, owner=owner)
        self._watchers[watch.id] = (watch, callback)
        return watch

    def unwatch(self, watch: Watch) -> None:
        self._watchers.pop(watch.id, None)

    def unwatch_owner(self, owner: str) -> int:
        """Remove every watcher registered by a plugin."""
        ids = [wid for wid, (w, _) in self._watchers.items() if w.owner == owner]
        for wid in ids:
            del self._watchers[wid]
        return len(ids)

    def keys(self) -> list[str]:
        return list(self._values)

    def close(self) -> None:
        """Tear down the store at host stop."""
        self._values.clear()
        self._watchers.clear()
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed
