"""Reactive state cells owned by a plugin instance.

A StateCell is a versioned value slot. Writing a different value bumps the
version and synchronously notifies the store's change listeners with the
cell that changed. The effect scheduler and the tray invalidation logic are
the two listeners a plugin instance installs.
"""

from __future__ import annotations

import itertools
import logging
from contextlib import contextmanager
from typing import Any, Callable, Generic, Iterator, TypeVar

from core.exceptions import PluginUnloadedError, RenderMutationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Values compared by equality; everything else is compared by identity.
SCALAR_TYPES = (type(None), bool, int, float, complex, str, bytes)


def value_changed(old: Any, new: Any) -> bool:
    """Decide whether a write installs a new value.

    Scalars compare by value. Containers and other objects compare by
    identity, so mutating a list in place and writing it back is not a
    change: write a new list instead.
    """
    if isinstance(old, SCALAR_TYPES) and isinstance(new, SCALAR_TYPES):
        return type(old) is not type(new) or old != new
    return old is not new


class StateCell(Generic[T]):
    """A versioned mutable value slot with change notification.

    Attributes:
        id: Identifier unique within the owning store
        version: Incremented on every write that changes the value
        dependents: Ids of effects that listed this cell as a dependency
    """

    def __init__(self, store: "ReactiveStateStore", cell_id: str, initial: T):
        self._store = store
        self.id = cell_id
        self._value = initial
        self.version = 0
        self.dependents: set[int] = set()

    def get(self) -> T:
        """Return the current value."""
        self._store._record_read(self)
        return self._value

    @property
    def value(self) -> T:
        return self.get()

    def set(self, value: T | Callable[[T], T]) -> None:
        """Install a value, or apply an updater ``fn(prev) -> next``."""
        if callable(value):
            value = value(self._value)
        self._store._write(self, value)

    def update(self, fn: Callable[[T], T]) -> None:
        """Apply an updater to the current value."""
        self._store._write(self, fn(self._value))

    def __repr__(self) -> str:
        return f"StateCell(id={self.id!r}, version={self.version}, value={self._value!r})"


class ReactiveStateStore:
    """Owns the state cells of one plugin instance.

    Attributes:
        owner: Plugin id, used in log records and error messages
    """

    def __init__(self, owner: str = ""):
        self.owner = owner
        self._cells: dict[str, StateCell[Any]] = {}
        self._counter = itertools.count(1)
        self._listeners: list[Callable[[StateCell[Any]], None]] = []
        self._frozen = 0
        self._tracking: list[set[str]] = []
        self._closed = False

    def new_state(self, initial: T) -> StateCell[T]:
        """Create a state cell holding ``initial``."""
        if self._closed:
            raise PluginUnloadedError(self.owner)
        cell_id = f"state-{next(self._counter)}"
        cell: StateCell[T] = StateCell(self, cell_id, initial)
        self._cells[cell_id] = cell
        return cell

    def add_listener(self, listener: Callable[[StateCell[Any]], None]) -> None:
        """Register a callback invoked with each cell whose value changed."""
        self._listeners.append(listener)

    @contextmanager
    def freeze(self) -> Iterator[None]:
        """Reject writes for the duration of the block (used while rendering)."""
        self._frozen += 1
        try:
            yield
        finally:
            self._frozen -= 1

    @property
    def frozen(self) -> bool:
        return self._frozen > 0

    @contextmanager
    def track_reads(self) -> Iterator[set[str]]:
        """Collect the ids of cells read inside the block."""
        reads: set[str] = set()
        self._tracking.append(reads)
        try:
            yield reads
        finally:
            self._tracking.pop()

    def _record_read(self, cell: StateCell[Any]) -> None:
        for reads in self._tracking:
            reads.add(cell.id)

    def clear(self) -> None:
        """Drop every cell. Later writes raise PluginUnloadedError."""
        self._cells.clear()
        self._listeners.clear()
        self._closed = True

    def _write(self, cell: StateCell[Any], value: Any) -> None:
        if self._closed:
            raise PluginUnloadedError(self.owner)
        if self._frozen:
            raise RenderMutationError(
                f"State {cell.id} of plugin {self.owner} written during render"
            )
        if not value_changed(cell._value, value):
            return
        cell._value = value
        cell.version += 1
        for listener in list(self._listeners):
            listener(cell)

    def __len__(self) -> int:
        return len(self._cells)
