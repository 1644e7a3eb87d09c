"""Named two-way bindings between UI input widgets and script values."""

from __future__ import annotations

import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)


class FieldRef:
    """A field reference bound to an input widget by id.

    The value is whatever was written last, either by the UI client or by
    the plugin script. Reads never trigger a render.
    """

    def __init__(self, registry: "FieldRefRegistry", ref_id: str, value: Any = None):
        self._registry = registry
        self.id = ref_id
        self._value = value

    @property
    def current(self) -> Any:
        return self._value

    def get_value(self) -> Any:
        return self._value

    def set_value(self, value: Any) -> None:
        """Write the value from plugin code and push it to the UI client."""
        self._value = value
        self._registry._script_wrote(self)

    def __repr__(self) -> str:
        return f"FieldRef(id={self.id!r}, current={self._value!r})"


class FieldRefRegistry:
    """Field references of one plugin instance, keyed by id."""

    def __init__(self, owner: str = ""):
        self.owner = owner
        self._refs: dict[str, FieldRef] = {}
        self._write_listeners: list[Callable[[FieldRef], None]] = []

    def register(self, ref_id: str, initial: Any = None) -> FieldRef:
        """Return the field ref for ``ref_id``, creating it if needed."""
        ref = self._refs.get(ref_id)
        if ref is None:
            ref = FieldRef(self, ref_id, initial)
            self._refs[ref_id] = ref
        return ref

    def get(self, ref_id: str) -> FieldRef | None:
        return self._refs.get(ref_id)

    def apply_client_value(self, ref_id: str, value: Any) -> bool:
        """Record a value-change notification from the UI client.

        Returns:
            True if the field ref exists and was updated
        """
        ref = self._refs.get(ref_id)
        if ref is None:
            logger.debug("Plugin %s has no field ref %r, ignoring input", self.owner, ref_id)
            return False
        ref._value = value
        return True

    def on_script_write(self, listener: Callable[[FieldRef], None]) -> None:
        self._write_listeners.append(listener)

    def values(self) -> dict[str, Any]:
        """Snapshot of every field ref value."""
        return {ref_id: ref.current for ref_id, ref in self._refs.items()}

    def clear(self) -> None:
        self._refs.clear()
        self._write_listeners.clear()

    def _script_wrote(self, ref: FieldRef) -> None:
        for listener in list(self._write_listeners):
            listener(ref)

    def __len__(self) -> int:
        return len(self._refs)

    def __contains__(self, ref_id: str) -> bool:
        return ref_id in self._refs
