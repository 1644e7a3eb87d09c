"""Namespaced key-value storage for plugins.

Keys are hierarchical and dot-delimited: ``set("backgroundImages.21", url)``
stores ``{"backgroundImages": {"21": url}}`` in the plugin's namespace, and
``get("backgroundImages")`` returns the whole nested mapping. Missing keys
read as None.

Two backends satisfy the contract: MemoryStorage for tests and ephemeral
hosts, JsonFileStorage for one JSON document per namespace on disk.
"""

from __future__ import annotations

import copy
import json
import logging
import re
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)

# Default storage directory
STORAGE_DIR = Path.home() / ".plugin-runtime" / "storage"

_NAMESPACE_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


def split_key(key: str) -> list[str]:
    """Split a dot-delimited key, rejecting empty segments."""
    parts = key.split(".")
    if not key or any(not p for p in parts):
        raise ValueError(f"Invalid storage key: {key!r}")
    return parts


def get_path(data: dict[str, Any], key: str) -> Any:
    """Read a dot-delimited key from nested mappings, None if missing."""
    node: Any = data
    for part in split_key(key):
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node


def set_path(data: dict[str, Any], key: str, value: Any) -> None:
    """Write a dot-delimited key, creating intermediate mappings."""
    parts = split_key(key)
    node = data
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    node[parts[-1]] = value


def remove_path(data: dict[str, Any], key: str) -> bool:
    """Delete a dot-delimited key. Returns False if it did not exist."""
    parts = split_key(key)
    node: Any = data
    for part in parts[:-1]:
        if not isinstance(node, dict) or part not in node:
            return False
        node = node[part]
    if not isinstance(node, dict) or parts[-1] not in node:
        return False
    del node[parts[-1]]
    return True


class NamespacedStorage(Protocol):
    """Persistent per-plugin key-value store."""

    def get(self, namespace: str, key: str) -> Any:
        ...

    def set(self, namespace: str, key: str, value: Any) -> None:
        ...

    def remove(self, namespace: str, key: str) -> bool:
        ...


class MemoryStorage:
    """In-process storage backend. Nothing survives the process."""

    def __init__(self) -> None:
        self._namespaces: dict[str, dict[str, Any]] = {}

    def get(self, namespace: str, key: str) -> Any:
        value = get_path(self._namespaces.get(namespace, {}), key)
        # Callers get a copy so they cannot mutate stored data in place.
        return copy.deepcopy(value)

    def set(self, namespace: str, key: str, value: Any) -> None:
        set_path(self._namespaces.setdefault(namespace, {}), key, copy.deepcopy(value))

    def remove(self, namespace: str, key: str) -> bool:
        return remove_path(self._namespaces.get(namespace, {}), key)

    def dump(self, namespace: str) -> dict[str, Any]:
        return copy.deepcopy(self._namespaces.get(namespace, {}))


def ensure_storage_dir(storage_dir: Path | None = None) -> Path:
    """Ensure the storage directory exists.

    Args:
        storage_dir: Optional custom storage directory (defaults to STORAGE_DIR)

    Returns:
        Path to the storage directory
    """
    target_dir = storage_dir or STORAGE_DIR
    target_dir.mkdir(parents=True, exist_ok=True)
    return target_dir


class JsonFileStorage:
    """One JSON document per namespace under a storage directory.

    Attributes:
        storage_dir: Directory holding ``<namespace>.json`` files
    """

    def __init__(self, storage_dir: Path | None = None):
        self.storage_dir = ensure_storage_dir(storage_dir)
        self._cache: dict[str, dict[str, Any]] = {}

    def namespace_path(self, namespace: str) -> Path:
        if not _NAMESPACE_RE.match(namespace) or namespace.startswith("."):
            raise ValueError(f"Invalid storage namespace: {namespace!r}")
        return self.storage_dir / f"{namespace}.json"

    def get(self, namespace: str, key: str) -> Any:
        return copy.deepcopy(get_path(self._load(namespace), key))

    def set(self, namespace: str, key: str, value: Any) -> None:
        json.dumps(value)  # raises TypeError before the cache is touched
        data = self._load(namespace)
        set_path(data, key, copy.deepcopy(value))
        self._save(namespace, data)

    def remove(self, namespace: str, key: str) -> bool:
        data = self._load(namespace)
        if not remove_path(data, key):
            return False
        self._save(namespace, data)
        return True

    def _load(self, namespace: str) -> dict[str, Any]:
        if namespace in self._cache:
            return self._cache[namespace]
        path = self.namespace_path(namespace)
        data: dict[str, Any] = {}
        if path.exists():
            try:
                loaded = json.loads(path.read_text())
                if isinstance(loaded, dict):
                    data = loaded
                else:
                    logger.warning("Storage file %s is not an object, starting empty", path)
            except (json.JSONDecodeError, OSError) as e:
                logger.warning("Failed to read storage %s: %s", path, e)
        self._cache[namespace] = data
        return data

    def _save(self, namespace: str, data: dict[str, Any]) -> None:
        path = self.namespace_path(namespace)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(data, indent=2, sort_keys=True))
        tmp.replace(path)
        logger.debug("Saved storage namespace '%s' to %s", namespace, path)
