"""
Server-side state management.

This module holds the plugin registry the routes operate on. The entry
point builds the registry at startup and sets it here.
"""

from fastapi import HTTPException

from plugins.registry import PluginRegistry


# =============================================================================
# Registry Management
# =============================================================================

_registry: PluginRegistry | None = None


def set_registry(registry: PluginRegistry | None) -> None:
    """Set the plugin registry instance. Called at startup and by tests."""
    global _registry
    _registry = registry


def get_registry() -> PluginRegistry | None:
    """Get the current plugin registry instance."""
    return _registry


def require_registry() -> PluginRegistry:
    """Route dependency: the registry, or 503 before startup finished."""
    if _registry is None:
        raise HTTPException(status_code=503, detail="Plugin runtime not started")
    return _registry
