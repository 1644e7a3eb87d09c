"""
Plugin instance API endpoints.

Provides REST endpoints for listing, unloading and reloading live plugin
instances.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from core.exceptions import NotFoundError, PluginLoadError
from plugins.registry import PluginRegistry

from ..state import require_registry

router = APIRouter(prefix="/plugin", tags=["plugins"])
logger = logging.getLogger(__name__)


# =============================================================================
# Response Models
# =============================================================================


class PluginInstanceInfo(BaseModel):
    """A live plugin instance."""

    id: str
    name: str
    path: str | None = None
    loaded: bool
    handlers: list[str] = Field(default_factory=list)
    field_refs: dict[str, Any] = Field(default_factory=dict, alias="fieldRefs")
    has_tray: bool = Field(default=False, alias="hasTray")
    pending_timers: int = Field(default=0, alias="pendingTimers")


class PluginInstanceListResponse(BaseModel):
    """Response containing the live plugin instances."""

    plugins: list[PluginInstanceInfo]


class UnloadPluginResponse(BaseModel):
    """Response from unloading a plugin."""

    unloaded: str


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/instances", response_model=PluginInstanceListResponse)
async def list_instances(
    registry: PluginRegistry = Depends(require_registry),
) -> PluginInstanceListResponse:
    """List loaded plugin instances in load order."""
    return PluginInstanceListResponse(
        plugins=[
            PluginInstanceInfo.model_validate(instance.describe())
            for instance in registry.instances()
        ]
    )


@router.post("/instances/{plugin_id}/unload", response_model=UnloadPluginResponse)
async def unload_instance(
    plugin_id: str,
    registry: PluginRegistry = Depends(require_registry),
) -> UnloadPluginResponse:
    """Unload a plugin instance."""
    if not registry.unload(plugin_id):
        raise HTTPException(status_code=404, detail=f"Plugin not loaded: {plugin_id}")
    logger.info("Unloaded plugin '%s' via API", plugin_id)
    return UnloadPluginResponse(unloaded=plugin_id)


@router.post("/instances/{plugin_id}/reload", response_model=PluginInstanceInfo)
async def reload_instance(
    plugin_id: str,
    registry: PluginRegistry = Depends(require_registry),
) -> PluginInstanceInfo:
    """Reload a file-backed plugin instance from disk."""
    try:
        instance = registry.reload(plugin_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PluginLoadError as e:
        logger.error("%s", e)
        raise HTTPException(status_code=422, detail=str(e))
    return PluginInstanceInfo.model_validate(instance.describe())
