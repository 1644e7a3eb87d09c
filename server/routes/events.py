"""
Plugin event channel endpoints.

GET streams runtime -> client events over SSE; POST delivers client ->
runtime events to the plugins listening for them.
"""

import logging
from typing import AsyncGenerator

from fastapi import APIRouter, HTTPException, Query
from sse_starlette.sse import EventSourceResponse

from config.runtime_config import NavigationConfig
from core import Channel, NamedEvent

from ..event_bus import get_event_bus
from ..state import get_registry


router = APIRouter(prefix="/plugin", tags=["events"])
logger = logging.getLogger(__name__)


def should_forward(event: NamedEvent, navigation: NavigationConfig) -> bool:
    """Decide whether an outbound event reaches the client."""
    if event.channel != Channel.SCREEN_NAVIGATE_TO.value:
        return True
    path = str(event.payload.get("path", ""))
    if navigation.is_allowed(path):
        return True
    logger.warning("Dropped navigation to %r requested by plugin %s", path, event.plugin_id)
    return False


def _navigation() -> NavigationConfig:
    registry = get_registry()
    return registry.config.navigation if registry is not None else NavigationConfig()


@router.get("/events")
async def plugin_events(plugin: str = Query("")) -> EventSourceResponse:
    """Subscribe to plugin events via SSE.

    Args:
        plugin: Plugin id to listen to; empty listens to all plugins
    """
    event_bus = get_event_bus()
    navigation = _navigation()

    async def event_generator() -> AsyncGenerator[dict, None]:
        queue = event_bus.subscribe_queue(scope=plugin)
        try:
            while True:
                event = await queue.get()
                if not should_forward(event, navigation):
                    continue
                yield {"event": event.channel, "data": event.model_dump_json()}
        finally:
            event_bus.unsubscribe_queue(queue)

    return EventSourceResponse(event_generator())


@router.post("/events")
async def post_plugin_event(event: NamedEvent) -> dict:
    """Deliver a client event to the plugins listening on its channel."""
    if not (event.is_inbound or event.is_custom):
        raise HTTPException(
            status_code=400,
            detail=f"Channel {event.channel!r} cannot be sent by the client",
        )
    delivered = get_event_bus().publish(event)
    return {"delivered": delivered}
