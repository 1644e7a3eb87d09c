"""Request logging for the plugin gateway."""

import logging
import re
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

# Client events are only queued onto a plugin, so posting one should be quick
EVENT_POST_SLOW_MS = 200
# Reload re-executes a plugin script and its init()
RELOAD_SLOW_MS = 2000
DEFAULT_SLOW_MS = 500

# Long-lived SSE streams; logged when opened, never timed
STREAM_PATHS = frozenset({"/plugin/events"})

_INSTANCE_PATH = re.compile(r"^/plugin/instances/(?P<plugin_id>[^/]+)/(?P<action>\w+)$")


def slow_threshold_ms(method: str, path: str) -> int:
    """Return the duration above which a gateway request is flagged slow."""
    if method == "POST" and path in STREAM_PATHS:
        return EVENT_POST_SLOW_MS
    match = _INSTANCE_PATH.match(path)
    if match and match.group("action") == "reload":
        return RELOAD_SLOW_MS
    return DEFAULT_SLOW_MS


def plugin_scope(request: Request) -> str:
    """Plugin a request targets, or "all"."""
    match = _INSTANCE_PATH.match(request.url.path)
    if match:
        return match.group("plugin_id")
    return request.query_params.get("plugin") or "all"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs plugin gateway requests with the plugin they target.

    Log levels:
    - DEBUG: Request start, event stream opened
    - INFO: Successful responses
    - WARNING: 4xx errors, requests over their route's slow threshold
    - ERROR: 5xx errors
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        start_time = time.perf_counter()
        logger.debug("Gateway %s %s", request.method, request.url.path)

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        self._log_response(request, response, duration_ms)
        return response

    def _log_response(
        self, request: Request, response: Response, duration_ms: float
    ) -> None:
        method = request.method
        path = request.url.path
        status = response.status_code
        scope = plugin_scope(request)

        if status >= 500:
            logger.error("Gateway %s %s [%s] -> %d (%.1fms)", method, path, scope, status, duration_ms)
        elif status >= 400:
            logger.warning("Gateway %s %s [%s] -> %d (%.1fms)", method, path, scope, status, duration_ms)
        elif method == "GET" and path in STREAM_PATHS:
            logger.debug("Gateway event stream opened [%s]", scope)
        elif duration_ms > slow_threshold_ms(method, path):
            logger.warning(
                "Gateway %s %s [%s] -> %d (%.1fms) over %dms, plugin queue may be backed up",
                method,
                path,
                scope,
                status,
                duration_ms,
                slow_threshold_ms(method, path),
            )
        else:
            logger.info("Gateway %s %s [%s] -> %d (%.1fms)", method, path, scope, status, duration_ms)
