"""Error boundary for plugin-authored callbacks.

Every effect, event handler, timer, middleware hook, render function and
store watcher runs through one of these helpers. Failures are logged with
the plugin identity and the source location of the failing frame, and never
propagate into the host.
"""

from __future__ import annotations

import asyncio
import logging
import traceback
from typing import Any, Callable

logger = logging.getLogger(__name__)


def source_location(exc: BaseException) -> str:
    """Return ``file:line`` of the innermost frame of a traceback."""
    frames = traceback.extract_tb(exc.__traceback__)
    if not frames:
        return "<unknown>"
    last = frames[-1]
    return f"{last.filename}:{last.lineno}"


def report_error(plugin_id: str, where: str, exc: BaseException) -> None:
    """Log a callback failure for a plugin."""
    logger.warning(
        "Plugin %s %s failed at %s: %s: %s",
        plugin_id,
        where,
        source_location(exc),
        type(exc).__name__,
        exc,
    )
    logger.debug("Traceback for plugin %s %s", plugin_id, where, exc_info=exc)


def call_guarded(
    plugin_id: str, where: str, fn: Callable[..., Any], *args: Any
) -> tuple[bool, Any]:
    """Call a synchronous plugin callback inside the error boundary.

    Returns:
        (ok, result) where ok is False if the callback raised
    """
    try:
        return True, fn(*args)
    except Exception as e:
        report_error(plugin_id, where, e)
        return False, None


async def acall_guarded(
    plugin_id: str,
    where: str,
    fn: Callable[..., Any],
    *args: Any,
    timeout_s: float | None = None,
) -> tuple[bool, Any]:
    """Call a sync or async plugin callback inside the error boundary.

    Args:
        plugin_id: Owning plugin, used in log records
        where: Kind of callback ("effect", "handler 'save'", ...)
        fn: The callback
        *args: Arguments to pass to the callback
        timeout_s: Optional limit for awaiting an async callback

    Returns:
        (ok, result) where ok is False if the callback raised or timed out
    """
    try:
        result = fn(*args)
        if asyncio.iscoroutine(result):
            if timeout_s is None:
                result = await result
            else:
                async with asyncio.timeout(timeout_s):
                    result = await result
        return True, result
    except TimeoutError:
        logger.warning(
            "Plugin %s %s timed out after %ss", plugin_id, where, timeout_s
        )
        return False, None
    except Exception as e:
        report_error(plugin_id, where, e)
        return False, None
