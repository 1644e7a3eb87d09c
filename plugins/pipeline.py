"""Middleware chain for backend fetch interception points.

Hooks for one interception point run in registration order across all
loaded plugins, as one global sequence. Each hook receives the mutable
HookEvent envelope; what an earlier hook changed is visible to every later
hook and to the original caller.

A hook continues the chain by calling ``event.next()`` or returning
``HookResult.CONTINUE``. A hook that does neither halts the chain: later
hooks never run and the caller gets a halted ChainResult.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from core.constants import (
    DEFAULT_HOOK_TIMEOUT_S,
    STALL_POLICY_CONTINUE,
    STALL_POLICY_HALT,
)
from core.exceptions import MiddlewareHaltedError
from core.logging_config import log_timing

from .boundary import acall_guarded
from .models import HookEvent, HookPoint

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=HookEvent)

HookFn = Callable[[HookEvent], Any]
# Runs a hook on its plugin's serialized queue; returns (ok, result).
HookRunner = Callable[..., Awaitable[tuple[bool, Any]]]


class HookResult(str, Enum):
    """Explicit outcome a hook may return instead of calling ``next()``."""

    CONTINUE = "continue"
    HALT = "halt"


@dataclass
class HookRegistration:
    """One hook bound to an interception point.

    Attributes:
        point: Interception point name
        plugin_id: Plugin that registered the hook
        callback: The hook function
        runner: Executes the hook on the plugin's queue
    """

    point: str
    plugin_id: str
    callback: HookFn
    runner: HookRunner | None = None


@dataclass
class ChainResult:
    """Outcome of running one interception point.

    Attributes:
        point: Interception point name
        completed: True if every hook continued
        halted_by: Plugin whose hook stopped the chain
        errors: Plugins whose hooks raised or timed out
        ran: Number of hooks invoked
    """

    point: str
    completed: bool = True
    halted_by: str | None = None
    errors: list[str] = field(default_factory=list)
    ran: int = 0


def _point_name(point: HookPoint | str) -> str:
    return point.value if isinstance(point, HookPoint) else point


class HookManager:
    """Registry and executor of middleware hooks.

    Attributes:
        timeout_s: Limit for each async hook call
        stall_policy: "halt" stops the chain when a hook does not continue,
            "continue" logs it and moves on
    """

    def __init__(
        self,
        timeout_s: float = DEFAULT_HOOK_TIMEOUT_S,
        stall_policy: str = STALL_POLICY_HALT,
    ):
        """Initialize the manager.

        Args:
            timeout_s: Timeout for each individual hook call
            stall_policy: What to do when a hook does not continue
        """
        if stall_policy not in (STALL_POLICY_HALT, STALL_POLICY_CONTINUE):
            raise ValueError(f"Unknown stall policy: {stall_policy}")
        self.timeout_s = timeout_s
        self.stall_policy = stall_policy
        self._hooks: dict[str, list[HookRegistration]] = {}

    def register(
        self,
        point: HookPoint | str,
        callback: HookFn,
        plugin_id: str = "",
        runner: HookRunner | None = None,
    ) -> HookRegistration:
        """Append a hook to an interception point."""
        registration = HookRegistration(
            point=_point_name(point),
            plugin_id=plugin_id,
            callback=callback,
            runner=runner,
        )
        self._hooks.setdefault(registration.point, []).append(registration)
        logger.debug("Plugin %s hooked %s", plugin_id, registration.point)
        return registration

    def unregister_plugin(self, plugin_id: str) -> int:
        """Remove every hook of a plugin.

        Returns:
            Number of hooks removed
        """
        removed = 0
        for point, registrations in self._hooks.items():
            kept = [r for r in registrations if r.plugin_id != plugin_id]
            removed += len(registrations) - len(kept)
            self._hooks[point] = kept
        return removed

    def hooks(self, point: HookPoint | str) -> list[HookRegistration]:
        return list(self._hooks.get(_point_name(point), []))

    async def trigger(self, point: HookPoint | str, event: HookEvent) -> ChainResult:
        """Run every hook of ``point`` over ``event`` in registration order.

        Args:
            point: Interception point
            event: Envelope the hooks may mutate

        Returns:
            ChainResult describing whether the chain completed
        """
        name = _point_name(point)
        result = ChainResult(point=name)

        with log_timing(logger, f"Middleware chain {name}"):
            for registration in self.hooks(name):
                event.reset_continuation()
                result.ran += 1
                ok, returned = await self._call(registration, event)

                if not ok:
                    # Logged by the boundary; a hook that failed before
                    # calling next() has not continued.
                    result.errors.append(registration.plugin_id)
                    continued = event.continued
                    stall = "failed before continuing"
                elif returned is HookResult.HALT:
                    continued = False
                    stall = "halted"
                else:
                    continued = event.continued or returned is HookResult.CONTINUE
                    stall = "did not continue"

                if continued:
                    continue

                if self.stall_policy == STALL_POLICY_CONTINUE:
                    logger.warning(
                        "Plugin %s hook on %s %s, passing over it",
                        registration.plugin_id,
                        name,
                        stall,
                    )
                    continue

                logger.warning(
                    "Plugin %s hook on %s %s, chain halted",
                    registration.plugin_id,
                    name,
                    stall,
                )
                result.completed = False
                result.halted_by = registration.plugin_id
                break

        return result

    async def intercept(self, point: HookPoint | str, event: E) -> E:
        """Run the chain and hand back the (possibly mutated) event.

        Raises:
            MiddlewareHaltedError: If a hook halted the chain
        """
        result = await self.trigger(point, event)
        if not result.completed:
            raise MiddlewareHaltedError(result.point, result.halted_by)
        return event

    async def _call(
        self, registration: HookRegistration, event: HookEvent
    ) -> tuple[bool, Any]:
        where = f"hook {registration.point}"
        if registration.runner is not None:
            return await registration.runner(
                registration.callback, event, where=where, timeout_s=self.timeout_s
            )
        return await acall_guarded(
            registration.plugin_id,
            where,
            registration.callback,
            event,
            timeout_s=self.timeout_s,
        )

    def __len__(self) -> int:
        """Return the number of registered hooks."""
        return sum(len(r) for r in self._hooks.values())

    def __bool__(self) -> bool:
        return len(self) > 0
