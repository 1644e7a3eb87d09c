"""Effect scheduling over explicit state-cell dependency lists.

An effect runs once when registered and again whenever one of the cells it
listed has a newer version than the one it last saw. Changes made inside a
batch (one synchronous turn) are coalesced so each effect re-runs at most
once per pass, in the order its triggering changes occurred.
"""

from __future__ import annotations

import itertools
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Sequence

from core.constants import DEFAULT_MAX_EFFECT_PASSES

from .boundary import call_guarded
from .state import StateCell

logger = logging.getLogger(__name__)


@dataclass
class Effect:
    """A side-effecting routine with an explicit dependency set.

    Attributes:
        id: Scheduler-assigned identifier
        body: Zero-argument callable
        deps: State cells the effect listens to
        seen: Version of each dependency observed at the last run
        runs: Number of times the body was started
    """

    id: int
    body: Callable[[], Any]
    deps: list[StateCell[Any]]
    seen: dict[str, int] = field(default_factory=dict)
    runs: int = 0
    force: bool = False

    def is_stale(self) -> bool:
        """True if any dependency advanced since the last run."""
        if self.force:
            return True
        return any(dep.version > self.seen.get(dep.id, -1) for dep in self.deps)

    def snapshot(self) -> None:
        self.seen = {dep.id: dep.version for dep in self.deps}
        self.force = False


class EffectScheduler:
    """Runs effects for one plugin instance, one at a time.

    Attributes:
        owner: Plugin id, used in log records
        max_passes: Upper bound on effect runs in one flush
    """

    def __init__(
        self,
        owner: str = "",
        max_passes: int = DEFAULT_MAX_EFFECT_PASSES,
    ):
        self.owner = owner
        self.max_passes = max_passes
        self._effects: dict[int, Effect] = {}
        self._pending: dict[int, None] = {}
        self._ids = itertools.count(1)
        self._depth = 0
        self._running = False
        self._settled: list[Callable[[], None]] = []

    def register_effect(
        self, body: Callable[[], Any], deps: Sequence[StateCell[Any]]
    ) -> Effect:
        """Register an effect and run it once.

        Args:
            body: Zero-argument callable
            deps: Explicit list of state cells to react to

        Returns:
            The registered Effect
        """
        effect = Effect(id=next(self._ids), body=body, deps=list(deps))
        self._effects[effect.id] = effect
        for dep in effect.deps:
            dep.dependents.add(effect.id)

        if self._running:
            # Registered from inside another effect: run after it.
            effect.force = True
            self._pending[effect.id] = None
            return effect

        self._run(effect)
        if not self._depth:
            self.flush()
        return effect

    def notify(self, cell: StateCell[Any]) -> None:
        """Queue every effect depending on a cell that just changed."""
        for effect_id in sorted(cell.dependents):
            if effect_id in self._effects and effect_id not in self._pending:
                self._pending[effect_id] = None
        if self._depth == 0:
            self.flush()

    @contextmanager
    def batch(self) -> Iterator[None]:
        """Coalesce state changes until the outermost batch exits."""
        self._depth += 1
        try:
            yield
        finally:
            self._depth -= 1
            if self._depth == 0:
                self.flush()

    def flush(self) -> None:
        """Run pending stale effects in triggering order."""
        if self._running:
            return
        self._running = True
        passes = 0
        try:
            while self._pending:
                effect_id = next(iter(self._pending))
                del self._pending[effect_id]
                effect = self._effects.get(effect_id)
                if effect is None or not effect.is_stale():
                    continue
                passes += 1
                if passes > self.max_passes:
                    logger.error(
                        "Plugin %s effects did not settle after %d runs, "
                        "dropping %d pending",
                        self.owner,
                        self.max_passes,
                        len(self._pending) + 1,
                    )
                    self._pending.clear()
                    break
                self._run(effect)
        finally:
            self._running = False
        self._notify_settled()

    def on_settled(self, callback: Callable[[], None]) -> None:
        """Register a callback run after each completed flush."""
        self._settled.append(callback)

    def dispose(self, effect: Effect) -> None:
        """Unregister an effect."""
        self._effects.pop(effect.id, None)
        self._pending.pop(effect.id, None)
        for dep in effect.deps:
            dep.dependents.discard(effect.id)

    def clear(self) -> None:
        for effect in list(self._effects.values()):
            self.dispose(effect)
        self._settled.clear()

    @property
    def in_batch(self) -> bool:
        return self._depth > 0

    def _run(self, effect: Effect) -> None:
        # Snapshot first so writes made by the body queue another pass.
        effect.snapshot()
        effect.runs += 1
        was_running = self._running
        self._running = True
        try:
            call_guarded(self.owner, "effect", effect.body)
        finally:
            self._running = was_running

    def _notify_settled(self) -> None:
        if self._depth or self._running:
            return
        for callback in list(self._settled):
            callback()

    def __len__(self) -> int:
        return len(self._effects)
