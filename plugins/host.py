"""Host capabilities injected into plugin scripts.

The loader executes a plugin script with these names bound in its module
namespace: ``ui``, ``app``, ``storage``, ``store``, ``system``, ``console``,
``anilist`` and ``replace``. Every capability is bound to one instance, so
what a script registers is owned by that instance and goes away on unload.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from core.exceptions import PermissionDeniedError
from core.logging_config import get_script_logger

from .boundary import acall_guarded, call_guarded
from .context import UIContext
from .models import HookPoint, replace
from .pipeline import HookFn, HookRegistration
from .process_store import Watch

if TYPE_CHECKING:
    from .instance import PluginInstance

logger = logging.getLogger(__name__)


@dataclass
class HostServices:
    """Host-side operations plugins may request.

    Attributes:
        refresh_anime_collection: Called (sync or async) when a plugin asks
            the host to refetch the user's collection
    """

    refresh_anime_collection: Callable[[], Any] | None = None


class UICapability:
    def __init__(self, instance: "PluginInstance"):
        self._instance = instance

    def register(self, fn: Callable[[UIContext], Any]) -> None:
        """Run ``fn(ctx)`` once with this plugin's UI context."""
        self._instance.run_sync(fn, UIContext(self._instance), where="ui.register")


class AppCapability:
    """Middleware hook registration."""

    def __init__(self, instance: "PluginInstance"):
        self._instance = instance

    def on(self, point: HookPoint | str, callback: HookFn) -> HookRegistration:
        return self._instance.hooks.register(
            point, callback, plugin_id=self._instance.id, runner=self._instance.run_hook
        )

    def on_get_anime(self, callback: HookFn) -> HookRegistration:
        return self.on(HookPoint.ANIME_FETCHED, callback)

    def on_get_anime_collection(self, callback: HookFn) -> HookRegistration:
        return self.on(HookPoint.ANIME_COLLECTION_FETCHED, callback)

    def on_get_raw_anime_collection(self, callback: HookFn) -> HookRegistration:
        return self.on(HookPoint.RAW_ANIME_COLLECTION_FETCHED, callback)


class StorageCapability:
    """Persistent storage namespaced by plugin id."""

    def __init__(self, instance: "PluginInstance"):
        self._instance = instance

    def get(self, key: str) -> Any:
        """Return the value at a dot-delimited key, or None."""
        return self._instance.storage.get(self._instance.id, key)

    def set(self, key: str, value: Any) -> None:
        self._instance.storage.set(self._instance.id, key, value)

    def remove(self, key: str) -> bool:
        return self._instance.storage.remove(self._instance.id, key)


class StoreCapability:
    """The process store shared by every plugin."""

    def __init__(self, instance: "PluginInstance"):
        self._instance = instance

    def get(self, key: str, default: Any = None) -> Any:
        return self._instance.process_store.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._instance.process_store.set(key, value)

    def watch(self, key: str, callback: Callable[[Any], Any]) -> Watch:
        """Call ``callback(value)`` on this plugin's queue after each write to ``key``."""
        instance = self._instance

        def on_write(value: Any) -> None:
            instance.schedule(callback, value, where=f"store watch {key!r}")

        return instance.process_store.watch(key, on_write, owner=instance.id)


@dataclass
class CommandResult:
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


@dataclass
class Command:
    """A prepared host process invocation.

    Attributes:
        name: Executable name
        args: Arguments
        timeout_s: Limit for run()
    """

    name: str
    args: list[str] = field(default_factory=list)
    timeout_s: float = 30.0

    async def run(self) -> CommandResult:
        """Run the command to completion and capture its output.

        Raises:
            TimeoutError: If it runs longer than ``timeout_s``; the process is killed
            FileNotFoundError: If the executable does not exist
        """
        process = await asyncio.create_subprocess_exec(
            self.name,
            *self.args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.timeout_s
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            logger.warning("Command %s killed after %ss", self.name, self.timeout_s)
            raise
        return CommandResult(
            returncode=process.returncode,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
        )


class SystemCapability:
    """Host process spawning, limited to configured executables."""

    def __init__(self, instance: "PluginInstance"):
        self._instance = instance

    def cmd(self, name: str, *args: Any) -> Command:
        """Prepare a command.

        Raises:
            PermissionDeniedError: If ``name`` is not in ``commands.allowed``
        """
        commands = self._instance.config.commands
        if name not in commands.allowed:
            raise PermissionDeniedError(
                f"Plugin {self._instance.id} may not run command {name!r}"
            )
        logger.info("Plugin %s prepared command %s", self._instance.id, name)
        return Command(name=name, args=[str(a) for a in args], timeout_s=commands.timeout_s)


class ConsoleCapability:
    """Script log sink, logger ``plugins.script.<id>``."""

    def __init__(self, instance: "PluginInstance"):
        self._logger = get_script_logger(instance.id)

    @staticmethod
    def _format(args: tuple[Any, ...]) -> str:
        return " ".join(str(a) for a in args)

    def log(self, *args: Any) -> None:
        self._logger.info(self._format(args))

    def info(self, *args: Any) -> None:
        self._logger.info(self._format(args))

    def warn(self, *args: Any) -> None:
        self._logger.warning(self._format(args))

    def error(self, *args: Any) -> None:
        self._logger.error(self._format(args))

    def debug(self, *args: Any) -> None:
        self._logger.debug(self._format(args))


class AnilistCapability:
    def __init__(self, instance: "PluginInstance", services: HostServices):
        self._instance = instance
        self._services = services
        self._tasks: set[asyncio.Task[Any]] = set()

    def refresh_anime_collection(self) -> None:
        """Ask the host to refetch the collection. Does not wait for it."""
        refresh = self._services.refresh_anime_collection
        if refresh is None:
            logger.debug("Plugin %s requested a refresh, host has no handler", self._instance.id)
            return
        where = "refresh_anime_collection"
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            _, result = call_guarded(self._instance.id, where, refresh)
            if asyncio.iscoroutine(result):
                result.close()
                logger.warning(
                    "No event loop running, refresh request from %s dropped", self._instance.id
                )
            return
        task = loop.create_task(acall_guarded(self._instance.id, where, refresh))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


def bind_capabilities(
    instance: "PluginInstance", services: HostServices | None = None
) -> dict[str, Any]:
    """Build the names injected into a plugin script's namespace."""
    return {
        "ui": UICapability(instance),
        "app": AppCapability(instance),
        "storage": StorageCapability(instance),
        "store": StoreCapability(instance),
        "system": SystemCapability(instance),
        "console": ConsoleCapability(instance),
        "anilist": AnilistCapability(instance, services or HostServices()),
        "replace": replace,
    }
