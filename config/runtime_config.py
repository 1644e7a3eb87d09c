"""Runtime configuration models."""

from typing import Literal

from pydantic import BaseModel, Field

from core.constants import (
    DEFAULT_ALLOWED_NAVIGATION_PREFIXES,
    DEFAULT_HOOK_TIMEOUT_S,
    DEFAULT_MAX_EFFECT_PASSES,
)


class StorageConfig(BaseModel):
    """Namespaced plugin storage backend."""

    backend: Literal["file", "memory"] = Field(
        default="file",
        description="Where plugin storage lives",
    )
    dir: str | None = Field(
        default=None,
        description="Storage directory for the file backend (defaults to ~/.plugin-runtime/storage)",
    )


class MiddlewareConfig(BaseModel):
    """Middleware chain behavior."""

    hook_timeout_s: float = Field(
        default=DEFAULT_HOOK_TIMEOUT_S,
        gt=0,
        description="Timeout for each async hook call",
    )
    stall_policy: Literal["halt", "continue"] = Field(
        default="halt",
        description="What happens when a hook returns without continuing",
    )


class EffectsConfig(BaseModel):
    """Effect scheduler limits."""

    max_passes: int = Field(
        default=DEFAULT_MAX_EFFECT_PASSES,
        ge=1,
        description="Maximum effect runs in one flush before pending effects are dropped",
    )


class NavigationConfig(BaseModel):
    """Navigation requests forwarded to the UI client."""

    allowed_prefixes: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_NAVIGATION_PREFIXES),
        description="Path prefixes a plugin may navigate the client to",
    )

    def is_allowed(self, path: str) -> bool:
        return any(path.startswith(prefix) for prefix in self.allowed_prefixes)


class CommandsConfig(BaseModel):
    """Host process spawning available to plugins."""

    allowed: list[str] = Field(
        default_factory=list,
        description="Executable names plugins may run through system.cmd()",
    )
    timeout_s: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for each spawned command",
    )


class ServerConfig(BaseModel):
    """HTTP gateway to the UI client."""

    host: str = Field(default="127.0.0.1", description="Bind address")
    port: int = Field(default=8000, description="Bind port")
    cors_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Allowed CORS origins",
    )


class RuntimeConfig(BaseModel):
    """Main configuration model."""

    plugins: list[str] = Field(
        default_factory=list,
        description="Plugin script paths loaded at start, in order",
    )
    storage: StorageConfig = Field(default_factory=StorageConfig)
    middleware: MiddlewareConfig = Field(default_factory=MiddlewareConfig)
    effects: EffectsConfig = Field(default_factory=EffectsConfig)
    navigation: NavigationConfig = Field(default_factory=NavigationConfig)
    commands: CommandsConfig = Field(default_factory=CommandsConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
