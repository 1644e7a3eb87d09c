"""
Core domain exceptions.

These exceptions are transport-agnostic and should be caught by the server
layer to convert into appropriate HTTP responses.
"""


class CoreError(Exception):
    """Base exception for all core errors."""

    pass


class NotFoundError(CoreError):
    """Raised when a requested resource is not found."""

    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found: {identifier}")


class InvalidOperationError(CoreError):
    """Raised when an operation cannot be performed in the current state."""

    pass


class PluginLoadError(CoreError):
    """Raised when a plugin script cannot be executed or initialized."""

    def __init__(self, plugin: str, reason: str):
        self.plugin = plugin
        self.reason = reason
        super().__init__(f"Failed to load plugin {plugin}: {reason}")


class PluginUnloadedError(InvalidOperationError):
    """Raised when a plugin touches runtime objects after it was unloaded."""

    def __init__(self, plugin_id: str):
        self.plugin_id = plugin_id
        super().__init__(f"Plugin {plugin_id} is unloaded")


class RenderMutationError(InvalidOperationError):
    """Raised when a render function tries to write a state cell."""

    pass


class MiddlewareHaltedError(CoreError):
    """Raised when a middleware hook stopped the chain without continuing."""

    def __init__(self, point: str, plugin_id: str | None):
        self.point = point
        self.plugin_id = plugin_id
        super().__init__(
            f"Middleware chain '{point}' halted by plugin {plugin_id or '<unknown>'}"
        )


class PermissionDeniedError(CoreError):
    """Raised when a plugin requests a host capability it is not allowed to use."""

    pass
