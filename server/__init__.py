"""
HTTP gateway between the plugin runtime and the UI client.

Streams runtime events to the client over SSE and accepts client events,
plugin instance listing and unloading over plain HTTP.
"""

from .app import app
from .routes import register_routes
from .state import get_registry, set_registry

# Register all routes with the app
register_routes(app)

__all__ = ["app", "get_registry", "set_registry"]
