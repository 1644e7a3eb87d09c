"""
Route registration for the plugin runtime gateway.
"""

from fastapi import FastAPI

from . import events, health, plugins


def register_routes(app: FastAPI) -> None:
    """Register all routes with the FastAPI application."""
    app.include_router(events.router)
    app.include_router(health.router)
    app.include_router(plugins.router)
