"""
Health check endpoint.
"""

from fastapi import APIRouter

from ..state import get_registry


router = APIRouter()


@router.get("/health")
async def health() -> dict:
    """Health check endpoint."""
    registry = get_registry()
    return {
        "status": "ok",
        "runtime_started": registry is not None,
        "plugins": len(registry) if registry is not None else 0,
    }
