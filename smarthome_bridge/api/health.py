"""
Health check endpoints.
"""

from fastapi import APIRouter

from .. import __version__
from ..config import settings
from ..storage import db_settings, get_db_pool

router = APIRouter(tags=["Health"])


@router.get("/ping")
async def ping():
    """Simple endpoint to verify server is running."""
    return {"status": "ok", "message": "pong"}


@router.get("/health")
async def health():
    """Health check with database status."""
    return {
        "status": "ok",
        "version": __version__,
        "environment": settings.environment,
        "services": {
            "database": {
                "enabled": db_settings.enabled,
                "connected": get_db_pool().is_initialized,
            },
            "thingsboard": {
                "url": settings.thingsboard.url,
            },
        },
    }
