"""
API routers for the smart home bridge.
"""

from fastapi import APIRouter

from .devices import router as devices_router
from .health import router as health_router
from .oauth import router as oauth_router
from .smarthome import router as smarthome_router
from .users import router as users_router

# Routers mounted under /api
api_router = APIRouter()

api_router.include_router(users_router)
api_router.include_router(devices_router)

# Main router that aggregates all sub-routers
router = APIRouter()

router.include_router(health_router)
router.include_router(api_router, prefix="/api")
router.include_router(oauth_router)
router.include_router(smarthome_router)
