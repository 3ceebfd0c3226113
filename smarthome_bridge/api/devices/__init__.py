"""
Device management and control API routers.
"""

from fastapi import APIRouter

from .control import router as control_router
from .provisioning import router as provisioning_router

router = APIRouter(prefix="/device", tags=["Devices"])

router.include_router(provisioning_router)
router.include_router(control_router)
