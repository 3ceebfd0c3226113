"""
Direct device control.

Sends a raw RPC to a device the caller owns, bypassing the assistant
command translation.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from ...capabilities.backends import GatewayError, ThingsBoardGateway
from ...storage.models import User
from ...storage.repositories import DeviceRepository
from ..dependencies import get_current_user, get_devices, get_gateway_client
from .ownership import get_owned_device

logger = logging.getLogger("bridge.api.devices.control")

router = APIRouter()


class ControlRequest(BaseModel):
    """RPC to send to a device."""
    method: str = Field(..., min_length=1)
    params: dict[str, Any] = Field(default_factory=dict)
    timeout: int = Field(default=5000, gt=0, le=60000, description="RPC timeout in ms")


@router.post("/{device_uuid}/control")
async def control_device(
    device_uuid: str,
    body: ControlRequest,
    user: User = Depends(get_current_user),
    devices: DeviceRepository = Depends(get_devices),
    gateway: ThingsBoardGateway = Depends(get_gateway_client),
):
    """Send an RPC command to a device."""
    device = await get_owned_device(device_uuid, user, devices)

    try:
        result = await gateway.send_rpc(
            device.gateway_device_id,
            body.method,
            body.params,
            body.timeout,
        )
    except GatewayError as e:
        logger.error("Control of %s failed: %s", device_uuid, e)
        raise HTTPException(status.HTTP_502_BAD_GATEWAY, f"Device control failed: {e}")

    logger.info("RPC %s sent to %s by user %s", body.method, device_uuid, user.id)
    return {"success": True, "result": result}
