"""
Device provisioning and inventory endpoints.

Controllers call /register on first boot with their owner's session
token; the response carries the MQTT credential they publish with.
"""

import logging
import re
from typing import Any, Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, ConfigDict, Field

from ...capabilities.backends import GatewayError, ThingsBoardGateway
from ...config import settings
from ...storage.models import User
from ...storage.repositories import AuditLogRepository, DeviceRepository
from ..dependencies import get_audit, get_current_user, get_devices, get_gateway_client
from .ownership import get_owned_device

logger = logging.getLogger("bridge.api.devices")

router = APIRouter()


# --- Request/Response Models ---


class DeviceRegistration(BaseModel):
    """Registration sent by a controller on first boot."""
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1, alias="deviceName")
    device_type: str = Field(..., min_length=1, alias="deviceType")
    capabilities: list[str] = Field(..., min_length=1)
    label: Optional[str] = Field(default=None, alias="deviceLabel")
    config: dict[str, Any] = Field(default_factory=dict, alias="deviceConfig")


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


# --- Endpoints ---


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register_device(
    body: DeviceRegistration,
    request: Request,
    user: User = Depends(get_current_user),
    devices: DeviceRepository = Depends(get_devices),
    gateway: ThingsBoardGateway = Depends(get_gateway_client),
    audit: AuditLogRepository = Depends(get_audit),
):
    """
    Provision a device.

    Creates it on ThingsBoard, fetches its access token, assigns it to the
    owner's customer and records it locally.
    """
    logger.info("Provisioning %s (%s) for user %s", body.name, body.device_type, user.id)

    try:
        tb_device = await gateway.create_device(body.name, body.device_type, body.label)
        gateway_device_id = (tb_device.get("id") or {}).get("id")
        if not gateway_device_id:
            raise HTTPException(
                status.HTTP_502_BAD_GATEWAY,
                "Failed to create device in ThingsBoard",
            )

        credentials = await gateway.get_device_credentials(gateway_device_id)
        access_token = credentials.get("credentialsId")
        if not access_token:
            raise HTTPException(
                status.HTTP_502_BAD_GATEWAY,
                "Failed to get device access token",
            )

        if user.gateway_customer_id:
            await gateway.assign_device_to_customer(gateway_device_id, user.gateway_customer_id)
    except GatewayError as e:
        logger.error("Provisioning %s failed: %s", body.name, e)
        raise HTTPException(status.HTTP_502_BAD_GATEWAY, f"Device provisioning failed: {e}")

    device = await devices.create(
        device_uuid=str(uuid4()),
        gateway_device_id=gateway_device_id,
        name=body.name,
        device_type=body.device_type,
        owner_user_id=user.id,
        access_token=access_token,
        capabilities=body.capabilities,
        label=body.label,
        config=body.config,
    )

    await audit.record(
        action="device_provisioned",
        resource_type="device",
        user_id=user.id,
        resource_id=device.device_uuid,
        details={
            "deviceName": body.name,
            "deviceType": body.device_type,
            "gatewayDeviceId": gateway_device_id,
        },
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    logger.info("Provisioned device %s as %s", device.device_uuid, gateway_device_id)

    tb_url = settings.thingsboard.url
    return {
        "success": True,
        "device": {
            "deviceUuid": device.device_uuid,
            "deviceName": device.name,
            "deviceType": device.device_type,
            "accessToken": access_token,
            "thingsboardUrl": tb_url,
            "mqttServer": re.sub(r"^https?://", "", tb_url),
            "mqttPort": settings.thingsboard.mqtt_port,
        },
    }


@router.get("/list")
async def list_devices(
    user: User = Depends(get_current_user),
    devices: DeviceRepository = Depends(get_devices),
):
    """List the caller's active devices in provisioning order."""
    owned = await devices.list_by_owner(user.id)
    return {"success": True, "devices": [d.to_dict() for d in owned]}


@router.get("/{device_uuid}")
async def get_device(
    device_uuid: str,
    user: User = Depends(get_current_user),
    devices: DeviceRepository = Depends(get_devices),
    gateway: ThingsBoardGateway = Depends(get_gateway_client),
):
    """Device details with live telemetry and attributes."""
    device = await get_owned_device(device_uuid, user, devices)
    fulfillment = settings.fulfillment

    try:
        telemetry = await gateway.get_latest_telemetry(
            device.gateway_device_id,
            [*fulfillment.state_keys, fulfillment.fan_speed_key],
        )
        attributes = await gateway.get_attributes(
            device.gateway_device_id,
            fulfillment.attribute_scope,
        )
    except GatewayError as e:
        logger.warning("Live state for %s unavailable: %s", device_uuid, e)
        telemetry = None
        attributes = None

    return {
        "success": True,
        "device": {
            **device.to_dict(),
            "telemetry": telemetry,
            "attributes": attributes,
        },
    }


@router.delete("/{device_uuid}")
async def delete_device(
    device_uuid: str,
    request: Request,
    user: User = Depends(get_current_user),
    devices: DeviceRepository = Depends(get_devices),
    audit: AuditLogRepository = Depends(get_audit),
):
    """Soft-delete a device. It disappears from SYNC but the row is kept."""
    device = await get_owned_device(device_uuid, user, devices)
    await devices.soft_delete(device.device_uuid)

    await audit.record(
        action="device_deleted",
        resource_type="device",
        user_id=user.id,
        resource_id=device.device_uuid,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    logger.info("Deleted device %s", device_uuid)

    return {"success": True, "message": "Device deleted successfully"}
