"""
Ownership checks shared by the device endpoints.
"""

from fastapi import HTTPException, status

from ...storage.models import Device, User
from ...storage.repositories import DeviceRepository


async def get_owned_device(device_uuid: str, user: User, devices: DeviceRepository) -> Device:
    """
    Load an active device and make sure the caller owns it.

    Raises:
        HTTPException: 404 if the device is unknown, 403 if owned by someone else
    """
    device = await devices.get_by_uuid(device_uuid)
    if device is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Device not found")
    if device.owner_user_id != user.id:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Access denied")
    return device
