"""
Registry contract consumed by the intent dispatcher.

The dispatcher never talks to repositories directly; it sees devices and
account links through this narrow interface so it can be exercised with
an in-memory registry.
"""

from typing import Optional, Protocol, runtime_checkable

from ..storage.models import AccountLink, Device
from ..storage.repositories import (
    AccountLinkRepository,
    DeviceRepository,
    get_account_link_repo,
    get_device_repo,
)


@runtime_checkable
class Registry(Protocol):
    """Device and account-link lookups for one fulfillment request."""

    async def find_device_by_id(self, device_id: str) -> Optional[Device]:
        """Active device by its assistant-visible id, or None."""
        ...

    async def find_devices_by_owner(self, user_id: int) -> list[Device]:
        """Active devices of a user, in provisioning order."""
        ...

    async def find_account_link_by_subject(self, subject: str) -> Optional[AccountLink]:
        """Active account link for an assistant subject identifier, or None."""
        ...

    async def mark_link_synced(self, subject: str) -> None:
        ...

    async def deactivate_link(self, subject: str) -> bool:
        """Returns False when no active link existed."""
        ...


class RepositoryRegistry:
    """Registry backed by the PostgreSQL repositories."""

    def __init__(
        self,
        devices: Optional[DeviceRepository] = None,
        links: Optional[AccountLinkRepository] = None,
    ):
        self.devices = devices or get_device_repo()
        self.links = links or get_account_link_repo()

    async def find_device_by_id(self, device_id: str) -> Optional[Device]:
        return await self.devices.get_by_uuid(device_id)

    async def find_devices_by_owner(self, user_id: int) -> list[Device]:
        return await self.devices.list_by_owner(user_id)

    async def find_account_link_by_subject(self, subject: str) -> Optional[AccountLink]:
        return await self.links.get_active_by_subject(subject)

    async def mark_link_synced(self, subject: str) -> None:
        await self.links.mark_synced(subject)

    async def deactivate_link(self, subject: str) -> bool:
        return await self.links.deactivate(subject)
