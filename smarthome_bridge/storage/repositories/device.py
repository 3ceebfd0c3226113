"""
Device repository for provisioned controller units.

Provides CRUD operations for the devices table. Deletion is a lifecycle
transition; rows are never removed.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from ..database import get_db_pool
from ..models import Device, LifecycleState

logger = logging.getLogger("bridge.storage.device")

_DEVICE_COLUMNS = """
    id, device_uuid, gateway_device_id, device_name, device_type, device_label,
    owner_user_id, access_token, capabilities, device_config, provisioned_at,
    last_seen_at, is_online, lifecycle
"""


class DeviceRepository:
    """Repository for provisioned devices."""

    async def create(
        self,
        device_uuid: str,
        gateway_device_id: str,
        name: str,
        device_type: str,
        owner_user_id: int,
        access_token: str,
        capabilities: list[str],
        label: Optional[str] = None,
        config: Optional[dict[str, Any]] = None,
    ) -> Device:
        """
        Persist a newly provisioned device.

        Raises:
            ValueError: if the capability set is empty
        """
        if not capabilities:
            raise ValueError("A device must declare at least one capability")

        # Ordered set: drop repeats, keep first occurrence
        capabilities = list(dict.fromkeys(capabilities))

        pool = get_db_pool()
        row = await pool.fetchrow(
            f"""
            INSERT INTO devices (
                device_uuid, gateway_device_id, device_name, device_type, device_label,
                owner_user_id, access_token, capabilities, device_config, lifecycle
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8::jsonb, $9::jsonb, $10)
            RETURNING {_DEVICE_COLUMNS}
            """,
            device_uuid,
            gateway_device_id,
            name,
            device_type,
            label,
            owner_user_id,
            access_token,
            json.dumps(capabilities),
            json.dumps(config) if config else None,
            LifecycleState.ACTIVE.value,
        )
        logger.info("Created device %s for user %s", device_uuid, owner_user_id)
        return self._row_to_device(row)

    async def get_by_uuid(self, device_uuid: str) -> Optional[Device]:
        """Get an active device by its external identifier."""
        pool = get_db_pool()
        row = await pool.fetchrow(
            f"""
            SELECT {_DEVICE_COLUMNS}
            FROM devices
            WHERE device_uuid = $1 AND lifecycle = $2
            """,
            device_uuid,
            LifecycleState.ACTIVE.value,
        )
        if not row:
            return None
        return self._row_to_device(row)

    async def list_by_owner(self, owner_user_id: int) -> list[Device]:
        """Active devices of a user, in provisioning order."""
        pool = get_db_pool()
        rows = await pool.fetch(
            f"""
            SELECT {_DEVICE_COLUMNS}
            FROM devices
            WHERE owner_user_id = $1 AND lifecycle = $2
            ORDER BY provisioned_at ASC, id ASC
            """,
            owner_user_id,
            LifecycleState.ACTIVE.value,
        )
        return [self._row_to_device(row) for row in rows]

    async def update_online_status(self, device_uuid: str, is_online: bool) -> None:
        """Record an online/offline transition and bump last_seen_at."""
        pool = get_db_pool()
        await pool.execute(
            """
            UPDATE devices
            SET is_online = $2, last_seen_at = $3
            WHERE device_uuid = $1
            """,
            device_uuid,
            is_online,
            datetime.now(timezone.utc),
        )
        logger.debug("Device %s online=%s", device_uuid, is_online)

    async def update_config(self, device_uuid: str, config: dict[str, Any]) -> None:
        """Replace the device configuration blob."""
        pool = get_db_pool()
        await pool.execute(
            "UPDATE devices SET device_config = $2::jsonb WHERE device_uuid = $1",
            device_uuid,
            json.dumps(config),
        )

    async def soft_delete(self, device_uuid: str) -> bool:
        """Move a device to the deleted lifecycle state."""
        pool = get_db_pool()
        result = await pool.execute(
            """
            UPDATE devices
            SET lifecycle = $2
            WHERE device_uuid = $1 AND lifecycle = $3
            """,
            device_uuid,
            LifecycleState.DELETED.value,
            LifecycleState.ACTIVE.value,
        )
        deleted = bool(result) and result.endswith(" 1")
        if deleted:
            logger.info("Deleted device: %s", device_uuid)
        return deleted

    def _row_to_device(self, row) -> Device:
        """Convert a database row to a Device object."""
        return Device(
            id=row["id"],
            device_uuid=row["device_uuid"],
            gateway_device_id=row["gateway_device_id"],
            name=row["device_name"],
            device_type=row["device_type"],
            label=row["device_label"],
            owner_user_id=row["owner_user_id"],
            access_token=row["access_token"],
            capabilities=json.loads(row["capabilities"]) if row["capabilities"] else [],
            config=json.loads(row["device_config"]) if row["device_config"] else {},
            provisioned_at=row["provisioned_at"],
            last_seen_at=row["last_seen_at"],
            is_online=row["is_online"],
            lifecycle=LifecycleState(row["lifecycle"]),
        )


# Global repository instance
_device_repo: Optional[DeviceRepository] = None


def get_device_repo() -> DeviceRepository:
    """Get the global device repository."""
    global _device_repo
    if _device_repo is None:
        _device_repo = DeviceRepository()
    return _device_repo
