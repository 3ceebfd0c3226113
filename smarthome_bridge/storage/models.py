"""
Data models for bridge storage.

These are plain dataclasses, not ORM models.
We use raw SQL with asyncpg.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LifecycleState(str, Enum):
    """Lifecycle of users and devices. Rows are never physically removed."""
    ACTIVE = "active"
    DELETED = "deleted"


class LinkState(str, Enum):
    """Lifecycle of an assistant account link."""
    ACTIVE = "active"
    DISCONNECTED = "disconnected"


@dataclass
class User:
    """A backend user who owns devices."""

    id: int
    backend_user_id: UUID
    username: str
    password_hash: str
    email: Optional[str] = None
    gateway_user_id: Optional[str] = None
    gateway_customer_id: Optional[str] = None
    lifecycle: LifecycleState = LifecycleState.ACTIVE
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "backendUserId": str(self.backend_user_id),
            "username": self.username,
            "email": self.email,
            "gatewayUserId": self.gateway_user_id,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass
class Device:
    """
    One physical controller unit.

    `device_uuid` is the identifier the assistant sees; `gateway_device_id`
    addresses the same unit at the device-management platform.
    """

    id: int
    device_uuid: str
    gateway_device_id: str
    name: str
    device_type: str
    owner_user_id: int
    access_token: str
    capabilities: list[str] = field(default_factory=list)
    label: Optional[str] = None
    config: dict[str, Any] = field(default_factory=dict)
    provisioned_at: datetime = field(default_factory=_utcnow)
    last_seen_at: Optional[datetime] = None
    is_online: bool = False
    lifecycle: LifecycleState = LifecycleState.ACTIVE

    @property
    def display_name(self) -> str:
        return self.label or self.name

    def has_any(self, *capabilities: str) -> bool:
        """True if the device declares at least one of the given capabilities."""
        return any(c in self.capabilities for c in capabilities)

    def to_dict(self) -> dict[str, Any]:
        return {
            "deviceUuid": self.device_uuid,
            "deviceName": self.name,
            "deviceType": self.device_type,
            "deviceLabel": self.label,
            "capabilities": self.capabilities,
            "isOnline": self.is_online,
            "lastSeen": self.last_seen_at.isoformat() if self.last_seen_at else None,
            "provisionedAt": self.provisioned_at.isoformat(),
        }


@dataclass
class AccountLink:
    """An assistant-platform identity bound to one backend user."""

    id: int
    user_id: int
    agent_user_id: str
    assistant_account_id: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    linked_at: datetime = field(default_factory=_utcnow)
    last_sync_at: Optional[datetime] = None
    state: LinkState = LinkState.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.state == LinkState.ACTIVE


@dataclass
class AuditLogEntry:
    """An audit trail record for a security-relevant event."""

    id: int
    action: str
    resource_type: str
    user_id: Optional[int] = None
    resource_id: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "action": self.action,
            "resource_type": self.resource_type,
            "user_id": self.user_id,
            "resource_id": self.resource_id,
            "details": self.details,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "created_at": self.created_at.isoformat(),
        }
