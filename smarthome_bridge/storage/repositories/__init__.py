"""
Repository classes for database access.

Repositories provide a clean interface for data access,
hiding the SQL implementation details.
"""

from .account_link import AccountLinkRepository, get_account_link_repo
from .audit import AuditLogRepository, get_audit_repo
from .device import DeviceRepository, get_device_repo
from .user import UserRepository, get_user_repo

__all__ = [
    "AccountLinkRepository",
    "AuditLogRepository",
    "DeviceRepository",
    "UserRepository",
    "get_account_link_repo",
    "get_audit_repo",
    "get_device_repo",
    "get_user_repo",
]
