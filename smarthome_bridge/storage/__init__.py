"""
Storage module for the bridge.

Provides persistent storage for:
- Backend users
- Provisioned devices
- Assistant account links
- The audit trail
"""

from .config import DatabaseConfig, db_settings
from .database import DatabasePool, get_db_pool
from .exceptions import (
    StorageError,
    DatabaseUnavailableError,
    DatabaseOperationError,
    DuplicateRecordError,
)

__all__ = [
    "DatabaseConfig",
    "db_settings",
    "DatabasePool",
    "get_db_pool",
    "StorageError",
    "DatabaseUnavailableError",
    "DatabaseOperationError",
    "DuplicateRecordError",
]
