"""
Audit log repository.
"""

import json
import logging
from typing import Any, Optional

from ..database import get_db_pool
from ..models import AuditLogEntry

logger = logging.getLogger("bridge.storage.audit")


class AuditLogRepository:
    """Append-only store for security-relevant events."""

    async def record(
        self,
        action: str,
        resource_type: str,
        user_id: Optional[int] = None,
        resource_id: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        pool = get_db_pool()
        await pool.execute(
            """
            INSERT INTO audit_log (
                user_id, action, resource_type, resource_id, details, ip_address, user_agent
            )
            VALUES ($1, $2, $3, $4, $5::jsonb, $6, $7)
            """,
            user_id,
            action,
            resource_type,
            resource_id,
            json.dumps(details) if details else None,
            ip_address,
            user_agent,
        )
        logger.debug("Audit %s on %s/%s by %s", action, resource_type, resource_id, user_id)

    async def list_for_user(self, user_id: int, limit: int = 100) -> list[AuditLogEntry]:
        pool = get_db_pool()
        rows = await pool.fetch(
            """
            SELECT id, user_id, action, resource_type, resource_id, details,
                   ip_address, user_agent, created_at
            FROM audit_log
            WHERE user_id = $1
            ORDER BY created_at DESC
            LIMIT $2
            """,
            user_id,
            limit,
        )
        return [
            AuditLogEntry(
                id=row["id"],
                user_id=row["user_id"],
                action=row["action"],
                resource_type=row["resource_type"],
                resource_id=row["resource_id"],
                details=json.loads(row["details"]) if row["details"] else {},
                ip_address=row["ip_address"],
                user_agent=row["user_agent"],
                created_at=row["created_at"],
            )
            for row in rows
        ]


_audit_repo: Optional[AuditLogRepository] = None


def get_audit_repo() -> AuditLogRepository:
    """Get the global audit log repository."""
    global _audit_repo
    if _audit_repo is None:
        _audit_repo = AuditLogRepository()
    return _audit_repo
