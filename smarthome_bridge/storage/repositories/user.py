"""
User repository for backend accounts.
"""

import logging
from typing import Optional
from uuid import uuid4

import asyncpg

from ..database import get_db_pool
from ..exceptions import DuplicateRecordError
from ..models import LifecycleState, User

logger = logging.getLogger("bridge.storage.user")

_USER_COLUMNS = """
    id, backend_user_id, username, email, password_hash, gateway_user_id,
    gateway_customer_id, lifecycle, created_at, updated_at
"""


class UserRepository:
    """Repository for the users table."""

    async def create(
        self,
        username: str,
        password_hash: str,
        email: Optional[str] = None,
        gateway_user_id: Optional[str] = None,
        gateway_customer_id: Optional[str] = None,
    ) -> User:
        """
        Insert a new user.

        Raises:
            DuplicateRecordError: if the username or email is taken
        """
        pool = get_db_pool()
        try:
            row = await pool.fetchrow(
                f"""
                INSERT INTO users (
                    backend_user_id, username, email, password_hash,
                    gateway_user_id, gateway_customer_id, lifecycle
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                RETURNING {_USER_COLUMNS}
                """,
                uuid4(),
                username,
                email,
                password_hash,
                gateway_user_id,
                gateway_customer_id,
                LifecycleState.ACTIVE.value,
            )
        except asyncpg.UniqueViolationError as e:
            raise DuplicateRecordError("user", "username", username) from e

        logger.info("Created user %s", username)
        return self._row_to_user(row)

    async def get_by_id(self, user_id: int) -> Optional[User]:
        pool = get_db_pool()
        row = await pool.fetchrow(
            f"SELECT {_USER_COLUMNS} FROM users WHERE id = $1 AND lifecycle = $2",
            user_id,
            LifecycleState.ACTIVE.value,
        )
        return self._row_to_user(row) if row else None

    async def get_by_username(self, username: str) -> Optional[User]:
        pool = get_db_pool()
        row = await pool.fetchrow(
            f"SELECT {_USER_COLUMNS} FROM users WHERE username = $1 AND lifecycle = $2",
            username,
            LifecycleState.ACTIVE.value,
        )
        return self._row_to_user(row) if row else None

    async def update_gateway_mapping(
        self,
        user_id: int,
        gateway_user_id: Optional[str],
        gateway_customer_id: Optional[str],
    ) -> None:
        """Bind a backend user to its device-platform user and customer."""
        pool = get_db_pool()
        await pool.execute(
            """
            UPDATE users
            SET gateway_user_id = $2, gateway_customer_id = $3, updated_at = NOW()
            WHERE id = $1
            """,
            user_id,
            gateway_user_id,
            gateway_customer_id,
        )

    def _row_to_user(self, row) -> User:
        return User(
            id=row["id"],
            backend_user_id=row["backend_user_id"],
            username=row["username"],
            email=row["email"],
            password_hash=row["password_hash"],
            gateway_user_id=row["gateway_user_id"],
            gateway_customer_id=row["gateway_customer_id"],
            lifecycle=LifecycleState(row["lifecycle"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


_user_repo: Optional[UserRepository] = None


def get_user_repo() -> UserRepository:
    """Get the global user repository."""
    global _user_repo
    if _user_repo is None:
        _user_repo = UserRepository()
    return _user_repo
