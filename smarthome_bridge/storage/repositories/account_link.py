"""
Account link repository.

One row per assistant subject identifier (agent user id). Disconnecting a
link flips its state; the row is kept for audit.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from ..database import get_db_pool
from ..models import AccountLink, LinkState

logger = logging.getLogger("bridge.storage.account_link")

_LINK_COLUMNS = """
    id, user_id, agent_user_id, assistant_account_id, access_token, refresh_token,
    token_expires_at, linked_at, last_sync_at, state
"""


class AccountLinkRepository:
    """Repository for the account_links table."""

    async def upsert(
        self,
        user_id: int,
        agent_user_id: str,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        token_expires_at: Optional[datetime] = None,
        assistant_account_id: Optional[str] = None,
    ) -> AccountLink:
        """
        Create the link for a subject, or refresh and reactivate it.

        The unique agent_user_id column keeps at most one link per subject.
        """
        now = datetime.now(timezone.utc)
        pool = get_db_pool()
        row = await pool.fetchrow(
            f"""
            INSERT INTO account_links (
                user_id, agent_user_id, assistant_account_id, access_token,
                refresh_token, token_expires_at, linked_at, last_sync_at, state
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $7, $8)
            ON CONFLICT (agent_user_id) DO UPDATE SET
                user_id = EXCLUDED.user_id,
                assistant_account_id = COALESCE(EXCLUDED.assistant_account_id, account_links.assistant_account_id),
                access_token = EXCLUDED.access_token,
                refresh_token = EXCLUDED.refresh_token,
                token_expires_at = EXCLUDED.token_expires_at,
                last_sync_at = EXCLUDED.last_sync_at,
                state = EXCLUDED.state
            RETURNING {_LINK_COLUMNS}
            """,
            user_id,
            agent_user_id,
            assistant_account_id,
            access_token,
            refresh_token,
            token_expires_at,
            now,
            LinkState.ACTIVE.value,
        )
        logger.info("Upserted account link %s for user %s", agent_user_id, user_id)
        return self._row_to_link(row)

    async def get_active_by_subject(self, agent_user_id: str) -> Optional[AccountLink]:
        """Get the active link for an assistant subject identifier."""
        pool = get_db_pool()
        row = await pool.fetchrow(
            f"""
            SELECT {_LINK_COLUMNS}
            FROM account_links
            WHERE agent_user_id = $1 AND state = $2
            """,
            agent_user_id,
            LinkState.ACTIVE.value,
        )
        if not row:
            return None
        return self._row_to_link(row)

    async def mark_synced(self, agent_user_id: str) -> None:
        """Stamp the last SYNC time."""
        pool = get_db_pool()
        await pool.execute(
            "UPDATE account_links SET last_sync_at = $2 WHERE agent_user_id = $1",
            agent_user_id,
            datetime.now(timezone.utc),
        )

    async def deactivate(self, agent_user_id: str) -> bool:
        """Disconnect a link. Returns False when nothing active was found."""
        pool = get_db_pool()
        result = await pool.execute(
            """
            UPDATE account_links
            SET state = $2
            WHERE agent_user_id = $1 AND state = $3
            """,
            agent_user_id,
            LinkState.DISCONNECTED.value,
            LinkState.ACTIVE.value,
        )
        changed = bool(result) and result.endswith(" 1")
        if changed:
            logger.info("Disconnected account link: %s", agent_user_id)
        return changed

    def _row_to_link(self, row) -> AccountLink:
        return AccountLink(
            id=row["id"],
            user_id=row["user_id"],
            agent_user_id=row["agent_user_id"],
            assistant_account_id=row["assistant_account_id"],
            access_token=row["access_token"],
            refresh_token=row["refresh_token"],
            token_expires_at=row["token_expires_at"],
            linked_at=row["linked_at"],
            last_sync_at=row["last_sync_at"],
            state=LinkState(row["state"]),
        )


_account_link_repo: Optional[AccountLinkRepository] = None


def get_account_link_repo() -> AccountLinkRepository:
    """Get the global account link repository."""
    global _account_link_repo
    if _account_link_repo is None:
        _account_link_repo = AccountLinkRepository()
    return _account_link_repo
