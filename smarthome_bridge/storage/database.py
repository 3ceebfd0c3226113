"""
asyncpg pool shared by the repositories.

The pool is opened by the application lifespan. Until then every query
raises DatabaseUnavailableError so a missing database surfaces as a typed
storage error instead of an AttributeError deep in a repository.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import asyncpg

from .config import DatabaseConfig, db_settings
from .exceptions import DatabaseUnavailableError

logger = logging.getLogger("bridge.storage.database")


class DatabasePool:
    """Lazily opened asyncpg pool."""

    def __init__(self, config: Optional[DatabaseConfig] = None):
        self.config = config or db_settings
        self._pool: Optional[asyncpg.Pool] = None

    @property
    def is_initialized(self) -> bool:
        return self._pool is not None

    async def initialize(self) -> None:
        """Open the pool. No-op when already open or persistence is disabled."""
        if self._pool is not None:
            return
        if not self.config.enabled:
            logger.info("Registry persistence disabled (BRIDGE_DB_ENABLED=false)")
            return

        cfg = self.config
        logger.info("Connecting to registry database %s:%d/%s", cfg.host, cfg.port, cfg.database)
        try:
            self._pool = await asyncpg.create_pool(
                dsn=cfg.dsn,
                min_size=cfg.min_pool_size,
                max_size=cfg.max_pool_size,
                timeout=cfg.connect_timeout,
                command_timeout=cfg.command_timeout,
            )
        except (OSError, asyncpg.PostgresError) as e:
            logger.error("Registry database unreachable: %s", e)
            raise
        logger.info("Registry pool open (%d-%d connections)", cfg.min_pool_size, cfg.max_pool_size)

    async def close(self) -> None:
        if self._pool is None:
            return
        pool, self._pool = self._pool, None
        await pool.close()
        logger.info("Registry pool closed")

    def _require(self, operation: str) -> asyncpg.Pool:
        if self._pool is None:
            raise DatabaseUnavailableError(operation)
        return self._pool

    async def execute(self, query: str, *args) -> str:
        return await self._require("execute").execute(query, *args)

    async def fetch(self, query: str, *args) -> list:
        return await self._require("fetch").fetch(query, *args)

    async def fetchrow(self, query: str, *args) -> Optional[asyncpg.Record]:
        return await self._require("fetchrow").fetchrow(query, *args)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        """Connection with an open transaction; rolled back if the block raises."""
        pool = self._require("transaction")
        async with pool.acquire() as conn:
            async with conn.transaction():
                yield conn


_db_pool: Optional[DatabasePool] = None


def get_db_pool() -> DatabasePool:
    """Get the global database pool."""
    global _db_pool
    if _db_pool is None:
        _db_pool = DatabasePool()
    return _db_pool


async def init_database() -> None:
    """Open the pool and bring the schema up to date."""
    from .migrations import run_migrations

    pool = get_db_pool()
    await pool.initialize()
    if pool.is_initialized:
        await run_migrations(pool)


async def close_database() -> None:
    await get_db_pool().close()
