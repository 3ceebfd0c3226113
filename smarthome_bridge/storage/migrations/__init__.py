"""
Schema migrations for the registry database.

Files are named NNN_description.sql and applied in version order. Each one
runs in its own transaction together with its schema_migrations row, so a
failed file leaves no trace and is retried on the next start.
"""

import logging
import re
from pathlib import Path
from typing import Optional

import asyncpg

from ..exceptions import DatabaseOperationError

logger = logging.getLogger("bridge.storage.migrations")

MIGRATIONS_DIR = Path(__file__).parent

_FILENAME = re.compile(r"^(\d+)_[\w-]+\.sql$")

_CREATE_TRACKING_TABLE = """
    CREATE TABLE IF NOT EXISTS schema_migrations (
        version INTEGER PRIMARY KEY,
        name VARCHAR(255) NOT NULL,
        applied_at TIMESTAMPTZ DEFAULT NOW()
    )
"""


def discover(directory: Path = MIGRATIONS_DIR) -> list[tuple[int, Path]]:
    """Versioned migration files in ascending order. Unnumbered files are ignored."""
    found = []
    for path in directory.glob("*.sql"):
        match = _FILENAME.match(path.name)
        if match is None:
            logger.warning("Ignoring unversioned migration file %s", path.name)
            continue
        found.append((int(match.group(1)), path))
    return sorted(found)


async def run_migrations(pool, directory: Optional[Path] = None) -> list[str]:
    """
    Apply pending migrations.

    Returns:
        Names of the migrations applied by this call
    """
    await pool.execute(_CREATE_TRACKING_TABLE)
    applied = {row["version"] for row in await pool.fetch("SELECT version FROM schema_migrations")}

    pending = [(v, p) for v, p in discover(directory or MIGRATIONS_DIR) if v not in applied]
    if not pending:
        logger.debug("Schema up to date (%d migrations applied)", len(applied))
        return []

    done = []
    for version, path in pending:
        logger.info("Applying migration %s", path.name)
        try:
            async with pool.transaction() as conn:
                await conn.execute(path.read_text())
                await conn.execute(
                    "INSERT INTO schema_migrations (version, name) VALUES ($1, $2)",
                    version,
                    path.stem,
                )
        except asyncpg.PostgresError as e:
            logger.error("Migration %s failed: %s", path.name, e)
            raise DatabaseOperationError(f"migration {path.name}", e) from e
        done.append(path.stem)

    logger.info("Applied %d migrations", len(done))
    return done
