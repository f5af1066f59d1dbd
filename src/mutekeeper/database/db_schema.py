"""
Database schema initialization.

Creates the ``muted_members`` table and its indexes, and records the schema
version. Every statement is idempotent so this runs on every startup.
"""

from pathlib import Path

import aiosqlite

from mutekeeper.database.db_connection import ConnectionManager, db_connection
from mutekeeper.util.logger import get_logger

logger = get_logger("database_schema")

SCHEMA_VERSION = 1


class SchemaManager:
    """Creates tables and indexes used by the sanction store."""

    @staticmethod
    async def initialize_schema(db: aiosqlite.Connection) -> None:
        """
        Create or update all database tables and indexes.

        Args:
            db: Open database connection
        """
        await SchemaManager._create_tables(db)
        await SchemaManager._create_indexes(db)
        await SchemaManager._update_schema_version(db)
        await db.commit()
        logger.info("[SCHEMA] Database schema initialized (version %d)", SCHEMA_VERSION)

    @staticmethod
    async def _create_tables(db: aiosqlite.Connection) -> None:
        # One active mute per member per guild
        await db.execute("""
            CREATE TABLE IF NOT EXISTS muted_members (
                guild_id INTEGER NOT NULL,
                user_id TEXT NOT NULL,
                restricted_role_id INTEGER NOT NULL,
                taken_roles TEXT NOT NULL DEFAULT '',
                reason TEXT NOT NULL DEFAULT '',
                expires_at INTEGER,
                created_at INTEGER NOT NULL,
                PRIMARY KEY (guild_id, user_id)
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

    @staticmethod
    async def _create_indexes(db: aiosqlite.Connection) -> None:
        await db.execute("CREATE INDEX IF NOT EXISTS idx_muted_members_expires ON muted_members(expires_at)")

    @staticmethod
    async def _update_schema_version(db: aiosqlite.Connection) -> None:
        await db.execute("INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))


async def initialize_database(path: Path, manager: ConnectionManager = db_connection) -> ConnectionManager:
    """Open ``manager`` on ``path`` and make sure the schema exists."""
    await manager.open(path)
    await SchemaManager.initialize_schema(manager.connection)
    return manager
