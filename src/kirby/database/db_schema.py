"""
Database schema initialization.

Creates the guild_welcome table and records the schema version.
"""

import aiosqlite

from kirby.util.logger import get_logger

logger = get_logger("database_schema")

SCHEMA_VERSION = 1


class SchemaManager:
    """Creates the tables Kirby needs if they do not exist yet."""

    @staticmethod
    async def initialize_schema(db: aiosqlite.Connection) -> None:
        """
        Create all tables and record the schema version.

        Args:
            db: Connection inside an open transaction.
        """
        await SchemaManager._create_tables(db)
        await SchemaManager._update_schema_version(db)
        logger.info("[SCHEMA] Database schema initialized (version %d)", SCHEMA_VERSION)

    @staticmethod
    async def _create_tables(db: aiosqlite.Connection) -> None:
        await db.execute("""
            CREATE TABLE IF NOT EXISTS guild_welcome (
                guild_id TEXT PRIMARY KEY,
                channel_id TEXT NOT NULL,
                type TEXT NOT NULL,
                message_text TEXT NOT NULL,
                image TEXT NOT NULL,
                image_text TEXT NOT NULL
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

    @staticmethod
    async def _update_schema_version(db: aiosqlite.Connection) -> None:
        await db.execute("INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
