"""
Database schema initialization and version tracking.

Handles creation of tables and indexes for guild settings and the three
moderation tables (action log, pending timeouts, warn escalation rules).
"""

import aiosqlite
from modguard.util.logger import get_logger

logger = get_logger("database_schema")

SCHEMA_VERSION = 1


class SchemaManager:
    """Creates the database schema. Every statement is idempotent."""

    @staticmethod
    async def initialize_schema(db: aiosqlite.Connection) -> None:
        """
        Create all database tables and indexes, then record the schema version.

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
        """Create all required database tables."""
        # Guild settings (message checker + starboard)
        await db.execute("""
            CREATE TABLE IF NOT EXISTS guild_settings (
                guild_id INTEGER PRIMARY KEY,
                reporting_channel_id INTEGER,
                response_message TEXT,
                delete_message INTEGER NOT NULL DEFAULT 0,
                warn_on_match INTEGER NOT NULL DEFAULT 0,
                starboard_channel_id INTEGER,
                starboard_threshold INTEGER NOT NULL DEFAULT 3,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS guild_banned_words (
                guild_id INTEGER NOT NULL,
                word TEXT NOT NULL,
                PRIMARY KEY (guild_id, word),
                FOREIGN KEY (guild_id) REFERENCES guild_settings(guild_id) ON DELETE CASCADE
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS starboard_emojis (
                guild_id INTEGER NOT NULL,
                emoji TEXT NOT NULL,
                PRIMARY KEY (guild_id, emoji),
                FOREIGN KEY (guild_id) REFERENCES guild_settings(guild_id) ON DELETE CASCADE
            )
        """)

        # Append-only action log; case ids are unique per guild
        await db.execute("""
            CREATE TABLE IF NOT EXISTS moderation_logs (
                guild_id INTEGER NOT NULL,
                case_id INTEGER NOT NULL,
                mod_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                type TEXT NOT NULL,
                reason TEXT,
                timeout INTEGER,
                timestamp INTEGER NOT NULL,
                PRIMARY KEY (guild_id, case_id)
            )
        """)

        # Pending timed actions, at most one per (guild, user, type)
        await db.execute("""
            CREATE TABLE IF NOT EXISTS moderation_timeouts (
                guild_id INTEGER NOT NULL,
                user_id TEXT NOT NULL,
                type TEXT NOT NULL,
                end_time INTEGER NOT NULL,
                timer_id INTEGER NOT NULL,
                PRIMARY KEY (guild_id, user_id, type)
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS moderation_warn_settings (
                guild_id INTEGER NOT NULL,
                num_warns INTEGER NOT NULL,
                action TEXT NOT NULL,
                duration INTEGER,
                PRIMARY KEY (guild_id, num_warns)
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
        """Create indexes for the per-user lookups."""
        await db.execute("CREATE INDEX IF NOT EXISTS idx_moderation_logs_user ON moderation_logs(guild_id, user_id)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_moderation_timeouts_end ON moderation_timeouts(end_time)")

    @staticmethod
    async def _update_schema_version(db: aiosqlite.Connection) -> None:
        await db.execute("INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
