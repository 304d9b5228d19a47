"""
Database initialization and lifecycle for SQLite.

The Database class ties the long-lived connection to the schema: it opens the
connection, creates tables on first start, and closes everything on shutdown.
Reads and writes themselves go through the stores in
``modguard.database.moderation_store`` and the guild settings repository.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from modguard.database.db_connection import ConnectionManager, db_connection
from modguard.database.db_schema import SchemaManager
from modguard.util.logger import get_logger

logger = get_logger("database")


class Database:
    """
    Coordinator for the database lifecycle.

    Lifecycle:
        1. Call initialize(path) at program startup
        2. Hand ``connection_manager`` to the stores
        3. Call shutdown() at program end
    """

    def __init__(self, connection_manager: Optional[ConnectionManager] = None):
        self.connection_manager = connection_manager or db_connection
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self, db_path: Path) -> None:
        """
        Open the database and create the schema.

        Args:
            db_path: Path to the SQLite database file

        Raises:
            StorageUnavailable: If the database cannot be opened or initialised.
        """
        if self._initialized:
            logger.debug("[DATABASE] Already initialized, skipping")
            return

        await self.connection_manager.open(db_path)
        async with self.connection_manager.transaction() as conn:
            await SchemaManager.initialize_schema(conn)

        self._initialized = True
        logger.info("[DATABASE] Database initialized at %s", db_path)

    async def shutdown(self) -> None:
        """Close the connection. Safe to call more than once."""
        if not self._initialized:
            return

        await self.connection_manager.close()
        self._initialized = False
        logger.info("[DATABASE] Database shutdown complete")


# Global Database instance
database = Database()


def get_db() -> Database:
    """Return the global Database instance."""
    return database
