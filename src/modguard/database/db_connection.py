"""
Database connection management: singleton connection model.

SQLite performs best with a **single long-lived connection** rather than
opening/closing a connection per operation, and WAL mode allows one writer
plus concurrent readers safely.

Concurrency model
-----------------
SQLite is single-writer. Writes are serialised at the application layer with
a write semaphore, so a "read the last case id, then insert" sequence inside
one ``transaction()`` can never interleave with another writer.

Errors
------
Every sqlite error, and any use of the manager before ``open()``, surfaces as
:class:`~modguard.exceptions.StorageUnavailable`.

Usage
-----
    await db_connection.open(DB_PATH)

    async with db_connection.read() as conn:
        cursor = await conn.execute("SELECT ...")

    async with db_connection.transaction() as conn:
        await conn.execute("INSERT ...")
        # commits on clean exit, rolls back on exception

    await db_connection.close()
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from modguard.exceptions import StorageUnavailable
from modguard.util.logger import get_logger

logger = get_logger("database_connection")

# ── Pragmas applied once when the connection is opened ──────────────────────
_PRAGMAS = [
    "PRAGMA journal_mode = WAL",
    "PRAGMA foreign_keys = ON",
    "PRAGMA synchronous = NORMAL",    # safe with WAL; faster than FULL
    "PRAGMA busy_timeout = 5000",
    "PRAGMA temp_store = MEMORY",
]


class ConnectionManager:
    """
    Wrapper around a single aiosqlite connection.

    One connection is opened for the entire bot lifecycle. All repositories
    and stores call through this object instead of opening their own.

    * Reads: ``async with read()``; WAL allows concurrent reads.
    * Writes: ``async with transaction()``; serialised by ``_write_sem``.
    """

    def __init__(self) -> None:
        self._conn: aiosqlite.Connection | None = None
        self._write_sem = asyncio.Semaphore(1)   # one writer at a time
        self._path: Path | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self, path: Path) -> None:
        """
        Open the database and apply pragmas.

        Should be called **once** during startup, before any store is used.

        Args:
            path: Path to the SQLite database file.

        Raises:
            StorageUnavailable: If the file cannot be opened.
        """
        if self._conn is not None:
            logger.warning("[DB CONNECTION] open() called but connection already exists, ignoring")
            return

        self._path = path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = await aiosqlite.connect(path)
            self._conn.row_factory = aiosqlite.Row

            for pragma in _PRAGMAS:
                await self._conn.execute(pragma)
            await self._conn.commit()
        except (OSError, aiosqlite.Error) as exc:
            if self._conn is not None:
                await self._conn.close()
                self._conn = None
            raise StorageUnavailable(f"Cannot open database at {path}: {exc}") from exc

        logger.info("[DB CONNECTION] Opened connection to %s", path)

    async def close(self) -> None:
        """Flush WAL and close the connection. Safe to call when not open."""
        if self._conn is None:
            return

        try:
            await self._conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
            await self._conn.commit()
        except aiosqlite.Error:
            logger.exception("[DB CONNECTION] WAL checkpoint failed during close")
        finally:
            await self._conn.close()
            self._conn = None
            logger.info("[DB CONNECTION] Connection closed")

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def path(self) -> Path | None:
        return self._path

    # ------------------------------------------------------------------
    # Connection access
    # ------------------------------------------------------------------

    @property
    def connection(self) -> aiosqlite.Connection:
        """
        The raw aiosqlite connection.

        Raises:
            StorageUnavailable: If the connection has not been opened yet.
        """
        if self._conn is None:
            raise StorageUnavailable(
                "Database connection is not open. Call await db_connection.open(path) at startup."
            )
        return self._conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Serialised write transaction.

        * Acquires the write semaphore (SQLite's single-writer constraint).
        * Commits automatically on clean exit.
        * Rolls back if anything inside raises; sqlite errors are re-raised as
          StorageUnavailable, other exceptions propagate unchanged.
        """
        conn = self.connection

        async with self._write_sem:
            try:
                yield conn
                await conn.commit()
            except aiosqlite.Error as exc:
                await self._safe_rollback(conn)
                raise StorageUnavailable(str(exc)) from exc
            except BaseException:
                await self._safe_rollback(conn)
                raise

    @asynccontextmanager
    async def read(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Context manager for read operations.

        No semaphore is acquired; sqlite errors surface as StorageUnavailable.
        """
        conn = self.connection
        try:
            yield conn
        except aiosqlite.Error as exc:
            raise StorageUnavailable(str(exc)) from exc

    @staticmethod
    async def _safe_rollback(conn: aiosqlite.Connection) -> None:
        try:
            await conn.rollback()
        except aiosqlite.Error:
            logger.exception("[DB CONNECTION] Rollback failed")


# Module-level singleton
db_connection = ConnectionManager()
