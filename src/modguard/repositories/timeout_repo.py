"""
Persistent storage for pending timed moderation actions.

One row per ``(guild_id, user_id, type)``. ``end_time`` is INTEGER unix
seconds; ``timer_id`` only correlates the row with a live scheduler timer.
"""

from __future__ import annotations

from typing import List, Optional

import aiosqlite

from modguard.datatypes.action_datatypes import ActionType, TimeoutEntry, TimeoutKey
from modguard.datatypes.discord_datatypes import GuildID, UserID


class TimeoutRepo:
    """Low-level SQL for the ``moderation_timeouts`` table."""

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    async def upsert(
        conn: aiosqlite.Connection,
        key: TimeoutKey,
        end_time: int,
        timer_id: int,
    ) -> None:
        """Insert a row, or overwrite only end_time and timer_id of the existing one."""
        await conn.execute(
            """
            INSERT INTO moderation_timeouts (guild_id, user_id, type, end_time, timer_id)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(guild_id, user_id, type) DO UPDATE SET
                end_time = excluded.end_time,
                timer_id = excluded.timer_id
            """,
            (key.guild_id.to_int(), str(key.user_id), key.action.value, end_time, timer_id),
        )

    @staticmethod
    async def delete(conn: aiosqlite.Connection, key: TimeoutKey) -> None:
        await conn.execute(
            "DELETE FROM moderation_timeouts WHERE guild_id = ? AND user_id = ? AND type = ?",
            (key.guild_id.to_int(), str(key.user_id), key.action.value),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    async def get(conn: aiosqlite.Connection, key: TimeoutKey) -> Optional[TimeoutEntry]:
        cursor = await conn.execute(
            "SELECT end_time, timer_id FROM moderation_timeouts "
            "WHERE guild_id = ? AND user_id = ? AND type = ?",
            (key.guild_id.to_int(), str(key.user_id), key.action.value),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return TimeoutEntry(key=key, end_time=row[0], timer_id=row[1])

    @staticmethod
    async def list_all(conn: aiosqlite.Connection) -> List[TimeoutEntry]:
        """Every pending row, soonest first."""
        cursor = await conn.execute(
            "SELECT guild_id, user_id, type, end_time, timer_id "
            "FROM moderation_timeouts ORDER BY end_time"
        )
        rows = await cursor.fetchall()
        return [
            TimeoutEntry(
                key=TimeoutKey(GuildID(row[0]), UserID(row[1]), ActionType(row[2])),
                end_time=row[3],
                timer_id=row[4],
            )
            for row in rows
        ]
