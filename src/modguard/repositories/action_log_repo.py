"""
Append-only storage for logged moderation actions.

Timestamps are stored as INTEGER unix seconds. Case ids are unique per guild
and allocated as ``MAX(case_id) + 1``; callers must run :meth:`next_case_id`
and :meth:`append` inside the same write transaction.
"""

from __future__ import annotations

from typing import List, Optional

import aiosqlite

from modguard.datatypes.action_datatypes import ActionType, ModerationAction
from modguard.datatypes.discord_datatypes import GuildID, UserID


_COLUMNS = "guild_id, case_id, mod_id, user_id, type, reason, timeout, timestamp"


def _row_to_action(row: aiosqlite.Row) -> ModerationAction:
    return ModerationAction(
        guild_id=GuildID(row[0]),
        case_id=row[1],
        moderator_id=UserID(row[2]),
        user_id=UserID(row[3]),
        action=ActionType(row[4]),
        reason=row[5],
        timeout_seconds=row[6],
        timestamp=row[7],
    )


class ActionLogRepo:
    """Low-level SQL for the ``moderation_logs`` table."""

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    async def next_case_id(conn: aiosqlite.Connection, guild_id: GuildID) -> int:
        """Return the case number to use next: last recorded + 1, or 1."""
        cursor = await conn.execute(
            "SELECT MAX(case_id) FROM moderation_logs WHERE guild_id = ?",
            (guild_id.to_int(),),
        )
        row = await cursor.fetchone()
        last = row[0] if row and row[0] is not None else 0
        return last + 1

    @staticmethod
    async def append(conn: aiosqlite.Connection, action: ModerationAction) -> None:
        """Insert one action. An empty reason is recorded as NULL."""
        await conn.execute(
            f"INSERT INTO moderation_logs ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                action.guild_id.to_int(),
                action.case_id,
                str(action.moderator_id),
                str(action.user_id),
                action.action.value,
                action.reason or None,
                action.timeout_seconds,
                action.timestamp,
            ),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    async def count_actions(conn: aiosqlite.Connection, guild_id: GuildID, user_id: UserID) -> int:
        """Total number of logged actions of every type against a user in a guild."""
        cursor = await conn.execute(
            "SELECT COUNT(*) FROM moderation_logs WHERE guild_id = ? AND user_id = ?",
            (guild_id.to_int(), str(user_id)),
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    @staticmethod
    async def get_case(
        conn: aiosqlite.Connection,
        guild_id: GuildID,
        case_id: int,
    ) -> Optional[ModerationAction]:
        cursor = await conn.execute(
            f"SELECT {_COLUMNS} FROM moderation_logs WHERE guild_id = ? AND case_id = ?",
            (guild_id.to_int(), case_id),
        )
        row = await cursor.fetchone()
        return _row_to_action(row) if row else None

    @staticmethod
    async def list_user_actions(
        conn: aiosqlite.Connection,
        guild_id: GuildID,
        user_id: UserID,
        limit: int = 10,
    ) -> List[ModerationAction]:
        """Most recent actions against a user, newest first."""
        cursor = await conn.execute(
            f"SELECT {_COLUMNS} FROM moderation_logs WHERE guild_id = ? AND user_id = ? "
            "ORDER BY case_id DESC LIMIT ?",
            (guild_id.to_int(), str(user_id), limit),
        )
        rows = await cursor.fetchall()
        return [_row_to_action(row) for row in rows]
