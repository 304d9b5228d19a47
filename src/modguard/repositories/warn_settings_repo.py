"""
Per-guild warn escalation rules.

Each row maps a warn count to the action issued automatically when a user
reaches it. ``duration`` is seconds; NULL means the action is not timed.
"""

from __future__ import annotations

from typing import List, Optional

import aiosqlite

from modguard.datatypes.action_datatypes import ActionType, WarnEscalationRule
from modguard.datatypes.discord_datatypes import GuildID


class WarnSettingsRepo:
    """Low-level SQL for the ``moderation_warn_settings`` table."""

    @staticmethod
    async def lookup(
        conn: aiosqlite.Connection,
        guild_id: GuildID,
        num_warns: int,
    ) -> Optional[WarnEscalationRule]:
        cursor = await conn.execute(
            "SELECT action, duration FROM moderation_warn_settings WHERE guild_id = ? AND num_warns = ?",
            (guild_id.to_int(), num_warns),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return WarnEscalationRule(
            guild_id=guild_id,
            num_warns=num_warns,
            action=ActionType(row[0]),
            duration_seconds=row[1] or None,
        )

    @staticmethod
    async def list_rules(conn: aiosqlite.Connection, guild_id: GuildID) -> List[WarnEscalationRule]:
        cursor = await conn.execute(
            "SELECT num_warns, action, duration FROM moderation_warn_settings "
            "WHERE guild_id = ? ORDER BY num_warns",
            (guild_id.to_int(),),
        )
        rows = await cursor.fetchall()
        return [
            WarnEscalationRule(
                guild_id=guild_id,
                num_warns=row[0],
                action=ActionType(row[1]),
                duration_seconds=row[2] or None,
            )
            for row in rows
        ]

    @staticmethod
    async def upsert(conn: aiosqlite.Connection, rule: WarnEscalationRule) -> None:
        await conn.execute(
            """
            INSERT INTO moderation_warn_settings (guild_id, num_warns, action, duration)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(guild_id, num_warns) DO UPDATE SET
                action = excluded.action,
                duration = excluded.duration
            """,
            (rule.guild_id.to_int(), rule.num_warns, rule.action.value, rule.duration_seconds),
        )

    @staticmethod
    async def delete(conn: aiosqlite.Connection, guild_id: GuildID, num_warns: int) -> bool:
        """Remove a rule. Returns True if one existed."""
        cursor = await conn.execute(
            "DELETE FROM moderation_warn_settings WHERE guild_id = ? AND num_warns = ?",
            (guild_id.to_int(), num_warns),
        )
        return cursor.rowcount > 0
