"""
Database access layer for guild settings.

- load_all(): every persisted guild, with banned words and starboard emojis
- save(): replace one guild's rows
"""

from __future__ import annotations

from typing import Dict

import aiosqlite

from modguard.datatypes.discord_datatypes import ChannelID, GuildID
from modguard.datatypes.guild_settings import GuildSettings


def _channel_or_none(value) -> ChannelID | None:
    return ChannelID(value) if value is not None else None


class GuildSettingsRepo:
    """Low-level SQL for ``guild_settings``, ``guild_banned_words`` and ``starboard_emojis``."""

    @staticmethod
    async def load_all(conn: aiosqlite.Connection) -> Dict[GuildID, GuildSettings]:
        guilds: Dict[GuildID, GuildSettings] = {}

        cursor = await conn.execute("""
            SELECT guild_id, reporting_channel_id, response_message, delete_message,
                   warn_on_match, starboard_channel_id, starboard_threshold
            FROM guild_settings
        """)
        for row in await cursor.fetchall():
            guild_id = GuildID(row[0])
            settings = GuildSettings(guild_id=guild_id)
            checker = settings.message_checker
            checker.reporting_channel_id = _channel_or_none(row[1])
            checker.response_message = row[2]
            checker.delete_message = bool(row[3])
            checker.warn_on_match = bool(row[4])
            settings.starboard.channel_id = _channel_or_none(row[5])
            settings.starboard.threshold = row[6]
            guilds[guild_id] = settings

        cursor = await conn.execute("SELECT guild_id, word FROM guild_banned_words")
        for guild_int, word in await cursor.fetchall():
            settings = guilds.get(GuildID(guild_int))
            if settings is not None:
                settings.message_checker.banned_words.add(word)

        cursor = await conn.execute("SELECT guild_id, emoji FROM starboard_emojis ORDER BY rowid")
        for guild_int, emoji in await cursor.fetchall():
            settings = guilds.get(GuildID(guild_int))
            if settings is not None:
                settings.starboard.emojis.append(emoji)

        return guilds

    @staticmethod
    async def save(conn: aiosqlite.Connection, settings: GuildSettings) -> None:
        guild_int = settings.guild_id.to_int()
        checker = settings.message_checker
        starboard = settings.starboard

        await conn.execute("""
            INSERT INTO guild_settings (
                guild_id, reporting_channel_id, response_message, delete_message,
                warn_on_match, starboard_channel_id, starboard_threshold
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(guild_id) DO UPDATE SET
                reporting_channel_id = excluded.reporting_channel_id,
                response_message = excluded.response_message,
                delete_message = excluded.delete_message,
                warn_on_match = excluded.warn_on_match,
                starboard_channel_id = excluded.starboard_channel_id,
                starboard_threshold = excluded.starboard_threshold,
                updated_at = CURRENT_TIMESTAMP
        """, (
            guild_int,
            checker.reporting_channel_id.to_int() if checker.reporting_channel_id else None,
            checker.response_message,
            1 if checker.delete_message else 0,
            1 if checker.warn_on_match else 0,
            starboard.channel_id.to_int() if starboard.channel_id else None,
            starboard.threshold,
        ))

        await conn.execute("DELETE FROM guild_banned_words WHERE guild_id = ?", (guild_int,))
        await conn.executemany(
            "INSERT INTO guild_banned_words (guild_id, word) VALUES (?, ?)",
            [(guild_int, word) for word in sorted(checker.banned_words)],
        )

        await conn.execute("DELETE FROM starboard_emojis WHERE guild_id = ?", (guild_int,))
        await conn.executemany(
            "INSERT OR IGNORE INTO starboard_emojis (guild_id, emoji) VALUES (?, ?)",
            [(guild_int, emoji) for emoji in starboard.emojis],
        )
