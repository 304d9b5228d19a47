"""
Persistent per-guild configuration storage for the moderation bot.

Settings live in memory, keyed by guild ID, and are handed to commands by
reference. Mutations are persisted per guild:

- get(guild_id) -> GuildSettings: Retrieve settings (creates default if missing)
- save(guild_id): Persist one guild's settings
- save_all(): Persist every cached guild
"""
import asyncio
from typing import Dict

from modguard.database.db_connection import ConnectionManager
from modguard.datatypes.discord_datatypes import GuildID
from modguard.datatypes.guild_settings import GuildSettings
from modguard.exceptions import StorageUnavailable
from modguard.repositories.guild_settings_repo import GuildSettingsRepo
from modguard.util.logger import get_logger

logger = get_logger("guild_settings_manager")


class GuildSettingsManager:
    """
    Repository of per-guild settings.

    Guilds are created on first sight and never deleted; stale entries are
    harmless.
    """

    def __init__(self, connections: ConnectionManager):
        self._connections = connections
        self._guilds: Dict[GuildID, GuildSettings] = {}
        self._persist_lock = asyncio.Lock()
        self._loaded = False

    async def async_init(self) -> None:
        """Load every persisted guild into memory. Call once after the database is open."""
        if self._loaded:
            return
        async with self._connections.read() as conn:
            loaded = await GuildSettingsRepo.load_all(conn)
        self._guilds.update(loaded)
        self._loaded = True
        logger.info("[GUILD SETTINGS MANAGER] Loaded %d guild settings from database", len(loaded))

    # ========== Core API ==========

    def get(self, guild_id: GuildID) -> GuildSettings:
        """
        Retrieve settings for a guild, creating defaults if missing.

        Args:
            guild_id: The guild ID to fetch settings for.

        Returns:
            GuildSettings instance for the guild; mutate it in place and call save().
        """
        settings = self._guilds.get(guild_id)
        if settings is None:
            settings = GuildSettings(guild_id=guild_id)
            self._guilds[guild_id] = settings
            logger.debug("[GUILD SETTINGS MANAGER] Created default settings for guild %s", guild_id)
        return settings

    async def save(self, guild_id: GuildID) -> bool:
        """
        Persist a single guild's settings.

        Returns:
            True if the guild was written, False if it is not cached or the
            database rejected the write.
        """
        settings = self._guilds.get(guild_id)
        if settings is None:
            logger.warning("[GUILD SETTINGS MANAGER] Cannot persist guild %s: not in cache", guild_id)
            return False

        async with self._persist_lock:
            try:
                async with self._connections.transaction() as conn:
                    await GuildSettingsRepo.save(conn, settings)
            except StorageUnavailable:
                logger.exception("[GUILD SETTINGS MANAGER] Failed to persist guild %s", guild_id)
                return False

        logger.debug("[GUILD SETTINGS MANAGER] Persisted guild %s", guild_id)
        return True

    async def save_all(self) -> int:
        """Persist every cached guild. Returns how many were written."""
        saved = 0
        for guild_id in list(self._guilds):
            if await self.save(guild_id):
                saved += 1
        return saved

    def __len__(self) -> int:
        return len(self._guilds)
