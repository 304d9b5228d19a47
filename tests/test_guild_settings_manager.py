"""Tests for GuildSettingsManager persistence against a real database."""

import pytest

from modguard.datatypes.discord_datatypes import ChannelID, GuildID
from modguard.datatypes.guild_settings import DEFAULT_STARBOARD_THRESHOLD
from modguard.settings.guild_settings_manager import GuildSettingsManager


@pytest.mark.asyncio
async def test_get_creates_defaults(connections):
    manager = GuildSettingsManager(connections)
    await manager.async_init()

    settings = manager.get(GuildID(1))

    assert settings.message_checker.banned_words == set()
    assert settings.message_checker.delete_message is False
    assert settings.message_checker.warn_on_match is False
    assert settings.starboard.threshold == DEFAULT_STARBOARD_THRESHOLD
    assert manager.get(GuildID(1)) is settings
    assert len(manager) == 1


@pytest.mark.asyncio
async def test_save_round_trips_every_field(connections):
    manager = GuildSettingsManager(connections)
    await manager.async_init()
    settings = manager.get(GuildID(1))
    checker = settings.message_checker
    checker.add_banned_word("Spam")
    checker.add_banned_word("eggs")
    checker.reporting_channel_id = ChannelID(300)
    checker.response_message = "Please stop."
    checker.delete_message = True
    checker.warn_on_match = True
    settings.starboard.channel_id = ChannelID(301)
    settings.starboard.threshold = 7
    settings.starboard.emojis.extend(["⭐", "🌟"])

    assert await manager.save(GuildID(1)) is True

    reloaded = GuildSettingsManager(connections)
    await reloaded.async_init()
    restored = reloaded.get(GuildID(1))
    assert restored.message_checker.banned_words == {"spam", "eggs"}
    assert restored.message_checker.reporting_channel_id == ChannelID(300)
    assert restored.message_checker.response_message == "Please stop."
    assert restored.message_checker.delete_message is True
    assert restored.message_checker.warn_on_match is True
    assert restored.starboard.channel_id == ChannelID(301)
    assert restored.starboard.threshold == 7
    assert restored.starboard.emojis == ["⭐", "🌟"]


@pytest.mark.asyncio
async def test_removed_words_are_removed_from_storage(connections):
    manager = GuildSettingsManager(connections)
    await manager.async_init()
    checker = manager.get(GuildID(1)).message_checker
    checker.add_banned_word("spam")
    await manager.save(GuildID(1))

    checker.remove_banned_word("spam")
    await manager.save(GuildID(1))

    reloaded = GuildSettingsManager(connections)
    await reloaded.async_init()
    assert reloaded.get(GuildID(1)).message_checker.banned_words == set()


@pytest.mark.asyncio
async def test_save_of_unknown_guild_returns_false(connections):
    manager = GuildSettingsManager(connections)
    await manager.async_init()

    assert await manager.save(GuildID(42)) is False


@pytest.mark.asyncio
async def test_save_reports_storage_failure(connections):
    manager = GuildSettingsManager(connections)
    await manager.async_init()
    manager.get(GuildID(1))
    await connections.close()

    assert await manager.save(GuildID(1)) is False


@pytest.mark.asyncio
async def test_save_all_counts_written_guilds(connections):
    manager = GuildSettingsManager(connections)
    await manager.async_init()
    for guild in (1, 2, 3):
        manager.get(GuildID(guild))

    assert await manager.save_all() == 3
