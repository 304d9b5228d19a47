"""Tests for the py-cord adapters and the message listener cog."""

from unittest.mock import AsyncMock, MagicMock

import asyncio

import discord
import pytest

from modguard.cog.discord_adapter import (
    MAX_MESSAGE_LENGTH,
    MAX_TIMEOUT,
    DiscordEnforcer,
    DiscordMessageResponder,
)
from modguard.cog.message_listener import MessageListenerCog, to_inbound
from modguard.datatypes.action_datatypes import ActionType
from modguard.datatypes.discord_datatypes import ChannelID, GuildID, UserID
from modguard.exceptions import StorageUnavailable
from modguard.scheduler.timeout_scheduler import ReconcileReport


def _text_channel():
    channel = MagicMock(spec=discord.TextChannel)
    channel.send = AsyncMock()
    return channel


def _message(channels=None):
    channels = channels or {}
    message = MagicMock()
    message.id = 400
    message.content = "hello"
    message.channel = _text_channel()
    message.channel.id = 200
    message.guild.id = 10
    message.guild.get_channel.side_effect = channels.get
    message.author = MagicMock(spec=discord.Member)
    message.author.id = 20
    message.author.bot = False
    message.author.send = AsyncMock()
    message.author.guild_permissions = discord.Permissions(kick_members=True)
    message.delete = AsyncMock()
    return message


def test_to_inbound_reads_member_permissions():
    inbound = to_inbound(_message())

    assert inbound.guild_id == GuildID(10)
    assert inbound.author_id == UserID(20)
    assert "kick_members" in inbound.author_permissions
    assert "ban_members" not in inbound.author_permissions


@pytest.mark.asyncio
async def test_reply_is_clipped_to_discord_limit():
    message = _message()
    responder = DiscordMessageResponder(MagicMock(), message)

    await responder.reply("x" * (MAX_MESSAGE_LENGTH + 50))

    sent = message.channel.send.await_args.args[0]
    assert len(sent) == MAX_MESSAGE_LENGTH


@pytest.mark.asyncio
async def test_send_to_channel_requires_text_channel():
    report = _text_channel()
    message = _message({300: report, 301: MagicMock(spec=discord.VoiceChannel)})
    responder = DiscordMessageResponder(MagicMock(), message)

    assert await responder.send_to_channel(ChannelID(300), "report") is True
    assert await responder.send_to_channel(ChannelID(301), "report") is False
    assert await responder.send_to_channel(ChannelID(302), "report") is False
    assert responder.has_text_channel(ChannelID(300))
    assert not responder.has_text_channel(ChannelID(301))


@pytest.mark.asyncio
async def test_closed_dms_and_failed_deletes_return_false():
    message = _message()
    message.author.send.side_effect = discord.Forbidden(MagicMock(), "DM disabled")
    message.delete.side_effect = discord.NotFound(MagicMock(), "Not found")
    responder = DiscordMessageResponder(MagicMock(), message)

    assert await responder.send_to_user(UserID(20), "stop") is False
    assert await responder.delete_message() is False


def _bot_with_guild():
    guild = MagicMock()
    member = MagicMock()
    member.timeout = AsyncMock()
    member.remove_timeout = AsyncMock()
    guild.get_member.return_value = member
    guild.kick = AsyncMock()
    guild.ban = AsyncMock()
    guild.unban = AsyncMock()
    bot = MagicMock()
    bot.get_guild.return_value = guild
    return bot, guild, member


@pytest.mark.asyncio
async def test_enforcer_caps_mutes_at_platform_maximum():
    bot, _, member = _bot_with_guild()
    before = discord.utils.utcnow()

    await DiscordEnforcer(bot).apply(GuildID(10), UserID(30), ActionType.MUTE, reason=None, duration_seconds=None)
    await DiscordEnforcer(bot).apply(GuildID(10), UserID(30), ActionType.MUTE, reason=None, duration_seconds=60 * 86400)

    after = discord.utils.utcnow()
    for call in member.timeout.await_args_list:
        assert before + MAX_TIMEOUT <= call.args[0] <= after + MAX_TIMEOUT


@pytest.mark.asyncio
async def test_enforcer_kicks_and_bans_by_id():
    bot, guild, _ = _bot_with_guild()
    enforcer = DiscordEnforcer(bot)

    await enforcer.apply(GuildID(10), UserID(30), ActionType.KICK, reason="spam", duration_seconds=None)
    await enforcer.apply(GuildID(10), UserID(30), ActionType.BAN, reason="spam", duration_seconds=3600)
    await enforcer.apply(GuildID(10), UserID(30), ActionType.WARN, reason="spam", duration_seconds=None)

    assert guild.kick.await_args.args[0].id == 30
    assert guild.ban.await_args.kwargs["reason"] == "ModGuard: spam"


@pytest.mark.asyncio
async def test_enforcer_reverse_treats_not_found_as_lifted():
    bot, guild, member = _bot_with_guild()
    guild.unban.side_effect = discord.NotFound(MagicMock(), "Unknown Ban")
    enforcer = DiscordEnforcer(bot)

    await enforcer.reverse(GuildID(10), UserID(30), ActionType.BAN, reason="expired")
    await enforcer.reverse(GuildID(10), UserID(30), ActionType.MUTE, reason="expired")

    member.remove_timeout.assert_awaited_once_with(reason="expired")


@pytest.mark.asyncio
async def test_enforcer_rejects_irreversible_actions():
    bot, _, _ = _bot_with_guild()
    with pytest.raises(ValueError):
        await DiscordEnforcer(bot).reverse(GuildID(10), UserID(30), ActionType.KICK, reason="x")


@pytest.mark.asyncio
async def test_listener_hands_guild_messages_to_pipeline():
    pipeline = MagicMock()
    pipeline.handle_message = AsyncMock()
    cog = MessageListenerCog(MagicMock(), pipeline, MagicMock())
    cog.ready.set()

    await cog.on_message(_message())

    inbound = pipeline.handle_message.await_args.args[0]
    assert inbound.content == "hello"
    assert pipeline.handle_message.await_args.args[2] is cog.enforcer


@pytest.mark.asyncio
async def test_listener_contains_pipeline_failures():
    pipeline = MagicMock()
    pipeline.handle_message = AsyncMock(side_effect=RuntimeError("boom"))
    cog = MessageListenerCog(MagicMock(), pipeline, MagicMock())
    cog.ready.set()

    await cog.on_message(_message())


@pytest.mark.asyncio
async def test_on_ready_attaches_platform():
    bot = MagicMock()
    bot.user.id = 555
    pipeline, moderation = MagicMock(), MagicMock()
    moderation.restore_timeouts = AsyncMock(return_value=ReconcileReport(fired=1))
    cog = MessageListenerCog(bot, pipeline, moderation)

    await cog.on_ready()
    await cog.on_ready()

    assert pipeline.bot_id == UserID(555)
    moderation.attach_platform.assert_called_with(UserID(555), cog.enforcer)
    moderation.restore_timeouts.assert_awaited_once()
    assert cog.ready.is_set()


@pytest.mark.asyncio
async def test_messages_wait_for_timeout_restore():
    pipeline = MagicMock()
    pipeline.handle_message = AsyncMock()
    cog = MessageListenerCog(MagicMock(), pipeline, MagicMock())

    pending = asyncio.create_task(cog.on_message(_message()))
    await asyncio.sleep(0)
    pipeline.handle_message.assert_not_awaited()

    cog.ready.set()
    await asyncio.wait_for(pending, timeout=1)
    pipeline.handle_message.assert_awaited_once()


@pytest.mark.asyncio
async def test_failed_restore_still_releases_messages():
    bot = MagicMock()
    bot.user.id = 555
    moderation = MagicMock()
    moderation.restore_timeouts = AsyncMock(side_effect=StorageUnavailable("database is locked"))
    cog = MessageListenerCog(bot, MagicMock(), moderation)

    await cog.on_ready()

    assert cog.ready.is_set()
