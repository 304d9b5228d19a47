"""Message listener cog for ModGuard.

Converts ``discord.Message`` events into platform-neutral messages and hands
them to the :class:`MessagePipeline`. All decisions live in the service layer.

Pending timeouts are reconciled on the first ``on_ready``, after the enforcer
is attached. Messages wait until that has finished.
"""

import asyncio
from typing import Optional

import discord
from discord.ext import commands

from modguard.cog.discord_adapter import DiscordEnforcer, DiscordMessageResponder
from modguard.datatypes.command_datatypes import ActionEnforcer, InboundMessage
from modguard.datatypes.discord_datatypes import ChannelID, GuildID, MessageID, UserID
from modguard.exceptions import StorageUnavailable
from modguard.services.message_pipeline import MessagePipeline
from modguard.services.moderation_service import ModerationService
from modguard.util.logger import get_logger

logger = get_logger("message_listener_cog")


def to_inbound(message: discord.Message) -> InboundMessage:
    """Build the pipeline's view of a Discord message."""
    permissions = frozenset()
    if isinstance(message.author, discord.Member):
        permissions = frozenset(name for name, granted in message.author.guild_permissions if granted)

    return InboundMessage(
        guild_id=GuildID.from_guild(message.guild) if message.guild else None,
        channel_id=ChannelID.from_channel(message.channel),
        message_id=MessageID.from_message(message),
        author_id=UserID.from_user(message.author),
        content=message.content or "",
        author_is_bot=message.author.bot,
        author_permissions=permissions,
    )


class MessageListenerCog(commands.Cog):
    """
    Thin event listener that forwards messages to the pipeline.

    Parameters
    ----------
    bot:
        Discord bot instance.
    pipeline:
        Runs commands and the banned-word checker.
    moderation:
        Receives the bot identity and enforcer once the client is ready, then
        restores pending timeouts.
    enforcer:
        Applies actions on Discord. Defaults to a :class:`DiscordEnforcer`.
    """

    def __init__(
        self,
        bot: discord.Bot,
        pipeline: MessagePipeline,
        moderation: ModerationService,
        enforcer: Optional[ActionEnforcer] = None,
    ) -> None:
        self.bot = bot
        self.pipeline = pipeline
        self.moderation = moderation
        self.enforcer = enforcer or DiscordEnforcer(bot)
        self.ready = asyncio.Event()
        self._restore_started = False
        logger.info("[MESSAGE LISTENER] Message listener cog loaded")

    @commands.Cog.listener(name="on_ready")
    async def on_ready(self) -> None:
        if self.bot.user is None:
            return
        bot_id = UserID.from_user(self.bot.user)
        self.pipeline.bot_id = bot_id
        self.moderation.attach_platform(bot_id, self.enforcer)
        logger.info("[MESSAGE LISTENER] Ready as %s (%s)", self.bot.user, bot_id)

        # on_ready fires again after every reconnect
        if self._restore_started:
            return
        self._restore_started = True
        try:
            report = await self.moderation.restore_timeouts()
            logger.info(
                "[MESSAGE LISTENER] Restored timeouts: %d fired, %d armed, %d skipped, %d failed",
                report.fired, report.armed, report.skipped, report.failed,
            )
        except StorageUnavailable:
            logger.exception("[MESSAGE LISTENER] Could not restore pending timeouts")
        finally:
            self.ready.set()

    @commands.Cog.listener(name="on_message")
    async def on_message(self, message: discord.Message) -> None:
        if message.guild is None or message.author.bot:
            return

        await self.ready.wait()
        try:
            await self.pipeline.handle_message(
                to_inbound(message),
                DiscordMessageResponder(self.bot, message),
                self.enforcer,
            )
        except Exception:
            logger.exception("[MESSAGE LISTENER] Failed to process message %s", message.id)


def setup(bot: discord.Bot, pipeline: MessagePipeline, moderation: ModerationService) -> None:
    """Register the MessageListenerCog with the bot."""
    bot.add_cog(MessageListenerCog(bot, pipeline, moderation))
