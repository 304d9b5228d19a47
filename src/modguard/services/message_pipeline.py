"""
Message pipeline: one inbound guild message from command dispatch to verdict.

1. DMs and bot authors are ignored.
2. Commands addressed to the bot are dispatched against the guild's settings.
3. The guild is persisted when the command asked for it.
4. Unless the command said otherwise, the message goes through the banned
   word checker; a guilty message is reported, answered by DM, optionally
   deleted and optionally warned.
"""

from __future__ import annotations

from typing import Optional

from modguard.command.command_parser import CommandParser
from modguard.command.registry import dispatch
from modguard.configuration.app_configuration import DEFAULT_RESPONSE_MESSAGE
from modguard.datatypes.command_datatypes import (
    NO_PERMISSIONS,
    NOT_A_COMMAND,
    ActionEnforcer,
    CommandContext,
    CommandResult,
    InboundMessage,
    MessageResponder,
)
from modguard.datatypes.discord_datatypes import UserID
from modguard.datatypes.guild_settings import GuildSettings
from modguard.exceptions import StorageUnavailable
from modguard.moderation.message_checker import INNOCENT, Verdict, check_message
from modguard.services.moderation_service import SYSTEM_MODERATOR_ID, ModerationService
from modguard.settings.guild_settings_manager import GuildSettingsManager
from modguard.util.logger import get_logger

logger = get_logger("message_pipeline")

REPORT_PREVIEW_LENGTH = 1500


class MessagePipeline:
    """
    Processes inbound messages one at a time.

    Args:
        settings_manager: Source of per-guild settings and their persistence.
        moderation: Issues the warn when ``warn_on_match`` is set.
        prefix: Command prefix from the app config.
        bot_id: The bot's own user ID; needed for mention commands.
        default_response_message: DM sent when a guild has no response message.
    """

    def __init__(
        self,
        settings_manager: GuildSettingsManager,
        moderation: ModerationService,
        *,
        prefix: str,
        bot_id: Optional[UserID] = None,
        default_response_message: str = DEFAULT_RESPONSE_MESSAGE,
    ) -> None:
        self.settings_manager = settings_manager
        self.moderation = moderation
        self.prefix = prefix
        self.bot_id = bot_id
        self.default_response_message = default_response_message

    async def handle_message(
        self,
        message: InboundMessage,
        responder: MessageResponder,
        enforcer: Optional[ActionEnforcer] = None,
    ) -> Verdict:
        """
        Run one message through the pipeline.

        Returns:
            Verdict: The checker's verdict, or INNOCENT when the message was
            not checked.
        """
        if message.guild_id is None or message.author_is_bot:
            return INNOCENT

        settings = self.settings_manager.get(message.guild_id)
        result = await self._run_command(message, settings, responder, enforcer)

        if result.should_save_servers:
            await self.settings_manager.save(message.guild_id)

        if not result.should_check_message:
            return INNOCENT

        verdict = check_message(message.content, settings.message_checker.banned_words)
        if verdict.guilty:
            await self._respond_to_match(message, settings, verdict, responder)
        return verdict

    async def _run_command(
        self,
        message: InboundMessage,
        settings: GuildSettings,
        responder: MessageResponder,
        enforcer: Optional[ActionEnforcer],
    ) -> CommandResult:
        parsed = CommandParser(message.content, self.prefix).parse(self.bot_id)
        if parsed is None:
            return NOT_A_COMMAND

        ctx = CommandContext(
            message=message,
            args=parsed.args,
            bot_id=self.bot_id or SYSTEM_MODERATOR_ID,
            responder=responder,
            moderation=self.moderation,
            enforcer=enforcer,
        )
        try:
            return await dispatch(parsed.name, settings, ctx)
        except Exception:
            logger.exception("[PIPELINE] Command %s failed in guild %s", parsed.name, message.guild_id)
            return NO_PERMISSIONS

    async def _respond_to_match(
        self,
        message: InboundMessage,
        settings: GuildSettings,
        verdict: Verdict,
        responder: MessageResponder,
    ) -> None:
        checker = settings.message_checker
        words = ", ".join(verdict.matched_words)
        logger.info(
            "[PIPELINE] Message %s by %s in guild %s matched: %s",
            message.message_id, message.author_id, message.guild_id, words,
        )

        if checker.reporting_channel_id is not None:
            report = (
                f"**Banned word(s) used** by <@{message.author_id}> in <#{message.channel_id}>\n"
                f"Matched: {words}\n"
                f">>> {message.content[:REPORT_PREVIEW_LENGTH]}"
            )
            if not await responder.send_to_channel(checker.reporting_channel_id, report):
                logger.warning(
                    "[PIPELINE] Reporting channel %s unreachable in guild %s",
                    checker.reporting_channel_id, message.guild_id,
                )

        await responder.send_to_user(message.author_id, checker.response_message or self.default_response_message)

        if checker.delete_message and not await responder.delete_message():
            logger.warning("[PIPELINE] Could not delete message %s in guild %s", message.message_id, message.guild_id)

        if checker.warn_on_match:
            assert message.guild_id is not None
            try:
                await self.moderation.warn_and_escalate(
                    message.guild_id,
                    self.bot_id or SYSTEM_MODERATOR_ID,
                    message.author_id,
                    reason=f"Used banned word(s): {words}",
                )
            except StorageUnavailable:
                logger.exception("[PIPELINE] Could not warn %s in guild %s", message.author_id, message.guild_id)
