"""
py-cord implementations of the messaging surface and the action enforcer.

The rest of the bot only sees :class:`MessageResponder` and
:class:`ActionEnforcer`; everything that touches the Discord API lives here.
"""

from __future__ import annotations

import datetime
from typing import Optional

import discord

from modguard.datatypes.action_datatypes import MAX_MUTE_SECONDS, ActionType
from modguard.datatypes.discord_datatypes import ChannelID, GuildID, UserID
from modguard.util.logger import get_logger

logger = get_logger("discord_adapter")

# Discord caps message length and member timeouts.
MAX_MESSAGE_LENGTH = 2000
MAX_TIMEOUT = datetime.timedelta(seconds=MAX_MUTE_SECONDS)


def _clip(text: str) -> str:
    if len(text) <= MAX_MESSAGE_LENGTH:
        return text
    return text[: MAX_MESSAGE_LENGTH - 1] + "…"


class DiscordMessageResponder:
    """Answers a single ``discord.Message``."""

    def __init__(self, bot: discord.Bot, message: discord.Message) -> None:
        self.bot = bot
        self.message = message

    async def reply(self, text: str) -> None:
        await self.message.channel.send(_clip(text))

    async def send_to_channel(self, channel_id: ChannelID, text: str) -> bool:
        guild = self.message.guild
        channel = guild.get_channel(channel_id.to_int()) if guild else None
        if not isinstance(channel, discord.TextChannel):
            return False
        try:
            await channel.send(_clip(text))
        except discord.HTTPException as exc:
            logger.warning("[DISCORD ADAPTER] Failed to send to channel %s: %s", channel_id, exc)
            return False
        return True

    async def send_to_user(self, user_id: UserID, text: str) -> bool:
        try:
            if user_id == UserID.from_user(self.message.author):
                user = self.message.author
            else:
                user = await self.bot.fetch_user(user_id.to_int())
            await user.send(_clip(text))
        except discord.HTTPException as exc:
            # Users with closed DMs land here.
            logger.debug("[DISCORD ADAPTER] Could not DM %s: %s", user_id, exc)
            return False
        return True

    async def delete_message(self) -> bool:
        try:
            await self.message.delete()
        except discord.HTTPException as exc:
            logger.warning("[DISCORD ADAPTER] Could not delete message %s: %s", self.message.id, exc)
            return False
        return True

    def has_text_channel(self, channel_id: ChannelID) -> bool:
        guild = self.message.guild
        if guild is None:
            return False
        return isinstance(guild.get_channel(channel_id.to_int()), discord.TextChannel)


class DiscordEnforcer:
    """Applies and lifts moderation actions through the Discord API."""

    def __init__(self, bot: discord.Bot) -> None:
        self.bot = bot

    async def _guild(self, guild_id: GuildID) -> discord.Guild:
        guild = self.bot.get_guild(guild_id.to_int())
        if guild is None:
            guild = await self.bot.fetch_guild(guild_id.to_int())
        return guild

    @staticmethod
    async def _member(guild: discord.Guild, user_id: UserID) -> discord.Member:
        member = guild.get_member(user_id.to_int())
        if member is None:
            member = await guild.fetch_member(user_id.to_int())
        return member

    async def apply(
        self,
        guild_id: GuildID,
        user_id: UserID,
        action: ActionType,
        *,
        reason: Optional[str],
        duration_seconds: Optional[int],
    ) -> None:
        """
        Apply ``action`` to a guild member.

        Raises:
            discord.HTTPException: The platform refused the action.
            ValueError: The action has no platform counterpart.
        """
        guild = await self._guild(guild_id)
        audit_reason = f"ModGuard: {reason}" if reason else "ModGuard"

        if action == ActionType.WARN:
            return
        if action == ActionType.MUTE:
            member = await self._member(guild, user_id)
            # Untimed mutes use the longest timeout Discord allows.
            duration = datetime.timedelta(seconds=duration_seconds) if duration_seconds else MAX_TIMEOUT
            await member.timeout(discord.utils.utcnow() + min(duration, MAX_TIMEOUT), reason=audit_reason)
        elif action == ActionType.KICK:
            await guild.kick(discord.Object(id=user_id.to_int()), reason=audit_reason)
        elif action == ActionType.BAN:
            await guild.ban(discord.Object(id=user_id.to_int()), reason=audit_reason)
        else:
            raise ValueError(f"{action.value} cannot be applied directly")

        logger.debug("[DISCORD ADAPTER] Applied %s to %s in guild %s", action.value, user_id, guild_id)

    async def reverse(self, guild_id: GuildID, user_id: UserID, action: ActionType, *, reason: str) -> None:
        """
        Lift a mute or ban.

        A user who already left the guild or was already unbanned counts as
        lifted.
        """
        guild = await self._guild(guild_id)
        try:
            if action == ActionType.MUTE:
                member = await self._member(guild, user_id)
                await member.remove_timeout(reason=reason)
            elif action == ActionType.BAN:
                await guild.unban(discord.Object(id=user_id.to_int()), reason=reason)
            else:
                raise ValueError(f"{action.value} cannot be reversed")
        except discord.NotFound:
            logger.info("[DISCORD ADAPTER] %s for %s in guild %s was already lifted", action.value, user_id, guild_id)
            return

        logger.debug("[DISCORD ADAPTER] Lifted %s for %s in guild %s", action.value, user_id, guild_id)
