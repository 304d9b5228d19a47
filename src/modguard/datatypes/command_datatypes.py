"""
Data structures shared by the command dispatch pipeline.

Commands never talk to the chat platform directly. They receive a
:class:`CommandContext` holding the parsed message and small protocol objects
(:class:`MessageResponder`, :class:`ActionEnforcer`) that the platform
adapter implements.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, FrozenSet, Optional, Protocol, Sequence

from modguard.datatypes.action_datatypes import ActionType
from modguard.datatypes.discord_datatypes import ChannelID, GuildID, MessageID, UserID

if TYPE_CHECKING:
    from modguard.services.moderation_service import ModerationService


@dataclass(frozen=True, slots=True)
class CommandResult:
    """What the pipeline should do after a command ran.

    Attributes:
        should_save_servers: The guild's settings were mutated and must be persisted
        should_check_message: The triggering message should still go through the checker
    """
    should_save_servers: bool
    should_check_message: bool


# Default for plain messages: nothing to save, check the message.
NOT_A_COMMAND = CommandResult(should_save_servers=False, should_check_message=True)
# Permission failures and unknown commands: neither persist nor check.
NO_PERMISSIONS = CommandResult(should_save_servers=False, should_check_message=False)


class MessageResponder(Protocol):
    """Messaging surface used to answer the triggering message."""

    async def reply(self, text: str) -> None:
        """Send a response in the channel the message came from."""
        ...

    async def send_to_channel(self, channel_id: ChannelID, text: str) -> bool:
        """Send to another channel of the same guild. False if it is unreachable."""
        ...

    async def send_to_user(self, user_id: UserID, text: str) -> bool:
        """Send a direct message. False if the user does not accept DMs."""
        ...

    async def delete_message(self) -> bool:
        """Delete the triggering message. False if it could not be deleted."""
        ...

    def has_text_channel(self, channel_id: ChannelID) -> bool:
        """Whether the guild has a text channel with this ID."""
        ...


class ActionEnforcer(Protocol):
    """Applies and lifts moderation actions on the chat platform."""

    async def apply(
        self,
        guild_id: GuildID,
        user_id: UserID,
        action: ActionType,
        *,
        reason: Optional[str],
        duration_seconds: Optional[int],
    ) -> None:
        ...

    async def reverse(self, guild_id: GuildID, user_id: UserID, action: ActionType, *, reason: str) -> None:
        ...


@dataclass(slots=True)
class InboundMessage:
    """Platform-neutral view of a message event."""
    guild_id: Optional[GuildID]
    channel_id: ChannelID
    message_id: MessageID
    author_id: UserID
    content: str
    author_is_bot: bool = False
    author_permissions: FrozenSet[str] = field(default_factory=frozenset)


@dataclass(slots=True)
class CommandContext:
    """Everything a command handler may use besides the guild's settings."""
    message: InboundMessage
    args: Sequence[str]
    bot_id: UserID
    responder: MessageResponder
    moderation: "ModerationService"
    enforcer: Optional[ActionEnforcer] = None

    @property
    def guild_id(self) -> GuildID:
        # Commands are only dispatched for guild messages.
        assert self.message.guild_id is not None
        return self.message.guild_id

    @property
    def author_id(self) -> UserID:
        return self.message.author_id
