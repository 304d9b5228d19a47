"""
Type-safe wrapper classes for Discord identifiers.

Discord snowflakes are 64-bit integers, but they arrive as strings from
commands and mentions and as integers from the API. These wrappers give every
identifier one consistent shape throughout the moderation system.
"""

from __future__ import annotations

from typing import Union

import discord


class Snowflake:
    """
    Base wrapper for a Discord snowflake ID.

    The value is stored as a string for storage parity with the database
    columns, and converted with :meth:`to_int` for API calls.

    Attributes:
        _value (str): The snowflake ID stored as a normalised decimal string.

    Example:
        >>> uid = UserID("123456789012345678")
        >>> uid.to_int()
        123456789012345678
        >>> str(uid)
        '123456789012345678'
    """

    __slots__ = ("_value",)

    def __init__(self, value: Union[str, int, "Snowflake"]) -> None:
        """
        Initialize the wrapper from a string, int, or another wrapper.

        Args:
            value: The snowflake ID as a string, int, or Snowflake.

        Raises:
            ValueError: If the value cannot be converted to a valid snowflake.
        """
        if isinstance(value, Snowflake):
            self._value = value._value
        elif isinstance(value, bool):
            raise ValueError(f"Cannot create {type(self).__name__} from bool: {value}")
        elif isinstance(value, int):
            if value < 0:
                raise ValueError(f"Snowflake IDs cannot be negative: {value}")
            self._value = str(value)
        elif isinstance(value, str):
            parsed = int(value.strip())
            if parsed < 0:
                raise ValueError(f"Snowflake IDs cannot be negative: {value}")
            self._value = str(parsed)
        else:
            raise ValueError(f"Cannot create {type(self).__name__} from {type(value).__name__}: {value}")

    @classmethod
    def from_int(cls, value: int):
        """Create a wrapper from an integer snowflake."""
        return cls(value)

    def to_int(self) -> int:
        """
        Convert to an integer for Discord API calls.

        Returns:
            int: The snowflake ID as an integer.
        """
        return int(self._value)

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Snowflake):
            return type(self) is type(other) and self._value == other._value
        if isinstance(other, str):
            return self._value == other
        if isinstance(other, int) and not isinstance(other, bool):
            return self._value == str(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)

    def __lt__(self, other: "Snowflake") -> bool:
        return self.to_int() < Snowflake(other).to_int()


class UserID(Snowflake):
    """Type-safe wrapper for Discord user snowflake IDs."""

    __slots__ = ()

    @classmethod
    def from_user(cls, member: Union[discord.Member, discord.User]) -> "UserID":
        """Create a UserID from a Discord Member or User object."""
        return cls(member.id)

    @classmethod
    def from_mention(cls, text: str) -> "UserID":
        """
        Parse a user mention (``<@123>`` or ``<@!123>``) or a raw ID.

        Args:
            text: Mention or numeric ID as typed by a moderator.

        Returns:
            UserID: The parsed identifier.

        Raises:
            ValueError: If the text is neither a mention nor a numeric ID.
        """
        cleaned = text.strip()
        if cleaned.startswith("<@") and cleaned.endswith(">"):
            cleaned = cleaned[2:-1].lstrip("!")
        return cls(cleaned)


class GuildID(Snowflake):
    """Type-safe wrapper for Discord guild (server) snowflake IDs."""

    __slots__ = ()

    @classmethod
    def from_guild(cls, guild: discord.Guild) -> "GuildID":
        """Create a GuildID from a Discord Guild object."""
        return cls(guild.id)


class ChannelID(Snowflake):
    """Type-safe wrapper for Discord channel snowflake IDs."""

    __slots__ = ()

    @classmethod
    def from_channel(cls, channel: discord.abc.Snowflake) -> "ChannelID":
        """Create a ChannelID from any Discord channel object."""
        return cls(channel.id)

    @classmethod
    def from_mention(cls, text: str) -> "ChannelID":
        """Parse a channel mention (``<#123>``) or a raw ID."""
        cleaned = text.strip()
        if cleaned.startswith("<#") and cleaned.endswith(">"):
            cleaned = cleaned[2:-1]
        return cls(cleaned)


class MessageID(Snowflake):
    """Type-safe wrapper for Discord message snowflake IDs."""

    __slots__ = ()

    @classmethod
    def from_message(cls, message: discord.Message) -> "MessageID":
        """Create a MessageID from a Discord Message object."""
        return cls(message.id)
