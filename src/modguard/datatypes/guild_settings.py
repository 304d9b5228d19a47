"""
Persistent per-guild configuration values.

Database schema:
- guild_settings table: guild_id, reporting/response/delete/warn flags, starboard channel and threshold
- guild_banned_words table: guild_id, word
- starboard_emojis table: guild_id, emoji
"""
from dataclasses import dataclass, field
from typing import List, Optional, Set

from modguard.datatypes.discord_datatypes import ChannelID, GuildID

DEFAULT_STARBOARD_THRESHOLD = 3


@dataclass(slots=True)
class MessageCheckerSettings:
    """Blacklist configuration and what to do when a message matches it."""

    banned_words: Set[str] = field(default_factory=set)
    reporting_channel_id: Optional[ChannelID] = None
    response_message: Optional[str] = None
    delete_message: bool = False
    warn_on_match: bool = False

    def add_banned_word(self, word: str) -> bool:
        """Add a word to the blacklist. Returns False if it was already there."""
        normalised = word.strip().casefold()
        if not normalised or normalised in self.banned_words:
            return False
        self.banned_words.add(normalised)
        return True

    def remove_banned_word(self, word: str) -> bool:
        """Remove a word from the blacklist. Returns False if it was not there."""
        normalised = word.strip().casefold()
        if normalised not in self.banned_words:
            return False
        self.banned_words.discard(normalised)
        return True


@dataclass(slots=True)
class StarboardSettings:
    """Where starred messages go and how many reactions it takes."""

    channel_id: Optional[ChannelID] = None
    threshold: int = DEFAULT_STARBOARD_THRESHOLD
    emojis: List[str] = field(default_factory=list)


@dataclass(slots=True)
class GuildSettings:
    """All persisted configuration of one guild."""

    guild_id: GuildID
    message_checker: MessageCheckerSettings = field(default_factory=MessageCheckerSettings)
    starboard: StarboardSettings = field(default_factory=StarboardSettings)
