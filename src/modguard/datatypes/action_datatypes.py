"""
Action types and data structures for moderation actions.

This module defines the ActionType enum, the append-only ModerationAction
record, timeout entries and escalation rules, plus the outcome objects the
moderation service hands back to the command shell.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from modguard.datatypes.discord_datatypes import GuildID, UserID

# Longest member timeout Discord accepts.
MAX_MUTE_SECONDS = 28 * 24 * 3600


class ActionType(Enum):
    """Enumeration of supported moderation actions."""

    WARN = "warn"
    MUTE = "mute"
    UNMUTE = "unmute"
    KICK = "kick"
    BAN = "ban"
    UNBAN = "unban"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str) -> "ActionType":
        """Parse a user-supplied action name (case-insensitive)."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(f"Unknown moderation action: {value!r}") from None

    @property
    def reversal(self) -> Optional["ActionType"]:
        """The action that undoes this one, or None if it cannot be timed."""
        return REVERSAL_ACTIONS.get(self)


# Only these actions may carry a timeout; the value is logged when it expires.
REVERSAL_ACTIONS: Dict[ActionType, ActionType] = {
    ActionType.MUTE: ActionType.UNMUTE,
    ActionType.BAN: ActionType.UNBAN,
}


@dataclass(frozen=True, slots=True)
class ModerationAction:
    """Immutable record of a logged moderation action.

    Attributes:
        guild_id: Guild the action was taken in
        case_id: Per-guild sequential case number, starting at 1
        moderator_id: User (or the bot itself) that issued the action
        user_id: Target of the action
        action: Type of action taken
        reason: Free-text reason; None when no reason was given
        timeout_seconds: Duration for timed actions, None otherwise
        timestamp: Unix seconds when the action was recorded
    """
    guild_id: GuildID
    case_id: int
    moderator_id: UserID
    user_id: UserID
    action: ActionType
    reason: Optional[str]
    timeout_seconds: Optional[int]
    timestamp: int


@dataclass(frozen=True, slots=True)
class TimeoutKey:
    """Identity of a pending timed action: one per guild, user and action type."""
    guild_id: GuildID
    user_id: UserID
    action: ActionType

    def __str__(self) -> str:
        return f"{self.action.value}:{self.guild_id}:{self.user_id}"


@dataclass(slots=True)
class TimeoutEntry:
    """A single row of the ``moderation_timeouts`` table.

    ``timer_id`` is a correlation token for the live timer in the scheduler,
    never a reference to an in-memory object.
    """
    key: TimeoutKey
    end_time: int   # unix seconds (UTC)
    timer_id: int


@dataclass(frozen=True, slots=True)
class WarnEscalationRule:
    """Automatic follow-up action once a user reaches ``num_warns`` actions."""
    guild_id: GuildID
    num_warns: int
    action: ActionType
    duration_seconds: Optional[int] = None


@dataclass(frozen=True, slots=True)
class ModerationOutcome:
    """Result of issuing one moderation action.

    ``timeout_scheduled`` is False both for untimed actions and for timed
    actions whose timer could not be established; ``warning`` is set only in
    the latter case so the caller can tell a human.
    """
    action: ModerationAction
    timeout_scheduled: bool = False
    end_time: Optional[int] = None
    warning: Optional[str] = None

    @property
    def fully_applied(self) -> bool:
        return self.warning is None


@dataclass(frozen=True, slots=True)
class EscalationOutcome:
    """Result of a warn, including any automatic escalation it triggered."""
    warn: ModerationOutcome
    warn_count: int
    escalation: Optional[ModerationOutcome] = None

    @property
    def escalated(self) -> bool:
        return self.escalation is not None
