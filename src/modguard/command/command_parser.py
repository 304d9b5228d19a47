"""
Recognises commands in raw message text.

A message is a command when it starts with a mention of the bot
(``<@id>`` or ``<@!id>``) or with the configured prefix. The rest is split
shell-style so quoted arguments survive (``!setresponsemessage "no swearing"``).
"""

from __future__ import annotations

import re
import shlex
from dataclasses import dataclass
from typing import Optional, Tuple

from modguard.datatypes.discord_datatypes import UserID

_MENTION = re.compile(r"^<@!?(\d+)>")


@dataclass(frozen=True, slots=True)
class ParsedCommand:
    name: str
    args: Tuple[str, ...] = ()


class CommandParser:
    """Parses one message's content against a prefix and the bot's identity."""

    def __init__(self, content: str, prefix: str):
        self.content = content.strip()
        self.prefix = prefix

    def _body(self, bot_id: Optional[UserID]) -> Optional[str]:
        match = _MENTION.match(self.content)
        if match:
            if bot_id is None or UserID(match.group(1)) != bot_id:
                return None
            return self.content[match.end():].strip()
        if self.prefix and self.content.startswith(self.prefix):
            return self.content[len(self.prefix):].strip()
        return None

    def is_command(self, bot_id: Optional[UserID]) -> bool:
        return bool(self._body(bot_id))

    def parse(self, bot_id: Optional[UserID]) -> Optional[ParsedCommand]:
        """
        Split the message into a command name and its arguments.

        Returns:
            ParsedCommand with a lower-cased name, or None if the message is not
            addressed to the bot.
        """
        body = self._body(bot_id)
        if not body:
            return None
        try:
            tokens = shlex.split(body)
        except ValueError:
            # Unbalanced quotes: fall back to whitespace splitting.
            tokens = body.split()
        if not tokens:
            return None
        return ParsedCommand(name=tokens[0].lower(), args=tuple(tokens[1:]))
