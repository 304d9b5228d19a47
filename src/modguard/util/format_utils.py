import re
from datetime import datetime, timezone
from typing import Optional

from modguard.datatypes.action_datatypes import ModerationAction

PERMANENT_DURATION = "permanent"

_DURATION_UNITS = {
    "s": 1,
    "m": 60,
    "h": 60 * 60,
    "d": 24 * 60 * 60,
    "w": 7 * 24 * 60 * 60,
}
_DURATION_PART = re.compile(r"(\d+)\s*([smhdw])", re.IGNORECASE)


def parse_duration(text: str) -> Optional[int]:
    """
    Parse a moderator-typed duration into seconds.

    Accepts unit suffixes that may be combined (``30s``, ``10m``, ``2h``,
    ``1d``, ``1w``, ``1h30m``). A bare number is read as minutes.

    Args:
        text: Duration as typed.

    Returns:
        Seconds, or None when the text is not a duration.
    """
    cleaned = text.strip().lower()
    if not cleaned:
        return None
    if cleaned.isdigit():
        return int(cleaned) * 60

    position = 0
    total = 0
    for match in _DURATION_PART.finditer(cleaned):
        if match.start() != position:
            return None
        total += int(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    if position != len(cleaned) or total == 0:
        return None
    return total


def format_duration(seconds: Optional[int]) -> str:
    """
    Convert a duration in seconds to a human-readable string.

    Args:
        seconds (int | None): Duration in seconds; None or 0 means permanent.

    Returns:
        str: Human-readable duration string.
    """
    if not seconds:
        return PERMANENT_DURATION
    elif seconds < 60:
        return f"{seconds} secs"
    elif seconds < 3600:
        mins = seconds // 60
        return f"{mins} mins"
    elif seconds < 86400:
        hours = seconds // 3600
        return f"{hours} hour{'s' if hours != 1 else ''}"
    else:
        days = seconds // 86400
        return f"{days} day{'s' if days != 1 else ''}"


def humanize_timestamp(unix_seconds: int) -> str:
    """Return a unix timestamp as ``YYYY-MM-DD HH:MM:SS UTC``."""
    return datetime.fromtimestamp(unix_seconds, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def format_case(action: ModerationAction) -> str:
    """One-line summary of a logged action, used by the case and history commands."""
    line = f"Case #{action.case_id}: {action.action.value.upper()} <@{action.user_id}> by <@{action.moderator_id}>"
    if action.timeout_seconds:
        line += f" for {format_duration(action.timeout_seconds)}"
    line += f" ({humanize_timestamp(action.timestamp)})"
    if action.reason:
        line += f" - {action.reason}"
    return line
