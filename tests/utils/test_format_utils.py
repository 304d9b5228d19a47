import pytest

from modguard.datatypes.action_datatypes import ActionType, ModerationAction
from modguard.datatypes.discord_datatypes import GuildID, UserID
from modguard.util.format_utils import PERMANENT_DURATION, format_case, format_duration, parse_duration


@pytest.mark.parametrize("text,expected", [
    ("30s", 30),
    ("10m", 600),
    ("2h", 7200),
    ("1d", 86400),
    ("1w", 604800),
    ("1h30m", 5400),
    ("15", 900),
    (" 2H ", 7200),
])
def test_parse_duration(text, expected):
    assert parse_duration(text) == expected


@pytest.mark.parametrize("text", ["", "abc", "10x", "m10", "0m", "1h spam"])
def test_parse_duration_rejects_non_durations(text):
    assert parse_duration(text) is None


def test_format_duration():
    assert format_duration(None) == PERMANENT_DURATION
    assert format_duration(45) == "45 secs"
    assert format_duration(600) == "10 mins"
    assert format_duration(3600) == "1 hour"
    assert format_duration(3 * 86400) == "3 days"


def test_format_case_includes_duration_and_reason():
    action = ModerationAction(
        guild_id=GuildID(1),
        case_id=7,
        moderator_id=UserID(2),
        user_id=UserID(3),
        action=ActionType.MUTE,
        reason="spam",
        timeout_seconds=600,
        timestamp=0,
    )

    line = format_case(action)

    assert line.startswith("Case #7: MUTE <@3> by <@2> for 10 mins")
    assert "1970-01-01 00:00:00 UTC" in line
    assert line.endswith("- spam")
