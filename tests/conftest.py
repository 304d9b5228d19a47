"""
Pytest configuration and fixtures for ModGuard tests.
"""

import os
import sys
import tempfile
from pathlib import Path

# Keep test runs from writing into the project's logs/ directory.
os.environ.setdefault("MODGUARD_LOGS_DIR", tempfile.mkdtemp(prefix="modguard-logs-"))

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

import pytest
import pytest_asyncio

from modguard.database.database import Database
from modguard.database.db_connection import ConnectionManager
from modguard.database.moderation_store import ActionLogStore, TimeoutStore, WarnEscalationTable
from modguard.datatypes.command_datatypes import InboundMessage
from modguard.datatypes.discord_datatypes import ChannelID, GuildID, MessageID, UserID
from modguard.scheduler.timeout_scheduler import TimeoutScheduler
from modguard.services.moderation_service import ModerationService


class FakeClock:
    """Settable unix clock for services that take a ``clock`` callable."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def connections(tmp_path):
    """An initialised database in a temporary directory."""
    manager = ConnectionManager()
    db = Database(manager)
    await db.initialize(tmp_path / "modguard.db")
    try:
        yield manager
    finally:
        await db.shutdown()


BOT_ID = 555


@pytest_asyncio.fixture
async def scheduler(clock):
    scheduler = TimeoutScheduler(clock=clock)
    try:
        yield scheduler
    finally:
        await scheduler.shutdown()


@pytest.fixture
def moderation(connections, scheduler, clock) -> ModerationService:
    """Moderation service over real stores, with the bot's ID set and no enforcer."""
    return ModerationService(
        ActionLogStore(connections),
        TimeoutStore(connections),
        WarnEscalationTable(connections),
        scheduler,
        bot_id=UserID(BOT_ID),
        clock=clock,
    )


class FakeResponder:
    """In-memory MessageResponder that records everything sent."""

    def __init__(self, text_channels=()) -> None:
        self.replies: list[str] = []
        self.channel_messages: list[tuple] = []
        self.direct_messages: list[tuple] = []
        self.deleted = False
        self.text_channels = set(text_channels)

    async def reply(self, text: str) -> None:
        self.replies.append(text)

    async def send_to_channel(self, channel_id, text: str) -> bool:
        if channel_id not in self.text_channels:
            return False
        self.channel_messages.append((channel_id, text))
        return True

    async def send_to_user(self, user_id, text: str) -> bool:
        self.direct_messages.append((user_id, text))
        return True

    async def delete_message(self) -> bool:
        self.deleted = True
        return True

    def has_text_channel(self, channel_id) -> bool:
        return channel_id in self.text_channels


REPORT_CHANNEL = ChannelID(300)


@pytest.fixture
def responder() -> FakeResponder:
    return FakeResponder(text_channels={REPORT_CHANNEL})


@pytest.fixture
def make_message():
    """Factory for InboundMessage with moderator permissions by default."""

    def factory(content: str, *, guild_id=GuildID(10), author_id=UserID(20), permissions=("kick_members", "ban_members"), bot=False):
        return InboundMessage(
            guild_id=guild_id,
            channel_id=ChannelID(200),
            message_id=MessageID(400),
            author_id=author_id,
            content=content,
            author_is_bot=bot,
            author_permissions=frozenset(permissions),
        )

    return factory
