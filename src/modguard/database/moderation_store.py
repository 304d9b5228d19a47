"""
Transactional stores over the moderation tables.

Each store binds the low-level repositories to a :class:`ConnectionManager`
and decides the transaction boundaries:

- ActionLogStore: case id allocation and insert as one write transaction
- TimeoutStore: upsert-on-conflict and an atomic remove that tells the caller
  which timer handle (if any) it took out
- WarnEscalationTable: read-mostly lookup of escalation rules

All methods raise :class:`~modguard.exceptions.StorageUnavailable` when the
database cannot be used.
"""

from __future__ import annotations

import time
from typing import List, Optional

from modguard.database.db_connection import ConnectionManager
from modguard.datatypes.action_datatypes import (
    ActionType,
    ModerationAction,
    TimeoutEntry,
    TimeoutKey,
    WarnEscalationRule,
)
from modguard.datatypes.discord_datatypes import GuildID, UserID
from modguard.repositories.action_log_repo import ActionLogRepo
from modguard.repositories.timeout_repo import TimeoutRepo
from modguard.repositories.warn_settings_repo import WarnSettingsRepo
from modguard.util.logger import get_logger

logger = get_logger("moderation_store")


class ActionLogStore:
    """Append-only log of moderation actions with per-guild case numbers."""

    def __init__(self, connections: ConnectionManager) -> None:
        self._connections = connections

    async def next_case_id(self, guild_id: GuildID) -> int:
        """Case number the next action in this guild would get (read-only)."""
        async with self._connections.read() as conn:
            return await ActionLogRepo.next_case_id(conn, guild_id)

    async def append(self, action: ModerationAction) -> None:
        """Insert a fully built action whose case id the caller already allocated."""
        async with self._connections.transaction() as conn:
            await ActionLogRepo.append(conn, action)

    async def record(
        self,
        guild_id: GuildID,
        moderator_id: UserID,
        user_id: UserID,
        action: ActionType,
        reason: Optional[str] = None,
        timeout_seconds: Optional[int] = None,
        timestamp: Optional[int] = None,
    ) -> ModerationAction:
        """
        Allocate the next case id and insert the action in one transaction.

        If the insert fails the transaction rolls back, so the case number is
        not consumed.

        Returns:
            The stored ModerationAction.
        """
        async with self._connections.transaction() as conn:
            case_id = await ActionLogRepo.next_case_id(conn, guild_id)
            record = ModerationAction(
                guild_id=guild_id,
                case_id=case_id,
                moderator_id=moderator_id,
                user_id=user_id,
                action=action,
                reason=reason or None,
                timeout_seconds=timeout_seconds,
                timestamp=int(time.time()) if timestamp is None else timestamp,
            )
            await ActionLogRepo.append(conn, record)

        logger.debug(
            "[ACTION LOG] Case #%d: %s on user %s in guild %s by %s",
            record.case_id, record.action.value, user_id, guild_id, moderator_id,
        )
        return record

    async def count_actions(self, guild_id: GuildID, user_id: UserID) -> int:
        async with self._connections.read() as conn:
            return await ActionLogRepo.count_actions(conn, guild_id, user_id)

    async def get_case(self, guild_id: GuildID, case_id: int) -> Optional[ModerationAction]:
        async with self._connections.read() as conn:
            return await ActionLogRepo.get_case(conn, guild_id, case_id)

    async def list_user_actions(self, guild_id: GuildID, user_id: UserID, limit: int = 10) -> List[ModerationAction]:
        async with self._connections.read() as conn:
            return await ActionLogRepo.list_user_actions(conn, guild_id, user_id, limit)


class TimeoutStore:
    """Durable table of pending timed actions, keyed by (guild, user, type)."""

    def __init__(self, connections: ConnectionManager) -> None:
        self._connections = connections

    async def upsert(self, key: TimeoutKey, end_time: int, timer_id: int) -> Optional[int]:
        """
        Register a pending action, replacing end time and handle of an existing row.

        Returns:
            The handle this call replaced, or None if the key was new (or
            already carried the same handle).
        """
        async with self._connections.transaction() as conn:
            previous = await TimeoutRepo.get(conn, key)
            await TimeoutRepo.upsert(conn, key, end_time, timer_id)

        if previous is not None and previous.timer_id != timer_id:
            return previous.timer_id
        return None

    async def remove(self, key: TimeoutKey, *, timer_id: Optional[int] = None) -> Optional[int]:
        """
        Delete the row for ``key`` and return the handle it carried.

        The select and delete run in one serialised write transaction, so of
        two concurrent callers only one ever gets the handle back.

        Args:
            key: Row to remove.
            timer_id: When given, only remove the row if it still carries
                this handle (a superseded timer must not remove its
                replacement).

        Returns:
            The removed handle, or None when there was nothing to remove.
        """
        async with self._connections.transaction() as conn:
            entry = await TimeoutRepo.get(conn, key)
            if entry is None:
                return None
            if timer_id is not None and entry.timer_id != timer_id:
                return None
            await TimeoutRepo.delete(conn, key)

        return entry.timer_id

    async def restore(self, key: TimeoutKey, end_time: int, timer_id: int) -> bool:
        """
        Put back a row that a timer claimed but could not act on.

        Never overwrites a newer registration for the same key.

        Returns:
            True if the row was written back, False if the key is taken.
        """
        async with self._connections.transaction() as conn:
            if await TimeoutRepo.get(conn, key) is not None:
                return False
            await TimeoutRepo.upsert(conn, key, end_time, timer_id)
        return True

    async def get(self, key: TimeoutKey) -> Optional[TimeoutEntry]:
        async with self._connections.read() as conn:
            return await TimeoutRepo.get(conn, key)

    async def list_all(self) -> List[TimeoutEntry]:
        """Snapshot of every pending row, used once at startup."""
        async with self._connections.read() as conn:
            return await TimeoutRepo.list_all(conn)


class WarnEscalationTable:
    """Per-guild mapping from warn count to an automatic follow-up action."""

    def __init__(self, connections: ConnectionManager) -> None:
        self._connections = connections

    async def lookup(self, guild_id: GuildID, warn_count: int) -> Optional[WarnEscalationRule]:
        """Rule for exactly this count, or None when no escalation is configured."""
        async with self._connections.read() as conn:
            return await WarnSettingsRepo.lookup(conn, guild_id, warn_count)

    async def list_rules(self, guild_id: GuildID) -> List[WarnEscalationRule]:
        async with self._connections.read() as conn:
            return await WarnSettingsRepo.list_rules(conn, guild_id)

    async def set_rule(self, rule: WarnEscalationRule) -> None:
        """
        Create or replace the rule for ``rule.num_warns``.

        Raises:
            ValueError: If the rule is not usable (non-positive count, a
                duration on an action that cannot expire, or a reversal action).
        """
        if rule.num_warns <= 0:
            raise ValueError("Warn count must be positive")
        if rule.action in (ActionType.WARN, ActionType.UNMUTE, ActionType.UNBAN):
            raise ValueError(f"{rule.action.value} cannot be an escalation action")
        if rule.duration_seconds and rule.action.reversal is None:
            raise ValueError(f"{rule.action.value} cannot be timed")
        async with self._connections.transaction() as conn:
            await WarnSettingsRepo.upsert(conn, rule)
        logger.info(
            "[WARN ESCALATION] Guild %s: %d warns -> %s (%s)",
            rule.guild_id, rule.num_warns, rule.action.value, rule.duration_seconds or "untimed",
        )

    async def remove_rule(self, guild_id: GuildID, num_warns: int) -> bool:
        async with self._connections.transaction() as conn:
            return await WarnSettingsRepo.delete(conn, guild_id, num_warns)
