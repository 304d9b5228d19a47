"""
Moderation service: the single entry point for issuing, escalating and
lifting moderation actions.

Every action is first written to the action log (fatal if that fails), then,
if it is timed, a timer is armed and the pending row is upserted into the
timeout store. Failures past the log write never undo the logged action; the
outcome carries a warning instead so a human can follow up.
"""

from __future__ import annotations

import time
from dataclasses import replace
from typing import Callable, List, Optional, Tuple

from modguard.configuration.app_configuration import DEFAULT_EXPIRY_REASON
from modguard.database.moderation_store import ActionLogStore, TimeoutStore, WarnEscalationTable
from modguard.datatypes.action_datatypes import (
    ActionType,
    EscalationOutcome,
    ModerationAction,
    ModerationOutcome,
    TimeoutKey,
    WarnEscalationRule,
)
from modguard.datatypes.command_datatypes import ActionEnforcer
from modguard.datatypes.discord_datatypes import GuildID, UserID
from modguard.exceptions import ReversalFailed, SchedulingFailure, StorageUnavailable
from modguard.scheduler.timeout_scheduler import ReconcileReport, TimeoutScheduler
from modguard.util.logger import get_logger

logger = get_logger("moderation_service")

# Moderator recorded on automatic reversals when the bot's own ID is unknown.
SYSTEM_MODERATOR_ID = UserID(0)


class ModerationService:
    """
    Orchestrates the action log, warn escalation table, timeout store and
    timeout scheduler.

    Args:
        action_log: Append-only log with per-guild case numbers.
        timeout_store: Durable table of pending timed actions.
        warn_table: Per-guild warn escalation rules.
        scheduler: In-memory timers; bound to this service on construction.
        bot_id: Recorded as the moderator of automatic reversals.
        enforcer: Lifts expired actions on the chat platform.
        expiry_reason: Reason logged on automatic reversals.
        clock: Source of unix time, replaceable in tests.
    """

    def __init__(
        self,
        action_log: ActionLogStore,
        timeout_store: TimeoutStore,
        warn_table: WarnEscalationTable,
        scheduler: TimeoutScheduler,
        *,
        bot_id: Optional[UserID] = None,
        enforcer: Optional[ActionEnforcer] = None,
        expiry_reason: str = DEFAULT_EXPIRY_REASON,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.action_log = action_log
        self.timeout_store = timeout_store
        self.warn_table = warn_table
        self.scheduler = scheduler
        self.bot_id = bot_id
        self.enforcer = enforcer
        self.expiry_reason = expiry_reason
        self._clock = clock

        scheduler.bind(timeout_store=timeout_store, on_expire=self.handle_expiry)

    def attach_platform(self, bot_id: UserID, enforcer: Optional[ActionEnforcer]) -> None:
        """Late-bind the bot identity and enforcer once the client is connected."""
        self.bot_id = bot_id
        self.enforcer = enforcer

    # ------------------------------------------------------------------
    # Issuing actions
    # ------------------------------------------------------------------

    async def issue_action(
        self,
        guild_id: GuildID,
        moderator_id: UserID,
        user_id: UserID,
        action: ActionType,
        reason: Optional[str] = None,
        timeout_seconds: Optional[int] = None,
    ) -> ModerationOutcome:
        """
        Log a moderation action and, if it is timed, schedule its expiry.

        Args:
            guild_id: Guild the action is taken in.
            moderator_id: Who issued it.
            user_id: Target user.
            action: Type of action.
            reason: Optional reason; empty strings are stored as NULL.
            timeout_seconds: Duration for MUTE/BAN; None or <= 0 means untimed.

        Returns:
            ModerationOutcome: The logged action and whether its timer is live.

        Raises:
            ValueError: If a duration is given for an action that cannot expire.
            StorageUnavailable: If the action could not be logged. Nothing
                happened in that case.
        """
        duration = timeout_seconds if timeout_seconds is not None and timeout_seconds > 0 else None
        if duration is not None and action.reversal is None:
            raise ValueError(f"{action.value} actions cannot be timed")

        now = int(self._clock())
        record = await self.action_log.record(
            guild_id,
            moderator_id,
            user_id,
            action,
            reason=reason,
            timeout_seconds=duration,
            timestamp=now,
        )
        logger.info(
            "[MODERATION] Case #%d in guild %s: %s %s (by %s)",
            record.case_id, guild_id, action.value, user_id, moderator_id,
        )

        if duration is None:
            return ModerationOutcome(action=record)
        return await self._schedule_expiry(record, TimeoutKey(guild_id, user_id, action), now + duration)

    async def _schedule_expiry(self, record: ModerationAction, key: TimeoutKey, end_time: int) -> ModerationOutcome:
        try:
            timer_id = await self.scheduler.schedule(key, end_time)
        except SchedulingFailure as exc:
            return self._unenforced(record, f"Timer could not be armed: {exc}")

        try:
            superseded = await self.timeout_store.upsert(key, end_time, timer_id)
        except StorageUnavailable as exc:
            await self.scheduler.cancel(timer_id)
            return self._unenforced(record, f"Timeout could not be saved: {exc}")

        if superseded is not None:
            await self.scheduler.cancel(superseded)
            logger.debug("[MODERATION] Timer %d for %s replaced by %d", superseded, key, timer_id)

        return ModerationOutcome(action=record, timeout_scheduled=True, end_time=end_time)

    @staticmethod
    def _unenforced(record: ModerationAction, warning: str) -> ModerationOutcome:
        logger.warning(
            "[MODERATION] Case #%d in guild %s logged but will not expire: %s",
            record.case_id, record.guild_id, warning,
        )
        return ModerationOutcome(action=record, timeout_scheduled=False, warning=warning)

    async def warn_and_escalate(
        self,
        guild_id: GuildID,
        moderator_id: UserID,
        user_id: UserID,
        reason: Optional[str] = None,
    ) -> EscalationOutcome:
        """
        Log a warn, then issue the configured follow-up if the user's action
        count now matches a warn escalation rule.

        The count covers every logged action against the user, not only warns.
        An escalation is applied through the enforcer when one is attached.
        """
        warn = await self.issue_action(guild_id, moderator_id, user_id, ActionType.WARN, reason)
        warn_count = await self.action_log.count_actions(guild_id, user_id)

        rule = await self.warn_table.lookup(guild_id, warn_count)
        if rule is None:
            return EscalationOutcome(warn=warn, warn_count=warn_count)

        logger.info(
            "[MODERATION] User %s in guild %s reached %d warns: escalating to %s",
            user_id, guild_id, warn_count, rule.action.value,
        )
        escalation = await self.issue_action(
            guild_id,
            moderator_id,
            user_id,
            rule.action,
            reason=f"Reached {warn_count} warnings",
            timeout_seconds=rule.duration_seconds,
        )
        escalation = await self._enforce_escalation(escalation)
        return EscalationOutcome(warn=warn, warn_count=warn_count, escalation=escalation)

    async def _enforce_escalation(self, outcome: ModerationOutcome) -> ModerationOutcome:
        record = outcome.action
        if self.enforcer is None:
            return outcome
        try:
            await self.enforcer.apply(
                record.guild_id,
                record.user_id,
                record.action,
                reason=record.reason,
                duration_seconds=record.timeout_seconds,
            )
        except Exception as exc:
            logger.exception(
                "[MODERATION] Case #%d in guild %s logged but could not be applied",
                record.case_id, record.guild_id,
            )
            return replace(outcome, warning=f"Escalation could not be applied: {exc}")
        return outcome

    # ------------------------------------------------------------------
    # Cancelling and lifting
    # ------------------------------------------------------------------

    async def cancel_timeout(self, guild_id: GuildID, user_id: UserID, action: ActionType) -> bool:
        """
        Drop a pending timed action without running its reversal.

        Returns:
            bool: True if a pending timeout existed and was cancelled.
        """
        key = TimeoutKey(guild_id, user_id, action)
        timer_id = await self.timeout_store.remove(key)
        if timer_id is None:
            return False

        await self.scheduler.cancel(timer_id)
        logger.info("[MODERATION] Cancelled pending %s", key)
        return True

    async def lift_action(
        self,
        guild_id: GuildID,
        moderator_id: UserID,
        user_id: UserID,
        action: ActionType,
        reason: Optional[str] = None,
    ) -> Tuple[ModerationOutcome, bool]:
        """
        Manually reverse a mute or ban before (or without) its expiry.

        Returns:
            The logged reversal and whether a pending timeout was cancelled.
        """
        reversal = action.reversal
        if reversal is None:
            raise ValueError(f"{action.value} actions cannot be lifted")

        cancelled = await self.cancel_timeout(guild_id, user_id, action)
        outcome = await self.issue_action(guild_id, moderator_id, user_id, reversal, reason)
        return outcome, cancelled

    async def handle_expiry(self, guild_id: GuildID, user_id: UserID, action: ActionType) -> None:
        """
        Reversal callback run by the scheduler once a timed action has expired.

        Lifts the action on the platform and logs the reversal as the bot.

        Raises:
            ReversalFailed: No platform is attached yet, or the platform
                refused. The scheduler keeps the timeout and retries.
        """
        reversal = action.reversal
        if reversal is None:
            logger.error("[MODERATION] Expired %s for %s has no reversal", action.value, user_id)
            return

        if self.enforcer is None:
            raise ReversalFailed(f"No platform connection to lift {action.value} for {user_id}")
        try:
            await self.enforcer.reverse(guild_id, user_id, action, reason=self.expiry_reason)
        except Exception as exc:
            raise ReversalFailed(f"Platform refused to lift {action.value} for {user_id} in guild {guild_id}: {exc}") from exc

        try:
            await self.issue_action(
                guild_id,
                self.bot_id or SYSTEM_MODERATOR_ID,
                user_id,
                reversal,
                reason=self.expiry_reason,
            )
        except StorageUnavailable as exc:
            logger.error(
                "[MODERATION] Lifted %s for %s in guild %s but could not log it: %s",
                action.value, user_id, guild_id, exc,
            )

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def restore_timeouts(self) -> ReconcileReport:
        """
        Rebuild live timers from the timeout store. Call once the platform is
        attached, and await it before any event is processed.
        """
        entries = await self.timeout_store.list_all()
        return await self.scheduler.reconcile(entries)

    # ------------------------------------------------------------------
    # Lookups and escalation configuration
    # ------------------------------------------------------------------

    async def get_case(self, guild_id: GuildID, case_id: int) -> Optional[ModerationAction]:
        return await self.action_log.get_case(guild_id, case_id)

    async def get_history(self, guild_id: GuildID, user_id: UserID, limit: int = 10) -> List[ModerationAction]:
        return await self.action_log.list_user_actions(guild_id, user_id, limit)

    async def set_warn_rule(self, rule: WarnEscalationRule) -> None:
        await self.warn_table.set_rule(rule)

    async def remove_warn_rule(self, guild_id: GuildID, num_warns: int) -> bool:
        return await self.warn_table.remove_rule(guild_id, num_warns)

    async def list_warn_rules(self, guild_id: GuildID) -> List[WarnEscalationRule]:
        return await self.warn_table.list_rules(guild_id)
