"""
Tests for the moderation service against a real SQLite database.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from modguard.datatypes.action_datatypes import ActionType, TimeoutKey, WarnEscalationRule
from modguard.datatypes.discord_datatypes import GuildID, UserID
from modguard.exceptions import ReversalFailed, StorageUnavailable

GUILD = GuildID(10)
MOD = UserID(20)
USER = UserID(30)
MUTE_KEY = TimeoutKey(GUILD, USER, ActionType.MUTE)
BOT = UserID(555)


async def _prior_warns(moderation, count: int) -> None:
    for _ in range(count):
        await moderation.issue_action(GUILD, MOD, USER, ActionType.WARN, "prior")


@pytest.mark.asyncio
async def test_concurrent_warns_get_gapless_case_ids(moderation):
    outcomes = await asyncio.gather(*(
        moderation.warn_and_escalate(GUILD, MOD, UserID(1000 + i)) for i in range(12)
    ))

    assert sorted(o.warn.action.case_id for o in outcomes) == list(range(1, 13))


@pytest.mark.asyncio
async def test_warn_past_rule_count_does_not_escalate(moderation):
    await moderation.set_warn_rule(WarnEscalationRule(GUILD, 3, ActionType.MUTE, 3600))
    await _prior_warns(moderation, 3)

    outcome = await moderation.warn_and_escalate(GUILD, MOD, USER)

    assert outcome.warn.action.case_id == 4
    assert outcome.warn_count == 4
    assert outcome.escalated is False


@pytest.mark.asyncio
async def test_warn_reaching_rule_count_escalates_to_timed_mute(moderation, clock):
    await moderation.set_warn_rule(WarnEscalationRule(GUILD, 4, ActionType.MUTE, 3600))
    await _prior_warns(moderation, 3)

    outcome = await moderation.warn_and_escalate(GUILD, MOD, USER)

    assert outcome.escalated
    assert outcome.warn.action.case_id == 4
    escalation = outcome.escalation.action
    assert (escalation.case_id, escalation.action, escalation.timeout_seconds) == (5, ActionType.MUTE, 3600)
    assert escalation.moderator_id == MOD
    assert escalation.reason == "Reached 4 warnings"

    entry = await moderation.timeout_store.get(MUTE_KEY)
    assert entry is not None
    assert entry.end_time == int(clock.now) + 3600
    assert moderation.scheduler.is_pending(entry.timer_id)


@pytest.mark.asyncio
async def test_escalation_counts_actions_of_every_type(moderation):
    await moderation.set_warn_rule(WarnEscalationRule(GUILD, 2, ActionType.KICK))
    await moderation.issue_action(GUILD, MOD, USER, ActionType.KICK)

    outcome = await moderation.warn_and_escalate(GUILD, MOD, USER)

    assert outcome.warn_count == 2
    assert outcome.escalation.action.action is ActionType.KICK


@pytest.mark.asyncio
async def test_escalation_is_applied_through_enforcer(moderation):
    enforcer = AsyncMock()
    moderation.attach_platform(BOT, enforcer)
    await moderation.set_warn_rule(WarnEscalationRule(GUILD, 1, ActionType.BAN, 86400))

    outcome = await moderation.warn_and_escalate(GUILD, MOD, USER)

    enforcer.apply.assert_awaited_once_with(
        GUILD, USER, ActionType.BAN, reason="Reached 1 warnings", duration_seconds=86400,
    )
    assert outcome.escalation.fully_applied


@pytest.mark.asyncio
async def test_escalation_enforcer_failure_is_reported(moderation):
    enforcer = AsyncMock()
    enforcer.apply.side_effect = RuntimeError("Missing Permissions")
    moderation.attach_platform(BOT, enforcer)
    await moderation.set_warn_rule(WarnEscalationRule(GUILD, 1, ActionType.KICK))

    outcome = await moderation.warn_and_escalate(GUILD, MOD, USER)

    assert outcome.escalation is not None
    assert "Missing Permissions" in outcome.escalation.warning
    assert await moderation.get_case(GUILD, 2) is not None


@pytest.mark.asyncio
async def test_untimed_actions_do_not_touch_timeout_store(moderation):
    for timeout in (None, 0, -5):
        outcome = await moderation.issue_action(GUILD, MOD, USER, ActionType.BAN, timeout_seconds=timeout)
        assert outcome.timeout_scheduled is False
        assert outcome.warning is None

    assert await moderation.timeout_store.list_all() == []


@pytest.mark.asyncio
async def test_timed_kick_is_rejected_before_logging(moderation):
    with pytest.raises(ValueError):
        await moderation.issue_action(GUILD, MOD, USER, ActionType.KICK, timeout_seconds=60)

    assert await moderation.action_log.next_case_id(GUILD) == 1


@pytest.mark.asyncio
async def test_remute_replaces_pending_timer(moderation):
    first = await moderation.issue_action(GUILD, MOD, USER, ActionType.MUTE, timeout_seconds=600)
    old_entry = await moderation.timeout_store.get(MUTE_KEY)
    second = await moderation.issue_action(GUILD, MOD, USER, ActionType.MUTE, timeout_seconds=1200)
    new_entry = await moderation.timeout_store.get(MUTE_KEY)

    assert first.timeout_scheduled and second.timeout_scheduled
    assert len(await moderation.timeout_store.list_all()) == 1
    assert new_entry.end_time == second.end_time
    assert not moderation.scheduler.is_pending(old_entry.timer_id)
    assert moderation.scheduler.is_pending(new_entry.timer_id)


@pytest.mark.asyncio
async def test_cancel_missing_timeout_returns_false(moderation):
    assert await moderation.cancel_timeout(GUILD, USER, ActionType.MUTE) is False


@pytest.mark.asyncio
async def test_cancel_timeout_removes_row_and_timer(moderation):
    await moderation.issue_action(GUILD, MOD, USER, ActionType.MUTE, timeout_seconds=600)
    entry = await moderation.timeout_store.get(MUTE_KEY)

    assert await moderation.cancel_timeout(GUILD, USER, ActionType.MUTE) is True
    assert await moderation.timeout_store.get(MUTE_KEY) is None
    assert not moderation.scheduler.is_pending(entry.timer_id)


@pytest.mark.asyncio
async def test_scheduling_failure_keeps_logged_action(moderation):
    await moderation.scheduler.shutdown()

    outcome = await moderation.issue_action(GUILD, MOD, USER, ActionType.MUTE, timeout_seconds=600)

    assert outcome.timeout_scheduled is False
    assert outcome.warning is not None
    assert await moderation.get_case(GUILD, outcome.action.case_id) is not None
    assert await moderation.timeout_store.list_all() == []


@pytest.mark.asyncio
async def test_timeout_store_failure_disarms_timer(moderation, monkeypatch):
    monkeypatch.setattr(
        moderation.timeout_store, "upsert", AsyncMock(side_effect=StorageUnavailable("database is locked")),
    )

    outcome = await moderation.issue_action(GUILD, MOD, USER, ActionType.BAN, timeout_seconds=600)

    assert outcome.fully_applied is False
    assert "database is locked" in outcome.warning
    assert moderation.scheduler.jobs == {}


@pytest.mark.asyncio
async def test_log_failure_aborts_action(moderation, connections):
    await connections.close()

    with pytest.raises(StorageUnavailable):
        await moderation.issue_action(GUILD, MOD, USER, ActionType.MUTE, timeout_seconds=600)
    assert moderation.scheduler.jobs == {}


@pytest.mark.asyncio
async def test_lift_action_cancels_and_logs_reversal(moderation):
    await moderation.issue_action(GUILD, MOD, USER, ActionType.MUTE, timeout_seconds=600)

    outcome, cancelled = await moderation.lift_action(GUILD, MOD, USER, ActionType.MUTE, "appeal")

    assert cancelled is True
    assert outcome.action.action is ActionType.UNMUTE
    assert outcome.action.reason == "appeal"
    assert await moderation.timeout_store.list_all() == []


@pytest.mark.asyncio
async def test_lift_action_rejects_irreversible_actions(moderation):
    with pytest.raises(ValueError):
        await moderation.lift_action(GUILD, MOD, USER, ActionType.KICK)


@pytest.mark.asyncio
async def test_handle_expiry_reverses_and_logs_as_bot(moderation):
    enforcer = AsyncMock()
    moderation.attach_platform(BOT, enforcer)

    await moderation.handle_expiry(GUILD, USER, ActionType.BAN)

    enforcer.reverse.assert_awaited_once_with(GUILD, USER, ActionType.BAN, reason=moderation.expiry_reason)
    logged = await moderation.get_case(GUILD, 1)
    assert logged.action is ActionType.UNBAN
    assert logged.moderator_id == BOT


@pytest.mark.asyncio
async def test_handle_expiry_logs_nothing_when_platform_refuses(moderation):
    enforcer = AsyncMock()
    enforcer.reverse.side_effect = RuntimeError("Unknown Guild")
    moderation.attach_platform(BOT, enforcer)

    with pytest.raises(ReversalFailed):
        await moderation.handle_expiry(GUILD, USER, ActionType.MUTE)

    assert await moderation.get_case(GUILD, 1) is None


@pytest.mark.asyncio
async def test_handle_expiry_without_platform_fails(moderation):
    moderation.attach_platform(BOT, None)

    with pytest.raises(ReversalFailed):
        await moderation.handle_expiry(GUILD, USER, ActionType.BAN)

    assert await moderation.get_case(GUILD, 1) is None


@pytest.mark.asyncio
async def test_restore_timeouts_lifts_expired_mutes(moderation, clock):
    enforcer = AsyncMock()
    moderation.attach_platform(BOT, enforcer)
    await moderation.timeout_store.upsert(MUTE_KEY, int(clock.now) - 10, timer_id=3)

    report = await moderation.restore_timeouts()

    assert report.fired == 1
    history = await moderation.get_history(GUILD, USER)
    enforcer.reverse.assert_awaited_once_with(GUILD, USER, ActionType.MUTE, reason=moderation.expiry_reason)
    assert [a.action for a in history] == [ActionType.UNMUTE]
    assert await moderation.timeout_store.list_all() == []


@pytest.mark.asyncio
async def test_restore_timeouts_keeps_row_when_platform_refuses(moderation, clock):
    enforcer = AsyncMock()
    enforcer.reverse.side_effect = RuntimeError("503 Service Unavailable")
    moderation.attach_platform(BOT, enforcer)
    await moderation.timeout_store.upsert(MUTE_KEY, int(clock.now) - 10, timer_id=3)

    report = await moderation.restore_timeouts()

    assert (report.fired, report.failed) == (0, 1)
    entry = await moderation.timeout_store.get(MUTE_KEY)
    assert entry is not None and entry.timer_id == 3
    assert moderation.scheduler.is_pending(3)
    assert await moderation.get_history(GUILD, USER) == []


@pytest.mark.asyncio
async def test_restore_timeouts_before_platform_keeps_row(moderation, clock):
    await moderation.timeout_store.upsert(MUTE_KEY, int(clock.now) - 10, timer_id=3)

    report = await moderation.restore_timeouts()

    assert report.fired == 0
    assert (await moderation.timeout_store.get(MUTE_KEY)).timer_id == 3
    assert await moderation.get_history(GUILD, USER) == []


@pytest.mark.asyncio
async def test_pending_timeout_can_be_cancelled_after_failed_lift(moderation, clock):
    enforcer = AsyncMock()
    enforcer.reverse.side_effect = RuntimeError("503 Service Unavailable")
    moderation.attach_platform(BOT, enforcer)
    await moderation.timeout_store.upsert(MUTE_KEY, int(clock.now) - 10, timer_id=3)
    await moderation.restore_timeouts()

    assert await moderation.cancel_timeout(GUILD, USER, ActionType.MUTE) is True
    assert not moderation.scheduler.is_pending(3)
    assert await moderation.timeout_store.list_all() == []


@pytest.mark.asyncio
async def test_warn_rule_management(moderation):
    await moderation.set_warn_rule(WarnEscalationRule(GUILD, 2, ActionType.MUTE, 600))

    assert [r.num_warns for r in await moderation.list_warn_rules(GUILD)] == [2]
    assert await moderation.remove_warn_rule(GUILD, 2) is True
    assert await moderation.list_warn_rules(GUILD) == []
