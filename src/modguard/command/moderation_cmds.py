"""
Manual moderation commands and warn escalation configuration.

Platform enforcement happens first: an action that the platform refused is
never logged. Once logged, a timer failure is reported but not undone.
"""

from typing import Optional, Sequence, Tuple

from modguard.command.registry import MODERATOR_PERMISSIONS, command
from modguard.datatypes.action_datatypes import MAX_MUTE_SECONDS, ActionType, ModerationOutcome, WarnEscalationRule
from modguard.datatypes.command_datatypes import CommandContext, CommandResult
from modguard.datatypes.discord_datatypes import UserID
from modguard.datatypes.guild_settings import GuildSettings
from modguard.exceptions import StorageUnavailable
from modguard.util.format_utils import format_case, format_duration, parse_duration
from modguard.util.logger import get_logger

logger = get_logger("moderation_cmds")

MODERATION_RESULT = CommandResult(should_save_servers=False, should_check_message=False)
HISTORY_LIMIT = 10


def parse_target(args: Sequence[str]) -> Optional[UserID]:
    if not args:
        return None
    try:
        return UserID.from_mention(args[0])
    except ValueError:
        return None


def split_duration(args: Sequence[str]) -> Tuple[Optional[int], Optional[str]]:
    """Split ``[duration] [reason...]``; the first word is a duration only if it parses as one."""
    if not args:
        return None, None
    duration = parse_duration(args[0])
    rest = args[1:] if duration is not None else args
    reason = " ".join(rest).strip() or None
    return duration, reason


def mute_too_long(action: ActionType, duration: Optional[int]) -> bool:
    return action is ActionType.MUTE and duration is not None and duration > MAX_MUTE_SECONDS


MUTE_LIMIT_MESSAGE = f"Mutes can last at most {format_duration(MAX_MUTE_SECONDS)}."


def describe(outcome: ModerationOutcome, verb: str) -> str:
    record = outcome.action
    text = f"Case #{record.case_id}: {verb} <@{record.user_id}>"
    if outcome.timeout_scheduled:
        text += f" for {format_duration(record.timeout_seconds)}"
    if record.reason:
        text += f" ({record.reason})"
    if outcome.warning:
        text += f"\n⚠️ {outcome.warning}"
    return text


async def _enforce(ctx: CommandContext, target: UserID, action: ActionType, reason, duration, *, lift: bool = False) -> bool:
    if ctx.enforcer is None:
        return True
    try:
        if lift:
            await ctx.enforcer.reverse(ctx.guild_id, target, action, reason=reason or "Lifted by a moderator.")
        else:
            await ctx.enforcer.apply(ctx.guild_id, target, action, reason=reason, duration_seconds=duration)
    except Exception as exc:
        logger.warning(
            "[MODERATION CMDS] Could not %s %s in guild %s: %s",
            action.reversal.value if lift and action.reversal else action.value, target, ctx.guild_id, exc,
        )
        await ctx.responder.reply(f"❌ Could not apply this action: {exc}")
        return False
    return True


async def _apply(ctx: CommandContext, action: ActionType, verb: str, *, timed: bool) -> CommandResult:
    target = parse_target(ctx.args)
    if target is None:
        await ctx.responder.reply("Please mention a user or give their ID.")
        return MODERATION_RESULT

    if timed:
        duration, reason = split_duration(ctx.args[1:])
    else:
        duration, reason = None, " ".join(ctx.args[1:]).strip() or None

    if mute_too_long(action, duration):
        await ctx.responder.reply(MUTE_LIMIT_MESSAGE)
        return MODERATION_RESULT

    if not await _enforce(ctx, target, action, reason, duration):
        return MODERATION_RESULT

    try:
        outcome = await ctx.moderation.issue_action(
            ctx.guild_id, ctx.author_id, target, action, reason, timeout_seconds=duration,
        )
    except StorageUnavailable:
        logger.exception("[MODERATION CMDS] Failed to log %s for %s", action.value, target)
        await ctx.responder.reply("⚠️ The action was applied but could not be logged.")
        return MODERATION_RESULT

    await ctx.responder.reply(describe(outcome, verb))
    return MODERATION_RESULT


async def _lift(ctx: CommandContext, action: ActionType, verb: str) -> CommandResult:
    target = parse_target(ctx.args)
    if target is None:
        await ctx.responder.reply("Please mention a user or give their ID.")
        return MODERATION_RESULT

    reason = " ".join(ctx.args[1:]).strip() or None
    if not await _enforce(ctx, target, action, reason, None, lift=True):
        return MODERATION_RESULT

    try:
        outcome, cancelled = await ctx.moderation.lift_action(ctx.guild_id, ctx.author_id, target, action, reason)
    except StorageUnavailable:
        logger.exception("[MODERATION CMDS] Failed to log %s lift for %s", action.value, target)
        await ctx.responder.reply("⚠️ The action was lifted but could not be logged.")
        return MODERATION_RESULT

    text = describe(outcome, verb)
    if cancelled:
        text += "\nThe pending expiry was cancelled."
    await ctx.responder.reply(text)
    return MODERATION_RESULT


@command("warn", "Warn a user, escalating if a warn rule matches.", permissions=MODERATOR_PERMISSIONS, usage="<@user> [reason]")
async def warn(settings: GuildSettings, ctx: CommandContext) -> CommandResult:
    target = parse_target(ctx.args)
    if target is None:
        await ctx.responder.reply("Please mention a user or give their ID.")
        return MODERATION_RESULT

    reason = " ".join(ctx.args[1:]).strip() or None
    try:
        result = await ctx.moderation.warn_and_escalate(ctx.guild_id, ctx.author_id, target, reason)
    except StorageUnavailable:
        logger.exception("[MODERATION CMDS] Failed to warn %s", target)
        await ctx.responder.reply("❌ The warn could not be logged.")
        return MODERATION_RESULT

    lines = [describe(result.warn, "warned"), f"They now have {result.warn_count} logged action(s)."]
    if result.escalation is not None:
        lines.append(describe(result.escalation, f"automatically {result.escalation.action.action.value}"))
    await ctx.responder.reply("\n".join(lines))
    return MODERATION_RESULT


@command("mute", "Mute a user, optionally for a duration (e.g. 10m, 2h, 1d).", permissions=MODERATOR_PERMISSIONS, usage="<@user> [duration] [reason]")
async def mute(settings: GuildSettings, ctx: CommandContext) -> CommandResult:
    return await _apply(ctx, ActionType.MUTE, "muted", timed=True)


@command("unmute", "Lift a mute and cancel its expiry.", permissions=MODERATOR_PERMISSIONS, usage="<@user> [reason]")
async def unmute(settings: GuildSettings, ctx: CommandContext) -> CommandResult:
    return await _lift(ctx, ActionType.MUTE, "unmuted")


@command("kick", "Kick a user.", permissions=MODERATOR_PERMISSIONS, usage="<@user> [reason]")
async def kick(settings: GuildSettings, ctx: CommandContext) -> CommandResult:
    return await _apply(ctx, ActionType.KICK, "kicked", timed=False)


@command("ban", "Ban a user, optionally for a duration (e.g. 1d, 1w).", permissions=MODERATOR_PERMISSIONS, usage="<@user> [duration] [reason]")
async def ban(settings: GuildSettings, ctx: CommandContext) -> CommandResult:
    return await _apply(ctx, ActionType.BAN, "banned", timed=True)


@command("unban", "Lift a ban and cancel its expiry.", permissions=MODERATOR_PERMISSIONS, usage="<@user> [reason]")
async def unban(settings: GuildSettings, ctx: CommandContext) -> CommandResult:
    return await _lift(ctx, ActionType.BAN, "unbanned")


@command(
    "setwarnaction",
    "Set the action taken when a user reaches a number of logged actions.",
    permissions=MODERATOR_PERMISSIONS,
    usage="<count> <mute|kick|ban> [duration]",
)
async def set_warn_action(settings: GuildSettings, ctx: CommandContext) -> CommandResult:
    if len(ctx.args) < 2 or not ctx.args[0].isdigit():
        await ctx.responder.reply("Usage: setwarnaction <count> <mute|kick|ban> [duration]")
        return MODERATION_RESULT

    duration = None
    if len(ctx.args) > 2:
        duration = parse_duration(ctx.args[2])
        if duration is None:
            await ctx.responder.reply(f"`{ctx.args[2]}` is not a valid duration.")
            return MODERATION_RESULT

    try:
        action = ActionType.parse(ctx.args[1])
        if mute_too_long(action, duration):
            raise ValueError(MUTE_LIMIT_MESSAGE)
        rule = WarnEscalationRule(ctx.guild_id, int(ctx.args[0]), action, duration)
        await ctx.moderation.set_warn_rule(rule)
    except ValueError as exc:
        await ctx.responder.reply(f"❌ {exc}")
        return MODERATION_RESULT
    except StorageUnavailable:
        logger.exception("[MODERATION CMDS] Failed to save warn rule in guild %s", ctx.guild_id)
        await ctx.responder.reply("❌ The rule could not be saved.")
        return MODERATION_RESULT

    suffix = f" for {format_duration(duration)}" if duration else ""
    await ctx.responder.reply(f"At {rule.num_warns} logged actions users will be {rule.action.value}{suffix}.")
    return MODERATION_RESULT


@command("removewarnaction", "Remove a warn escalation rule.", permissions=MODERATOR_PERMISSIONS, usage="<count>")
async def remove_warn_action(settings: GuildSettings, ctx: CommandContext) -> CommandResult:
    if not ctx.args or not ctx.args[0].isdigit():
        await ctx.responder.reply("Usage: removewarnaction <count>")
        return MODERATION_RESULT

    try:
        removed = await ctx.moderation.remove_warn_rule(ctx.guild_id, int(ctx.args[0]))
    except StorageUnavailable:
        logger.exception("[MODERATION CMDS] Failed to remove warn rule in guild %s", ctx.guild_id)
        await ctx.responder.reply("❌ The rule could not be removed.")
        return MODERATION_RESULT

    if removed:
        await ctx.responder.reply(f"Removed the rule for {ctx.args[0]} logged actions.")
    else:
        await ctx.responder.reply(f"There is no rule for {ctx.args[0]} logged actions.")
    return MODERATION_RESULT


@command("listwarnactions", "List warn escalation rules.", permissions=MODERATOR_PERMISSIONS)
async def list_warn_actions(settings: GuildSettings, ctx: CommandContext) -> CommandResult:
    try:
        rules = await ctx.moderation.list_warn_rules(ctx.guild_id)
    except StorageUnavailable:
        logger.exception("[MODERATION CMDS] Failed to list warn rules in guild %s", ctx.guild_id)
        await ctx.responder.reply("❌ Warn rules are unavailable right now.")
        return MODERATION_RESULT

    if not rules:
        await ctx.responder.reply("No warn escalation rules are set.")
        return MODERATION_RESULT

    lines = ["**Warn escalation rules**"]
    for rule in rules:
        suffix = f" for {format_duration(rule.duration_seconds)}" if rule.duration_seconds else ""
        lines.append(f"{rule.num_warns} → {rule.action.value}{suffix}")
    await ctx.responder.reply("\n".join(lines))
    return MODERATION_RESULT


@command("case", "Show a logged case, or a user's recent cases.", permissions=MODERATOR_PERMISSIONS, usage="<case number | @user>")
async def case(settings: GuildSettings, ctx: CommandContext) -> CommandResult:
    if not ctx.args:
        await ctx.responder.reply("Usage: case <case number | @user>")
        return MODERATION_RESULT

    try:
        if ctx.args[0].isdigit():
            found = await ctx.moderation.get_case(ctx.guild_id, int(ctx.args[0]))
            text = format_case(found) if found else f"Case #{ctx.args[0]} does not exist."
        else:
            target = parse_target(ctx.args)
            if target is None:
                await ctx.responder.reply("Please give a case number or mention a user.")
                return MODERATION_RESULT
            history = await ctx.moderation.get_history(ctx.guild_id, target, HISTORY_LIMIT)
            text = "\n".join(format_case(item) for item in history) or f"<@{target}> has no logged cases."
    except StorageUnavailable:
        logger.exception("[MODERATION CMDS] Failed to read cases in guild %s", ctx.guild_id)
        text = "❌ Cases are unavailable right now."

    await ctx.responder.reply(text)
    return MODERATION_RESULT
