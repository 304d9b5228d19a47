"""
Commands that configure the banned-word checker.

Word-list edits ask for the guild to be saved but skip checking the command
message itself, so adding a word never flags the message that added it.
"""

from typing import List, Optional

from modguard.command.registry import MODERATOR_PERMISSIONS, command
from modguard.datatypes.command_datatypes import CommandContext, CommandResult
from modguard.datatypes.discord_datatypes import ChannelID
from modguard.datatypes.guild_settings import GuildSettings

NO_ARGUMENTS = "No arguments supplied."
INCORRECT_BOOLEAN = 'Incorrect format. Use only "true" or "false".'

WORDS_CHANGED = CommandResult(should_save_servers=True, should_check_message=False)
WORDS_LISTED = CommandResult(should_save_servers=False, should_check_message=False)
SETTING_CHANGED = CommandResult(should_save_servers=True, should_check_message=True)
SETTING_UNCHANGED = CommandResult(should_save_servers=False, should_check_message=True)


def parse_bool(text: str) -> Optional[bool]:
    lowered = text.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return None


def _summarise(done_label: str, done: List[str], failed_label: str, failed: List[str], hint: str) -> str:
    lines = []
    if done:
        lines.append(f"✅ {done_label}: {', '.join(done)}")
    if failed:
        lines.append(f"❌ {failed_label}: {', '.join(failed)}")
        lines.append(hint)
    return "\n".join(lines)


@command("addwords", "Add word(s) to the blacklist.", permissions=MODERATOR_PERMISSIONS, usage="<word> [word...]")
async def add_words(settings: GuildSettings, ctx: CommandContext) -> CommandResult:
    if not ctx.args:
        await ctx.responder.reply(NO_ARGUMENTS)
        return WORDS_CHANGED

    added, skipped = [], []
    for word in ctx.args:
        (added if settings.message_checker.add_banned_word(word) else skipped).append(word)

    await ctx.responder.reply(_summarise(
        "Added", added, "Unable to add", skipped, "Perhaps those word(s) are already added?",
    ))
    return WORDS_CHANGED


@command("removewords", "Remove word(s) from the blacklist.", permissions=MODERATOR_PERMISSIONS, usage="<word> [word...]")
async def remove_words(settings: GuildSettings, ctx: CommandContext) -> CommandResult:
    if not ctx.args:
        await ctx.responder.reply(NO_ARGUMENTS)
        return WORDS_CHANGED

    removed, missing = [], []
    for word in ctx.args:
        (removed if settings.message_checker.remove_banned_word(word) else missing).append(word)

    await ctx.responder.reply(_summarise(
        "Removed", removed, "Unable to remove", missing, "Perhaps those word(s) are not on the list?",
    ))
    return WORDS_CHANGED


@command("listwords", "Show the blacklist.", permissions=MODERATOR_PERMISSIONS)
async def list_words(settings: GuildSettings, ctx: CommandContext) -> CommandResult:
    words = sorted(settings.message_checker.banned_words)
    if not words:
        await ctx.responder.reply("The blacklist is empty.")
    else:
        await ctx.responder.reply("Banned words: " + ", ".join(f"`{word}`" for word in words))
    return WORDS_LISTED


@command(
    "setreportingchannel",
    "Sets the channel where blacklisted messages are reported. No argument turns reporting off.",
    permissions=MODERATOR_PERMISSIONS,
    usage="[#channel]",
)
async def set_reporting_channel(settings: GuildSettings, ctx: CommandContext) -> CommandResult:
    checker = settings.message_checker
    if not ctx.args:
        checker.reporting_channel_id = None
        await ctx.responder.reply("Reporting channel has been reset.")
        return SETTING_CHANGED

    try:
        channel_id = ChannelID.from_mention(ctx.args[0])
    except ValueError:
        await ctx.responder.reply("Channel was not found. Please submit a valid channel.")
        return SETTING_UNCHANGED

    if not ctx.responder.has_text_channel(channel_id):
        await ctx.responder.reply("Channel was not found or is not a text channel.")
        return SETTING_UNCHANGED

    checker.reporting_channel_id = channel_id
    await ctx.responder.reply(f"Reporting channel set to <#{channel_id}>.")
    return SETTING_CHANGED


@command(
    "setresponsemessage",
    "Sets the message DMed to users who use a blacklisted word. No argument restores the default.",
    permissions=MODERATOR_PERMISSIONS,
    usage="[message]",
)
async def set_response_message(settings: GuildSettings, ctx: CommandContext) -> CommandResult:
    message = " ".join(ctx.args).strip()
    settings.message_checker.response_message = message or None
    if message:
        await ctx.responder.reply(f"Response message set to: {message}")
    else:
        await ctx.responder.reply("Response message reset to the default.")
    return SETTING_CHANGED


async def _set_flag(settings: GuildSettings, ctx: CommandContext, attribute: str, title: str) -> CommandResult:
    if not ctx.args:
        await ctx.responder.reply(f"{title}: {NO_ARGUMENTS}")
        return SETTING_UNCHANGED

    value = parse_bool(ctx.args[0])
    if value is None:
        await ctx.responder.reply(f"{title}: {INCORRECT_BOOLEAN}")
        return SETTING_UNCHANGED

    setattr(settings.message_checker, attribute, value)
    await ctx.responder.reply(f"{title} set to: **{'TRUE' if value else 'FALSE'}**")
    return SETTING_CHANGED


@command(
    "setdeletemessage",
    "Sets whether the bot should delete instances of blacklisted words being used.",
    permissions=MODERATOR_PERMISSIONS,
    usage="<true|false>",
)
async def set_delete_message(settings: GuildSettings, ctx: CommandContext) -> CommandResult:
    return await _set_flag(settings, ctx, "delete_message", "Delete Message")


@command(
    "setwarnonmatch",
    "Sets whether users who use a blacklisted word are automatically warned.",
    permissions=MODERATOR_PERMISSIONS,
    usage="<true|false>",
)
async def set_warn_on_match(settings: GuildSettings, ctx: CommandContext) -> CommandResult:
    return await _set_flag(settings, ctx, "warn_on_match", "Warn On Match")
