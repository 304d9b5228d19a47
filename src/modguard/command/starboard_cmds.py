"""Starboard configuration commands."""

from modguard.command.registry import MODERATOR_PERMISSIONS, command
from modguard.datatypes.command_datatypes import CommandContext, CommandResult
from modguard.datatypes.discord_datatypes import ChannelID
from modguard.datatypes.guild_settings import GuildSettings

STARBOARD_RESULT = CommandResult(should_save_servers=True, should_check_message=True)
UNCHANGED_RESULT = CommandResult(should_save_servers=False, should_check_message=True)


@command(
    "setstarboardchannel",
    "Sets the Starboard channel where the bot will star messages.",
    permissions=MODERATOR_PERMISSIONS,
    usage="[#channel]",
)
async def set_starboard_channel(settings: GuildSettings, ctx: CommandContext) -> CommandResult:
    # Always asks for a save, even when the channel was rejected.
    if not ctx.args:
        settings.starboard.channel_id = None
        await ctx.responder.reply(
            "Starboard Channel has been reset because there were no arguments. Please set a new one."
        )
        return STARBOARD_RESULT

    try:
        channel_id = ChannelID.from_mention(ctx.args[0])
    except ValueError:
        channel_id = None

    if channel_id is None or not ctx.responder.has_text_channel(channel_id):
        await ctx.responder.reply(
            "Channel was not found or is not a Text Channel. Please submit a valid text channel."
        )
        return STARBOARD_RESULT

    settings.starboard.channel_id = channel_id
    await ctx.responder.reply(f"Starboard Channel set to <#{channel_id}>.")
    return STARBOARD_RESULT


@command(
    "setstarboardthreshold",
    "Sets how many reactions a message needs to be starred.",
    permissions=MODERATOR_PERMISSIONS,
    usage="<count>",
)
async def set_starboard_threshold(settings: GuildSettings, ctx: CommandContext) -> CommandResult:
    if not ctx.args or not ctx.args[0].isdigit() or int(ctx.args[0]) < 1:
        await ctx.responder.reply("Threshold must be a whole number of at least 1.")
        return UNCHANGED_RESULT

    settings.starboard.threshold = int(ctx.args[0])
    await ctx.responder.reply(f"Starboard threshold set to {settings.starboard.threshold}.")
    return STARBOARD_RESULT
