"""General commands available to everyone."""

from modguard.command.registry import command, has_permissions, list_commands
from modguard.datatypes.command_datatypes import CommandContext, CommandResult
from modguard.datatypes.guild_settings import GuildSettings

HELP_RESULT = CommandResult(should_save_servers=False, should_check_message=False)


@command("help", "List the commands you can use.")
async def help_command(settings: GuildSettings, ctx: CommandContext) -> CommandResult:
    granted = ctx.message.author_permissions
    lines = ["**Available commands**"]
    for spec in list_commands():
        if not has_permissions(granted, spec.required_permissions):
            continue
        usage = f" {spec.usage}" if spec.usage else ""
        lines.append(f"`{spec.name}{usage}` - {spec.description}")
    await ctx.responder.reply("\n".join(lines))
    return HELP_RESULT
