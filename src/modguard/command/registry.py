"""
Command lookup table.

Each command is a :class:`CommandSpec` registered by the ``@command``
decorator. Dispatch resolves the name, checks the author's permissions and
runs the handler against the guild's settings.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, FrozenSet, Iterable, List, Optional

from modguard.datatypes.command_datatypes import (
    NO_PERMISSIONS,
    CommandContext,
    CommandResult,
)
from modguard.datatypes.guild_settings import GuildSettings
from modguard.util.logger import get_logger

logger = get_logger("command_registry")

CommandHandler = Callable[[GuildSettings, CommandContext], Awaitable[CommandResult]]

ADMINISTRATOR = "administrator"
MODERATOR_PERMISSIONS = frozenset({"kick_members", "ban_members"})


@dataclass(frozen=True, slots=True)
class CommandSpec:
    name: str
    description: str
    required_permissions: FrozenSet[str]
    handler: CommandHandler
    usage: str = ""


COMMANDS: Dict[str, CommandSpec] = {}


def command(
    name: str,
    description: str,
    *,
    permissions: Iterable[str] = (),
    usage: str = "",
) -> Callable[[CommandHandler], CommandHandler]:
    """Register the decorated coroutine as the handler for ``name``."""

    def decorator(handler: CommandHandler) -> CommandHandler:
        if name in COMMANDS:
            raise ValueError(f"Command {name!r} is already registered")
        COMMANDS[name] = CommandSpec(
            name=name,
            description=description,
            required_permissions=frozenset(permissions),
            handler=handler,
            usage=usage,
        )
        return handler

    return decorator


def get_command(name: str) -> Optional[CommandSpec]:
    return COMMANDS.get(name.lower())


def list_commands() -> List[CommandSpec]:
    return sorted(COMMANDS.values(), key=lambda spec: spec.name)


def has_permissions(granted: FrozenSet[str], required: FrozenSet[str]) -> bool:
    """True when ``granted`` covers ``required``; administrators pass every check."""
    if ADMINISTRATOR in granted:
        return True
    return required <= granted


async def dispatch(name: str, settings: GuildSettings, ctx: CommandContext) -> CommandResult:
    """
    Run a parsed command.

    Args:
        name: Command name as parsed.
        settings: The guild's live settings; handlers mutate them in place.
        ctx: Message, arguments and collaborators.

    Returns:
        CommandResult from the handler, or NO_PERMISSIONS for unknown commands
        and permission failures.
    """
    spec = get_command(name)
    if spec is None:
        await ctx.responder.reply(f"Unknown command `{name}`. Use `help` to list commands.")
        return NO_PERMISSIONS

    if not has_permissions(ctx.message.author_permissions, spec.required_permissions):
        logger.info(
            "[COMMANDS] %s tried to run %s in guild %s without permission",
            ctx.author_id, spec.name, ctx.guild_id,
        )
        await ctx.responder.reply("You do not have permission to use this command.")
        return NO_PERMISSIONS

    logger.debug("[COMMANDS] Running %s for %s in guild %s", spec.name, ctx.author_id, ctx.guild_id)
    return await spec.handler(settings, ctx)
