"""
ModGuard Discord Moderation Bot
===============================

A Discord bot that checks messages against per-guild banned words and gives
moderators text commands for warns, mutes, kicks and bans, with timed mutes
and bans lifted automatically even across restarts.
"""

import os
import sys
from pathlib import Path


def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. MODGUARD_HOME environment variable, if set.
    2. If running in a frozen/compiled context, use the executable's directory.
    3. Otherwise, assume running from source and use the grandparent of this file's directory.
    """
    if env_home := os.getenv("MODGUARD_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]


BASE_DIR = resolve_base_dir()
os.chdir(BASE_DIR)

import asyncio
from dataclasses import dataclass
from typing import Optional

import discord
from dotenv import load_dotenv

import modguard.command  # noqa: F401  registers every text command
from modguard.cog import message_listener
from modguard.configuration.app_configuration import app_config
from modguard.database.database import database
from modguard.database.moderation_store import ActionLogStore, TimeoutStore, WarnEscalationTable
from modguard.scheduler.timeout_scheduler import TimeoutScheduler
from modguard.services.message_pipeline import MessagePipeline
from modguard.services.moderation_service import ModerationService
from modguard.settings.guild_settings_manager import GuildSettingsManager
from modguard.util.logger import get_logger, handle_exception

logger = get_logger("main")


@dataclass
class Runtime:
    """Services shared by the bot for the lifetime of the process."""
    settings_manager: GuildSettingsManager
    scheduler: TimeoutScheduler
    moderation: ModerationService
    pipeline: MessagePipeline


def load_environment() -> str:
    """Load environment variables and return the Discord bot token.

    Raises
    ------
    SystemExit
        If the required ``DISCORD_BOT_TOKEN`` variable is missing.
    """
    load_dotenv(dotenv_path=BASE_DIR / ".env")
    token = os.getenv("DISCORD_BOT_TOKEN")
    if not token:
        logger.critical("'DISCORD_BOT_TOKEN' environment variable not set. Bot cannot start.")
        sys.exit(1)
    return token


def build_intents() -> discord.Intents:
    """Intents for guild messages with content, and member lookups for timeouts."""
    intents = discord.Intents.default()
    intents.message_content = True
    intents.guilds = True
    intents.messages = True
    intents.members = True
    return intents


async def build_runtime(database_path: Optional[Path] = None) -> Runtime:
    """Open storage, load guild settings and wire up the services.

    Pending timeouts are not touched here. The listener cog reconciles them
    once the client is ready and the enforcer is attached, and holds message
    events back until that has finished.
    """
    await database.initialize(database_path or app_config.database_path)
    connections = database.connection_manager

    settings_manager = GuildSettingsManager(connections)
    await settings_manager.async_init()

    scheduler = TimeoutScheduler()
    moderation = ModerationService(
        ActionLogStore(connections),
        TimeoutStore(connections),
        WarnEscalationTable(connections),
        scheduler,
        expiry_reason=app_config.expiry_reason,
    )
    pipeline = MessagePipeline(
        settings_manager,
        moderation,
        prefix=app_config.command_prefix,
        default_response_message=app_config.default_response_message,
    )
    return Runtime(settings_manager, scheduler, moderation, pipeline)


def create_bot(runtime: Runtime) -> discord.Bot:
    """Instantiate the Discord bot and register its cogs."""
    bot = discord.Bot(intents=build_intents())
    message_listener.setup(bot, runtime.pipeline, runtime.moderation)
    logger.info("All cogs loaded successfully.")
    return bot


async def start_bot(bot: discord.Bot, token: str) -> None:
    """Start the Discord bot and log around the connection lifecycle."""
    logger.info("Attempting to connect to Discord…")
    try:
        await bot.start(token)
    except asyncio.CancelledError:
        logger.info("Discord bot start cancelled; shutting down")
    finally:
        logger.info("Discord bot start routine finished.")


async def shutdown_runtime(bot: discord.Bot | None, runtime: Runtime | None) -> None:
    """Stop the bot, timers and storage in that order."""
    if bot is not None and not bot.is_closed():
        try:
            await bot.close()
        except Exception as exc:
            logger.exception("Error while closing the Discord client: %s", exc)

    if runtime is not None:
        await runtime.scheduler.shutdown()
        saved = await runtime.settings_manager.save_all()
        logger.info("Persisted %d guild settings", saved)

    await database.shutdown()
    logger.info("Shutdown complete.")


async def async_main() -> int:
    """Bootstrap storage, timers and the bot, returning an exit code."""
    token = load_environment()

    runtime = None
    bot = None
    try:
        try:
            logger.info("Initializing database and guild settings...")
            runtime = await build_runtime()
        except Exception as exc:
            logger.critical("Failed to initialize storage: %s", exc)
            return 1

        try:
            bot = create_bot(runtime)
        except Exception as exc:
            logger.critical("Failed to initialize Discord bot: %s", exc)
            return 1

        try:
            await start_bot(bot, token)
        except Exception as exc:
            logger.critical("Discord bot runtime error: %s", exc)
            return 1
        return 0
    finally:
        await shutdown_runtime(bot, runtime)


def main() -> int:
    """Entrypoint that runs the async runtime and returns the process exit code."""
    sys.excepthook = handle_exception
    logger.info("Starting ModGuard…")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except SystemExit as exit_exc:
        code = exit_exc.code
        if isinstance(code, int):
            return code
        return 1
    except Exception as exc:
        logger.critical("An unexpected error occurred while running the bot: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
