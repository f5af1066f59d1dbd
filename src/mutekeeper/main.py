"""
Mutekeeper
==========

A Discord bot process that keeps temporary mutes durable: mutes are stored
with an absolute deadline, re-armed after a restart, lifted on time, and
re-applied when a muted member leaves and rejoins.
"""

import os
import sys
from pathlib import Path


def resolve_base_dir() -> Path:
    """Determine the project base directory.

    Resolution order:
    1. MUTEKEEPER_HOME environment variable, if set.
    2. The executable's directory when running frozen/compiled.
    3. Otherwise the repository root (two levels above this package).
    """
    if env_home := os.getenv("MUTEKEEPER_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]


BASE_DIR = resolve_base_dir()
os.chdir(BASE_DIR)

import asyncio
from dataclasses import dataclass

import discord
from dotenv import load_dotenv

from mutekeeper.cog import sanction_listener
from mutekeeper.configuration.app_configuration import app_config
from mutekeeper.database.db_connection import db_connection
from mutekeeper.database.db_schema import initialize_database
from mutekeeper.moderation.directory import DiscordDirectory
from mutekeeper.moderation.expiry_scheduler import ExpiryScheduler
from mutekeeper.moderation.mute_service import MuteService
from mutekeeper.moderation.rejoin_reconciler import RejoinReconciler
from mutekeeper.repositories.sanction_repo import SanctionStore
from mutekeeper.util.logger import get_logger, handle_exception


logger = get_logger("main")


@dataclass
class Runtime:
    """Objects shared by the running bot."""
    bot: discord.Bot
    store: SanctionStore
    scheduler: ExpiryScheduler
    reconciler: RejoinReconciler
    mutes: MuteService


def load_environment() -> str:
    """Load ``.env`` and return the Discord bot token.

    Raises
    ------
    SystemExit
        If ``DISCORD_BOT_TOKEN`` is missing.
    """
    load_dotenv(dotenv_path=BASE_DIR / ".env")
    token = os.getenv("DISCORD_BOT_TOKEN")
    if not token:
        logger.critical("'DISCORD_BOT_TOKEN' environment variable not set. Bot cannot start.")
        sys.exit(1)
    return token


def build_intents() -> discord.Intents:
    """Intents for guild and member events; member events drive rejoin reconciliation."""
    intents = discord.Intents.default()
    intents.guilds = True
    intents.members = True
    return intents


def create_runtime() -> Runtime:
    """Instantiate the bot and the sanction engine and register the listener cog."""
    bot = discord.Bot(intents=build_intents())
    directory = DiscordDirectory(bot)
    store = SanctionStore(db_connection)
    scheduler = ExpiryScheduler(store, directory, restore_reason=app_config.restore_reason)
    reconciler = RejoinReconciler(store, directory, rejoin_reason=app_config.rejoin_reason)
    mutes = MuteService(store, directory, scheduler, default_duration_seconds=app_config.default_mute_seconds)

    sanction_listener.setup(bot, scheduler, reconciler)
    logger.info("All cogs loaded successfully.")
    return Runtime(bot=bot, store=store, scheduler=scheduler, reconciler=reconciler, mutes=mutes)


async def start_bot(bot: discord.Bot, token: str) -> None:
    logger.info("Attempting to connect to Discord…")
    try:
        await bot.start(token)
    except asyncio.CancelledError:
        logger.info("Discord bot start cancelled; shutting down")
    finally:
        logger.info("Discord bot start routine finished.")


async def shutdown_runtime(runtime: Runtime | None) -> None:
    """Stop timers, close the Discord client and close the database."""
    if runtime is not None:
        try:
            await runtime.scheduler.shutdown()
        except Exception as exc:
            logger.exception("Error during scheduler shutdown: %s", exc)

        if not runtime.bot.is_closed():
            await runtime.bot.close()

    await db_connection.close()
    logger.info("Shutdown complete.")


async def async_main() -> int:
    """Bootstrap the database and the bot, returning an exit code."""
    token = load_environment()

    try:
        logger.info("Initializing database at %s…", app_config.database_path)
        await initialize_database(app_config.database_path, db_connection)
    except Exception as exc:
        logger.critical("Failed to initialize database: %s", exc)
        return 1

    if app_config.mute_role_id is None:
        logger.warning("No mute role configured (mute.role_id); only stored mutes will be processed.")

    try:
        runtime = create_runtime()
    except Exception as exc:
        logger.critical("Failed to initialize Discord bot: %s", exc)
        await shutdown_runtime(None)
        return 1

    exit_code = 0
    try:
        await start_bot(runtime.bot, token)
    except discord.LoginFailure as exc:
        logger.critical("Discord rejected the bot token: %s", exc)
        exit_code = 1
    except Exception as exc:
        logger.critical("Discord bot runtime error: %s", exc)
        exit_code = 1
    finally:
        await shutdown_runtime(runtime)

    return exit_code


def main() -> int:
    """Console entrypoint; returns the process exit code."""
    logger.info("Starting Mutekeeper…")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except SystemExit as exit_exc:
        code = exit_exc.code
        if isinstance(code, int):
            return code
        return 0 if code is None else 1


if __name__ == "__main__":
    sys.excepthook = handle_exception
    sys.exit(main())
