"""
Kirby Welcome Bot
=================

A Discord bot that greets new members with a configurable text or image
welcome message, set up per server through slash commands.
"""

import os
import sys
from pathlib import Path


def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. KIRBY_HOME environment variable, if set.
    2. If running in a frozen/compiled context (e.g., PyInstaller, Nuitka), use the executable's directory.
    3. Otherwise, assume running from source and use the grandparent of this file's directory.
    """
    if env_home := os.getenv("KIRBY_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]


BASE_DIR = resolve_base_dir()
os.chdir(BASE_DIR)

import asyncio
import discord
from dotenv import load_dotenv

from kirby.cog.commands import welcome_cmds
from kirby.cog.listener import events_listener
from kirby.configuration.app_configuration import AppConfig, app_config
from kirby.database.db_connection import ConnectionPool
from kirby.exceptions import AssetLoadError, StoreError
from kirby.settings.guild_welcome_store import GuildWelcomeStore
from kirby.util.asset_cache import AssetCache
from kirby.util.logger import get_logger
from kirby.welcome.welcome_service import WelcomeService


logger = get_logger("main")


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
    """Intents for guild lifecycle and member join events."""
    intents = discord.Intents.default()
    intents.guilds = True
    intents.members = True
    return intents


def build_store(config: AppConfig, assets: AssetCache) -> GuildWelcomeStore:
    """Create the welcome store over a pool sized from the configuration."""
    config.database_path.parent.mkdir(parents=True, exist_ok=True)
    pool = ConnectionPool(
        config.database_path,
        size=config.pool_size,
        acquire_timeout=config.acquire_timeout,
    )
    return GuildWelcomeStore(pool, defaults=config.welcome_defaults, image_keys=assets.image_names)


def load_cogs(
    bot: discord.Bot,
    store: GuildWelcomeStore,
    service: WelcomeService,
    config: AppConfig,
) -> None:
    """Register all cogs, handing each the shared store and welcome service."""
    welcome_cmds.setup(bot, store=store, service=service, reset_prompt_seconds=config.reset_prompt_seconds)
    events_listener.setup(bot, store=store, service=service)
    logger.info("All cogs loaded successfully.")


def create_bot(store: GuildWelcomeStore, service: WelcomeService, config: AppConfig) -> discord.Bot:
    """Instantiate the Discord bot and register all cogs."""
    bot = discord.Bot(intents=build_intents())
    load_cogs(bot, store, service, config)
    return bot


async def start_bot(bot: discord.Bot, token: str) -> None:
    """Start the Discord bot and log around the connection."""
    logger.info("Attempting to connect to Discord…")
    try:
        await bot.start(token)
    except asyncio.CancelledError:
        logger.info("Discord bot start cancelled; shutting down")
    finally:
        logger.info("Discord bot start routine finished.")


async def shutdown_runtime(bot: discord.Bot | None, store: GuildWelcomeStore) -> None:
    """Close the Discord connection, then the welcome store."""
    if bot is not None and not bot.is_closed():
        try:
            await bot.close()
        except Exception as exc:
            logger.exception("Error while closing the Discord bot: %s", exc)

    try:
        await store.close()
    except StoreError as exc:
        logger.exception("Error during welcome store shutdown: %s", exc)

    logger.info("Shutdown complete.")


async def async_main(config: AppConfig = app_config) -> int:
    """Bootstrap assets, storage and the bot, returning an exit code."""
    token = load_environment()

    try:
        assets = AssetCache.load(config.assets_dir)
    except AssetLoadError as exc:
        logger.critical("Failed to load assets from %s: %s", config.assets_dir, exc)
        return 1

    store = build_store(config, assets)
    try:
        logger.info("Opening welcome database at %s...", config.database_path)
        await store.open()
    except StoreError as exc:
        logger.critical("Failed to initialize database: %s", exc)
        return 1

    service = WelcomeService(
        store,
        assets,
        default_image_key=config.welcome_defaults.image_key,
        font_family=config.font_family,
    )

    bot = None
    exit_code = 0
    try:
        bot = create_bot(store, service, config)
        await start_bot(bot, token)
    except discord.LoginFailure as exc:
        logger.critical("Discord rejected the bot token: %s", exc)
        exit_code = 1
    except Exception as exc:
        logger.critical("Discord bot runtime error: %s", exc)
        exit_code = 1
    finally:
        await shutdown_runtime(bot, store)

    return exit_code


def main() -> int:
    """Entrypoint that runs the async runtime and returns the process exit code."""
    logger.info("Starting Kirby…")
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


if __name__ == "__main__":
    sys.exit(main())
