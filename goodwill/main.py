import asyncio
import logging
import sys
from datetime import datetime, UTC
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

import discord
from discord.ext import commands
from dotenv import load_dotenv

# Load .env file FIRST (before any config imports)
load_dotenv()

from goodwill.config import BotConfig
from goodwill.core.config_system import CogConfigSchema, ConfigManager
from goodwill.core.errors import ErrorCategory, ErrorSeverity, error_handler
from goodwill.core.stats.database import Database
from goodwill.core.system_config import SystemConfig
from goodwill.version import VERSION_HISTORY, get_version

LOG_FORMAT = "[%(asctime)s] [%(levelname)-8s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

EXTENSIONS = [
    "goodwill.cogs.errors",
    "goodwill.cogs.activity.tracker",
    "goodwill.cogs.activity.presence",
    "goodwill.cogs.admin.guild_config",
]

logger = logging.getLogger("goodwill")


def setup_logging(log_level_name: str, log_dir: str) -> None:
    """Console plus a midnight-rotated file, shared by the bot and discord.py loggers."""
    Path(log_dir).mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    file_handler = TimedRotatingFileHandler(
        str(Path(log_dir) / "goodwill.log"),
        when="midnight",
        interval=1,
        backupCount=7,
        encoding="utf-8"
    )
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    log_level = getattr(logging, log_level_name.upper(), logging.INFO)

    for name in ("goodwill", "discord"):
        log = logging.getLogger(name)
        log.handlers.clear()
        log.setLevel(log_level if name == "goodwill" else max(log_level, logging.INFO))
        log.addHandler(console_handler)
        log.addHandler(file_handler)
        log.propagate = False


class GoodwillBot(commands.Bot):
    """Bot with the config manager and activity database attached."""

    def __init__(self, config: BotConfig, config_manager: ConfigManager):
        intents = discord.Intents.default()
        intents.guilds = True
        intents.members = True
        intents.voice_states = True
        intents.messages = True
        intents.message_content = True

        super().__init__(
            command_prefix=config.command_prefix,
            intents=intents,
            owner_id=config.bot_owner_id,
        )
        self.config = config
        self.config_manager = config_manager
        self.db = Database(config.database_path)
        self.start_time = datetime.now(UTC)

    async def setup_hook(self):
        """Open the database, then load cogs (cogs register their config schemas)."""
        await self.db.connect()

        for extension in EXTENSIONS:
            await self.load_extension(extension)

    async def on_ready(self):
        version = get_version()
        logger.info(f"🤖 Bot Version: {version}")
        if version in VERSION_HISTORY:
            logger.info(f"   {VERSION_HISTORY[version]}")

        logger.info(f"✅ Logged in as {self.user} (ID: {self.user.id})")
        logger.info(f"🎮 Command prefix: {self.config.command_prefix}")

    async def on_disconnect(self):
        logger.warning("⚠️ Disconnected from Discord")

    async def on_resumed(self):
        logger.info("✅ Reconnected to Discord (session resumed)")

    async def on_error(self, event_method: str, *args, **kwargs):
        """Errors raised by event listeners outside of commands."""
        error = sys.exc_info()[1]
        if error is None:
            return
        error_handler.log_error(
            error,
            context={"event": event_method},
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.INTERNAL
        )

    async def close(self):
        await super().close()
        if self.db.is_connected:
            await self.db.close()
        logger.info("👋 Bot shut down, database closed")


def build_config_manager() -> ConfigManager:
    config_manager = ConfigManager()
    config_manager.register_schema("System", CogConfigSchema.from_dataclass("System", SystemConfig))
    logger.info("⚙️ Unified configuration system initialized")
    return config_manager


async def main():
    """Main async entry point."""
    config = BotConfig.from_env()
    config_manager = build_config_manager()

    sys_cfg = config_manager.for_guild("System")
    setup_logging(config.log_level, sys_cfg.log_dir)

    # System config resolves DATABASE_PATH from .env or base_config.json
    config.database_path = sys_cfg.database_path

    logger.info("Bot starting...")
    logger.info(config.display())

    bot = GoodwillBot(config, config_manager)
    try:
        async with bot:
            await bot.start(config.token)
    except KeyboardInterrupt:
        logger.info("Received shutdown signal")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
    finally:
        if not bot.is_closed():
            await bot.close()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
