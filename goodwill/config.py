# config.py
"""
Bot-level configuration.

Only the settings needed before ConfigManager is available live here:
the Discord token, command prefix, bot owner and database path. Everything
the cogs use is declared in their own config schemas.
"""

import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

load_dotenv()

DEFAULT_COMMAND_PREFIX = "!gw"
DEFAULT_DATABASE_PATH = "data/goodwill.db"


@dataclass
class BotConfig:
    """Bot-level configuration (not cog-specific)."""

    token: str  # REQUIRED: DISCORD_TOKEN in .env
    command_prefix: str | list[str] = DEFAULT_COMMAND_PREFIX
    bot_owner_id: Optional[int] = None
    database_path: str = DEFAULT_DATABASE_PATH
    log_level: str = "INFO"

    @classmethod
    def from_env(cls):
        """Create config from environment variables.

        Raises:
            ValueError: If required environment variables are missing
        """
        token = os.getenv("DISCORD_TOKEN")
        if not token:
            raise ValueError("DISCORD_TOKEN is required in .env file")

        prefix_str = os.getenv("COMMAND_PREFIX") or DEFAULT_COMMAND_PREFIX

        # If comma-separated, split into list
        if "," in prefix_str:
            command_prefix = [p.strip() for p in prefix_str.split(",") if p.strip()]
        else:
            command_prefix = prefix_str

        bot_owner_id = os.getenv("BOT_OWNER_ID") or os.getenv("BOT_OWNER")

        return cls(
            token=token,
            command_prefix=command_prefix,
            bot_owner_id=int(bot_owner_id) if bot_owner_id else None,
            database_path=os.getenv("DATABASE_PATH") or DEFAULT_DATABASE_PATH,
            log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        )

    def display(self):
        """Display current configuration (safe for logging)."""
        prefix_display = ", ".join(self.command_prefix) if isinstance(self.command_prefix,
                                                                      list) else self.command_prefix
        return f"""
Bot Configuration (Bootstrap):
==================
Command Prefix: {prefix_display}
Bot Owner ID: {self.bot_owner_id or "application owner"}
Database: {self.database_path}
Log Level: {self.log_level}
"""
