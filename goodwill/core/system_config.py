"""
System-level configuration schema.

Bot-wide settings: command prefix, logging and the database location.
"""

from dataclasses import dataclass
from goodwill.core.config_base import ConfigBase, config_field


@dataclass
class SystemConfig(ConfigBase):
    """System-level bot configuration (bot owner only, no guild overrides)."""

    # Bot Owner Settings
    command_prefix: str = config_field(
        default="!gw",
        description="Bot command prefix (set via COMMAND_PREFIX in .env)",
        category="Bot Owner",
        guild_override=False,
        admin_only=True,
        requires_restart=True
    )

    # Admin System Settings
    log_level: str = config_field(
        default="INFO",
        description="Logging level for bot output (set via LOG_LEVEL in .env for startup)",
        category="Admin/System",
        guild_override=False,
        admin_only=True,
        requires_restart=True,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        env_only=True  # Must be in .env to take effect at startup
    )

    log_dir: str = config_field(
        default="data/logs",
        description="Directory for log files",
        category="Admin/System",
        guild_override=False,
        admin_only=True,
        requires_restart=True
    )

    database_path: str = config_field(
        default="data/goodwill.db",
        description="SQLite database file for sessions and activity counters",
        category="Admin/System",
        guild_override=False,
        admin_only=True,
        requires_restart=True
    )
