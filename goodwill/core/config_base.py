"""
Configuration schema helpers.

Cogs declare their settings as a dataclass inheriting ``ConfigBase`` and
register it with the ConfigManager:

    @dataclass
    class ActivityConfig(ConfigBase):
        min_session_seconds: int = config_field(
            default=300,
            description="Voice sessions shorter than this are not counted",
            category="Voice Tracking",
            guild_override=True,
            min_value=0,
            max_value=3600
        )

    schema = CogConfigSchema.from_dataclass("Activity", ActivityConfig)
    bot.config_manager.register_schema("Activity", schema)

    cfg = bot.config_manager.for_guild("Activity", guild.id)
    cfg.min_session_seconds
"""

from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple, Union


def config_field(
    default: Any,
    description: str,
    category: str = "General",
    guild_override: bool = False,
    admin_only: bool = False,
    requires_restart: bool = False,
    min_value: Optional[Union[int, float]] = None,
    max_value: Optional[Union[int, float]] = None,
    choices: Optional[List[Any]] = None,
    validator: Optional[Callable[[Any], Tuple[bool, str]]] = None,
    env_only: bool = False,
) -> Any:
    """
    Define a config field with metadata.

    Args:
        default: Default value for this field
        description: Human-readable description
        category: Display category (e.g., "Voice Tracking", "Reports")
        guild_override: Whether this setting can be overridden per-guild
        admin_only: Whether this setting requires admin permissions
        requires_restart: Whether changing this requires bot restart
        min_value: Minimum value (for numeric types)
        max_value: Maximum value (for numeric types)
        choices: List of valid choices (for enum-like fields)
        validator: Custom check returning (is_valid, error_message)
        env_only: Only read from the environment, never persisted to JSON

    Returns:
        A dataclass field with metadata attached
    """
    metadata = {
        "description": description,
        "category": category,
        "guild_override": guild_override,
        "admin_only": admin_only,
        "requires_restart": requires_restart,
        "min_value": min_value,
        "max_value": max_value,
        "choices": choices,
        "validator": validator,
        "env_only": env_only,
    }

    return field(default=default, metadata=metadata)


@dataclass
class ConfigBase:
    """
    Base class for cog configuration schemas.

    Subclasses only declare fields; values are always read through
    ``ConfigManager.for_guild(cog_name, guild_id)``.
    """
