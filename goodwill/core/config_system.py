"""
Declarative configuration system.

Cogs define their own config schemas using dataclasses (see
``goodwill.core.config_base``). Values resolve through the hierarchy
default -> global JSON override -> environment variable -> guild JSON override.

File layout:
- Global overrides: data/config/base_config.json, {"CogName": {"key": value}}
- Guild overrides: data/config/guilds/<guild_id>.json, same nested format
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Type, Union

logger = logging.getLogger("goodwill.config_system")

# Config file paths
BASE_CONFIG_FILE = Path("data/config/base_config.json")
GUILDS_CONFIG_DIR = Path("data/config/guilds")

# Environment variable names that don't follow the COG_KEY pattern
ENV_VAR_MAPPINGS = {
    ("System", "command_prefix"): "COMMAND_PREFIX",
    ("System", "log_level"): "LOG_LEVEL",
    ("System", "log_dir"): "LOG_DIR",
    ("System", "database_path"): "DATABASE_PATH",
    ("Activity", "voice_tracking_enabled"): "VOICE_TRACKING_ENABLED",
    ("Activity", "message_tracking_enabled"): "MESSAGE_TRACKING_ENABLED",
}

TRUE_STRINGS = ('true', '1', 'yes', 'on')
FALSE_STRINGS = ('false', '0', 'no', 'off')


def parse_string_value(raw: str, target_type: Type) -> Any:
    """
    Convert a string (env var or command argument) to the field's type.

    Raises:
        ValueError: If the string can't be converted
    """
    if target_type == bool:
        lowered = raw.strip().lower()
        if lowered in TRUE_STRINGS:
            return True
        if lowered in FALSE_STRINGS:
            return False
        raise ValueError(f"'{raw}' is not a boolean")
    if target_type == int:
        return int(raw)
    if target_type == float:
        return float(raw)
    if target_type == list:
        return [v.strip() for v in raw.split(',') if v.strip()]
    return raw


@dataclass
class ConfigField:
    """
    Metadata for a single configuration field.

    Attributes:
        name: Field name (e.g., "min_session_seconds")
        type: Python type (bool, int, float, str, etc.)
        default: Default value
        description: Human-readable description
        category: Display category (e.g., "Voice Tracking", "Reports")
        guild_override: Whether this setting can be overridden per-guild
        admin_only: Whether this setting requires admin permissions to change
        requires_restart: Whether changing this requires bot restart
        min_value: Minimum value (for numeric types)
        max_value: Maximum value (for numeric types)
        choices: List of valid choices (for enums)
        validator: Custom validation function (value -> (bool, error_msg))
        env_only: Whether this field should ONLY be read from environment variables
    """
    name: str
    type: Type
    default: Any
    description: str
    category: str
    guild_override: bool = False
    admin_only: bool = False
    requires_restart: bool = False
    min_value: Optional[Union[int, float]] = None
    max_value: Optional[Union[int, float]] = None
    choices: Optional[List[Any]] = None
    validator: Optional[Callable[[Any], Tuple[bool, str]]] = None
    env_only: bool = False

    def validate(self, value: Any) -> Tuple[bool, Optional[str]]:
        """
        Validate a value against this field's constraints.

        Returns:
            (is_valid, error_message)
        """
        # Type validation
        if not isinstance(value, self.type) or (self.type == int and isinstance(value, bool)):
            try:
                if isinstance(value, str):
                    value = parse_string_value(value, self.type)
                else:
                    value = self.type(value)
            except (ValueError, TypeError):
                return False, f"Expected {self.type.__name__}, got {type(value).__name__}"

        # Range validation for numeric types
        if self.min_value is not None and value < self.min_value:
            return False, f"Value {value} below minimum {self.min_value}"

        if self.max_value is not None and value > self.max_value:
            return False, f"Value {value} above maximum {self.max_value}"

        # Choice validation
        if self.choices is not None and value not in self.choices:
            return False, f"Value {value} not in valid choices: {self.choices}"

        # Custom validator
        if self.validator is not None:
            is_valid, error_msg = self.validator(value)
            if not is_valid:
                return False, error_msg

        return True, None

    def coerce(self, value: Any) -> Any:
        """Convert an already validated value to the field's type."""
        if isinstance(value, str) and self.type != str:
            return parse_string_value(value, self.type)
        return self.type(value)


@dataclass
class CogConfigSchema:
    """
    Configuration schema for a cog.

    Attributes:
        cog_name: Name of the cog (e.g., "Activity")
        fields: Dictionary of field_name -> ConfigField
    """
    cog_name: str
    fields: Dict[str, ConfigField] = field(default_factory=dict)

    @classmethod
    def from_dataclass(cls, cog_name: str, config_class: Type) -> "CogConfigSchema":
        """
        Extract schema from a config dataclass.

        Args:
            cog_name: Name of the cog
            config_class: Dataclass with config fields

        Returns:
            CogConfigSchema instance
        """
        from dataclasses import fields as dataclass_fields

        schema = cls(cog_name=cog_name)

        for dc_field in dataclass_fields(config_class):
            # Get metadata from field (added via config_field() helper)
            metadata = dc_field.metadata if dc_field.metadata else {}

            config_field_obj = ConfigField(
                name=dc_field.name,
                type=dc_field.type,
                default=dc_field.default,
                description=metadata.get("description", ""),
                category=metadata.get("category", "General"),
                guild_override=metadata.get("guild_override", False),
                admin_only=metadata.get("admin_only", False),
                requires_restart=metadata.get("requires_restart", False),
                min_value=metadata.get("min_value"),
                max_value=metadata.get("max_value"),
                choices=metadata.get("choices"),
                validator=metadata.get("validator"),
                env_only=metadata.get("env_only", False)
            )

            schema.fields[dc_field.name] = config_field_obj

        return schema


class ConfigProxy:
    """
    Proxy object that provides property access to config values.

    cfg = manager.for_guild("Activity", guild_id); cfg.min_session_seconds
    """

    def __init__(self, manager: "ConfigManager", cog_name: str, guild_id: Optional[int] = None):
        self._manager = manager
        self._cog_name = cog_name
        self._guild_id = guild_id

    def __getattr__(self, name: str) -> Any:
        """Allow property access: cfg.min_session_seconds"""
        if name.startswith("_"):
            return object.__getattribute__(self, name)

        return self._manager.get(self._cog_name, name, self._guild_id)

    def __setattr__(self, name: str, value: Any):
        """Allow property setting: cfg.min_session_seconds = 600"""
        if name.startswith("_"):
            object.__setattr__(self, name, value)
        else:
            success, error = self._manager.set(self._cog_name, name, value, self._guild_id)
            if not success:
                raise ValueError(f"Failed to set {name}: {error}")


class ConfigManager:
    """
    Central configuration manager.

    Manages config schemas, global overrides, guild overrides, and provides
    a unified API for config access with hierarchy: default -> global -> env -> guild
    """

    def __init__(self, base_file: Path = BASE_CONFIG_FILE, guilds_dir: Path = GUILDS_CONFIG_DIR):
        self.base_file = Path(base_file)
        self.guilds_dir = Path(guilds_dir)
        self.schemas: Dict[str, CogConfigSchema] = {}
        self.global_overrides: Dict[str, Dict[str, Any]] = {}  # {cog_name: {key: value}}
        self.guild_overrides: Dict[int, Dict[str, Dict[str, Any]]] = {}  # {guild_id: {cog_name: {key: value}}}
        self._cache: Dict[Tuple[str, str, Optional[int]], Any] = {}  # (cog, key, guild) -> value

        self._load_global_config()
        self._load_guild_configs()

    def register_schema(self, cog_name: str, schema: CogConfigSchema):
        """Register a cog's config schema."""
        self.schemas[cog_name] = schema
        self._cache = {k: v for k, v in self._cache.items() if k[0] != cog_name}
        logger.info(f"Registered config schema for {cog_name} ({len(schema.fields)} fields)")

    def get(self, cog_name: str, key: str, guild_id: Optional[int] = None) -> Any:
        """
        Get config value with hierarchy: default -> global -> env -> guild.

        Args:
            cog_name: Name of the cog
            key: Config key
            guild_id: Optional guild ID for guild-specific override

        Returns:
            Config value (with hierarchy applied), None for unknown keys
        """
        cache_key = (cog_name, key, guild_id)
        if cache_key in self._cache:
            return self._cache[cache_key]

        if cog_name not in self.schemas:
            logger.error(f"Invalid config cog '{cog_name}', using None")
            return None

        schema = self.schemas[cog_name]
        if key not in schema.fields:
            logger.error(f"Invalid config '{key}' for cog '{cog_name}', using None")
            return None

        field_meta = schema.fields[key]

        value = field_meta.default

        # Global override (JSON file)
        if not field_meta.env_only and key in self.global_overrides.get(cog_name, {}):
            value = self.global_overrides[cog_name][key]

        # Environment variable override
        env_var_name = ENV_VAR_MAPPINGS.get((cog_name, key), f"{cog_name.upper()}_{key.upper()}")
        env_value = os.getenv(env_var_name)
        if env_value is not None:
            try:
                value = parse_string_value(env_value, field_meta.type)
            except (ValueError, TypeError) as e:
                logger.warning(f"Failed to parse env var {env_var_name}={env_value}: {e}")

        # Guild override
        if guild_id is not None and field_meta.guild_override:
            guild_values = self.guild_overrides.get(guild_id, {}).get(cog_name, {})
            if key in guild_values:
                value = guild_values[key]

        self._cache[cache_key] = value

        return value

    def set(self, cog_name: str, key: str, value: Any, guild_id: Optional[int] = None) -> Tuple[bool, Optional[str]]:
        """
        Set config value with validation.

        Args:
            cog_name: Name of the cog
            key: Config key
            value: New value (strings are parsed to the field's type)
            guild_id: Optional guild ID for guild-specific override

        Returns:
            (success, error_message)
        """
        if cog_name not in self.schemas:
            return False, f"Unknown cog: {cog_name}"

        schema = self.schemas[cog_name]
        if key not in schema.fields:
            return False, f"Unknown config key: {key}"

        field_meta = schema.fields[key]

        if field_meta.env_only:
            return False, f"Field '{key}' can only be set via environment variables (.env file)"

        if guild_id is not None and not field_meta.guild_override:
            return False, f"Setting '{key}' does not support guild overrides"

        is_valid, error = field_meta.validate(value)
        if not is_valid:
            logger.error(f"Invalid config '{key}': {value} ({error}), keeping current value")
            return False, error

        value = field_meta.coerce(value)

        if guild_id is None:
            self.global_overrides.setdefault(cog_name, {})[key] = value
        else:
            self.guild_overrides.setdefault(guild_id, {}).setdefault(cog_name, {})[key] = value

        self._invalidate_cache(cog_name, key)

        return True, None

    def reset(self, cog_name: str, key: str, guild_id: Optional[int] = None) -> bool:
        """
        Remove an override so the next level of the hierarchy applies again.

        Returns:
            True if an override was removed
        """
        if guild_id is None:
            overrides = self.global_overrides.get(cog_name, {})
        else:
            overrides = self.guild_overrides.get(guild_id, {}).get(cog_name, {})

        if key not in overrides:
            return False

        del overrides[key]
        self._invalidate_cache(cog_name, key)
        return True

    def for_guild(self, cog_name: str, guild_id: Optional[int] = None) -> ConfigProxy:
        """
        Get a config proxy for property access.

        Example:
            cfg = manager.for_guild("Activity", guild_id)
            threshold = cfg.min_session_seconds
        """
        return ConfigProxy(self, cog_name, guild_id)

    def get_schema(self, cog_name: str) -> Optional[CogConfigSchema]:
        """Get the config schema for a cog."""
        return self.schemas.get(cog_name)

    def get_guild_overrides(self, guild_id: int) -> Dict[str, Dict[str, Any]]:
        """Get a copy of a guild's overrides, {cog_name: {key: value}}."""
        return {cog: dict(values) for cog, values in self.guild_overrides.get(guild_id, {}).items()}

    def requires_restart(self, cog_name: str, key: str) -> bool:
        """Check if a setting requires restart."""
        schema = self.schemas.get(cog_name)
        if schema is None or key not in schema.fields:
            return False
        return schema.fields[key].requires_restart

    def save(self):
        """Save all configs to disk (nested JSON format)."""
        try:
            self._save_global_config()
            self._save_guild_configs()
            logger.info("Configuration saved successfully")
        except Exception as e:
            logger.error(f"Failed to save configuration: {e}", exc_info=True)
            raise

    def reload(self, guild_id: Optional[int] = None):
        """
        Reload configs from disk.

        Args:
            guild_id: If specified, reload only that guild's config
        """
        if guild_id is None:
            self._load_global_config()
            self._load_guild_configs()
            self._cache.clear()
            logger.info("Reloaded all configurations")
        else:
            self._load_guild_config(guild_id)
            self._cache = {k: v for k, v in self._cache.items() if k[2] != guild_id}
            logger.info(f"Reloaded configuration for guild {guild_id}")

    def _load_global_config(self):
        """Load global config from base_config.json."""
        if not self.base_file.exists():
            logger.info("No base config file found, using defaults")
            self.global_overrides = {}
            return

        try:
            with open(self.base_file, 'r', encoding='utf-8') as f:
                self.global_overrides = json.load(f)
            logger.info(f"Loaded global config ({len(self.global_overrides)} cogs)")
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load global config: {e}")
            self.global_overrides = {}

    def _save_global_config(self):
        """Save global config to base_config.json."""
        self.base_file.parent.mkdir(parents=True, exist_ok=True)

        with open(self.base_file, 'w', encoding='utf-8') as f:
            json.dump(self.global_overrides, f, indent=2, ensure_ascii=False)

    def _load_guild_configs(self):
        """Load all guild configs from the guilds directory."""
        self.guild_overrides = {}

        if not self.guilds_dir.exists():
            logger.info("No guild configs directory found")
            return

        for guild_file in self.guilds_dir.glob("*.json"):
            try:
                guild_id = int(guild_file.stem)
            except ValueError:
                logger.warning(f"Invalid guild config filename: {guild_file.name}")
                continue
            self._load_guild_config(guild_id)

        logger.info(f"Loaded {len(self.guild_overrides)} guild configs")

    def _load_guild_config(self, guild_id: int):
        """Load a specific guild's config."""
        guild_file = self.guilds_dir / f"{guild_id}.json"

        if not guild_file.exists():
            self.guild_overrides.pop(guild_id, None)
            return

        try:
            with open(guild_file, 'r', encoding='utf-8') as f:
                self.guild_overrides[guild_id] = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load guild config {guild_id}: {e}")

    def _save_guild_configs(self):
        """Save all guild configs to the guilds directory."""
        self.guilds_dir.mkdir(parents=True, exist_ok=True)

        for guild_id, config in self.guild_overrides.items():
            guild_file = self.guilds_dir / f"{guild_id}.json"
            config = {cog: values for cog, values in config.items() if values}

            # Only save if there are actual overrides
            if config:
                with open(guild_file, 'w', encoding='utf-8') as f:
                    json.dump(config, f, indent=2, ensure_ascii=False)
            elif guild_file.exists():
                guild_file.unlink()

    def _invalidate_cache(self, cog_name: str, key: str):
        """Invalidate cache entries for a key across global and every guild."""
        self._cache = {
            k: v for k, v in self._cache.items()
            if not (k[0] == cog_name and k[1] == key)
        }
