"""
Unit tests for the configuration system.

Tests:
- ConfigField validation (types, ranges, choices)
- String parsing for env vars and command arguments
- ConfigManager hierarchy (default -> global -> env -> guild)
- ConfigManager caching and reset
- ConfigManager save/load (nested JSON format)
- ConfigManager hot-reload
- Config proxy property access
- The Activity and System schemas
"""

import json
import os
import tempfile
import unittest
from dataclasses import dataclass
from pathlib import Path
from unittest import mock

from goodwill.cogs.activity.tracker import ActivityConfig
from goodwill.core.config_base import ConfigBase, config_field
from goodwill.core.config_system import (
    CogConfigSchema,
    ConfigField,
    ConfigManager,
    parse_string_value,
)
from goodwill.core.system_config import SystemConfig


@dataclass
class SampleConfig(ConfigBase):
    min_session_seconds: int = config_field(
        default=300,
        description="Minimum session length",
        category="Voice Rules",
        guild_override=True,
        min_value=0,
        max_value=3600
    )

    voice_tracking_enabled: bool = config_field(
        default=True,
        description="Track voice",
        category="Tracking",
        guild_override=True
    )

    retention_days: int = config_field(
        default=30,
        description="Retention",
        category="Storage",
        guild_override=False  # Global only
    )

    log_level: str = config_field(
        default="INFO",
        description="Log level",
        category="System",
        choices=["DEBUG", "INFO", "WARNING"],
        env_only=True
    )


class TestConfigField(unittest.TestCase):
    """Test ConfigField validation."""

    def test_type_validation_int(self):
        field = ConfigField(
            name="test_int",
            type=int,
            default=10,
            description="Test integer",
            category="Test"
        )

        is_valid, error = field.validate(5)
        self.assertTrue(is_valid)
        self.assertIsNone(error)

        # Convertible string
        is_valid, error = field.validate("10")
        self.assertTrue(is_valid)

        # Not convertible
        is_valid, error = field.validate("abc")
        self.assertFalse(is_valid)
        self.assertIsNotNone(error)

    def test_type_validation_bool(self):
        field = ConfigField(
            name="test_bool",
            type=bool,
            default=True,
            description="Test boolean",
            category="Test"
        )

        is_valid, error = field.validate(False)
        self.assertTrue(is_valid)
        self.assertIsNone(error)

        is_valid, _ = field.validate("off")
        self.assertTrue(is_valid)

        is_valid, error = field.validate("maybe")
        self.assertFalse(is_valid)

    def test_range_validation(self):
        field = ConfigField(
            name="test_range",
            type=int,
            default=900,
            description="Test range",
            category="Test",
            min_value=60,
            max_value=86400
        )

        is_valid, _ = field.validate(900)
        self.assertTrue(is_valid)

        is_valid, error = field.validate(59)
        self.assertFalse(is_valid)
        self.assertIn("below minimum", error)

        is_valid, error = field.validate(100000)
        self.assertFalse(is_valid)
        self.assertIn("above maximum", error)

        # Range also applies to parsed strings
        is_valid, error = field.validate("30")
        self.assertFalse(is_valid)
        self.assertIn("below minimum", error)

    def test_choices_validation(self):
        field = ConfigField(
            name="test_choices",
            type=str,
            default="INFO",
            description="Test choices",
            category="Test",
            choices=["DEBUG", "INFO"]
        )

        is_valid, _ = field.validate("DEBUG")
        self.assertTrue(is_valid)

        is_valid, error = field.validate("TRACE")
        self.assertFalse(is_valid)
        self.assertIn("not in valid choices", error)

    def test_coerce_string(self):
        field = ConfigField(name="n", type=int, default=1, description="", category="Test")
        self.assertEqual(field.coerce("42"), 42)


class TestParseStringValue(unittest.TestCase):

    def test_bool_strings(self):
        for raw in ("true", "1", "YES", " on "):
            self.assertIs(parse_string_value(raw, bool), True)
        for raw in ("false", "0", "no", "Off"):
            self.assertIs(parse_string_value(raw, bool), False)

    def test_bad_bool_raises(self):
        with self.assertRaises(ValueError):
            parse_string_value("sometimes", bool)

    def test_numbers_and_lists(self):
        self.assertEqual(parse_string_value("12", int), 12)
        self.assertEqual(parse_string_value("0.5", float), 0.5)
        self.assertEqual(parse_string_value("a, b,,c", list), ["a", "b", "c"])
        self.assertEqual(parse_string_value("!gw", str), "!gw")


class TestCogConfigSchema(unittest.TestCase):
    """Test CogConfigSchema creation from dataclass."""

    def test_from_dataclass(self):
        schema = CogConfigSchema.from_dataclass("Sample", SampleConfig)

        self.assertEqual(schema.cog_name, "Sample")
        self.assertEqual(len(schema.fields), 4)

        min_session = schema.fields["min_session_seconds"]
        self.assertEqual(min_session.type, int)
        self.assertEqual(min_session.default, 300)
        self.assertEqual(min_session.category, "Voice Rules")
        self.assertTrue(min_session.guild_override)
        self.assertEqual(min_session.min_value, 0)
        self.assertEqual(min_session.max_value, 3600)

        retention = schema.fields["retention_days"]
        self.assertFalse(retention.guild_override)

        self.assertTrue(schema.fields["log_level"].env_only)

    def test_activity_schema_defaults(self):
        schema = CogConfigSchema.from_dataclass("Activity", ActivityConfig)
        defaults = {name: f.default for name, f in schema.fields.items()}

        self.assertEqual(defaults["min_session_seconds"], 300)
        self.assertEqual(defaults["afk_timeout_seconds"], 900)
        self.assertEqual(defaults["stale_session_hours"], 12)
        self.assertEqual(defaults["periodic_check_minutes"], 5)
        self.assertEqual(defaults["daily_retention_days"], 30)
        self.assertEqual(defaults["week_start_day"], 0)
        self.assertTrue(defaults["ignore_bots"])

        # Crediting rules are global, report settings are per guild
        self.assertFalse(schema.fields["min_session_seconds"].guild_override)
        self.assertTrue(schema.fields["min_session_seconds"].requires_restart)
        self.assertTrue(schema.fields["leaderboard_default_limit"].guild_override)
        self.assertTrue(schema.fields["voice_tracking_enabled"].guild_override)

    def test_system_schema(self):
        schema = CogConfigSchema.from_dataclass("System", SystemConfig)
        self.assertEqual(schema.fields["command_prefix"].default, "!gw")
        self.assertEqual(schema.fields["database_path"].default, "data/goodwill.db")
        self.assertTrue(schema.fields["log_level"].env_only)


class TestConfigManager(unittest.TestCase):
    """Test ConfigManager functionality."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmpdir.cleanup)
        self.base_file = Path(self.tmpdir.name) / "base_config.json"
        self.guilds_dir = Path(self.tmpdir.name) / "guilds"

        self.manager = self._new_manager()

    def _new_manager(self):
        manager = ConfigManager(base_file=self.base_file, guilds_dir=self.guilds_dir)
        manager.register_schema("Sample", CogConfigSchema.from_dataclass("Sample", SampleConfig))
        return manager

    def test_register_schema(self):
        self.assertIn("Sample", self.manager.schemas)
        self.assertIsNotNone(self.manager.get_schema("Sample"))
        self.assertIsNone(self.manager.get_schema("Missing"))

    def test_get_default_value(self):
        self.assertEqual(self.manager.get("Sample", "min_session_seconds"), 300)
        self.assertEqual(self.manager.get("Sample", "voice_tracking_enabled"), True)

    def test_unknown_key_returns_none(self):
        self.assertIsNone(self.manager.get("Sample", "nope"))
        self.assertIsNone(self.manager.get("Nope", "min_session_seconds"))

    def test_hierarchy_global_override(self):
        success, error = self.manager.set("Sample", "min_session_seconds", 600)
        self.assertTrue(success)
        self.assertIsNone(error)
        self.assertEqual(self.manager.get("Sample", "min_session_seconds"), 600)

    def test_hierarchy_guild_override(self):
        self.manager.set("Sample", "min_session_seconds", 600)
        success, _ = self.manager.set("Sample", "min_session_seconds", 120, guild_id=123)
        self.assertTrue(success)

        self.assertEqual(self.manager.get("Sample", "min_session_seconds", guild_id=123), 120)
        self.assertEqual(self.manager.get("Sample", "min_session_seconds"), 600)
        self.assertEqual(self.manager.get("Sample", "min_session_seconds", guild_id=456), 600)

    def test_env_beats_global_but_not_guild(self):
        self.manager.set("Sample", "min_session_seconds", 600)
        self.manager.set("Sample", "min_session_seconds", 120, guild_id=123)

        with mock.patch.dict(os.environ, {"SAMPLE_MIN_SESSION_SECONDS": "60"}):
            manager = self._new_manager()
            manager.global_overrides = self.manager.global_overrides
            manager.guild_overrides = self.manager.guild_overrides

            self.assertEqual(manager.get("Sample", "min_session_seconds"), 60)
            self.assertEqual(manager.get("Sample", "min_session_seconds", guild_id=123), 120)

    def test_bad_env_value_is_ignored(self):
        with mock.patch.dict(os.environ, {"SAMPLE_VOICE_TRACKING_ENABLED": "sometimes"}):
            manager = self._new_manager()
            self.assertEqual(manager.get("Sample", "voice_tracking_enabled"), True)

    def test_mapped_env_var(self):
        manager = ConfigManager(base_file=self.base_file, guilds_dir=self.guilds_dir)
        manager.register_schema("System", CogConfigSchema.from_dataclass("System", SystemConfig))

        with mock.patch.dict(os.environ, {"DATABASE_PATH": "/tmp/other.db"}):
            self.assertEqual(manager.get("System", "database_path"), "/tmp/other.db")

    def test_validation_on_set(self):
        success, _ = self.manager.set("Sample", "min_session_seconds", 700)
        self.assertTrue(success)

        success, error = self.manager.set("Sample", "min_session_seconds", 5000)
        self.assertFalse(success)
        self.assertIsNotNone(error)

        self.assertEqual(self.manager.get("Sample", "min_session_seconds"), 700)

    def test_set_parses_strings(self):
        success, _ = self.manager.set("Sample", "voice_tracking_enabled", "no", guild_id=123)
        self.assertTrue(success)
        self.assertIs(self.manager.get("Sample", "voice_tracking_enabled", guild_id=123), False)

        success, _ = self.manager.set("Sample", "min_session_seconds", "240", guild_id=123)
        self.assertTrue(success)
        self.assertEqual(self.manager.get("Sample", "min_session_seconds", guild_id=123), 240)

    def test_guild_override_not_allowed(self):
        success, error = self.manager.set("Sample", "retention_days", 10, guild_id=123)
        self.assertFalse(success)
        self.assertIn("does not support guild overrides", error)

    def test_env_only_cannot_be_set(self):
        success, error = self.manager.set("Sample", "log_level", "DEBUG")
        self.assertFalse(success)
        self.assertIn("environment variables", error)

    def test_caching(self):
        value1 = self.manager.get("Sample", "min_session_seconds")

        cache_key = ("Sample", "min_session_seconds", None)
        self.assertIn(cache_key, self.manager._cache)
        self.assertEqual(self.manager._cache[cache_key], 300)

        value2 = self.manager.get("Sample", "min_session_seconds")
        self.assertEqual(value1, value2)

    def test_global_set_invalidates_guild_cache(self):
        self.assertEqual(self.manager.get("Sample", "min_session_seconds", guild_id=123), 300)
        self.manager.set("Sample", "min_session_seconds", 600)
        self.assertEqual(self.manager.get("Sample", "min_session_seconds", guild_id=123), 600)

    def test_reset(self):
        self.manager.set("Sample", "min_session_seconds", 120, guild_id=123)
        self.assertTrue(self.manager.reset("Sample", "min_session_seconds", guild_id=123))
        self.assertEqual(self.manager.get("Sample", "min_session_seconds", guild_id=123), 300)

        # Nothing left to reset
        self.assertFalse(self.manager.reset("Sample", "min_session_seconds", guild_id=123))

    def test_get_guild_overrides_is_a_copy(self):
        self.manager.set("Sample", "min_session_seconds", 120, guild_id=123)
        overrides = self.manager.get_guild_overrides(123)
        self.assertEqual(overrides, {"Sample": {"min_session_seconds": 120}})

        overrides["Sample"]["min_session_seconds"] = 1
        self.assertEqual(self.manager.get("Sample", "min_session_seconds", guild_id=123), 120)

    def test_config_proxy(self):
        self.manager.set("Sample", "min_session_seconds", 600)
        self.manager.set("Sample", "voice_tracking_enabled", False)

        cfg = self.manager.for_guild("Sample")
        self.assertEqual(cfg.min_session_seconds, 600)
        self.assertEqual(cfg.voice_tracking_enabled, False)

        self.manager.set("Sample", "min_session_seconds", 120, guild_id=123)
        cfg_guild = self.manager.for_guild("Sample", guild_id=123)
        self.assertEqual(cfg_guild.min_session_seconds, 120)

        with self.assertRaises(ValueError):
            cfg_guild.retention_days = 5

    def test_requires_restart(self):
        manager = ConfigManager(base_file=self.base_file, guilds_dir=self.guilds_dir)
        manager.register_schema("Activity", CogConfigSchema.from_dataclass("Activity", ActivityConfig))
        self.assertTrue(manager.requires_restart("Activity", "afk_timeout_seconds"))
        self.assertFalse(manager.requires_restart("Activity", "leaderboard_default_limit"))
        self.assertFalse(manager.requires_restart("Activity", "missing"))

    def test_save_and_load_global(self):
        self.manager.set("Sample", "min_session_seconds", 600)
        self.manager.set("Sample", "voice_tracking_enabled", False)
        self.manager.save()

        self.assertTrue(self.base_file.exists())
        with open(self.base_file, 'r') as f:
            data = json.load(f)

        # Nested format
        self.assertEqual(data["Sample"]["min_session_seconds"], 600)
        self.assertEqual(data["Sample"]["voice_tracking_enabled"], False)

        manager2 = self._new_manager()
        self.assertEqual(manager2.get("Sample", "min_session_seconds"), 600)
        self.assertEqual(manager2.get("Sample", "voice_tracking_enabled"), False)

    def test_save_and_load_guild(self):
        self.manager.set("Sample", "min_session_seconds", 120, guild_id=123)
        self.manager.set("Sample", "voice_tracking_enabled", False, guild_id=123)
        self.manager.set("Sample", "min_session_seconds", 900, guild_id=456)
        self.manager.save()

        guild_123_file = self.guilds_dir / "123.json"
        self.assertTrue(guild_123_file.exists())
        self.assertTrue((self.guilds_dir / "456.json").exists())

        with open(guild_123_file, 'r') as f:
            data = json.load(f)
        self.assertEqual(data["Sample"]["min_session_seconds"], 120)
        self.assertEqual(data["Sample"]["voice_tracking_enabled"], False)

        manager2 = self._new_manager()
        self.assertEqual(manager2.get("Sample", "min_session_seconds", guild_id=123), 120)
        self.assertEqual(manager2.get("Sample", "voice_tracking_enabled", guild_id=123), False)
        self.assertEqual(manager2.get("Sample", "min_session_seconds", guild_id=456), 900)

    def test_reset_removes_empty_guild_file(self):
        self.manager.set("Sample", "min_session_seconds", 120, guild_id=123)
        self.manager.save()
        self.assertTrue((self.guilds_dir / "123.json").exists())

        self.manager.reset("Sample", "min_session_seconds", guild_id=123)
        self.manager.save()
        self.assertFalse((self.guilds_dir / "123.json").exists())

    def test_hot_reload(self):
        self.manager.set("Sample", "min_session_seconds", 300)
        self.manager.save()

        with open(self.base_file, 'w') as f:
            json.dump({"Sample": {"min_session_seconds": 900}}, f)

        self.manager.reload()
        self.assertEqual(self.manager.get("Sample", "min_session_seconds"), 900)

    def test_reload_single_guild(self):
        self.guilds_dir.mkdir(parents=True)
        self.assertEqual(self.manager.get("Sample", "min_session_seconds", guild_id=123), 300)

        with open(self.guilds_dir / "123.json", 'w') as f:
            json.dump({"Sample": {"min_session_seconds": 60}}, f)

        self.manager.reload(guild_id=123)
        self.assertEqual(self.manager.get("Sample", "min_session_seconds", guild_id=123), 60)


if __name__ == "__main__":
    unittest.main()
