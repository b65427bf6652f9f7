"""
Tests for the activity tracker cog's listeners, with a minimal fake bot.
"""

import tempfile
import unittest
from pathlib import Path
from types import SimpleNamespace

from goodwill.cogs.activity.tracker import ActivityTracker
from goodwill.core.config_system import ConfigManager
from goodwill.core.stats.database import Database
from tests.fakes import FakeClock, make_channel, make_guild, make_member, put_in_voice, voice_state


def make_message(guild, user_id=1, name="tester", bot=False):
    return SimpleNamespace(guild=guild, author=SimpleNamespace(id=user_id, name=name, bot=bot))


class TestActivityTrackerCog(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)

        self.db = Database(":memory:")
        await self.db.connect()
        self.addAsyncCleanup(self.db.close)

        self.guild = make_guild()
        self.general = make_channel(self.guild, 10, "General")

        self.bot = SimpleNamespace(
            config_manager=ConfigManager(
                base_file=Path(tmpdir.name) / "base_config.json",
                guilds_dir=Path(tmpdir.name) / "guilds"
            ),
            db=self.db,
            guilds=[self.guild],
        )
        self.clock = FakeClock()
        self.cog = ActivityTracker(self.bot, clock=self.clock)

    async def daily(self, user_id=1):
        return await self.cog.aggregates.get_user_activity("daily", user_id, self.guild.id)

    def test_registers_schema(self):
        self.assertIsNotNone(self.bot.config_manager.get_schema("Activity"))
        self.assertEqual(self.cog.sessions.min_session_seconds, 300)
        self.assertEqual(self.cog.aggregates.afk_timeout_seconds, 900)
        self.assertEqual(self.cog.voice_tracker.stale_session_hours, 12)

    async def test_counts_guild_messages(self):
        await self.cog.on_message(make_message(self.guild))
        await self.cog.on_message(make_message(self.guild))
        self.assertEqual((await self.daily()).message_count, 2)

    async def test_ignores_dms_and_bots(self):
        await self.cog.on_message(make_message(None))
        await self.cog.on_message(make_message(self.guild, user_id=99, bot=True))
        self.assertIsNone(await self.daily())
        self.assertIsNone(await self.daily(99))

    async def test_message_tracking_switch(self):
        self.bot.config_manager.set("Activity", "message_tracking_enabled", False, guild_id=self.guild.id)
        await self.cog.on_message(make_message(self.guild))
        self.assertIsNone(await self.daily())

    async def test_voice_tracking_switch(self):
        member = make_member(self.guild)
        self.bot.config_manager.set("Activity", "voice_tracking_enabled", False, guild_id=self.guild.id)

        await self.cog.on_voice_state_update(member, voice_state(), voice_state(self.general))
        self.assertIsNone(await self.cog.sessions.get_active(1, self.guild.id))

    async def test_switched_off_guild_gets_no_credit_for_dropped_leave(self):
        member = make_member(self.guild)
        await self.cog.on_voice_state_update(member, voice_state(), voice_state(self.general))
        self.bot.config_manager.set("Activity", "voice_tracking_enabled", False, guild_id=self.guild.id)

        self.clock.advance(minutes=10)
        await self.cog.on_voice_state_update(member, voice_state(self.general), voice_state())
        self.clock.advance(hours=13)
        await self.cog.periodic_check()

        self.assertIsNone(await self.cog.sessions.get_active(1, self.guild.id))
        self.assertIsNone(await self.daily())

        # Switching back on has nothing left to credit
        self.bot.config_manager.set("Activity", "voice_tracking_enabled", True, guild_id=self.guild.id)
        self.clock.advance(minutes=5)
        await self.cog.periodic_check()
        self.assertIsNone(await self.daily())

    async def test_periodic_check_reaps_enabled_guilds(self):
        member = make_member(self.guild)
        put_in_voice(member, self.general)
        await self.cog.on_voice_state_update(member, voice_state(), voice_state(self.general))
        self.clock.advance(hours=13)

        await self.cog.periodic_check()

        # Reaped as stale, then reopened because the member is still in voice
        self.assertEqual((await self.daily()).voice_time_seconds, 13 * 3600)
        self.assertIsNotNone(await self.cog.sessions.get_active(1, self.guild.id))

    async def test_on_ready_closes_sessions_of_switched_off_guild(self):
        member = make_member(self.guild)
        put_in_voice(member, self.general)
        await self.cog.on_voice_state_update(member, voice_state(), voice_state(self.general))
        self.bot.config_manager.set("Activity", "voice_tracking_enabled", False, guild_id=self.guild.id)

        await self.cog.on_ready()
        self.assertIsNone(await self.cog.sessions.get_active(1, self.guild.id))

    async def test_voice_update_opens_session(self):
        member = make_member(self.guild)
        await self.cog.on_voice_state_update(member, voice_state(), voice_state(self.general))
        self.assertIsNotNone(await self.cog.sessions.get_active(1, self.guild.id))

    async def test_on_ready_initializes_and_reconciles(self):
        self.guild.afk_channel = make_channel(self.guild, 12, "Sleeping")
        put_in_voice(make_member(self.guild), self.general)

        await self.cog.on_ready()

        settings = await self.cog.guild_settings.get(self.guild.id)
        self.assertEqual(settings.afk_channel_id, 12)
        self.assertIsNotNone(await self.cog.sessions.get_active(1, self.guild.id))


if __name__ == "__main__":
    unittest.main()
