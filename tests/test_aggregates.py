"""
Tests for the bucket rules and the daily/weekly/monthly counters.
"""

import asyncio
import unittest
from datetime import date

from goodwill.core.errors import error_handler
from goodwill.core.stats.aggregates import ActivityAggregates, DurationIncrements, compute_increments
from goodwill.core.stats.database import Database
from tests.fakes import FakeClock


class TestComputeIncrements(unittest.TestCase):

    def test_active_segment(self):
        self.assertEqual(compute_increments(600, False, False), DurationIncrements(voice=600))

    def test_muted_segment(self):
        self.assertEqual(compute_increments(600, False, True), DurationIncrements(muted_deafened=600))

    def test_short_afk_still_counts_as_voice(self):
        self.assertEqual(compute_increments(899, True, False), DurationIncrements(voice=899, afk=899))

    def test_long_afk_is_not_voice(self):
        self.assertEqual(compute_increments(900, True, False), DurationIncrements(afk=900))
        self.assertEqual(compute_increments(1200, True, False), DurationIncrements(afk=1200))

    def test_afk_and_muted(self):
        self.assertEqual(
            compute_increments(300, True, True),
            DurationIncrements(afk=300, muted_deafened=300)
        )

    def test_custom_timeout(self):
        self.assertEqual(compute_increments(120, True, False, afk_timeout_seconds=60), DurationIncrements(afk=120))

    def test_non_positive_duration(self):
        self.assertTrue(compute_increments(0, False, False).is_empty)
        self.assertTrue(compute_increments(-5, True, True).is_empty)


class AggregatesTestCase(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.clock = FakeClock()
        self.db = Database(":memory:")
        await self.db.connect()
        self.addAsyncCleanup(self.db.close)
        self.aggregates = ActivityAggregates(self.db, clock=self.clock)


class TestApplyDuration(AggregatesTestCase):

    async def test_writes_all_granularities(self):
        self.assertTrue(await self.aggregates.apply_duration(1, 1000, "tester", 600, False, False))

        for period in ("daily", "weekly", "monthly"):
            record = await self.aggregates.get_user_activity(period, 1, 1000)
            self.assertEqual(record.voice_time_seconds, 600, period)
            self.assertEqual(record.afk_time_seconds, 0, period)
            self.assertEqual(record.muted_deafened_time_seconds, 0, period)
            self.assertEqual(record.username, "tester")

    async def test_period_start_keys(self):
        await self.aggregates.apply_duration(1, 1000, "tester", 60, False, False)

        self.assertEqual((await self.aggregates.get_user_activity("daily", 1, 1000)).period_start, "2024-05-15")
        self.assertEqual((await self.aggregates.get_user_activity("weekly", 1, 1000)).period_start, "2024-05-13")
        self.assertEqual((await self.aggregates.get_user_activity("monthly", 1, 1000)).period_start, "2024-05-01")

    async def test_increments_accumulate(self):
        await self.aggregates.apply_duration(1, 1000, "tester", 600, False, False)
        await self.aggregates.apply_duration(1, 1000, "tester", 300, False, True)
        await self.aggregates.apply_duration(1, 1000, "tester", 1000, True, False)

        record = await self.aggregates.get_user_activity("daily", 1, 1000)
        self.assertEqual(record.voice_time_seconds, 600)
        self.assertEqual(record.muted_deafened_time_seconds, 300)
        self.assertEqual(record.afk_time_seconds, 1000)

    async def test_zero_duration_is_noop(self):
        self.assertFalse(await self.aggregates.apply_duration(1, 1000, "tester", 0, False, False))
        self.assertIsNone(await self.aggregates.get_user_activity("daily", 1, 1000))

    async def test_next_day_gets_new_daily_row(self):
        await self.aggregates.apply_duration(1, 1000, "tester", 600, False, False)
        self.clock.advance(days=1)
        await self.aggregates.apply_duration(1, 1000, "tester", 600, False, False)

        self.assertEqual(
            (await self.aggregates.get_user_activity("daily", 1, 1000, day=date(2024, 5, 15))).voice_time_seconds,
            600
        )
        self.assertEqual((await self.aggregates.get_user_activity("daily", 1, 1000)).voice_time_seconds, 600)
        self.assertEqual((await self.aggregates.get_user_activity("weekly", 1, 1000)).voice_time_seconds, 1200)

    async def test_concurrent_increments_are_not_lost(self):
        await asyncio.gather(*(
            self.aggregates.apply_duration(1, 1000, "tester", 10, False, False)
            for _ in range(25)
        ))
        record = await self.aggregates.get_user_activity("monthly", 1, 1000)
        self.assertEqual(record.voice_time_seconds, 250)

    async def test_empty_username_keeps_stored_name(self):
        await self.aggregates.apply_duration(1, 1000, "tester", 60, False, False)
        await self.aggregates.apply_duration(1, 1000, "", 60, False, False)
        self.assertEqual((await self.aggregates.get_user_activity("daily", 1, 1000)).username, "tester")

    async def test_failure_is_logged_not_raised(self):
        await self.db.close()
        errors_before = error_handler.error_count

        self.assertFalse(await self.aggregates.apply_duration(1, 1000, "tester", 600, False, False))
        self.assertEqual(error_handler.error_count, errors_before + 1)
        self.assertEqual(error_handler.last_errors[-1]["category"], "database")


class TestMessagesAndRetention(AggregatesTestCase):

    async def test_record_message(self):
        self.assertTrue(await self.aggregates.record_message(1, 1000, "tester"))
        self.assertTrue(await self.aggregates.record_message(1, 1000, "tester"))

        for period in ("daily", "weekly", "monthly"):
            record = await self.aggregates.get_user_activity(period, 1, 1000)
            self.assertEqual(record.message_count, 2)
            self.assertEqual(record.voice_time_seconds, 0)

    async def test_record_message_failure(self):
        await self.db.close()
        self.assertFalse(await self.aggregates.record_message(1, 1000, "tester"))

    async def test_cleanup_daily_keeps_weekly_and_monthly(self):
        await self.aggregates.record_message(1, 1000, "tester")
        self.clock.advance(days=31)
        await self.aggregates.record_message(1, 1000, "tester")

        deleted = await self.aggregates.cleanup_daily(30)
        self.assertEqual(deleted, 1)

        self.assertIsNone(await self.aggregates.get_user_activity("daily", 1, 1000, day=date(2024, 5, 15)))
        self.assertIsNotNone(await self.aggregates.get_user_activity("daily", 1, 1000))
        self.assertIsNotNone(await self.aggregates.get_user_activity("monthly", 1, 1000, day=date(2024, 5, 15)))

    async def test_cleanup_keeps_rows_inside_window(self):
        await self.aggregates.record_message(1, 1000, "tester")
        self.clock.advance(days=30)
        self.assertEqual(await self.aggregates.cleanup_daily(30), 0)


class TestReporting(AggregatesTestCase):

    async def test_leaderboard_order_and_limit(self):
        await self.aggregates.apply_duration(1, 1000, "alice", 600, False, False)
        await self.aggregates.apply_duration(2, 1000, "bob", 1200, False, False)
        await self.aggregates.record_message(3, 1000, "carol")
        await self.aggregates.record_message(4, 1000, "dave")
        await self.aggregates.record_message(4, 1000, "dave")
        await self.aggregates.apply_duration(5, 2000, "other guild", 5000, False, False)

        records = await self.aggregates.get_leaderboard("daily", 1000)
        self.assertEqual([r.user_id for r in records], [2, 1, 4, 3])

        records = await self.aggregates.get_leaderboard("daily", 1000, limit=2)
        self.assertEqual([r.user_id for r in records], [2, 1])

    async def test_count_participants(self):
        await self.aggregates.apply_duration(1, 1000, "alice", 600, False, False)
        await self.aggregates.apply_duration(2, 1000, "bob", 1200, True, False)
        await self.aggregates.record_message(3, 1000, "carol")

        self.assertEqual(await self.aggregates.count_participants("weekly", 1000), (3, 1))
        self.assertEqual(await self.aggregates.count_participants("weekly", 9999), (0, 0))


if __name__ == "__main__":
    unittest.main()
