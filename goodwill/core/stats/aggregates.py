"""
Daily/weekly/monthly activity counters.

Every closed voice segment is turned into bucket increments by
``compute_increments`` and written to all three granularities with one
``INSERT ... ON CONFLICT DO UPDATE SET col = col + excluded.col`` each, so
concurrent writers never lose an update.

Bucket rules for a segment of ``d`` seconds:
- muted_deafened += d when muted or deafened
- afk += d when in an AFK channel
- voice += d only when neither muted/deafened nor long-AFK
  (AFK for at least ``afk_timeout_seconds``)
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional, Union

from goodwill.core.errors import ErrorCategory, ErrorSeverity, error_handler
from goodwill.core.stats.database import Database
from goodwill.core.stats.periods import PERIOD_TABLES, period_keys, period_start, utcnow

logger = logging.getLogger("goodwill.aggregates")

AFK_TIMEOUT_SECONDS = 15 * 60


@dataclass(frozen=True)
class DurationIncrements:
    """Seconds to add to each duration counter."""
    voice: int = 0
    afk: int = 0
    muted_deafened: int = 0

    @property
    def is_empty(self) -> bool:
        return not (self.voice or self.afk or self.muted_deafened)


@dataclass
class ActivityRecord:
    """One aggregate row, as read back for reporting."""
    user_id: int
    guild_id: int
    period_start: str
    username: str = ""
    voice_time_seconds: int = 0
    afk_time_seconds: int = 0
    muted_deafened_time_seconds: int = 0
    message_count: int = 0

    @classmethod
    def from_row(cls, row) -> "ActivityRecord":
        return cls(
            user_id=row["user_id"],
            guild_id=row["guild_id"],
            period_start=row["period_start"],
            username=row["username"],
            voice_time_seconds=row["voice_time_seconds"],
            afk_time_seconds=row["afk_time_seconds"],
            muted_deafened_time_seconds=row["muted_deafened_time_seconds"],
            message_count=row["message_count"],
        )


def compute_increments(
    duration_seconds: int,
    is_afk: bool,
    is_muted_or_deafened: bool,
    afk_timeout_seconds: int = AFK_TIMEOUT_SECONDS,
) -> DurationIncrements:
    """Split one segment into independent bucket increments."""
    if duration_seconds <= 0:
        return DurationIncrements()

    long_afk = is_afk and duration_seconds >= afk_timeout_seconds

    return DurationIncrements(
        voice=duration_seconds if not (is_muted_or_deafened or long_afk) else 0,
        afk=duration_seconds if is_afk else 0,
        muted_deafened=duration_seconds if is_muted_or_deafened else 0,
    )


UPSERT_TEMPLATE = """
    INSERT INTO {table} (
        user_id, guild_id, period_start, username,
        voice_time_seconds, afk_time_seconds, muted_deafened_time_seconds, message_count
    )
    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT(user_id, guild_id, period_start) DO UPDATE SET
        username = CASE WHEN excluded.username != '' THEN excluded.username ELSE {table}.username END,
        voice_time_seconds = {table}.voice_time_seconds + excluded.voice_time_seconds,
        afk_time_seconds = {table}.afk_time_seconds + excluded.afk_time_seconds,
        muted_deafened_time_seconds = {table}.muted_deafened_time_seconds + excluded.muted_deafened_time_seconds,
        message_count = {table}.message_count + excluded.message_count
"""


class ActivityAggregates:
    """Writes and reads the three activity aggregate tables."""

    def __init__(
        self,
        db: Database,
        clock: Callable[[], datetime] = utcnow,
        afk_timeout_seconds: int = AFK_TIMEOUT_SECONDS,
        week_start_day: int = 0,
    ):
        self.db = db
        self.clock = clock
        self.afk_timeout_seconds = afk_timeout_seconds
        self.week_start_day = week_start_day

    async def _increment(
        self,
        user_id: int,
        guild_id: int,
        username: str,
        increments: DurationIncrements,
        messages: int = 0,
    ):
        """Upsert one increment into every granularity, atomically. Raises DatabaseError."""
        keys = period_keys(self.clock(), self.week_start_day)

        async with self.db.transaction():
            for period, table in PERIOD_TABLES.items():
                await self.db.execute(
                    UPSERT_TEMPLATE.format(table=table),
                    (
                        user_id, guild_id, keys[period], username or "",
                        increments.voice, increments.afk, increments.muted_deafened, messages,
                    )
                )

    async def apply_duration(
        self,
        user_id: int,
        guild_id: int,
        username: str,
        duration_seconds: int,
        is_afk: bool,
        is_muted_or_deafened: bool,
    ) -> bool:
        """
        Credit a closed segment to the daily, weekly and monthly counters.

        Never raises: persistence errors are logged and reported as False.
        Returns True when rows were written, False for no-ops and failures.
        """
        increments = compute_increments(
            duration_seconds, is_afk, is_muted_or_deafened, self.afk_timeout_seconds
        )
        if increments.is_empty:
            return False

        try:
            await self._increment(user_id, guild_id, username, increments)
        except Exception as e:
            error_handler.log_error(
                e,
                context={
                    "operation": "apply_duration",
                    "user_id": user_id,
                    "guild_id": guild_id,
                    "duration_seconds": duration_seconds,
                },
                severity=ErrorSeverity.HIGH,
                category=ErrorCategory.DATABASE
            )
            return False

        logger.debug(
            f"Credited {duration_seconds}s to {username} ({user_id}) in guild {guild_id}: "
            f"voice={increments.voice} afk={increments.afk} muted={increments.muted_deafened}"
        )
        return True

    async def record_message(self, user_id: int, guild_id: int, username: str) -> bool:
        """Count one text message in all three granularities. Never raises."""
        try:
            await self._increment(user_id, guild_id, username, DurationIncrements(), messages=1)
        except Exception as e:
            error_handler.log_error(
                e,
                context={"operation": "record_message", "user_id": user_id, "guild_id": guild_id},
                severity=ErrorSeverity.HIGH,
                category=ErrorCategory.DATABASE
            )
            return False
        return True

    async def cleanup_daily(self, retention_days: int) -> int:
        """Delete daily rows older than ``retention_days``. Returns rows deleted."""
        cutoff = (period_start("daily", self.clock()) - timedelta(days=retention_days)).isoformat()
        deleted = await self.db.execute(
            "DELETE FROM daily_activity WHERE period_start < ?",
            (cutoff,)
        )
        if deleted:
            logger.info(f"🧹 Removed {deleted} daily activity rows older than {cutoff}")
        return deleted

    def _period_key(self, period: str, day: Optional[Union[datetime, date]]) -> str:
        return period_start(period, day or self.clock(), self.week_start_day).isoformat()

    async def get_user_activity(
        self,
        period: str,
        user_id: int,
        guild_id: int,
        day: Optional[Union[datetime, date]] = None,
    ) -> Optional[ActivityRecord]:
        """A user's counters for the period containing ``day`` (default: now)."""
        table = PERIOD_TABLES[period]
        row = await self.db.fetchone(
            f"SELECT * FROM {table} WHERE user_id = ? AND guild_id = ? AND period_start = ?",
            (user_id, guild_id, self._period_key(period, day))
        )
        return ActivityRecord.from_row(row) if row else None

    async def get_leaderboard(
        self,
        period: str,
        guild_id: int,
        day: Optional[Union[datetime, date]] = None,
        limit: int = 10,
    ) -> List[ActivityRecord]:
        """Rows for the period ordered by active voice time, then messages."""
        table = PERIOD_TABLES[period]
        rows = await self.db.fetchall(
            f"""
            SELECT * FROM {table}
            WHERE guild_id = ? AND period_start = ?
            ORDER BY voice_time_seconds DESC, message_count DESC, user_id ASC
            LIMIT ?
            """,
            (guild_id, self._period_key(period, day), limit)
        )
        return [ActivityRecord.from_row(row) for row in rows]

    async def count_participants(self, period: str, guild_id: int,
                                 day: Optional[Union[datetime, date]] = None) -> tuple:
        """(members with any row, members with active voice time) for the period."""
        table = PERIOD_TABLES[period]
        row = await self.db.fetchone(
            f"""
            SELECT COUNT(*) AS total,
                   SUM(CASE WHEN voice_time_seconds > 0 THEN 1 ELSE 0 END) AS active
            FROM {table}
            WHERE guild_id = ? AND period_start = ?
            """,
            (guild_id, self._period_key(period, day))
        )
        return row["total"] or 0, row["active"] or 0
