"""
Voice session persistence.

One row per session in ``voice_sessions``; at most one row per
(user, guild) has ``is_active = 1`` (enforced by a partial unique index).
Every path that ends a session (leave, stale reap, reconciliation, re-join)
goes through ``SessionStore`` so the crediting rules live in one place.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, List, Optional

from goodwill.core.stats.aggregates import ActivityAggregates
from goodwill.core.stats.database import Database
from goodwill.core.stats.periods import from_iso, to_iso, utcnow

logger = logging.getLogger("goodwill.sessions")

MIN_SESSION_SECONDS = 5 * 60

SESSION_COLUMNS = (
    "id, user_id, guild_id, username, channel_id, is_active, is_afk, "
    "is_muted_or_deafened, join_time, last_status_change"
)


@dataclass(frozen=True)
class VoiceSession:
    """Snapshot of a ``voice_sessions`` row."""
    id: int
    user_id: int
    guild_id: int
    username: str
    channel_id: Optional[int]
    is_active: bool
    is_afk: bool
    is_muted_or_deafened: bool
    join_time: datetime
    last_status_change: datetime

    @classmethod
    def from_row(cls, row) -> "VoiceSession":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            guild_id=row["guild_id"],
            username=row["username"],
            channel_id=row["channel_id"],
            is_active=bool(row["is_active"]),
            is_afk=bool(row["is_afk"]),
            is_muted_or_deafened=bool(row["is_muted_or_deafened"]),
            join_time=from_iso(row["join_time"]),
            last_status_change=from_iso(row["last_status_change"]),
        )

    def age_seconds(self, now: datetime) -> int:
        return int((now - self.join_time).total_seconds())

    def segment_seconds(self, now: datetime) -> int:
        return int((now - self.last_status_change).total_seconds())


@dataclass(frozen=True)
class SessionEnd:
    """Result of ending a session through the leave rules."""
    session: VoiceSession
    credited_seconds: int
    discarded: bool


class SessionStore:
    """
    Owns every read and write of ``voice_sessions``.

    Args:
        db: Connected database
        aggregates: Counter writer used whenever a segment closes
        clock: Returns the current aware UTC time
        min_session_seconds: Sessions younger than this at leave are not credited
    """

    def __init__(
        self,
        db: Database,
        aggregates: ActivityAggregates,
        clock: Callable[[], datetime] = utcnow,
        min_session_seconds: int = MIN_SESSION_SECONDS,
    ):
        self.db = db
        self.aggregates = aggregates
        self.clock = clock
        self.min_session_seconds = min_session_seconds

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_active(self, user_id: int, guild_id: int) -> Optional[VoiceSession]:
        row = await self.db.fetchone(
            f"SELECT {SESSION_COLUMNS} FROM voice_sessions "
            "WHERE user_id = ? AND guild_id = ? AND is_active = 1",
            (user_id, guild_id)
        )
        return VoiceSession.from_row(row) if row else None

    async def list_active(self, guild_id: Optional[int] = None) -> List[VoiceSession]:
        if guild_id is None:
            rows = await self.db.fetchall(
                f"SELECT {SESSION_COLUMNS} FROM voice_sessions WHERE is_active = 1 ORDER BY id"
            )
        else:
            rows = await self.db.fetchall(
                f"SELECT {SESSION_COLUMNS} FROM voice_sessions "
                "WHERE is_active = 1 AND guild_id = ? ORDER BY id",
                (guild_id,)
            )
        return [VoiceSession.from_row(row) for row in rows]

    async def list_stale(self, older_than: datetime) -> List[VoiceSession]:
        """Active sessions whose last status change is before ``older_than``."""
        rows = await self.db.fetchall(
            f"SELECT {SESSION_COLUMNS} FROM voice_sessions "
            "WHERE is_active = 1 AND last_status_change < ? ORDER BY id",
            (to_iso(older_than),)
        )
        return [VoiceSession.from_row(row) for row in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def _settle(self, session: VoiceSession, now: datetime) -> SessionEnd:
        """Credit the final segment of a session under the leave rules."""
        if session.age_seconds(now) < self.min_session_seconds:
            logger.debug(
                f"Discarding short session {session.id} for {session.username} "
                f"({session.age_seconds(now)}s < {self.min_session_seconds}s)"
            )
            return SessionEnd(session=session, credited_seconds=0, discarded=True)

        seconds = max(0, session.segment_seconds(now))
        await self.aggregates.apply_duration(
            session.user_id,
            session.guild_id,
            session.username,
            seconds,
            session.is_afk,
            session.is_muted_or_deafened,
        )
        return SessionEnd(session=session, credited_seconds=seconds, discarded=False)

    async def _mark_closed(self, session_id: int, now: datetime):
        await self.db.execute(
            "UPDATE voice_sessions SET is_active = 0, left_at = ? WHERE id = ? AND is_active = 1",
            (to_iso(now), session_id)
        )

    async def open(
        self,
        user_id: int,
        guild_id: int,
        username: str,
        channel_id: Optional[int],
        is_afk: bool,
        is_muted_or_deafened: bool,
    ) -> int:
        """
        Start a session, ending any session still active for the pair first.

        Returns:
            The new session id
        """
        now = self.clock()
        async with self.db.transaction():
            existing = await self.get_active(user_id, guild_id)
            if existing is not None:
                logger.debug(
                    f"Closing leftover session {existing.id} for {username} before re-opening"
                )
                await self._settle(existing, now)
                await self._mark_closed(existing.id, now)

            stamp = to_iso(now)
            session_id = await self.db.insert(
                """
                INSERT INTO voice_sessions (
                    user_id, guild_id, username, channel_id, is_active,
                    is_afk, is_muted_or_deafened, join_time, last_status_change
                )
                VALUES (?, ?, ?, ?, 1, ?, ?, ?, ?)
                """,
                (user_id, guild_id, username, channel_id,
                 int(is_afk), int(is_muted_or_deafened), stamp, stamp)
            )

        return session_id

    async def close(self, user_id: int, guild_id: int) -> Optional[VoiceSession]:
        """
        Mark the active session inactive without crediting anything.

        Returns:
            The pre-close snapshot, or None if no session was active
        """
        now = self.clock()
        async with self.db.transaction():
            session = await self.get_active(user_id, guild_id)
            if session is None:
                return None
            await self._mark_closed(session.id, now)
        return session

    async def end(self, user_id: int, guild_id: int) -> Optional[SessionEnd]:
        """
        Leave path: credit the final segment (unless the session is too
        short to count) and close the session.

        Returns:
            What was credited, or None if no session was active
        """
        now = self.clock()
        async with self.db.transaction():
            session = await self.get_active(user_id, guild_id)
            if session is None:
                return None
            result = await self._settle(session, now)
            await self._mark_closed(session.id, now)
        return result

    async def record_status_change(
        self,
        user_id: int,
        guild_id: int,
        is_afk: bool,
        is_muted_or_deafened: bool,
        channel_id: Optional[int] = None,
    ) -> Optional[VoiceSession]:
        """
        Close the current segment with the previous flags and start a new one.

        Returns:
            The updated session, or None if no session was active
        """
        now = self.clock()
        async with self.db.transaction():
            session = await self.get_active(user_id, guild_id)
            if session is None:
                return None

            await self.aggregates.apply_duration(
                session.user_id,
                session.guild_id,
                session.username,
                session.segment_seconds(now),
                session.is_afk,
                session.is_muted_or_deafened,
            )

            new_channel_id = channel_id if channel_id is not None else session.channel_id
            await self.db.execute(
                """
                UPDATE voice_sessions
                SET is_afk = ?, is_muted_or_deafened = ?, channel_id = ?, last_status_change = ?
                WHERE id = ?
                """,
                (int(is_afk), int(is_muted_or_deafened), new_channel_id, to_iso(now), session.id)
            )

        return replace(
            session,
            is_afk=is_afk,
            is_muted_or_deafened=is_muted_or_deafened,
            channel_id=new_channel_id,
            last_status_change=now,
        )
