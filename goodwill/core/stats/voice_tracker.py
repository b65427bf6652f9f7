"""
Voice state transition engine.

Turns ``on_voice_state_update(member, before, after)`` into session store
operations:

    NoSession --join--> ActiveSession          SessionStore.open
    ActiveSession --status change--> Active    SessionStore.record_status_change
    ActiveSession --leave--> NoSession         SessionStore.end

Two compensating jobs recover from missed gateway events:
- ``cleanup_stale_sessions`` ends sessions with no status change for
  ``stale_session_hours``.
- ``reconcile_guild`` compares the live voice members of a guild with the
  active sessions, opening missed joins and ending missed leaves.

``close_guild_sessions`` closes a guild's sessions without credit when its
voice tracking is switched off.

Public entry points never raise; failures are logged through the error handler.
"""

import asyncio
import logging
import weakref
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, Iterable, Optional, Tuple

from goodwill.core.errors import ErrorCategory, error_handler, safe_operation
from goodwill.core.stats.afk import AfkClassifier
from goodwill.core.stats.periods import utcnow
from goodwill.core.stats.sessions import SessionEnd, SessionStore

logger = logging.getLogger("goodwill.voice_tracker")

STALE_SESSION_HOURS = 12


class VoiceTransition(Enum):
    """What a voice state update means for the member's session."""
    JOIN = "join"
    LEAVE = "leave"
    STATUS_CHANGE = "status_change"
    NONE = "none"


def is_muted_or_deafened(voice_state) -> bool:
    """Self-mute or self-deafen. Server mutes are not the member's choice."""
    if voice_state is None:
        return False
    return bool(voice_state.self_mute or voice_state.self_deaf)


@dataclass(frozen=True)
class VoiceStateChange:
    """A voice state update reduced to the fields the tracker uses."""
    transition: VoiceTransition
    user_id: int
    guild_id: int
    username: str
    channel: object  # channel after the update (None on leave)
    is_muted_or_deafened: bool
    is_bot: bool = False

    @property
    def channel_id(self) -> Optional[int]:
        return self.channel.id if self.channel is not None else None

    @classmethod
    def from_states(cls, member, before, after) -> "VoiceStateChange":
        before_channel = before.channel if before is not None else None
        after_channel = after.channel if after is not None else None

        if before_channel is None and after_channel is not None:
            transition = VoiceTransition.JOIN
        elif before_channel is not None and after_channel is None:
            transition = VoiceTransition.LEAVE
        elif before_channel is None and after_channel is None:
            transition = VoiceTransition.NONE
        elif (before_channel.id != after_channel.id
              or is_muted_or_deafened(before) != is_muted_or_deafened(after)):
            transition = VoiceTransition.STATUS_CHANGE
        else:
            # Server mute, streaming, video and similar toggles
            transition = VoiceTransition.NONE

        return cls(
            transition=transition,
            user_id=member.id,
            guild_id=member.guild.id,
            username=member.name,
            channel=after_channel,
            is_muted_or_deafened=is_muted_or_deafened(after),
            is_bot=bool(getattr(member, "bot", False)),
        )


class VoiceTracker:
    """
    Applies voice transitions to the session store.

    Updates for the same (user, guild) are serialized with a per-pair lock so
    segment math always sees events in delivery order; different members are
    processed concurrently.
    """

    def __init__(
        self,
        sessions: SessionStore,
        afk_classifier: AfkClassifier,
        clock: Callable[[], datetime] = utcnow,
        stale_session_hours: float = STALE_SESSION_HOURS,
        ignore_bots: bool = True,
    ):
        self.sessions = sessions
        self.afk_classifier = afk_classifier
        self.clock = clock
        self.stale_session_hours = stale_session_hours
        self.ignore_bots = ignore_bots
        # Entries disappear once no update holds or waits on the lock
        self._locks: "weakref.WeakValueDictionary[Tuple[int, int], asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, user_id: int, guild_id: int) -> asyncio.Lock:
        key = (user_id, guild_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    # ------------------------------------------------------------------
    # Gateway events
    # ------------------------------------------------------------------

    @safe_operation(
        fallback_value=None,
        log_message="Voice state update failed",
        category=ErrorCategory.VOICE_TRACKING
    )
    async def handle_voice_state_update(self, member, before, after) -> Optional[VoiceTransition]:
        """
        Entry point for ``on_voice_state_update``.

        Returns:
            The transition that was applied, or None if the update was
            ignored or failed
        """
        change = VoiceStateChange.from_states(member, before, after)

        if change.is_bot and self.ignore_bots:
            return None
        if change.transition is VoiceTransition.NONE:
            return VoiceTransition.NONE

        async with self._lock_for(change.user_id, change.guild_id):
            if change.transition is VoiceTransition.JOIN:
                await self._join(change)
            elif change.transition is VoiceTransition.LEAVE:
                await self._leave(change.user_id, change.guild_id, change.username)
            else:
                await self._status_change(change)

        return change.transition

    async def _join(self, change: VoiceStateChange) -> int:
        is_afk = await self.afk_classifier.classify(change.channel)
        session_id = await self.sessions.open(
            change.user_id,
            change.guild_id,
            change.username,
            change.channel_id,
            is_afk,
            change.is_muted_or_deafened,
        )
        logger.debug(
            f"🎤 {change.username} joined {getattr(change.channel, 'name', change.channel_id)} "
            f"(session {session_id}, afk={is_afk}, muted={change.is_muted_or_deafened})"
        )
        return session_id

    async def _leave(self, user_id: int, guild_id: int, username: str) -> Optional[SessionEnd]:
        result = await self.sessions.end(user_id, guild_id)
        if result is None:
            logger.debug(f"No active session for {username} ({user_id}) on leave, ignoring")
            return None

        if result.discarded:
            logger.debug(f"👋 {username} left after a short session, nothing credited")
        else:
            logger.debug(f"👋 {username} left, credited {result.credited_seconds}s")
        return result

    async def _status_change(self, change: VoiceStateChange):
        is_afk = await self.afk_classifier.classify(change.channel)
        session = await self.sessions.record_status_change(
            change.user_id,
            change.guild_id,
            is_afk,
            change.is_muted_or_deafened,
            change.channel_id,
        )
        if session is None:
            logger.debug(
                f"No active session for {change.username} ({change.user_id}) on status change, ignoring"
            )
            return None

        logger.debug(
            f"🔁 {change.username} status change (afk={is_afk}, muted={change.is_muted_or_deafened})"
        )
        return session

    # ------------------------------------------------------------------
    # Compensating jobs
    # ------------------------------------------------------------------

    @safe_operation(
        fallback_value=0,
        log_message="Stale session cleanup failed",
        category=ErrorCategory.VOICE_TRACKING
    )
    async def cleanup_stale_sessions(self, exclude_guilds: Iterable[int] = ()) -> int:
        """
        End every session whose last status change is older than the
        staleness threshold, through the same path as a leave.

        Args:
            exclude_guilds: Guild IDs whose sessions are left alone

        Returns:
            Number of sessions ended
        """
        cutoff = self.clock() - timedelta(hours=self.stale_session_hours)
        excluded = set(exclude_guilds)
        stale = [s for s in await self.sessions.list_stale(cutoff) if s.guild_id not in excluded]

        reaped = 0
        for session in stale:
            try:
                async with self._lock_for(session.user_id, session.guild_id):
                    result = await self._leave(session.user_id, session.guild_id, session.username)
            except Exception as e:
                error_handler.log_error(
                    e,
                    context={"operation": "cleanup_stale_sessions", "session_id": session.id},
                    category=ErrorCategory.VOICE_TRACKING
                )
                continue
            if result is not None:
                reaped += 1

        if reaped:
            logger.info(f"🧹 Closed {reaped} stale voice sessions (idle > {self.stale_session_hours}h)")
        return reaped

    @safe_operation(
        fallback_value=0,
        log_message="Closing guild sessions failed",
        category=ErrorCategory.VOICE_TRACKING
    )
    async def close_guild_sessions(self, guild_id: int) -> int:
        """
        Close every active session in a guild without crediting it.
        Used while voice tracking is switched off for the guild, since its
        leave events are no longer seen.

        Returns:
            Number of sessions closed
        """
        closed = 0
        for session in await self.sessions.list_active(guild_id):
            async with self._lock_for(session.user_id, guild_id):
                if await self.sessions.close(session.user_id, guild_id) is not None:
                    closed += 1

        if closed:
            logger.info(f"⏸️ Closed {closed} voice sessions in guild {guild_id} (tracking disabled)")
        return closed

    def _live_voice_members(self, guild) -> Dict[int, Tuple[object, object]]:
        live = {}
        for channel in guild.voice_channels:
            for member in channel.members:
                if self.ignore_bots and getattr(member, "bot", False):
                    continue
                live[member.id] = (member, channel)
        return live

    @safe_operation(
        fallback_value=(0, 0),
        log_message="Voice reconciliation failed",
        category=ErrorCategory.VOICE_TRACKING
    )
    async def reconcile_guild(self, guild) -> Tuple[int, int]:
        """
        Bring the session store in line with the guild's live voice state.

        Live members without a session are opened (missed join); sessions
        without a live member are ended (missed leave). A second run with no
        gateway changes in between does nothing.

        Returns:
            (opened, closed)
        """
        live = self._live_voice_members(guild)
        active = {session.user_id: session for session in await self.sessions.list_active(guild.id)}

        opened = 0
        for user_id, (member, channel) in live.items():
            if user_id in active:
                continue
            change = VoiceStateChange(
                transition=VoiceTransition.JOIN,
                user_id=user_id,
                guild_id=guild.id,
                username=member.name,
                channel=channel,
                is_muted_or_deafened=is_muted_or_deafened(getattr(member, "voice", None)),
            )
            async with self._lock_for(user_id, guild.id):
                # A gateway event may have opened it meanwhile
                if await self.sessions.get_active(user_id, guild.id) is None:
                    await self._join(change)
                    opened += 1

        closed = 0
        for user_id, session in active.items():
            if user_id in live:
                continue
            async with self._lock_for(user_id, guild.id):
                current = await self.sessions.get_active(user_id, guild.id)
                # Only end the session we saw, not one a newer join opened
                if current is None or current.id != session.id:
                    continue
                result = await self._leave(user_id, guild.id, session.username)
            if result is not None:
                closed += 1

        if opened or closed:
            logger.info(f"🔄 Reconciled {guild.name}: opened {opened}, closed {closed} voice sessions")
        return opened, closed
