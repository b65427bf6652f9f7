"""Voice and message activity tracking."""

from goodwill.core.stats.afk import AfkClassifier, is_afk_channel
from goodwill.core.stats.aggregates import ActivityAggregates, ActivityRecord, compute_increments
from goodwill.core.stats.database import Database
from goodwill.core.stats.guild_settings import GuildSettings, GuildSettingsStore
from goodwill.core.stats.sessions import SessionEnd, SessionStore, VoiceSession
from goodwill.core.stats.voice_tracker import VoiceStateChange, VoiceTracker, VoiceTransition

__all__ = [
    "ActivityAggregates",
    "ActivityRecord",
    "AfkClassifier",
    "Database",
    "GuildSettings",
    "GuildSettingsStore",
    "SessionEnd",
    "SessionStore",
    "VoiceSession",
    "VoiceStateChange",
    "VoiceTracker",
    "VoiceTransition",
    "compute_increments",
    "is_afk_channel",
]
