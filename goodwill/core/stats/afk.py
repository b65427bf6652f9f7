"""
AFK channel classification.
"""

import logging
from typing import Optional

from goodwill.core.stats.guild_settings import GuildSettings, GuildSettingsStore

logger = logging.getLogger("goodwill.afk")


def is_afk_channel(channel, guild_settings: Optional[GuildSettings]) -> bool:
    """
    Whether a voice channel counts as AFK for its guild.

    The configured ``afk_channel_id`` wins; otherwise any channel whose name
    contains "afk" (any case) is AFK. ``None`` (not in voice) is never AFK.
    """
    if channel is None:
        return False

    if guild_settings is not None and guild_settings.afk_channel_id == channel.id:
        return True

    return "afk" in (channel.name or "").lower()


class AfkClassifier:
    """Looks up guild settings and applies ``is_afk_channel``."""

    def __init__(self, settings_store: GuildSettingsStore):
        self.settings_store = settings_store

    async def classify(self, channel) -> bool:
        if channel is None:
            return False

        try:
            settings = await self.settings_store.get(channel.guild.id)
        except Exception as e:
            # A failed lookup must not block the voice event
            logger.error(f"Error checking AFK channel {getattr(channel, 'id', None)}: {e}")
            return False

        return is_afk_channel(channel, settings)
