"""
Per-guild settings consumed by the voice tracker (currently the AFK channel).
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from goodwill.core.stats.database import Database
from goodwill.core.stats.periods import to_iso, utcnow

logger = logging.getLogger("goodwill.guild_settings")


@dataclass
class GuildSettings:
    """Persisted settings for one guild."""
    guild_id: int
    guild_name: str = ""
    afk_channel_id: Optional[int] = None
    updated_at: Optional[str] = None


class GuildSettingsStore:
    """Read/write access to the ``guild_settings`` table."""

    def __init__(self, db: Database, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    async def get(self, guild_id: int) -> Optional[GuildSettings]:
        row = await self.db.fetchone(
            "SELECT guild_id, guild_name, afk_channel_id, updated_at "
            "FROM guild_settings WHERE guild_id = ?",
            (guild_id,)
        )
        if row is None:
            return None
        return GuildSettings(
            guild_id=row["guild_id"],
            guild_name=row["guild_name"],
            afk_channel_id=row["afk_channel_id"],
            updated_at=row["updated_at"],
        )

    async def initialize_guild(self, guild) -> GuildSettings:
        """
        Create or refresh the settings row for a Discord guild.

        The guild's own AFK channel only fills an empty ``afk_channel_id``;
        a channel chosen with the afkchannel command is kept.
        """
        afk_channel = getattr(guild, "afk_channel", None)
        await self.db.execute(
            """
            INSERT INTO guild_settings (guild_id, guild_name, afk_channel_id, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(guild_id) DO UPDATE SET
                guild_name = excluded.guild_name,
                afk_channel_id = COALESCE(guild_settings.afk_channel_id, excluded.afk_channel_id),
                updated_at = excluded.updated_at
            """,
            (guild.id, guild.name, afk_channel.id if afk_channel else None, to_iso(self.clock()))
        )
        logger.info(f"⚙️ Guild settings initialized for {guild.name}")
        return await self.get(guild.id)

    async def set_afk_channel(self, guild_id: int, channel_id: Optional[int], guild_name: str = "") -> None:
        """Set (or clear with ``None``) the guild's AFK channel."""
        await self.db.execute(
            """
            INSERT INTO guild_settings (guild_id, guild_name, afk_channel_id, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(guild_id) DO UPDATE SET
                afk_channel_id = excluded.afk_channel_id,
                updated_at = excluded.updated_at
            """,
            (guild_id, guild_name, channel_id, to_iso(self.clock()))
        )
        logger.info(f"AFK channel for guild {guild_id} set to {channel_id}")
