"""
Activity tracker cog.
Feeds voice state updates and messages into the stats core and runs the
periodic stale-session cleanup, reconciliation sweep and retention jobs.
"""
import datetime

import discord
from discord.ext import commands, tasks
from dataclasses import dataclass
from goodwill.base_cog import BaseCog, logger
from goodwill.core.config_base import ConfigBase, config_field
from goodwill.core.config_system import CogConfigSchema
from goodwill.core.stats.afk import AfkClassifier
from goodwill.core.stats.aggregates import ActivityAggregates
from goodwill.core.stats.guild_settings import GuildSettingsStore
from goodwill.core.stats.periods import WEEKDAY_NAMES, format_duration, utcnow
from goodwill.core.stats.sessions import SessionStore
from goodwill.core.stats.voice_tracker import VoiceTracker

RETENTION_CLEANUP_TIME = datetime.time(hour=0, minute=30, tzinfo=datetime.timezone.utc)


# -------- Configuration Schema --------

@dataclass
class ActivityConfig(ConfigBase):
    """Voice and message activity tracking configuration schema."""

    # Tracking Switches
    voice_tracking_enabled: bool = config_field(
        default=True,
        description="Track voice channel sessions (join, leave, mute, AFK)",
        category="Tracking",
        guild_override=True
    )

    message_tracking_enabled: bool = config_field(
        default=True,
        description="Count text messages in the activity stats",
        category="Tracking",
        guild_override=True
    )

    ignore_bots: bool = config_field(
        default=True,
        description="Ignore bot accounts in voice and message tracking",
        category="Tracking",
        requires_restart=True
    )

    # Voice Session Rules
    min_session_seconds: int = config_field(
        default=300,
        description="Voice sessions shorter than this are not counted when the member leaves",
        category="Voice Rules",
        requires_restart=True,
        min_value=0,
        max_value=3600
    )

    afk_timeout_seconds: int = config_field(
        default=900,
        description="AFK segments at least this long never count as active voice time",
        category="Voice Rules",
        requires_restart=True,
        min_value=60,
        max_value=86400
    )

    stale_session_hours: int = config_field(
        default=12,
        description="Sessions without a status change for this long are closed by the cleanup job",
        category="Voice Rules",
        requires_restart=True,
        min_value=1,
        max_value=168
    )

    periodic_check_minutes: int = config_field(
        default=5,
        description="Minutes between stale-session cleanup and voice reconciliation runs",
        category="Voice Rules",
        requires_restart=True,
        min_value=1,
        max_value=60
    )

    # Storage
    daily_retention_days: int = config_field(
        default=30,
        description="Days of daily activity rows to keep (weekly and monthly rows are kept)",
        category="Storage",
        min_value=1,
        max_value=3650
    )

    week_start_day: int = config_field(
        default=0,
        description="First day of the activity week (0=Monday, 6=Sunday)",
        category="Storage",
        requires_restart=True,
        min_value=0,
        max_value=6
    )

    # Leaderboard Settings
    leaderboard_default_limit: int = config_field(
        default=10,
        description="Default number of entries shown in the presence leaderboard",
        category="Reports",
        guild_override=True,
        min_value=1,
        max_value=50
    )

    leaderboard_bar_chart_length: int = config_field(
        default=15,
        description="Character length of bar charts in the presence leaderboard",
        category="Reports",
        guild_override=True,
        min_value=5,
        max_value=50
    )


class ActivityTracker(BaseCog):
    """Track voice sessions and message counts."""

    def __init__(self, bot, clock=utcnow):
        super().__init__(bot)
        self.bot = bot

        # Register config schema
        schema = CogConfigSchema.from_dataclass("Activity", ActivityConfig)
        bot.config_manager.register_schema("Activity", schema)
        logger.info("Registered Activity config schema")

        cfg = bot.config_manager.for_guild("Activity")

        self.guild_settings = GuildSettingsStore(bot.db, clock=clock)
        self.aggregates = ActivityAggregates(
            bot.db,
            clock=clock,
            afk_timeout_seconds=cfg.afk_timeout_seconds,
            week_start_day=cfg.week_start_day,
        )
        self.sessions = SessionStore(
            bot.db,
            self.aggregates,
            clock=clock,
            min_session_seconds=cfg.min_session_seconds,
        )
        self.voice_tracker = VoiceTracker(
            self.sessions,
            AfkClassifier(self.guild_settings),
            clock=clock,
            stale_session_hours=cfg.stale_session_hours,
            ignore_bots=cfg.ignore_bots,
        )

        self.periodic_check.change_interval(minutes=cfg.periodic_check_minutes)

    async def cog_load(self):
        self.periodic_check.start()
        self.retention_cleanup.start()
        logger.info("[ActivityTracker] Periodic check and retention tasks started")

    def _cfg(self, guild_id=None):
        return self.bot.config_manager.for_guild("Activity", guild_id)

    async def _sync_guild(self, guild: discord.Guild):
        """Refresh the guild's settings row and reconcile its voice sessions."""
        try:
            await self.guild_settings.initialize_guild(guild)
        except Exception as e:
            logger.error(f"Failed to initialize guild settings for {guild.name}: {e}", exc_info=True)

        if not self._cfg(guild.id).voice_tracking_enabled:
            return 0, await self.voice_tracker.close_guild_sessions(guild.id)
        return await self.voice_tracker.reconcile_guild(guild)

    @commands.Cog.listener()
    async def on_ready(self):
        """Pick up members who were already in voice when the bot started."""
        opened = closed = 0
        for guild in self.bot.guilds:
            guild_opened, guild_closed = await self._sync_guild(guild)
            opened += guild_opened
            closed += guild_closed
        logger.info(
            f"✅ Voice tracking synced for {len(self.bot.guilds)} guilds "
            f"(opened {opened}, closed {closed} sessions)"
        )

    @commands.Cog.listener()
    async def on_guild_join(self, guild: discord.Guild):
        logger.info(f"Joined guild {guild.name} ({guild.id})")
        await self._sync_guild(guild)

    @commands.Cog.listener()
    async def on_voice_state_update(self, member: discord.Member, before: discord.VoiceState, after: discord.VoiceState):
        """Track voice channel join/leave and state changes."""
        if not self._cfg(member.guild.id).voice_tracking_enabled:
            return

        await self.voice_tracker.handle_voice_state_update(member, before, after)

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message):
        """Count text messages."""
        # Ignore DMs
        if not message.guild:
            return

        if message.author.bot and self._cfg().ignore_bots:
            return

        if not self._cfg(message.guild.id).message_tracking_enabled:
            return

        await self.aggregates.record_message(message.author.id, message.guild.id, message.author.name)

    @tasks.loop(minutes=5)
    async def periodic_check(self):
        """
        Close sessions of guilds with voice tracking off (no credit), then
        stale-session cleanup and the reconciliation sweep for the rest.
        """
        try:
            disabled = {
                guild.id for guild in self.bot.guilds
                if not self._cfg(guild.id).voice_tracking_enabled
            }
            paused = 0
            for guild_id in disabled:
                paused += await self.voice_tracker.close_guild_sessions(guild_id)

            reaped = await self.voice_tracker.cleanup_stale_sessions(exclude_guilds=disabled)

            opened = closed = 0
            for guild in self.bot.guilds:
                if guild.id in disabled:
                    continue
                guild_opened, guild_closed = await self.voice_tracker.reconcile_guild(guild)
                opened += guild_opened
                closed += guild_closed

            logger.debug(
                f"[ActivityTracker] Periodic check: paused {paused}, reaped {reaped}, "
                f"opened {opened}, closed {closed}"
            )
        except Exception as e:
            logger.error(f"Failed to run periodic voice check: {e}", exc_info=True)

    @periodic_check.before_loop
    async def before_periodic_check(self):
        """Wait for bot to be ready before starting the periodic check."""
        await self.bot.wait_until_ready()

    @tasks.loop(time=RETENTION_CLEANUP_TIME)
    async def retention_cleanup(self):
        """Delete daily activity rows past the retention window."""
        try:
            await self.aggregates.cleanup_daily(self._cfg().daily_retention_days)
        except Exception as e:
            logger.error(f"Failed to clean up daily activity: {e}", exc_info=True)

    @retention_cleanup.before_loop
    async def before_retention_cleanup(self):
        await self.bot.wait_until_ready()

    @commands.command(name="trackerstatus", help="Show voice tracking status for this server")
    @commands.guild_only()
    @commands.has_guild_permissions(manage_guild=True)
    async def tracker_status(self, ctx):
        """Active sessions, tracking switches and the next periodic check."""
        cfg = self._cfg(ctx.guild.id)
        active = await self.sessions.list_active(ctx.guild.id)
        settings = await self.guild_settings.get(ctx.guild.id)

        embed = discord.Embed(
            title="🎙️ Voice Tracking Status",
            color=discord.Color.blue()
        )
        embed.add_field(name="Active Sessions", value=str(len(active)), inline=True)
        embed.add_field(
            name="Voice Tracking",
            value="✅ Enabled" if cfg.voice_tracking_enabled else "❌ Disabled",
            inline=True
        )
        embed.add_field(
            name="Message Tracking",
            value="✅ Enabled" if cfg.message_tracking_enabled else "❌ Disabled",
            inline=True
        )

        afk_channel = None
        if settings and settings.afk_channel_id:
            afk_channel = ctx.guild.get_channel(settings.afk_channel_id)
        embed.add_field(
            name="AFK Channel",
            value=afk_channel.mention if afk_channel else "Name contains \"afk\"",
            inline=True
        )

        embed.add_field(
            name="Rules",
            value=(
                f"Minimum session: {format_duration(cfg.min_session_seconds)}\n"
                f"Long AFK: {format_duration(cfg.afk_timeout_seconds)}\n"
                f"Stale after: {cfg.stale_session_hours}h\n"
                f"Week starts: {WEEKDAY_NAMES[cfg.week_start_day]}"
            ),
            inline=False
        )

        next_run = self.periodic_check.next_iteration
        if next_run:
            embed.set_footer(text=f"Next check: {next_run.strftime('%H:%M:%S')} UTC")

        await ctx.send(embed=embed)

    async def cog_unload(self):
        """Cancel background tasks. Open sessions stay open for the next start."""
        for task in (self.periodic_check, self.retention_cleanup):
            if task.is_running():
                task.cancel()
        logger.info("[ActivityTracker] Background tasks cancelled")
        await super().cog_unload()


async def setup(bot):
    """Load the ActivityTracker cog."""
    try:
        await bot.add_cog(ActivityTracker(bot))
        logger.info(f"{__name__} loaded successfully")
    except Exception as e:
        logger.error(f"Failed to load cog {__name__}: {e}", exc_info=True)
