"""
Presence reporting commands.
Reads the daily/weekly/monthly activity counters written by the tracker.
"""
from typing import List, Literal, Optional

import discord
from discord.ext import commands
from goodwill.base_cog import BaseCog, logger
from goodwill.core.errors import TrackerError
from goodwill.core.stats.aggregates import ActivityRecord
from goodwill.core.stats.periods import format_duration, period_start, render_bar_chart

Period = Literal["daily", "weekly", "monthly"]

MEDALS = {1: "🥇", 2: "🥈", 3: "🥉"}
DISTRIBUTION_BAR_LENGTH = 20

# Discord embed limits
EMBED_TOTAL_LIMIT = 6000
EMBED_FIELD_VALUE_LIMIT = 1024
EMBED_MAX_FIELDS = 25
FOOTER_RESERVE = 100


def active_share(record: ActivityRecord) -> int:
    """Active voice time as a percentage of active + AFK time."""
    total = record.voice_time_seconds + record.afk_time_seconds
    if total <= 0:
        return 0
    return round(record.voice_time_seconds / total * 100)


def ranking_line(position: int, record: ActivityRecord, name: str, max_voice: int, bar_length: int) -> str:
    medal = MEDALS.get(position, f"{position}.")
    status = "🟢" if record.voice_time_seconds > 0 else "🔴"
    bar = render_bar_chart(record.voice_time_seconds, max_voice, bar_length)
    return (
        f"{medal} {status} {name}\n"
        f"└ `{bar}` Voice: `{format_duration(record.voice_time_seconds)}` • "
        f"Messages: `{record.message_count}` • Active: `{active_share(record)}%`"
    )


def add_ranking_fields(embed: discord.Embed, lines: List[str]) -> int:
    """
    Add leaderboard lines to an embed as fields, packing as many lines per
    field as fit and stopping before the embed outgrows Discord's limits.
    Room for a footer is kept free.

    Returns:
        Number of lines added
    """
    name = "🏆 Rankings"
    chunk = ""
    shown = 0
    for line in lines:
        candidate = f"{chunk}\n{line}" if chunk else line
        if chunk and len(candidate) > EMBED_FIELD_VALUE_LIMIT:
            embed.add_field(name=name, value=chunk, inline=False)
            name, chunk, candidate = "\u200b", "", line

        too_long = len(embed) + len(name) + len(candidate) + FOOTER_RESERVE > EMBED_TOTAL_LIMIT
        if too_long or len(embed.fields) >= EMBED_MAX_FIELDS:
            break
        chunk = candidate
        shown += 1

    if chunk:
        embed.add_field(name=name, value=chunk, inline=False)
    return shown


class Presence(BaseCog):
    """Voice and chat presence stats."""

    def __init__(self, bot):
        super().__init__(bot)
        self.bot = bot

    @property
    def tracker(self):
        cog = self.bot.get_cog("ActivityTracker")
        if cog is None:
            raise TrackerError("❌ Activity tracking is not available right now.", "ActivityTracker cog is not loaded")
        return cog

    def _period_label(self, period: str) -> str:
        return period.capitalize()

    def _period_start(self, period: str):
        aggregates = self.tracker.aggregates
        return period_start(period, aggregates.clock(), aggregates.week_start_day)

    @commands.command(name="presence", aliases=["p"], help="Show presence stats: presence [daily|weekly|monthly] [@member]")
    @commands.guild_only()
    @commands.cooldown(1, 5, commands.BucketType.user)
    async def presence(self, ctx, period: Optional[Period] = None, member: Optional[discord.Member] = None):
        """Show a member's voice and chat activity for a period."""
        period = period or "daily"
        member = member or ctx.author
        cfg = self.bot.config_manager.for_guild("Activity", ctx.guild.id)

        record = await self.tracker.aggregates.get_user_activity(period, member.id, ctx.guild.id)
        start = self._period_start(period)

        if record is None:
            embed = discord.Embed(
                description=f"❌ No activity recorded for this {period} period.",
                color=discord.Color.red()
            )
            embed.set_author(name=member.display_name, icon_url=member.display_avatar.url)
            embed.set_footer(text="Try joining a voice channel or sending messages!")
            return await ctx.send(embed=embed)

        share = active_share(record)
        embed = discord.Embed(
            description=f"Activity since {start.isoformat()}",
            color=discord.Color.blue()
        )
        embed.set_author(
            name=f"{member.display_name}'s {self._period_label(period)} Activity",
            icon_url=member.display_avatar.url
        )

        voice_lines = [f"Active Time: `{format_duration(record.voice_time_seconds)}`"]
        if record.afk_time_seconds > 0:
            voice_lines.append(f"AFK Time: `{format_duration(record.afk_time_seconds)}`")
        if record.muted_deafened_time_seconds > 0:
            voice_lines.append(f"Muted Time: `{format_duration(record.muted_deafened_time_seconds)}`")

        embed.add_field(name="🎤 Voice Activity", value="\n".join(voice_lines), inline=True)
        embed.add_field(name="💬 Chat Activity", value=f"Messages Sent: `{record.message_count}`", inline=True)
        embed.add_field(
            name="📊 Activity Distribution",
            value=(
                f"{render_bar_chart(share, 100, DISTRIBUTION_BAR_LENGTH)}\n"
                f"Active: {share}% | AFK: {100 - share if record.afk_time_seconds else 0}%"
            ),
            inline=False
        )
        embed.set_footer(
            text=f"Voice time counts once you stay {format_duration(cfg.min_session_seconds)} or more"
        )

        await ctx.send(embed=embed)

    @commands.command(name="presenceleaderboard", aliases=["plb"], help="Show the server presence leaderboard: presenceleaderboard [daily|weekly|monthly]")
    @commands.guild_only()
    @commands.cooldown(1, 10, commands.BucketType.guild)
    async def presence_leaderboard(self, ctx, period: Optional[Period] = None):
        """Rank members by active voice time for a period."""
        period = period or "monthly"
        cfg = self.bot.config_manager.for_guild("Activity", ctx.guild.id)

        aggregates = self.tracker.aggregates
        records = await aggregates.get_leaderboard(period, ctx.guild.id, limit=cfg.leaderboard_default_limit)

        if not records:
            embed = discord.Embed(
                title="📊 Activity Leaderboard",
                description=f"No activity recorded for this {period} period.",
                color=discord.Color.red()
            )
            embed.set_footer(text="Try joining a voice channel or sending messages!")
            return await ctx.send(embed=embed)

        total_members, active_members = await aggregates.count_participants(period, ctx.guild.id)
        active_pct = round(active_members / total_members * 100) if total_members else 0

        embed = discord.Embed(
            title=f"📊 {self._period_label(period)} Activity Leaderboard",
            description=f"Since {self._period_start(period).isoformat()}",
            color=discord.Color.blue()
        )
        embed.add_field(
            name="Activity Distribution",
            value=(
                f"{render_bar_chart(active_pct, 100, DISTRIBUTION_BAR_LENGTH)}\n"
                f"Active: {active_pct}% ({active_members} members)\n"
                f"Inactive: {100 - active_pct}% ({total_members - active_members} members)\n"
                f"Total Members: {total_members}"
            ),
            inline=False
        )

        max_voice = max(record.voice_time_seconds for record in records)
        lines = []
        for position, record in enumerate(records, start=1):
            member = ctx.guild.get_member(record.user_id)
            name = member.mention if member else (record.username or str(record.user_id))
            lines.append(ranking_line(position, record, name, max_voice, cfg.leaderboard_bar_chart_length))

        shown = add_ranking_fields(embed, lines)
        footer = f"Top {shown} by active voice time"
        if shown < len(records):
            footer += f" ({len(records) - shown} more did not fit)"
        embed.set_footer(text=footer)

        await ctx.send(embed=embed)
        logger.debug(f"[Presence] Leaderboard ({period}) shown in {ctx.guild.name}")


async def setup(bot):
    """Load the Presence cog."""
    try:
        await bot.add_cog(Presence(bot))
        logger.info(f"{__name__} loaded successfully")
    except Exception as e:
        logger.error(f"Failed to load cog {__name__}: {e}", exc_info=True)
