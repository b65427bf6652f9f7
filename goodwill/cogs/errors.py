# cogs/errors.py
"""
Global error handler cog that catches all unhandled command errors.
"""

import discord
from discord.ext import commands

from goodwill.base_cog import BaseCog, logger
from goodwill.core.errors import error_handler


class GlobalErrorHandler(BaseCog):
    """Handles all unhandled command errors globally."""

    def __init__(self, bot):
        super().__init__(bot)
        self.bot = bot
        logger.info("Global error handler initialized")

    @commands.Cog.listener()
    async def on_command_error(self, ctx: commands.Context, error: commands.CommandError):
        """
        Global error handler for all command errors.
        Errors already handled by a command or cog handler are skipped.
        """
        if ctx.command is not None and ctx.command.has_error_handler():
            return

        cog = ctx.cog
        if cog is not None and cog.has_error_handler():
            return

        # Get the original error if it's wrapped
        error = getattr(error, 'original', error)

        await error_handler.handle_command_error(ctx, error)

    @commands.command(name="errorstats", hidden=True, help="Show error statistics (owner only)")
    @commands.is_owner()
    async def error_stats(self, ctx):
        """Show error statistics (owner only)."""
        stats = error_handler.get_stats()

        embed = discord.Embed(
            title="📊 Error Statistics",
            color=discord.Color.red()
        )

        embed.add_field(
            name="Total Errors",
            value=f"`{stats['total_errors']}`",
            inline=True
        )

        if stats['by_category']:
            categories = "\n".join(
                f"**{cat}**: {count}"
                for cat, count in sorted(
                    stats['by_category'].items(),
                    key=lambda x: x[1],
                    reverse=True
                )[:5]  # Top 5
            )
            embed.add_field(
                name="Top Categories",
                value=categories or "None",
                inline=False
            )

        if stats['recent_errors']:
            recent = stats['recent_errors'][-3:]  # Last 3
            recent_text = "\n".join(
                f"• **{e['category']}** - {e['error_type']}: {e['message'][:50]}"
                for e in recent
            )
            embed.add_field(
                name="Recent Errors",
                value=recent_text or "None",
                inline=False
            )

        await ctx.send(embed=embed)


async def setup(bot):
    """Load the global error handler."""
    try:
        await bot.add_cog(GlobalErrorHandler(bot))
        logger.info("Global error handler loaded successfully")
    except Exception as e:
        logger.error(f"Failed to load global error handler: {e}", exc_info=True)
