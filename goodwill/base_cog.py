# base_cog.py
"""
Base cog with integrated error handling and command timing.
"""

import logging
import time
from discord.ext import commands

from goodwill.core.errors import error_handler

# Configure logger
logger = logging.getLogger(f"goodwill.{__name__}")

SLOW_COMMAND_SECONDS = 2.0


class BaseCog(commands.Cog):
    """
    Base Cog class with centralized error handling and command timing.
    All cogs should inherit from this class.
    """

    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self.command_stats = {}  # command name -> {"calls", "failures", "total_time"}
        logger.info(f"Loaded cog: {self.__class__.__name__}")

    async def cog_before_invoke(self, ctx: commands.Context):
        ctx.started_at = time.monotonic()

    async def cog_after_invoke(self, ctx: commands.Context):
        self._record_command(ctx, success=not ctx.command_failed)

    def _record_command(self, ctx: commands.Context, success: bool):
        started = getattr(ctx, "started_at", None)
        if started is None or ctx.command is None:
            return

        execution_time = time.monotonic() - started
        command_name = ctx.command.qualified_name
        stats = self.command_stats.setdefault(
            command_name, {"calls": 0, "failures": 0, "total_time": 0.0}
        )
        stats["calls"] += 1
        stats["total_time"] += execution_time
        if not success:
            stats["failures"] += 1

        if execution_time > SLOW_COMMAND_SECONDS:
            logger.warning(
                f"Slow command execution: {command_name} took {execution_time:.2f}s"
            )

    async def cog_command_error(self, ctx: commands.Context, error: commands.CommandError):
        """
        Error handler for all commands in this cog.
        Uses centralized error handling system.
        """
        original_error = getattr(error, 'original', error)
        await error_handler.handle_command_error(ctx, original_error)

    async def cog_unload(self):
        """
        Called when cog is unloaded.
        Override this in child classes for cleanup.
        """
        logger.info(f"Unloading cog: {self.__class__.__name__}")
