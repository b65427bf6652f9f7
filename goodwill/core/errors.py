# goodwill/core/errors.py
"""
Centralized error handling with user-friendly messages and detailed logging.

Internal helpers raise the typed errors below; public entry points (event
listeners, scheduled jobs) catch them and report through ``error_handler``
so nothing escapes to discord.py's dispatcher.
"""

import asyncio
import logging
import traceback
from enum import Enum
from typing import Any, Callable
from functools import wraps
from datetime import datetime, timezone
import discord
from discord.ext import commands

logger = logging.getLogger("goodwill.error_handler")


class ErrorSeverity(Enum):
    """Error severity levels for monitoring."""
    LOW = "low"  # Expected errors (user mistakes)
    MEDIUM = "medium"  # Unexpected but recoverable
    HIGH = "high"  # Service degradation
    CRITICAL = "critical"  # System failure


class ErrorCategory(Enum):
    """Categories for error classification."""
    USER_INPUT = "user_input"
    DATABASE = "database"
    PERMISSION = "permission"
    NETWORK = "network"
    INTERNAL = "internal"
    RATE_LIMIT = "rate_limit"
    VOICE_TRACKING = "voice_tracking"


class BotError(Exception):
    """Base exception for bot errors with user-facing messages."""

    def __init__(
            self,
            user_message: str,
            log_message: str = None,
            category: ErrorCategory = ErrorCategory.INTERNAL,
            severity: ErrorSeverity = ErrorSeverity.MEDIUM,
            original_error: Exception = None
    ):
        self.user_message = user_message
        self.log_message = log_message or user_message
        self.category = category
        self.severity = severity
        self.original_error = original_error
        super().__init__(self.log_message)


class UserInputError(BotError):
    """Errors caused by invalid user input."""

    def __init__(self, user_message: str, log_message: str = None):
        super().__init__(
            user_message,
            log_message,
            ErrorCategory.USER_INPUT,
            ErrorSeverity.LOW
        )


class DatabaseError(BotError):
    """Errors raised by the SQLite persistence layer."""

    def __init__(self, user_message: str, log_message: str = None, original_error: Exception = None):
        super().__init__(
            user_message,
            log_message,
            ErrorCategory.DATABASE,
            ErrorSeverity.HIGH,
            original_error
        )


class TrackerError(BotError):
    """Errors raised while processing a voice state transition."""

    def __init__(self, user_message: str, log_message: str = None, original_error: Exception = None):
        super().__init__(
            user_message,
            log_message,
            ErrorCategory.VOICE_TRACKING,
            ErrorSeverity.MEDIUM,
            original_error
        )


class ErrorHandler:
    """Central error handling with logging and user notifications."""

    USER_MESSAGES = {
        "default": "❌ Something went wrong. The issue has been logged.",
        "permission_denied": "⚠️ I don't have permission to do that.",
        "invalid_input": "⚠️ Invalid input. Please check your command.",
        "rate_limited": "⚠️ Slow down! You're doing that too quickly.",
        "database_error": "❌ A database error occurred. Please try again later.",
        "network_error": "❌ Network issue detected. Please try again.",
    }

    def __init__(self, max_error_history: int = 100):
        self.error_count = 0
        self.errors_by_category = {}
        self.last_errors = []
        self.max_error_history = max_error_history

    def log_error(
            self,
            error: Exception,
            context: dict = None,
            severity: ErrorSeverity = ErrorSeverity.MEDIUM,
            category: ErrorCategory = ErrorCategory.INTERNAL
    ):
        """Log an error with full context."""

        self.error_count += 1

        cat_name = category.value
        self.errors_by_category[cat_name] = self.errors_by_category.get(cat_name, 0) + 1

        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "error_type": type(error).__name__,
            "severity": severity.value,
            "category": category.value,
            "message": str(error),
        }

        if context:
            log_data["context"] = context

        self.last_errors.append(log_data)
        if len(self.last_errors) > self.max_error_history:
            self.last_errors.pop(0)

        if severity == ErrorSeverity.CRITICAL:
            logger.critical(
                f"CRITICAL ERROR: {error}\n"
                f"Context: {context}\n"
                f"Traceback: {traceback.format_exc()}"
            )
        elif severity == ErrorSeverity.HIGH:
            logger.error(
                f"HIGH SEVERITY: {error}\n"
                f"Context: {context}\n"
                f"Traceback: {traceback.format_exc()}"
            )
        elif severity == ErrorSeverity.MEDIUM:
            logger.error(f"Error: {error}\nContext: {context}")
        else:  # LOW
            logger.warning(f"Minor error: {error}\nContext: {context}")

    async def handle_command_error(
            self,
            ctx: commands.Context,
            error: Exception,
            custom_message: str = None
    ) -> bool:
        """
        Handle errors during command execution.
        Returns True if error was handled, False if should propagate.
        """

        context = {
            "command": ctx.command.name if ctx.command else "unknown",
            "guild": ctx.guild.name if ctx.guild else "DM",
            "guild_id": ctx.guild.id if ctx.guild else None,
            "user": str(ctx.author),
            "user_id": ctx.author.id,
            "channel": str(ctx.channel),
        }

        user_message = custom_message or self.USER_MESSAGES["default"]

        if isinstance(error, commands.CommandNotFound):
            return True  # Silently ignore

        elif isinstance(error, commands.MissingRequiredArgument):
            user_message = f"⚠️ Missing required argument: `{error.param.name}`"
            self.log_error(error, context, ErrorSeverity.LOW, ErrorCategory.USER_INPUT)

        elif isinstance(error, commands.BadArgument):
            user_message = f"⚠️ {error}"
            self.log_error(error, context, ErrorSeverity.LOW, ErrorCategory.USER_INPUT)

        elif isinstance(error, (commands.MissingPermissions, commands.CheckFailure)):
            user_message = "⚠️ You don't have permission to use this command."
            self.log_error(error, context, ErrorSeverity.LOW, ErrorCategory.PERMISSION)

        elif isinstance(error, commands.CommandOnCooldown):
            user_message = f"⏱️ Command on cooldown. Try again in {error.retry_after:.1f}s."
            self.log_error(error, context, ErrorSeverity.LOW, ErrorCategory.RATE_LIMIT)

        elif isinstance(error, discord.Forbidden):
            user_message = self.USER_MESSAGES["permission_denied"]
            self.log_error(error, context, ErrorSeverity.MEDIUM, ErrorCategory.PERMISSION)

        elif isinstance(error, discord.HTTPException):
            user_message = self.USER_MESSAGES["network_error"]
            self.log_error(error, context, ErrorSeverity.HIGH, ErrorCategory.NETWORK)

        elif isinstance(error, BotError):
            user_message = error.user_message
            self.log_error(error, context, error.severity, error.category)

        else:
            user_message = self.USER_MESSAGES["default"]
            self.log_error(error, context, ErrorSeverity.HIGH, ErrorCategory.INTERNAL)

        try:
            await ctx.send(user_message, delete_after=10)
        except discord.HTTPException as send_error:
            logger.error(f"Failed to send error message: {send_error}")

        return True

    def get_stats(self) -> dict:
        """Get error statistics for the errorstats command."""
        return {
            "total_errors": self.error_count,
            "by_category": self.errors_by_category.copy(),
            "recent_errors": self.last_errors[-10:],
        }


# Global error handler instance
error_handler = ErrorHandler()


def safe_operation(
        fallback_value: Any = None,
        log_message: str = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.INTERNAL
):
    """
    Decorator for non-command operations that must never raise.

    Usage:
        @safe_operation(fallback_value=0, category=ErrorCategory.VOICE_TRACKING)
        async def cleanup_stale_sessions(self):
            ...
    """

    def decorator(func: Callable) -> Callable:
        def _report(e: Exception, args):
            if isinstance(e, BotError):
                err_severity, err_category = e.severity, e.category
            else:
                err_severity, err_category = severity, category
            error_handler.log_error(
                e,
                context={
                    "function": func.__name__,
                    "message": log_message,
                    "args": str(args)[:200],
                },
                severity=err_severity,
                category=err_category
            )

        @wraps(func)
        async def async_wrapper(*args, **kwargs) -> Any:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                _report(e, args)
                return fallback_value

        @wraps(func)
        def sync_wrapper(*args, **kwargs) -> Any:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                _report(e, args)
                return fallback_value

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


# ============================================================================
# User Feedback System
# ============================================================================

class UserFeedback:
    """Short embed replies shared by the command cogs."""

    @staticmethod
    async def success(ctx: commands.Context, message: str, delete_after: int = None):
        """Send a success message."""
        embed = discord.Embed(
            description=f"✅ {message}",
            color=discord.Color.green()
        )
        await ctx.send(embed=embed, delete_after=delete_after)

    @staticmethod
    async def error(ctx: commands.Context, message: str, delete_after: int = 10):
        """Send an error message."""
        embed = discord.Embed(
            description=f"❌ {message}",
            color=discord.Color.red()
        )
        await ctx.send(embed=embed, delete_after=delete_after)

    @staticmethod
    async def info(ctx: commands.Context, message: str, delete_after: int = None):
        """Send an info message."""
        embed = discord.Embed(
            description=f"ℹ️ {message}",
            color=discord.Color.blue()
        )
        await ctx.send(embed=embed, delete_after=delete_after)
