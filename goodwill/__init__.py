"""Albion Goodwill Bot - guild activity tracking for Discord."""

from goodwill.version import __version__

__all__ = ["__version__"]
