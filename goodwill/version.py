"""
Bot version information.

Semantic versioning: MAJOR.MINOR.PATCH
- MAJOR: Incompatible schema or command changes
- MINOR: Backwards-compatible functionality additions
- PATCH: Backwards-compatible bug fixes
"""

__version__ = "1.2.0"
__version_info__ = (1, 2, 0)

# Version history
VERSION_HISTORY = {
    "1.2.0": "Reconciliation sweep on startup and guild join, daily retention cleanup for daily_activity",
    "1.1.0": "Status-change segments credited on every mute/deafen/AFK toggle, leave only credits the final segment",
    "1.0.0": "Initial version tracking - SQLite voice sessions with daily/weekly/monthly aggregates"
}


def get_version() -> str:
    """Get the current bot version string."""
    return __version__
