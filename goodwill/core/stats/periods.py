"""
Time helpers for activity periods.

All period keys are computed in UTC and stored as ISO dates:
- daily: the day itself
- weekly: the configured week-start day on or before the day
- monthly: the 1st of the month
"""

from datetime import date, datetime, timedelta, timezone
from typing import Dict, Union

PERIODS = ("daily", "weekly", "monthly")

PERIOD_TABLES = {
    "daily": "daily_activity",
    "weekly": "weekly_activity",
    "monthly": "monthly_activity",
}

WEEKDAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


def utcnow() -> datetime:
    """Default clock: timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> str:
    """Serialize a timestamp for storage (UTC, fixed microsecond precision)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: str) -> datetime:
    """Parse a stored timestamp back into an aware UTC datetime."""
    moment = datetime.fromisoformat(value)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _as_utc_date(moment: Union[datetime, date]) -> date:
    if isinstance(moment, datetime):
        if moment.tzinfo is not None:
            moment = moment.astimezone(timezone.utc)
        return moment.date()
    return moment


def day_start(moment: Union[datetime, date]) -> date:
    """UTC calendar day of a timestamp."""
    return _as_utc_date(moment)


def week_start(moment: Union[datetime, date], week_start_day: int = 0) -> date:
    """
    First day of the week containing ``moment``.

    Args:
        moment: Timestamp or date
        week_start_day: 0 = Monday ... 6 = Sunday
    """
    day = _as_utc_date(moment)
    offset = (day.weekday() - week_start_day) % 7
    return day - timedelta(days=offset)


def month_start(moment: Union[datetime, date]) -> date:
    """First day of the month containing ``moment``."""
    return _as_utc_date(moment).replace(day=1)


def period_start(period: str, moment: Union[datetime, date], week_start_day: int = 0) -> date:
    """Period key for one of ``PERIODS``."""
    if period == "daily":
        return day_start(moment)
    if period == "weekly":
        return week_start(moment, week_start_day)
    if period == "monthly":
        return month_start(moment)
    raise ValueError(f"Unknown period: {period}")


def period_keys(moment: Union[datetime, date], week_start_day: int = 0) -> Dict[str, str]:
    """ISO period keys for all three granularities, keyed by period name."""
    return {
        period: period_start(period, moment, week_start_day).isoformat()
        for period in PERIODS
    }


def format_duration(seconds: int) -> str:
    """
    Format a duration for display.

    Examples:
        45 -> "45s", 3900 -> "1h 05m", 93600 -> "1d 2h 00m"
    """
    seconds = max(0, int(seconds))
    if seconds < 60:
        return f"{seconds}s"

    days, remainder = divmod(seconds, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes = remainder // 60

    if days:
        return f"{days}d {hours}h {minutes:02d}m"
    if hours:
        return f"{hours}h {minutes:02d}m"
    return f"{minutes}m"


def render_bar_chart(value: int, max_value: int, bar_length: int = 20) -> str:
    """
    Render an ASCII bar chart.

    Args:
        value: Current value
        max_value: Maximum value (for scaling)
        bar_length: Total length of the bar in characters

    Returns:
        String representation of the bar
    """
    if max_value <= 0:
        filled = 0
    else:
        filled = min(bar_length, int((value / max_value) * bar_length))

    empty = bar_length - filled
    return "█" * filled + "░" * empty
