"""Formatting utilities for display and notification templates."""
from datetime import datetime, timezone


def format_duration(start, end=None):
    """Format elapsed time between two datetimes as '2h 5m' or '5m'."""
    if start is None:
        return "N/A"
    end = end or datetime.now(timezone.utc)
    seconds = max(0, int((end - start).total_seconds()))
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def format_timestamp(ts):
    """Format a datetime to human-readable string."""
    if ts is None:
        return "N/A"
    if isinstance(ts, str):
        return ts
    return ts.strftime("%Y-%m-%d %H:%M UTC")


def format_value(value, decimals=2):
    """Format a metric value, trimming trailing zeros on whole numbers."""
    if value is None:
        return "N/A"
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return f"{value:.{decimals}f}"


def format_pct(value, decimals=1):
    if value is None:
        return "N/A"
    return f"{float(value):.{decimals}f}%"


def time_ago(dt):
    """Return human-readable time since dt. E.g., '3h ago', '2d ago'."""
    if dt is None:
        return "N/A"
    now = datetime.now(timezone.utc)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    delta = now - dt
    seconds = int(delta.total_seconds())

    if seconds < 60:
        return f"{seconds}s ago"
    elif seconds < 3600:
        return f"{seconds // 60}m ago"
    elif seconds < 86400:
        return f"{seconds // 3600}h ago"
    else:
        return f"{seconds // 86400}d ago"
