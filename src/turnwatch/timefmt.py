"""Human-readable time strings for roster output."""

from datetime import datetime, timedelta

_INTERVALS = (
    ("year", 31536000),
    ("month", 2592000),
    ("day", 86400),
    ("hour", 3600),
    ("minute", 60),
)


def format_time_left(expiry: datetime | None, now: datetime) -> str:
    """'2d 5h left', '3h 12m left', 'Expired', or 'N/A' without an expiry."""
    if expiry is None:
        return "N/A"

    diff = expiry - now
    if diff <= timedelta(0):
        return "Expired"

    days = diff.days
    hours, rest = divmod(diff.seconds, 3600)
    minutes = rest // 60

    parts = []
    if days > 0:
        parts.append(f"{days}d")
    if hours > 0:
        parts.append(f"{hours}h")
    if days == 0:
        parts.append(f"{minutes}m")
    return " ".join(parts) + " left"


def format_relative_time(timestamp: datetime, now: datetime) -> str:
    """'just now', '1 minute ago', '3 days ago'..."""
    seconds = int((now - timestamp).total_seconds())
    if seconds < 10:
        return "just now"

    for name, length in _INTERVALS:
        count = seconds // length
        if count > 0:
            return f"{count} {name}{'s' if count > 1 else ''} ago"

    return f"{seconds} seconds ago"


def format_last_played(last_played: datetime | None) -> str:
    if last_played is None:
        return "Never"
    return last_played.astimezone().strftime("%Y-%m-%d %H:%M")
