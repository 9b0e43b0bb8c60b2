import re
from datetime import datetime, timedelta, timezone

_RELATIVE_PATTERNS = (
    (re.compile(r"(\d+)\s*minute"), lambda n: timedelta(minutes=n)),
    (re.compile(r"(\d+)\s*hour"), lambda n: timedelta(hours=n)),
    (re.compile(r"(\d+)\s*day"), lambda n: timedelta(days=n)),
    (re.compile(r"(\d+)\s*week"), lambda n: timedelta(weeks=n)),
    (re.compile(r"(\d+)\s*month"), lambda n: timedelta(days=30 * n)),
)


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (what SQLite hands back)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_posted_date(value: str | None, now: datetime | None = None) -> datetime:
    """Turn a posting date into an absolute (naive UTC) datetime.

    Accepts ISO dates from JSON-LD ("2024-05-01") as well as the relative
    strings shown on listings ("3 days ago", "1 week ago", "Just now").
    Anything unparseable falls back to ``now``.
    """
    now = now or utcnow()
    if not value:
        return now

    text = value.strip()
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        parsed = None
    if parsed is not None:
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed

    lowered = text.lower()
    for pattern, to_delta in _RELATIVE_PATTERNS:
        match = pattern.search(lowered)
        if match:
            return now - to_delta(int(match.group(1)))

    return now


def format_age(age: timedelta) -> str:
    """Compact human age: '1d 2h', '3h 15m', '12m', '40s'."""
    total = max(int(age.total_seconds()), 0)
    minutes, seconds = divmod(total, 60)
    hours, minutes = divmod(minutes, 60)
    days, hours = divmod(hours, 24)
    if days:
        return f"{days}d {hours}h"
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m"
    return f"{seconds}s"
