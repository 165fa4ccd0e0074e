"""Timestamp parsing and relative-age labels.

Records created by this engine carry ISO-8601 timestamps. Older server records
carry locale strings such as ``"29/8/2025, 9:28:31 am"``; those are parsed
leniently so they still sort, but display strings are never rewritten.
"""

import re
from datetime import datetime, timezone

_LOCALE_TIME = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?\s*(AM|PM)?$", re.IGNORECASE)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: object, now: datetime | None = None) -> datetime | None:
    """Parse a server timestamp into an aware datetime.

    Accepts datetimes, ISO-8601 strings and ``D/M/YYYY, h:mm[:ss] am`` locale
    strings. Ambiguous day/month orderings prefer the candidate that is not in
    the future. Returns None for anything unparseable.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, int | float):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if not isinstance(value, str):
        return None

    text = value.strip()
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    except ValueError:
        pass

    return _parse_locale(text, now or utcnow())


def _parse_locale(text: str, now: datetime) -> datetime | None:
    parts = [p.strip() for p in text.split(",")]
    if len(parts) != 2:
        return None
    date_part, time_part = parts

    try:
        a, b, year = (int(p) for p in date_part.split("/"))
    except ValueError:
        return None
    if year < 100:
        year += 2000

    clock = _to_24h(time_part)
    if clock is None:
        return None
    hour, minute, second = clock

    if a > 12:
        orderings = [(b, a)]  # D/M
    elif b > 12:
        orderings = [(a, b)]  # M/D
    else:
        orderings = [(b, a), (a, b)]

    candidates: list[datetime] = []
    for month, day in orderings:
        try:
            candidates.append(
                datetime(year, month, day, hour, minute, second, tzinfo=timezone.utc)
            )
        except ValueError:
            continue
    if not candidates:
        return None
    for c in candidates:
        if c <= now:
            return c
    return candidates[0]


def _to_24h(text: str) -> tuple[int, int, int] | None:
    match = _LOCALE_TIME.match(re.sub(r"\s+", " ", text).strip())
    if match is None:
        return None
    hour = int(match.group(1))
    minute = int(match.group(2))
    second = int(match.group(3) or 0)
    meridiem = (match.group(4) or "").upper()
    if minute > 59 or second > 59:
        return None
    if meridiem:
        if not 1 <= hour <= 12:
            return None
        if meridiem == "PM" and hour != 12:
            hour += 12
        if meridiem == "AM" and hour == 12:
            hour = 0
    elif hour > 23:
        return None
    return hour, minute, second


def time_ago(ts: datetime | None, now: datetime | None = None) -> str:
    """Human label for how long ago a record was added."""
    if ts is None:
        return "N/A"
    now = now or utcnow()
    seconds = max(0, int((now - ts).total_seconds()))

    hours = seconds // 3600
    days = hours // 24
    months = days // 30
    years = months // 12

    if seconds < 3600:
        return "Added now"
    if hours < 24:
        return f"Added {hours} hour{'' if hours == 1 else 's'} ago"
    if days < 30:
        return "Added a day ago" if days == 1 else f"Added {days} days ago"
    if months < 12:
        return f"Added {months} month{'' if months == 1 else 's'} ago"
    return f"Added {years} year{'' if years == 1 else 's'} ago"
