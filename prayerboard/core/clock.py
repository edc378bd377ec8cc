"""
Zone-aware calendar helpers. Every "today", "tomorrow" and HH:MM decision in
the app goes through here so the client and the server agree on one zone,
whatever the host machine is set to.
"""
import re
from datetime import date, datetime, time, timedelta
from typing import Optional, Union

import pytz

DEFAULT_TIMEZONE = "Europe/London"

_SEPARATORS = re.compile(r"[;.\-]")
_WHITESPACE = re.compile(r"\s+")

TzLike = Union[str, pytz.BaseTzInfo, None]


def get_timezone(tz: TzLike = None) -> pytz.BaseTzInfo:
    """Return a pytz zone for a name (or pass a zone through)."""
    if tz is None:
        return pytz.timezone(DEFAULT_TIMEZONE)
    if isinstance(tz, str):
        return pytz.timezone(tz)
    return tz


def now_in(tz: TzLike = None) -> datetime:
    return datetime.now(get_timezone(tz))


def ensure_aware(instant: datetime) -> datetime:
    # Naive instants are taken as UTC
    if instant.tzinfo is None:
        return pytz.utc.localize(instant)
    return instant


def normalize_time_string(raw: Optional[str]) -> Optional[str]:
    """
    Normalize a lenient time-of-day string to "HH:MM".

    Separators ';', '.', '-' become ':', whitespace is dropped, hour and minute
    are zero-padded and anything after the minute (seconds, suffixes) is cut.
    Returns None when the result is not a valid 24h time.
    """
    if raw is None:
        return None
    text = _WHITESPACE.sub("", _SEPARATORS.sub(":", str(raw)))
    if not text:
        return None
    parts = text.split(":")
    if len(parts) < 2:
        return None
    hour_part, minute_part = parts[0], parts[1][:2]
    if not hour_part.isdigit() or not minute_part.isdigit():
        return None
    hour, minute = int(hour_part), int(minute_part)
    if hour > 23 or minute > 59:
        return None
    return f"{hour:02d}:{minute:02d}"


def parse_hhmm(raw: Optional[str]) -> Optional[time]:
    norm = normalize_time_string(raw)
    if norm is None:
        return None
    hour, minute = norm.split(":")
    return time(int(hour), int(minute))


def local_date(instant: datetime, tz: TzLike = None) -> date:
    """Calendar date of an instant in the target zone."""
    return ensure_aware(instant).astimezone(get_timezone(tz)).date()


def today_key(instant: datetime, tz: TzLike = None) -> str:
    """ISO date key ("YYYY-MM-DD") of an instant in the target zone."""
    return local_date(instant, tz).isoformat()


def tomorrow_key(date_key: str) -> str:
    return (date.fromisoformat(date_key) + timedelta(days=1)).isoformat()


def wall_clock_hhmm(instant: datetime, tz: TzLike = None) -> str:
    local = ensure_aware(instant).astimezone(get_timezone(tz))
    return f"{local.hour:02d}:{local.minute:02d}"


def to_instant(date_key: str, hhmm: Optional[str], tz: TzLike = None) -> Optional[datetime]:
    """
    Combine a date key and a lenient time-of-day string into an aware instant
    in the target zone. Returns None when the time does not normalize.
    """
    parsed = parse_hhmm(hhmm)
    if parsed is None:
        return None
    zone = get_timezone(tz)
    naive = datetime.combine(date.fromisoformat(date_key), parsed)
    return zone.normalize(zone.localize(naive))
