"""
Text helpers for rendering the schedule: clock, date line, table rows.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from hijri_converter import Gregorian

from prayerboard.core.clock import TzLike, ensure_aware, get_timezone, normalize_time_string
from .evaluator import EvaluationResult
from .timetable import PRAYER_ORDER, TimetableDay


def prayer_title(key: str) -> str:
    return key[:1].upper() + key[1:]


def format_time(raw: Optional[str]) -> str:
    """Published time as HH:MM, or "-" when missing or unreadable."""
    if not raw:
        return "-"
    return normalize_time_string(raw) or "-"


def _local(now: datetime, tz: TzLike) -> datetime:
    return ensure_aware(now).astimezone(get_timezone(tz))


def format_clock(now: datetime, tz: TzLike = None) -> str:
    return _local(now, tz).strftime("%H:%M:%S")


def format_gregorian(now: datetime, tz: TzLike = None) -> str:
    local = _local(now, tz)
    return f"{local.strftime('%a')} {local.day} {local.strftime('%b')} {local.year}"


def format_hijri(now: datetime, tz: TzLike = None) -> str:
    local = _local(now, tz)
    hijri = Gregorian(local.year, local.month, local.day).to_hijri()
    return f"{hijri.day} {hijri.month_name()} {hijri.year} AH"


def date_line(now: datetime, tz: TzLike = None) -> str:
    return f"{format_gregorian(now, tz)} / {format_hijri(now, tz)}"


def today_rows(day: TimetableDay, result: EvaluationResult) -> List[Dict[str, Any]]:
    """Rows for the "Today's Times" table."""
    nxt = result.next_prayer
    rows = []
    for key in PRAYER_ORDER:
        is_current = key == result.current_prayer
        # Tomorrow's Fajr is not highlighted in today's table
        is_next = nxt is not None and not nxt.is_tomorrow and nxt.key == key
        rows.append({
            "key": key,
            "name": prayer_title(key),
            "adhan": format_time(day.time_for(key)),
            "iqamah": format_time(day.iqamah_for(key)),
            "current": is_current,
            "next": is_next and not is_current,
        })
    return rows


def render_status(day: Optional[TimetableDay], result: EvaluationResult, now: datetime, tz: TzLike = None) -> str:
    """Multi-line plain-text rendering used by the terminal client."""
    lines = [f"{date_line(now, tz)}  {format_clock(now, tz)}"]
    if day is None or not result.has_schedule:
        lines.append("No schedule for today.")
        return "\n".join(lines)

    nxt = result.next_prayer
    if nxt is not None:
        when = "tomorrow " if nxt.is_tomorrow else ""
        lines.append(f"Next prayer: {prayer_title(nxt.key)} {when}at {format_time(nxt.time)} in {result.countdown}")
        if not nxt.is_tomorrow:
            filled = int(round(result.progress_fraction * 20))
            lines.append(f"[{'#' * filled}{'.' * (20 - filled)}]")
    if result.status is not None:
        lines.append(result.status.text)

    for row in today_rows(day, result):
        marker = " <- now" if row["current"] else (" <- next" if row["next"] else "")
        lines.append(f"  {row['name']:<8} {row['adhan']:>5}  {row['iqamah']:>5}{marker}")
    lines.append(f"  Shurooq  {format_time(day.shurooq):>5}")
    if day.jumma:
        lines.append(f"  Jummah   {format_time(day.jumma):>5}")
    return "\n".join(lines)
