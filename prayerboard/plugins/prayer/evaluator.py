"""
Prayer state evaluation: current prayer, next prayer, countdown and progress.

Everything here is a pure function of (timetable days, now, zone). The client
calls evaluate() from scratch on every tick instead of keeping running
counters, so sleep/resume and clock changes never leave stale state behind.
"""
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from prayerboard.core.clock import TzLike, ensure_aware, get_timezone, to_instant, today_key
from .timetable import PRAYER_ORDER, TimetableDay

FRIDAY = 4


@dataclass(frozen=True)
class NextPrayer:
    key: str
    time: str
    date: str
    instant: datetime
    is_tomorrow: bool = False


@dataclass(frozen=True)
class StatusLine:
    """The small "current prayer" sub-label.

    kind is one of: iqamah, jumma, sunrise, ends, overnight.
    """
    prayer: str
    kind: str
    target: datetime
    countdown: str

    @property
    def text(self) -> str:
        title = self.prayer.upper()
        if self.kind == "iqamah":
            return f"CURRENT: {title} — Iqamah in {self.countdown}"
        if self.kind == "jumma":
            return f"CURRENT: {title} — Jumma in {self.countdown}"
        if self.kind == "sunrise":
            return f"CURRENT: {title} — Sunrise in {self.countdown}"
        if self.kind == "overnight":
            return f"{title} in {self.countdown}"
        return f"CURRENT: {title} — Ends in {self.countdown}"


@dataclass(frozen=True)
class EvaluationResult:
    has_schedule: bool
    today: Optional[str] = None
    current_prayer: Optional[str] = None
    next_prayer: Optional[NextPrayer] = None
    countdown: Optional[str] = None
    countdown_seconds: Optional[int] = None
    progress_fraction: float = 0.0
    status: Optional[StatusLine] = None


def _instant(day: TimetableDay, raw: Optional[str], tz: TzLike) -> Optional[datetime]:
    if not raw:
        return None
    return to_instant(day.date, raw, tz)


def prayer_instant(day: TimetableDay, key: str, tz: TzLike = None) -> Optional[datetime]:
    return _instant(day, day.time_for(key), tz)


def next_prayer(today: TimetableDay, now: datetime, tz: TzLike = None,
                tomorrow: Optional[TimetableDay] = None) -> Optional[NextPrayer]:
    """First prayer today strictly after now, else tomorrow's Fajr (if known)."""
    now = ensure_aware(now)
    for key in PRAYER_ORDER:
        at = prayer_instant(today, key, tz)
        if at is not None and at > now:
            return NextPrayer(key=key, time=today.time_for(key), date=today.date, instant=at)
    if tomorrow is not None:
        at = prayer_instant(tomorrow, "fajr", tz)
        if at is not None:
            return NextPrayer(key="fajr", time=tomorrow.fajr, date=tomorrow.date, instant=at, is_tomorrow=True)
    return None


def current_prayer(today: TimetableDay, now: datetime, tz: TzLike = None) -> Optional[str]:
    """Latest prayer already begun today; Fajr stops being current after sunrise."""
    now = ensure_aware(now)
    current = None
    for key in PRAYER_ORDER:
        at = prayer_instant(today, key, tz)
        if at is not None and at <= now:
            current = key
    if current == "fajr":
        sunrise = _instant(today, today.shurooq, tz)
        if sunrise is not None and now > sunrise:
            return None
    return current


def previous_boundary(today: TimetableDay, now: datetime, tz: TzLike = None) -> Optional[datetime]:
    now = ensure_aware(now)
    previous = None
    for key in PRAYER_ORDER:
        at = prayer_instant(today, key, tz)
        if at is not None and at <= now:
            previous = at
    return previous


def countdown_seconds(target: datetime, now: datetime) -> int:
    """Whole seconds until target, floored, never negative."""
    return max(0, math.floor((ensure_aware(target) - ensure_aware(now)).total_seconds()))


def format_countdown(seconds: int) -> str:
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def countdown(target: datetime, now: datetime) -> str:
    return format_countdown(countdown_seconds(target, now))


def progress_fraction(today: TimetableDay, now: datetime, tz: TzLike = None,
                      nxt: Optional[NextPrayer] = None) -> float:
    """Position between the previous and next prayer boundary, in [0, 1]."""
    now = ensure_aware(now)
    if nxt is None:
        nxt = next_prayer(today, now, tz)
    if nxt is not None and nxt.is_tomorrow:
        return 1.0
    if nxt is None:
        # Tomorrow unknown but every prayer today has begun
        return 1.0 if previous_boundary(today, now, tz) is not None else 0.0
    previous = previous_boundary(today, now, tz)
    if previous is None or nxt.instant <= previous:
        return 0.0
    total = (nxt.instant - previous).total_seconds()
    passed = (now - previous).total_seconds()
    return min(1.0, max(0.0, passed / total))


def is_friday(day: TimetableDay) -> bool:
    return datetime.fromisoformat(day.date).weekday() == FRIDAY


def status_line(today: TimetableDay, now: datetime, tz: TzLike = None,
                nxt: Optional[NextPrayer] = None,
                current: Optional[str] = None) -> Optional[StatusLine]:
    """What the current-status line should count down to, if anything."""
    now = ensure_aware(now)
    if current is None:
        if nxt is not None and nxt.key == "fajr" and not nxt.is_tomorrow:
            return StatusLine("fajr", "overnight", nxt.instant, countdown(nxt.instant, now))
        return None

    if current == "fajr":
        iqamah = _instant(today, today.iqamah_fajr, tz)
        if iqamah is not None and iqamah > now:
            return StatusLine(current, "iqamah", iqamah, countdown(iqamah, now))
        sunrise = _instant(today, today.shurooq, tz)
        if sunrise is not None and now < sunrise:
            return StatusLine(current, "sunrise", sunrise, countdown(sunrise, now))
        return None

    if current == "dhuhr" and today.jumma and is_friday(today):
        target, kind = _instant(today, today.jumma, tz), "jumma"
    else:
        target, kind = _instant(today, today.iqamah_for(current), tz), "iqamah"
    if target is not None and target > now:
        return StatusLine(current, kind, target, countdown(target, now))
    if nxt is not None:
        return StatusLine(current, "ends", nxt.instant, countdown(nxt.instant, now))
    return None


def evaluate(today: Optional[TimetableDay], now: datetime, tz: TzLike = None,
             tomorrow: Optional[TimetableDay] = None) -> EvaluationResult:
    """Derive the full display state for one tick."""
    zone = get_timezone(tz)
    now = ensure_aware(now)
    if today is None:
        return EvaluationResult(has_schedule=False, today=today_key(now, zone))

    nxt = next_prayer(today, now, zone, tomorrow)
    current = current_prayer(today, now, zone)
    seconds = countdown_seconds(nxt.instant, now) if nxt is not None else None
    return EvaluationResult(
        has_schedule=True,
        today=today.date,
        current_prayer=current,
        next_prayer=nxt,
        countdown=format_countdown(seconds) if seconds is not None else None,
        countdown_seconds=seconds,
        progress_fraction=progress_fraction(today, now, zone, nxt),
        status=status_line(today, now, zone, nxt, current),
    )
