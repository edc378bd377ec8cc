"""
Timetable accessor: the published daily schedule, looked up by zone-aware date key.
"""
import json
import logging
import os
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from prayerboard.core.clock import TzLike, normalize_time_string, today_key, tomorrow_key
from prayerboard.core.errors import TimetableError

logger = logging.getLogger(__name__)

PRAYER_ORDER = ("fajr", "dhuhr", "asr", "maghrib", "isha")


class TimetableDay(BaseModel):
    """One calendar date's schedule. Times are kept as published (lenient format)."""

    model_config = ConfigDict(extra="allow", frozen=True)

    date: str
    fajr: Optional[str] = None
    shurooq: Optional[str] = None
    dhuhr: Optional[str] = None
    asr: Optional[str] = None
    maghrib: Optional[str] = None
    isha: Optional[str] = None
    iqamah_fajr: Optional[str] = None
    iqamah_dhuhr: Optional[str] = None
    iqamah_asr: Optional[str] = None
    iqamah_maghrib: Optional[str] = None
    iqamah_isha: Optional[str] = None
    jumma: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_to_text(cls, value: Any) -> Any:
        # Spreadsheet exports sometimes carry times as numbers (e.g. 5.12)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    def time_for(self, key: str) -> Optional[str]:
        return getattr(self, key, None)

    def iqamah_for(self, key: str) -> Optional[str]:
        return getattr(self, f"iqamah_{key}", None)

    def is_usable(self) -> bool:
        return all(normalize_time_string(self.time_for(key)) for key in PRAYER_ORDER)


class Timetable:
    """Immutable collection of TimetableDay keyed by ISO date."""

    def __init__(self, days: Iterable[TimetableDay]):
        self._days: Dict[str, TimetableDay] = {}
        for day in days:
            if day.date in self._days:
                logger.warning(f"Duplicate timetable date {day.date}; keeping the first entry")
                continue
            self._days[day.date] = day

    @classmethod
    def from_document(cls, document: Union[Dict[str, Any], List[Any]]) -> "Timetable":
        """Build from {"days": [...]} or a bare list of day records."""
        if isinstance(document, dict):
            records = document.get("days")
        else:
            records = document
        if not isinstance(records, list):
            raise TimetableError("Timetable document has no 'days' list")
        try:
            return cls(TimetableDay.model_validate(record) for record in records)
        except ValidationError as e:
            raise TimetableError(f"Invalid timetable record: {e}") from e

    def __len__(self) -> int:
        return len(self._days)

    def dates(self) -> List[str]:
        return sorted(self._days)

    def get_day(self, date_key: str) -> Optional[TimetableDay]:
        return self._days.get(date_key)

    def today(self, instant: datetime, tz: TzLike = None) -> Optional[TimetableDay]:
        return self.get_day(today_key(instant, tz))

    def tomorrow(self, instant: datetime, tz: TzLike = None) -> Optional[TimetableDay]:
        return self.get_day(tomorrow_key(today_key(instant, tz)))


def load_timetable(path: Union[str, Path]) -> Timetable:
    """Read and parse a timetable JSON file. Any failure raises TimetableError."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            document = json.load(f)
    except (OSError, ValueError) as e:
        raise TimetableError(f"Failed to read timetable {path}: {e}") from e
    return Timetable.from_document(document)


class TimetableSource:
    """Loads a timetable file on demand and reloads it when the file changes."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()
        self._cached: Optional[Timetable] = None
        self._mtime: Optional[float] = None

    def load(self) -> Timetable:
        try:
            mtime = os.path.getmtime(self.path)
        except OSError as e:
            raise TimetableError(f"Failed to read timetable {self.path}: {e}") from e
        with self._lock:
            if self._cached is None or mtime != self._mtime:
                self._cached = load_timetable(self.path)
                self._mtime = mtime
                logger.info(f"Loaded timetable {self.path} ({len(self._cached)} days)")
            return self._cached
