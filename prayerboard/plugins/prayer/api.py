"""
Per-plugin API for Prayer Times. Mounted at /api/components/prayer/.
Serves the evaluated state for today and raw timetable rows.
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ConfigDict

from prayerboard.core.clock import now_in
from prayerboard.core.errors import TimetableError

from .display import date_line, today_rows
from .evaluator import evaluate


class TimetableDayResponse(BaseModel):
    """Pydantic view of TimetableDay; serializes from the model's attributes."""

    model_config = ConfigDict(from_attributes=True)

    date: str
    fajr: Optional[str] = None
    shurooq: Optional[str] = None
    dhuhr: Optional[str] = None
    asr: Optional[str] = None
    maghrib: Optional[str] = None
    isha: Optional[str] = None
    jumma: Optional[str] = None


class PrayerRowResponse(BaseModel):
    key: str
    name: str
    adhan: str
    iqamah: str
    current: bool
    next: bool


class NextPrayerResponse(BaseModel):
    key: str
    time: str
    date: str
    is_tomorrow: bool


class TodayResponse(BaseModel):
    has_schedule: bool
    now: datetime
    date_line: str
    current_prayer: Optional[str] = None
    next_prayer: Optional[NextPrayerResponse] = None
    countdown: Optional[str] = None
    countdown_seconds: Optional[int] = None
    progress: float
    status: Optional[str] = None
    rows: List[PrayerRowResponse] = []


def get_router(board_app) -> Optional[APIRouter]:
    """Return router for this plugin; mounted with prefix /api/components/prayer."""
    router = APIRouter(tags=["Prayer Times"])

    def _load():
        try:
            return board_app.timetable_source.load()
        except TimetableError as e:
            raise HTTPException(status_code=500, detail=str(e))

    @router.get("/today", response_model=TodayResponse)
    def get_today() -> TodayResponse:
        """Evaluate the timetable against the current instant."""
        timetable = _load()
        now = now_in(board_app.tz)
        today = timetable.today(now, board_app.tz)
        tomorrow = timetable.tomorrow(now, board_app.tz)
        result = evaluate(today, now, board_app.tz, tomorrow=tomorrow)
        nxt = result.next_prayer
        return TodayResponse(
            has_schedule=result.has_schedule,
            now=now,
            date_line=date_line(now, board_app.tz),
            current_prayer=result.current_prayer,
            next_prayer=NextPrayerResponse(
                key=nxt.key, time=nxt.time, date=nxt.date, is_tomorrow=nxt.is_tomorrow
            ) if nxt else None,
            countdown=result.countdown,
            countdown_seconds=result.countdown_seconds,
            progress=result.progress_fraction,
            status=result.status.text if result.status else None,
            rows=[PrayerRowResponse(**row) for row in today_rows(today, result)] if today else [],
        )

    @router.get("/timetable/{date_key}", response_model=TimetableDayResponse)
    def get_timetable_day(date_key: str) -> TimetableDayResponse:
        day = _load().get_day(date_key)
        if day is None:
            raise HTTPException(status_code=404, detail=f"No timetable entry for {date_key}")
        return TimetableDayResponse.model_validate(day)

    return router
