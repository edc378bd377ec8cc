"""
Minute matcher and dispatcher.

Invoked once per minute (external cron or the in-process scheduler): resolve
today's timetable entry, check whether a prayer starts this minute, and fan a
push payload out to every registered subscription.
"""
import hmac
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

from prayerboard.core.clock import TzLike, ensure_aware, normalize_time_string, today_key, wall_clock_hhmm
from prayerboard.core.errors import TimetableError, UnauthorizedError
from prayerboard.plugins.prayer.timetable import PRAYER_ORDER, TimetableDay, TimetableSource

from .notification import build_payload
from .registry import SubscriptionRegistry
from .sender import DeliveryOutcome, PushSender

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 1000
DEFAULT_MAX_WORKERS = 32


@dataclass
class DispatchCounts:
    sent: int = 0
    removed: int = 0
    failed: int = 0


@dataclass
class DispatchReport:
    ok: bool
    today_iso: str
    at: str
    matched: List[str] = field(default_factory=list)
    sent: int = 0
    removed: int = 0
    error: Optional[str] = None
    note: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "ok": self.ok,
            "sent": self.sent,
            "removed": self.removed,
            "matched": self.matched,
            "at": self.at,
            "todayISO": self.today_iso,
        }
        if self.error:
            body["error"] = self.error
        if self.note:
            body["note"] = self.note
        return body


def authorize(authorization: Optional[str], secret: Optional[str]) -> None:
    """Require "Bearer <secret>". An unset secret rejects everything."""
    if not secret or not authorization:
        raise UnauthorizedError("Unauthorized")
    if not hmac.compare_digest(authorization.encode(), f"Bearer {secret}".encode()):
        raise UnauthorizedError("Unauthorized")


def match_minute(day: TimetableDay, now: datetime, tz: TzLike = None) -> List[str]:
    """Prayer keys (canonical order) whose normalized time equals the current wall-clock minute."""
    current = wall_clock_hhmm(now, tz)
    return [key for key in PRAYER_ORDER if normalize_time_string(day.time_for(key)) == current]


def chunk(items: Sequence[Any], size: int = DEFAULT_BATCH_SIZE) -> Iterable[Sequence[Any]]:
    if size <= 0:
        raise ValueError("chunk size must be positive")
    for i in range(0, len(items), size):
        yield items[i:i + size]


def _safe_send(sender: PushSender, subscription: Dict[str, Any], payload: Dict[str, Any]) -> DeliveryOutcome:
    try:
        return sender.send(subscription, payload)
    except Exception as e:
        return DeliveryOutcome(endpoint=subscription.get("endpoint", ""), ok=False, error=str(e))


def dispatch(
    registry: SubscriptionRegistry,
    sender: PushSender,
    payload: Dict[str, Any],
    batch_size: int = DEFAULT_BATCH_SIZE,
    max_workers: int = DEFAULT_MAX_WORKERS,
    subscriptions: Optional[List[Dict[str, Any]]] = None,
) -> DispatchCounts:
    """
    Send payload to every subscription in fixed-size batches. One recipient's
    failure never affects the others; gone endpoints are pruned from the registry.
    """
    counts = DispatchCounts()
    subs = registry.list_all() if subscriptions is None else subscriptions
    for group in chunk(subs, batch_size):
        workers = max(1, min(max_workers, len(group)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="push") as pool:
            outcomes = list(pool.map(lambda sub: _safe_send(sender, sub, payload), group))
        for sub, outcome in zip(group, outcomes):
            if outcome.ok:
                counts.sent += 1
            elif outcome.gone:
                registry.remove(sub)
                counts.removed += 1
                logger.info(f"Removed gone subscription {outcome.endpoint} (status {outcome.status})")
            else:
                counts.failed += 1
                logger.warning(f"push-failed {outcome.status or ''} {outcome.endpoint}: {outcome.error}")
    return counts


def run_minute_job(
    source: TimetableSource,
    registry: SubscriptionRegistry,
    sender: Optional[PushSender],
    tz: TzLike = None,
    now: Optional[datetime] = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> DispatchReport:
    """
    One matcher cycle. Raises TimetableError only when the timetable cannot be
    read; every other outcome is reported in the returned DispatchReport.
    """
    now = ensure_aware(now or datetime.now(timezone.utc))
    date_key = today_key(now, tz)
    at = wall_clock_hhmm(now, tz)

    try:
        timetable = source.load()
    except TimetableError:
        logger.error(f"Failed to read timetable for {date_key}", exc_info=True)
        raise

    today = timetable.get_day(date_key)
    if today is None:
        logger.info(f"No timetable entry for {date_key}")
        return DispatchReport(ok=False, today_iso=date_key, at=at, error="no-timetable-for-today")

    matched = match_minute(today, now, tz)
    if not matched:
        return DispatchReport(ok=True, today_iso=date_key, at=at)

    logger.info(f"Prayer time matched at {at} on {date_key}: {matched}")
    subs = registry.list_all()
    if not subs:
        return DispatchReport(ok=True, today_iso=date_key, at=at, matched=matched, note="no-subs")
    if sender is None:
        return DispatchReport(ok=False, today_iso=date_key, at=at, matched=matched, error="push-not-configured")

    counts = dispatch(registry, sender, build_payload(matched), batch_size, max_workers, subscriptions=subs)
    logger.info(f"Dispatch for {matched[0]}: sent={counts.sent} removed={counts.removed} failed={counts.failed}")
    return DispatchReport(ok=True, today_iso=date_key, at=at, matched=matched,
                          sent=counts.sent, removed=counts.removed)


def manual_payload(title: Optional[str], body: Optional[str], data: Optional[Dict[str, Any]] = None,
                   app_name: str = "MWHS") -> Dict[str, Any]:
    return {
        "title": title or app_name,
        "body": body or "",
        "data": data if isinstance(data, dict) else {"url": "/"},
    }


def broadcast(
    registry: SubscriptionRegistry,
    sender: PushSender,
    title: Optional[str],
    body: Optional[str],
    data: Optional[Dict[str, Any]] = None,
    app_name: str = "MWHS",
    batch_size: int = DEFAULT_BATCH_SIZE,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> DispatchCounts:
    """Manual send of an arbitrary message to every subscription."""
    payload = manual_payload(title, body, data, app_name)
    counts = dispatch(registry, sender, payload, batch_size, max_workers)
    logger.info(f"Broadcast '{payload['title']}': sent={counts.sent} removed={counts.removed} failed={counts.failed}")
    return counts
