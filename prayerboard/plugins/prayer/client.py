"""
Client runtime: the per-second prayer clock and push subscription sync.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

import requests

from prayerboard.core.clock import TzLike, now_in
from prayerboard.core.errors import TimetableError
from prayerboard.core.task_manager import TaskManager

from .alert import AlertTrigger, ModeStore
from .audio_manager import AdhanPlayer
from .evaluator import EvaluationResult, evaluate
from .notifier import ConsoleBanner, PlyerNotifier, no_haptics
from .timetable import TimetableDay, TimetableSource

TICK_TASK = "prayer_clock_tick"


class PushSubscriptionClient:
    """Registers this device's push descriptor with the prayer board server."""

    def __init__(self, server_url: str, subscription: Optional[Dict[str, Any]], timeout: float = 10):
        self.server_url = server_url.rstrip("/")
        self.subscription = subscription
        self.timeout = timeout
        self.logger = logging.getLogger(self.__class__.__name__)

    def _post(self, path: str) -> bool:
        if not self.subscription:
            self.logger.debug(f"No push subscription configured; skipping {path}")
            return False
        url = f"{self.server_url}{path}"
        try:
            response = requests.post(url, json=self.subscription, timeout=self.timeout)
            if response.status_code == 400:
                self.logger.error(f"Server rejected subscription at {url}")
                return False
            response.raise_for_status()
            return bool(response.json().get("ok"))
        except requests.exceptions.RequestException as e:
            self.logger.error(f"Network error calling {url}: {e}")
            return False
        except ValueError as e:
            self.logger.error(f"Invalid response from {url}: {e}")
            return False

    def subscribe(self) -> bool:
        return self._post("/api/subscribe")

    def unsubscribe(self) -> bool:
        return self._post("/api/unsubscribe")


class PrayerClock:
    """
    Drives evaluation once per second: load today's and tomorrow's entries,
    evaluate, feed the alert trigger, then hand the result to `render`.
    """

    def __init__(self, source: TimetableSource, tz: TzLike, trigger: Optional[AlertTrigger] = None,
                 render: Optional[Callable[[Optional[TimetableDay], EvaluationResult, datetime], None]] = None,
                 task_manager: Optional[TaskManager] = None,
                 clock: Callable[[], datetime] = None):
        self.source = source
        self.tz = tz
        self.trigger = trigger
        self.render = render
        self.task_manager = task_manager or TaskManager()
        self.clock = clock or (lambda: now_in(self.tz))
        self.logger = logging.getLogger(self.__class__.__name__)
        self.last_result: Optional[EvaluationResult] = None
        self._load_failed = False

    def tick(self) -> EvaluationResult:
        now = self.clock()
        today = tomorrow = None
        try:
            timetable = self.source.load()
            today = timetable.today(now, self.tz)
            tomorrow = timetable.tomorrow(now, self.tz)
            self._load_failed = False
        except TimetableError as e:
            # Log once per outage, not once per second
            if not self._load_failed:
                self.logger.error(f"Timetable unavailable: {e}")
            self._load_failed = True

        result = evaluate(today, now, self.tz, tomorrow=tomorrow)
        self.last_result = result
        if self.trigger is not None:
            self.trigger.observe(result)
        if self.render is not None:
            self.render(today, result, now)
        return result

    def start(self) -> None:
        # Half-second phase keeps one tick inside the last second before each prayer
        self.task_manager.schedule_aligned(TICK_TASK, self.tick, 1.0, 0.5)

    def rebind(self, source: TimetableSource, tz: TzLike) -> None:
        """Swap in a reloaded timetable source and zone; the next tick uses them."""
        if source is not self.source or str(tz) != str(self.tz):
            self.logger.info(f"Clock now reading {source.path} in {tz}")
        self.source = source
        self.tz = tz

    def stop(self) -> None:
        self.task_manager.cancel_task(TICK_TASK)


def clock_for_app(board_app: Any, **kwargs: Any) -> PrayerClock:
    """A PrayerClock that follows the app's timezone and timetable across config reloads."""
    clock = PrayerClock(board_app.timetable_source, board_app.tz, task_manager=board_app.task_manager, **kwargs)
    # Registered after the app's own handler, so the app has already applied the change
    board_app.config.register_change_callback(
        lambda _data: clock.rebind(board_app.timetable_source, board_app.tz))
    return clock


def build_alert_trigger(config: Any, banner: Optional[ConsoleBanner] = None) -> AlertTrigger:
    """Wire an AlertTrigger from config: plyer notifications, pygame audio, JSON mode file."""
    alerts = config.get("alerts") or {}
    client = config.get("client") or {}
    subscription = None
    if client.get("subscription"):
        subscription = PushSubscriptionClient(client.get("server_url", "http://127.0.0.1:8765"), client["subscription"])
    return AlertTrigger(
        banner=banner or ConsoleBanner(),
        notifier=PlyerNotifier(
            app_name=config.get("app_name", "MWHS"),
            enabled=(config.get("notifications") or {}).get("enabled", True),
        ),
        player=AdhanPlayer(alerts, base_dir=getattr(config, "config_dir", None)),
        mode_store=ModeStore(alerts.get("mode_file", "~/.prayerboard/alert_mode.json")),
        subscription=subscription,
        haptic=no_haptics,
        audio_delay=float(alerts.get("audio_delay", 0.8)),
        app_name=config.get("app_name", "MWHS"),
    )
