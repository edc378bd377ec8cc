"""
Alert trigger: fires once when the countdown to the next prayer reaches zero.

Firing runs three independent channels in a fixed order: the banner first, then
one system notification, then (after a short delay) haptics and the adhan
audio. Each channel handles its own failures so none of them can stall the
per-second tick that drives observe().
"""
import enum
import json
import logging
import os
import threading
from typing import Any, Callable, Optional, Protocol, Tuple

from prayerboard.plugins.push.notification import build_payload, notification_from_payload

from .audio_manager import PlaybackResult
from .display import format_time, prayer_title
from .evaluator import EvaluationResult, NextPrayer
from .notifier import DENIED, GRANTED

logger = logging.getLogger(__name__)

ArmedKey = Tuple[str, str]  # (occurrence bucket, prayer key)

IDLE = "idle"
ARMED = "armed"
FIRED = "fired"


class AlertMode(str, enum.Enum):
    AUDIO = "audio"
    SILENT = "silent"
    OFF = "off"


class Banner(Protocol):
    def show(self, prayer: str, time_str: str) -> None: ...
    def close(self) -> None: ...


class SystemNotifier(Protocol):
    def permission(self) -> str: ...
    def request_permission(self) -> str: ...
    def notify(self, title: str, body: str) -> bool: ...


class Player(Protocol):
    def play(self, prayer: str) -> PlaybackResult: ...
    def resume(self, prayer: str) -> PlaybackResult: ...
    def play_fallback_tone(self) -> PlaybackResult: ...
    def stop(self) -> None: ...


class SubscriptionSync(Protocol):
    def subscribe(self) -> bool: ...
    def unsubscribe(self) -> bool: ...


class ModeStore:
    """Persists the selected alert mode as JSON so it survives restarts."""

    def __init__(self, path: str, default: AlertMode = AlertMode.AUDIO):
        self.path = os.path.expanduser(path)
        self.default = default

    def load(self) -> AlertMode:
        try:
            if os.path.exists(self.path):
                with open(self.path, "r") as f:
                    saved = json.load(f)
                return AlertMode(saved.get("mode", self.default.value))
        except (OSError, ValueError, AttributeError) as e:
            logger.error(f"Error loading saved alert mode: {e}")
        return self.default

    def save(self, mode: AlertMode) -> None:
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self.path, "w") as f:
                json.dump({"mode": mode.value}, f)
        except OSError as e:
            logger.error(f"Error saving alert mode: {e}")


def armed_key_for(result: EvaluationResult) -> Optional[ArmedKey]:
    nxt = result.next_prayer
    if nxt is None:
        return None
    return ("tomorrow" if nxt.is_tomorrow else "today", nxt.key)


def _timer_scheduler(delay: float, fn: Callable[..., Any], *args: Any) -> None:
    timer = threading.Timer(delay, fn, args=args)
    timer.daemon = True
    timer.start()


class AlertTrigger:
    def __init__(
        self,
        banner: Banner,
        notifier: SystemNotifier,
        player: Player,
        mode_store: ModeStore,
        subscription: Optional[SubscriptionSync] = None,
        haptic: Optional[Callable[[], None]] = None,
        audio_delay: float = 0.8,
        scheduler: Callable[..., None] = _timer_scheduler,
        app_name: str = "MWHS",
    ):
        self.banner = banner
        self.notifier = notifier
        self.player = player
        self.mode_store = mode_store
        self.subscription = subscription
        self.haptic = haptic
        self.audio_delay = audio_delay
        self.scheduler = scheduler
        self.app_name = app_name

        self.mode = mode_store.load()
        self.state = IDLE
        self.armed_key: Optional[ArmedKey] = None
        self.fired = False
        self.banner_prayer: Optional[str] = None
        self.last_playback: Optional[PlaybackResult] = None

    def observe(self, result: EvaluationResult) -> bool:
        """Feed one tick's evaluation. Returns True if the alert fired on this tick."""
        key = armed_key_for(result)
        if key is None:
            return False
        if key != self.armed_key:
            logger.debug(f"Alert armed for {key}")
            self.armed_key = key
            self.fired = False
            self.state = ARMED
        if self.fired or result.countdown_seconds != 0:
            return False
        self.fired = True
        self.state = FIRED
        self._fire(result.next_prayer)
        return True

    def _fire(self, nxt: NextPrayer) -> None:
        name = prayer_title(nxt.key)
        time_str = format_time(nxt.time)
        logger.info(f"Prayer time reached: {name} at {time_str} (mode={self.mode.value})")

        try:
            self.banner.show(nxt.key, time_str)
            self.banner_prayer = nxt.key
        except Exception as e:
            logger.error(f"Error showing banner: {e}", exc_info=True)

        if self.mode != AlertMode.OFF and self.notifier.permission() == GRANTED:
            try:
                shown = notification_from_payload(build_payload([nxt.key]), self.app_name)
                self.notifier.notify(shown["title"], shown["body"])
            except Exception as e:
                logger.error(f"Error sending notification: {e}")

        if self.mode == AlertMode.AUDIO:
            self.scheduler(self.audio_delay, self._play_audio, nxt.key)

    def _play_audio(self, prayer: str) -> None:
        if self.haptic is not None:
            try:
                self.haptic()
            except Exception as e:
                logger.debug(f"Haptic pulse failed: {e}")
        result = self.player.play(prayer)
        if result != PlaybackResult.PLAYED:
            logger.info(f"Adhan playback {result.value}; playing fallback tone")
            self.player.play_fallback_tone()
        self.last_playback = result

    def replay(self) -> Optional[PlaybackResult]:
        """Manual "play" from the banner after playback was blocked."""
        if self.banner_prayer is None:
            return None
        result = self.player.resume(self.banner_prayer)
        if result != PlaybackResult.PLAYED:
            self.player.play_fallback_tone()
        self.last_playback = result
        return result

    def dismiss(self) -> None:
        """Close the banner and stop/rewind any playing audio."""
        self.player.stop()
        try:
            self.banner.close()
        except Exception as e:
            logger.error(f"Error closing banner: {e}")
        self.banner_prayer = None

    def set_mode(self, mode: Any) -> AlertMode:
        """Change the alert mode, reconciling notification permission and the push subscription."""
        mode = AlertMode(mode)
        previous = self.mode
        if mode != AlertMode.OFF and self.notifier.permission() != GRANTED:
            if self.notifier.request_permission() == DENIED:
                logger.info("Notification permission denied; alerts switched off")
                mode = AlertMode.OFF

        self.mode = mode
        self.mode_store.save(mode)
        if mode != previous:
            # A mode change re-arms the guard for the watched prayer
            self.fired = False
            if self.armed_key is not None:
                self.state = ARMED
        if (previous == AlertMode.OFF) != (mode == AlertMode.OFF):
            self.reconcile_subscription()
        return mode

    def reconcile_subscription(self) -> None:
        """Subscribe the device to server pushes unless alerts are off."""
        if self.subscription is None:
            return
        try:
            if self.mode == AlertMode.OFF:
                self.subscription.unsubscribe()
            else:
                self.subscription.subscribe()
        except Exception as e:
            logger.warning(f"Push subscription update failed: {e}")
