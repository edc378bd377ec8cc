"""Desktop notifications and console banner for prayer alerts."""

import logging
import sys
from typing import Optional, TextIO

from plyer import notification as plyer_notification

logger = logging.getLogger(__name__)

GRANTED = "granted"
DENIED = "denied"
DEFAULT = "default"


class PlyerNotifier:
    """System-level notifications through plyer (cross-platform)."""

    def __init__(self, app_name: str = "MWHS", enabled: bool = True, app_icon: str = "", timeout: int = 30):
        self.app_name = app_name
        self.app_icon = app_icon
        self.timeout = timeout
        self._permission = GRANTED if enabled else DEFAULT

    def permission(self) -> str:
        return self._permission

    def request_permission(self) -> str:
        """Desktop notifications need no prompt; switching them off in config counts as a refusal."""
        if self._permission == DEFAULT:
            self._permission = DENIED
        return self._permission

    def notify(self, title: str, body: str) -> bool:
        try:
            kwargs = dict(
                app_name=self.app_name,
                title=title,
                message=body,
                timeout=self.timeout,
            )
            if self.app_icon:
                kwargs["app_icon"] = self.app_icon
            plyer_notification.notify(**kwargs)
            return True
        except Exception as e:
            # plyer raises NotImplementedError and assorted backend errors
            logger.warning(f"Desktop notification failed: {e}")
            return False


class ConsoleBanner:
    """Full-width terminal banner used by the watch client."""

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream or sys.stdout
        self.visible = False
        self.prayer: Optional[str] = None

    def show(self, prayer: str, time_str: str) -> None:
        self.visible = True
        self.prayer = prayer
        title = f"Adhan — {prayer[:1].upper()}{prayer[1:]}"
        bar = "=" * 48
        self.stream.write(f"\n{bar}\n  {title}\n  Time: {time_str}\n  [Enter] stop & close   [p] play\n{bar}\n")
        self.stream.flush()

    def close(self) -> None:
        if self.visible:
            self.stream.write("Banner closed.\n")
            self.stream.flush()
        self.visible = False
        self.prayer = None


def no_haptics() -> None:
    """Desktop targets have no vibration motor."""
    logger.debug("Haptic pulse requested (no-op on this platform)")
