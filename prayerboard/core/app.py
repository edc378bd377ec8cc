import logging
import sys
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from .clock import DEFAULT_TIMEZONE, get_timezone
from .config import Config
from .errors import PushConfigError
from .task_manager import TaskManager


class PrayerBoardApp:
    """
    Process-wide state shared by the HTTP server, the minute dispatcher and the
    client commands: configuration, time zone, timetable source, subscription
    registry, push sender and background timers.
    """

    def __init__(self, config_path: Optional[str] = None, watch_config: bool = False,
                 setup_logging: bool = True):
        self.logger = logging.getLogger(self.__class__.__name__)

        self.config = Config(config_path=config_path, watch=watch_config)
        self.config.register_change_callback(self.handle_config_change)

        if setup_logging:
            self._setup_logging()

        self.tz = get_timezone(self.config.get("timezone", DEFAULT_TIMEZONE))
        self.task_manager = TaskManager()

        from prayerboard.plugins.prayer.timetable import TimetableSource
        self.timetable_source = TimetableSource(self._timetable_path())

        self._registry = None
        self._sender = None
        self._sender_lock = threading.Lock()
        self.dispatch_task = None

    def _setup_logging(self):
        """Configure logging to write to both file and stdout"""
        root_logger = logging.getLogger()
        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)
        root_logger.setLevel(getattr(logging, str(self.config.get("logging.level", "INFO")).upper(), logging.INFO))

        # Create formatter with line numbers
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
        )

        log_file = self.config.get("logging.file")
        if log_file:
            log_path = Path(log_file).expanduser()
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

        logging.info("Prayer board starting...")

    def _timetable_path(self) -> Path:
        raw = self.config.get("timetable.path") or "timetable.json"
        path = Path(raw).expanduser()
        if not path.is_absolute():
            path = self.config.config_dir / path
        return path

    @property
    def registry(self):
        """Subscription registry, created on first use so client-only commands never open the database."""
        if self._registry is None:
            from prayerboard.plugins.push.registry import create_registry
            self._registry = create_registry(self.config.data)
        return self._registry

    @registry.setter
    def registry(self, value) -> None:
        self._registry = value

    def get_sender(self):
        """Push sender, or None when the VAPID keys are not configured."""
        from prayerboard.plugins.push.sender import create_sender
        with self._sender_lock:
            if self._sender is None:
                try:
                    self._sender = create_sender(self.config.data)
                except PushConfigError as e:
                    self.logger.error(str(e))
                    return None
            return self._sender

    def start_scheduler(self) -> None:
        """Start the in-process minute dispatcher when scheduler.enabled is true."""
        if not self.config.get("scheduler.enabled", False):
            self.logger.info("In-process scheduler disabled; expecting an external cron on /api/send-today")
            return
        from prayerboard.plugins.push.task import MinuteDispatchTask
        self.dispatch_task = MinuteDispatchTask(self)
        self.dispatch_task.start(self.task_manager)

    def handle_config_change(self, new_config: Dict[str, Any]) -> None:
        """Apply a reloaded config to the running process."""
        try:
            self.tz = get_timezone(new_config.get("timezone", DEFAULT_TIMEZONE))
            path = self._timetable_path()
            if path != self.timetable_source.path:
                from prayerboard.plugins.prayer.timetable import TimetableSource
                self.logger.info(f"Timetable path changed to {path}")
                self.timetable_source = TimetableSource(path)
            level = str((new_config.get("logging") or {}).get("level", "INFO")).upper()
            logging.getLogger().setLevel(getattr(logging, level, logging.INFO))
            with self._sender_lock:
                # Keys may have changed
                self._sender = None
        except Exception as e:
            self.logger.error(f"Error handling config change: {e}")
            self.logger.exception(e)

    def shutdown(self) -> None:
        self.logger.info("Shutting down prayer board")
        self.task_manager.stop()
        self.config.cleanup()
