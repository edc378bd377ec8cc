"""
Background task: run the minute matcher in-process when no external cron drives /api/send-today.
"""
import logging
from typing import Any, Optional

from prayerboard.core.errors import TimetableError
from prayerboard.core.task_manager import TaskManager

from .dispatcher import DispatchReport, run_minute_job

TASK_NAME = "push_minute_dispatch"


class MinuteDispatchTask:
    """Runs run_minute_job just after every minute boundary."""

    def __init__(self, board_app: Any):
        self.board_app = board_app
        self.logger = logging.getLogger(self.__class__.__name__)
        self.last_report: Optional[DispatchReport] = None

    def run(self) -> Optional[DispatchReport]:
        app = self.board_app
        try:
            self.last_report = run_minute_job(
                app.timetable_source,
                app.registry,
                app.get_sender(),
                tz=app.tz,
                batch_size=app.config.get("push.batch_size", 1000),
                max_workers=app.config.get("push.max_workers", 32),
            )
        except TimetableError as e:
            self.logger.error(f"Minute dispatch skipped: {e}")
            return None
        return self.last_report

    def start(self, task_manager: TaskManager) -> None:
        self.logger.info("In-process minute dispatch enabled")
        task_manager.schedule_every_minute(TASK_NAME, self.run)
