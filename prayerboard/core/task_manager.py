"""
In-memory timers for recurring background work (minute dispatch, client ticks).
"""
import logging
import threading
from datetime import datetime, timezone
from threading import Timer
from typing import Any, Callable, Dict, List, Optional


def seconds_to_next_boundary(period: float, offset: float = 0.0, now: Optional[float] = None) -> float:
    """Delay until the next wall-clock multiple of `period` (plus `offset`) seconds."""
    if now is None:
        now = datetime.now().timestamp()
    delay = (offset - now) % period
    return delay if delay > 0 else period


class TaskManager:
    def __init__(self):
        self.tasks: Dict[str, Timer] = {}
        self._lock = threading.Lock()
        self.logger = logging.getLogger("TaskManager")

    def schedule_task(self, name: str, callback: Callable, delay: float, one_time: bool = True,
                      interval: Optional[float] = None) -> None:
        """Schedule a task to run after delay seconds; recurring tasks repeat every `interval` (default: delay)."""
        try:
            self.logger.debug(f"Scheduling task {name} with delay {delay:.3f} seconds")
            with self._lock:
                if name in self.tasks:
                    self.tasks[name].cancel()

                scheduled_time = datetime.now().timestamp() + delay
                timer = Timer(delay, self._run_task, args=(name, callback, interval or delay, one_time))
                timer.daemon = True
                timer.scheduled_time = scheduled_time
                self.tasks[name] = timer
            timer.start()
        except Exception as e:
            self.logger.error(f"Error scheduling task {name}: {e}")

    def schedule_aligned(self, name: str, callback: Callable, period: float, offset: float = 0.0) -> None:
        """
        Run callback on every wall-clock boundary of `period` seconds shifted by
        `offset`, recomputing the delay each time so the cadence does not drift.
        """
        def run_and_reschedule():
            try:
                callback()
            finally:
                with self._lock:
                    still_scheduled = name in self.tasks
                if still_scheduled:
                    self.schedule_task(name, run_and_reschedule, seconds_to_next_boundary(period, offset))

        self.schedule_task(name, run_and_reschedule, seconds_to_next_boundary(period, offset))

    def schedule_every_minute(self, name: str, callback: Callable, offset: float = 1.0) -> None:
        """Run callback just after each minute boundary."""
        self.schedule_aligned(name, callback, 60.0, offset)

    def _run_task(self, name: str, callback: Callable, interval: float, one_time: bool) -> None:
        """Run the task and reschedule if needed."""
        try:
            callback()
            with self._lock:
                timer = self.tasks.get(name)
            if timer is not None:
                timer.last_run = datetime.now().timestamp()
            if not one_time:
                self.schedule_task(name, callback, interval, one_time)
        except Exception as e:
            self.logger.exception(f"Error running task {name}: {e}")

    def cancel_task(self, name: str) -> None:
        with self._lock:
            timer = self.tasks.pop(name, None)
        if timer is not None:
            timer.cancel()

    def get_active_timers(self) -> List[Dict[str, Any]]:
        """Return list of active timer names and their next run time (for API)."""
        result = []
        with self._lock:
            timers = list(self.tasks.items())
        for name, timer in timers:
            if getattr(timer, "scheduled_time", None) is not None:
                next_run = datetime.fromtimestamp(timer.scheduled_time, tz=timezone.utc)
                result.append({"name": name, "next_run_at": next_run})
        return result

    def stop(self) -> None:
        """Stop all scheduled tasks."""
        with self._lock:
            timers = list(self.tasks.values())
            self.tasks.clear()
        for task in timers:
            task.cancel()
