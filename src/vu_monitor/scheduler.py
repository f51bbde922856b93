"""
Fixed-interval cycle scheduler.

Fires the check cycle every N minutes on the clock (like ``*/N * * * *``)
in the operating timezone, skips the night-time quiet hours and never
starts a cycle while another one is still running.
"""

import logging
import threading
from datetime import datetime, time as dt_time, timedelta, timezone
from typing import Callable, Optional

from dateutil.tz import gettz

logger = logging.getLogger(__name__)


class CycleScheduler:
    """Runs a job periodically with quiet hours and no overlap."""

    QUIET_START = dt_time(0, 30)
    QUIET_END = dt_time(7, 30)

    def __init__(
        self,
        job: Callable[[], object],
        interval_minutes: int = 5,
        tz_name: str = "Asia/Tehran",
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            job: The cycle to run
            interval_minutes: Minutes between runs
            tz_name: Timezone for quiet hours and interval alignment
            clock: Returns the current aware datetime (injected in tests)
        """
        self.job = job
        self.interval_minutes = interval_minutes
        self.tz_name = tz_name
        self.tz = gettz(tz_name) or timezone.utc
        self.clock = clock or (lambda: datetime.now(timezone.utc))

        self._lock = threading.Lock()
        self._stopped = threading.Event()

    def now(self) -> datetime:
        return self.clock().astimezone(self.tz)

    def is_quiet_hours(self, now: Optional[datetime] = None) -> bool:
        """True between 00:30 and 07:30 local time."""
        local = (now or self.now()).astimezone(self.tz).time()
        return self.QUIET_START <= local < self.QUIET_END

    def trigger(self) -> bool:
        """
        Run the job now unless it is quiet hours or a run is in progress.

        Returns:
            bool: True if the job ran
        """
        if self.is_quiet_hours():
            logger.info("Within quiet hours (00:30-07:30). Skipping this check cycle.")
            return False

        if not self._lock.acquire(blocking=False):
            logger.warning("Previous check cycle still running, skipping this trigger")
            return False
        try:
            self.job()
        finally:
            self._lock.release()
        return True

    def seconds_until_next_run(self, now: Optional[datetime] = None) -> float:
        """Seconds until the next multiple of the interval past the hour."""
        now = (now or self.now()).astimezone(self.tz)
        hour_start = now.replace(minute=0, second=0, microsecond=0)
        next_minute = (now.minute // self.interval_minutes + 1) * self.interval_minutes
        next_run = hour_start + timedelta(minutes=next_minute)
        return max(0.0, (next_run - now).total_seconds())

    def run_forever(self) -> None:
        """Block, triggering the job on schedule until ``stop()`` is called."""
        logger.info(f"Scheduled to run every {self.interval_minutes} minutes ({self.tz_name} timezone)")
        while not self._stopped.wait(self.seconds_until_next_run()):
            self.trigger()
        logger.info("Scheduler stopped")

    def stop(self) -> None:
        self._stopped.set()
