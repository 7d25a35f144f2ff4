"""
Daily scheduler for the pipeline job.

The scheduler is an asyncio task that sleeps until the next configured
wall-clock time, runs the job, and repeats. Run and failure counts feed the
status report; a job counts as failed when it raises or returns a result
whose ``ok`` is False.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, time, timedelta, timezone, tzinfo
import logging
import re
from typing import Any, Awaitable, Callable
from zoneinfo import ZoneInfo

from ..config import SchedulerConfig
from ..core.errors import ErrorTracker, SchedulerNotRunningError
from ..fetch.pool import SleepFn
from ..logging_utils import log_event

_TIME_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")

Job = Callable[[], Awaitable[Any]]


def parse_fire_time(value: str) -> time:
    """Parse "HH:MM" (24-hour).

    Raises:
        ValueError: If the value is not a valid time of day
    """
    match = _TIME_RE.match(value.strip())
    if not match:
        raise ValueError(f"Invalid schedule time {value!r}, expected HH:MM")
    return time(int(match.group(1)), int(match.group(2)))


def next_fire_time(now: datetime, at: str, tz: tzinfo = timezone.utc) -> datetime:
    """Today at ``at`` in ``tz`` if that moment is still ahead, else tomorrow."""
    fire = parse_fire_time(at)
    local_now = now.astimezone(tz)
    candidate = datetime.combine(local_now.date(), fire, tzinfo=tz)
    if candidate <= local_now:
        candidate = datetime.combine(local_now.date() + timedelta(days=1), fire, tzinfo=tz)
    return candidate


class DailyScheduler:
    """Fires ``job`` once a day at ``cfg.time``.

    ``start()`` must be called from inside a running event loop.
    """

    def __init__(
        self,
        job: Job,
        cfg: SchedulerConfig | None = None,
        *,
        tracker: ErrorTracker | None = None,
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.cfg = cfg or SchedulerConfig()
        parse_fire_time(self.cfg.time)
        self._job = job
        self._tz = ZoneInfo(self.cfg.timezone)
        self.tracker = tracker
        self.logger = logger
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._sleep = sleep
        self._task: asyncio.Task[None] | None = None
        self._last_run: datetime | None = None
        self._next_run: datetime | None = None
        self._run_count = 0
        self._failure_count = 0

    @property
    def is_scheduled(self) -> bool:
        return self._task is not None

    def start(self) -> bool:
        """Begin the daily loop. Returns False (with a warning) if already started."""
        if self._task is not None:
            if self.logger:
                self.logger.warning("Scheduler is already running")
            return False
        self._next_run = next_fire_time(self._clock(), self.cfg.time, self._tz)
        self._task = asyncio.get_running_loop().create_task(self._loop())
        log_event(
            self.logger,
            "Scheduler started",
            event="scheduler_start",
            time=self.cfg.time,
            timezone=self.cfg.timezone,
            next_run=self._next_run.isoformat(),
        )
        return True

    def stop(self) -> bool:
        """Cancel the loop. Returns False (with a warning) if not started."""
        task, self._task = self._task, None
        if task is None:
            if self.logger:
                self.logger.warning("Scheduler is not running")
            return False
        task.cancel()
        self._next_run = None
        log_event(self.logger, "Scheduler stopped", event="scheduler_stop")
        return True

    def update_schedule(self, at: str) -> None:
        """Change the fire time, restarting the loop when it is running."""
        parse_fire_time(at)
        self.cfg.time = at
        if self._task is not None:
            self.stop()
            self.start()

    async def trigger_now(self) -> Any:
        """Run the job immediately, outside the schedule.

        Raises:
            SchedulerNotRunningError: If the scheduler has not been started
        """
        if self._task is None:
            raise SchedulerNotRunningError()
        if self.logger:
            self.logger.info("Manual run triggered")
        return await self._fire()

    def status(self) -> dict[str, Any]:
        success_rate = 0.0
        if self._run_count:
            success_rate = (self._run_count - self._failure_count) / self._run_count * 100
        return {
            "scheduled": self.is_scheduled,
            "last_run": self._last_run.isoformat() if self._last_run else None,
            "next_run": self._next_run.isoformat() if self._next_run else None,
            "run_count": self._run_count,
            "failure_count": self._failure_count,
            "success_rate": round(success_rate, 2),
        }

    def time_until_next_run(self) -> timedelta | None:
        if self._next_run is None:
            return None
        return self._next_run - self._clock()

    def format_time_until_next_run(self) -> str:
        remaining = self.time_until_next_run()
        if remaining is None or remaining.total_seconds() <= 0:
            return "Not scheduled"
        total_minutes = int(remaining.total_seconds() // 60)
        hours, minutes = divmod(total_minutes, 60)
        if hours > 0:
            return f"{hours}h {minutes}m"
        return f"{minutes}m"

    async def _loop(self) -> None:
        while True:
            target = self._next_run or next_fire_time(self._clock(), self.cfg.time, self._tz)
            delay = (target - self._clock()).total_seconds()
            if delay > 0:
                await self._sleep(delay)

            if self._should_pause():
                if self.logger:
                    self.logger.warning("Error rate is high, skipping scheduled run")
                self._next_run = next_fire_time(max(self._clock(), target), self.cfg.time, self._tz)
                continue

            await self._fire()
            self._next_run = next_fire_time(max(self._clock(), target), self.cfg.time, self._tz)

    def _should_pause(self) -> bool:
        if not self.cfg.pause_on_high_error_rate or self.tracker is None:
            return False
        return self.tracker.is_error_rate_high(self.cfg.error_rate_threshold)

    async def _fire(self) -> Any:
        started = self._clock()
        self._run_count += 1
        log_event(self.logger, "Scheduled job start", event="job_start", run_count=self._run_count)
        result: Any = None
        try:
            result = await self._job()
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            self._failure_count += 1
            if self.logger:
                self.logger.error("Scheduled job failed: %s", exc)
        else:
            if getattr(result, "ok", True) is False:
                self._failure_count += 1
                if self.logger:
                    self.logger.warning("Scheduled job finished with pipeline errors")
        finally:
            self._last_run = started
            if self._task is not None:
                self._next_run = next_fire_time(self._clock(), self.cfg.time, self._tz)

        log_event(
            self.logger,
            "Scheduled job done",
            event="job_done",
            run_count=self._run_count,
            failure_count=self._failure_count,
            next_run=self._next_run.isoformat() if self._next_run else None,
        )
        return result
