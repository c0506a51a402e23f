"""Timer facility for sync ticks.

`Timers` is the interface the dispatcher, schedulers, watchdog and purge
arm their ticks through. `APSchedulerTimers` backs it with an APScheduler
`BackgroundScheduler`. Timers are derived state rebuilt from settings on
every start, so they live in an in-memory job store.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.base import JobLookupError
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from ..config import MAX_WORKERS

logger = logging.getLogger(__name__)


class Timers(ABC):
    """Named one-shot and recurring ticks."""

    @abstractmethod
    def schedule_once(
        self,
        job_id: str,
        when: datetime | None,
        func: Callable[..., Any],
        args: tuple[Any, ...] = (),
        max_instances: int | None = None,
    ) -> None:
        """Arm a one-shot tick, replacing any timer with the same id.

        Args:
            job_id: Timer name
            when: Due time (None for as soon as possible)
            func: Callback
            args: Positional arguments for the callback
            max_instances: Overlapping runs allowed under this id (default 1)
        """

    @abstractmethod
    def schedule_recurring(
        self,
        job_id: str,
        interval: timedelta,
        func: Callable[..., Any],
        start_at: datetime | None = None,
        args: tuple[Any, ...] = (),
    ) -> None:
        """Arm a recurring tick, replacing any timer with the same id.

        Args:
            job_id: Timer name
            interval: Time between ticks
            func: Callback
            start_at: First due time (default: one interval from now)
            args: Positional arguments for the callback
        """

    @abstractmethod
    def cancel(self, job_id: str) -> bool:
        """Remove a timer.

        Returns:
            True if a timer was removed
        """

    @abstractmethod
    def next_run_time(self, job_id: str) -> datetime | None:
        """Next due time of a timer, or None if it is not armed."""

    def is_scheduled(self, job_id: str) -> bool:
        return self.next_run_time(job_id) is not None

    def wakeup(self) -> None:
        """Ask the worker to process due timers immediately."""

    def start(self, paused: bool = False) -> None:
        """Start firing timers."""

    def shutdown(self, wait: bool = True) -> None:
        """Stop firing timers."""


class APSchedulerTimers(Timers):
    """Timers backed by an APScheduler `BackgroundScheduler`."""

    def __init__(self, max_workers: int | None = None) -> None:
        """Initialize the timer facility.

        Args:
            max_workers: Thread pool size for tick callbacks
        """
        self.max_workers = max_workers or MAX_WORKERS
        self._scheduler = self._create_scheduler()
        self._started = False

    def _create_scheduler(self) -> BackgroundScheduler:
        """Create and configure the APScheduler instance."""
        jobstores = {"default": MemoryJobStore()}

        # Executors - thread pool for ticks and sync executions
        executors = {
            "default": ThreadPoolExecutor(max_workers=self.max_workers),
        }

        job_defaults = {
            "coalesce": True,  # Combine missed runs into one
            "max_instances": 1,  # Only one instance per timer
            "misfire_grace_time": 3600,  # 1 hour grace time for missed ticks
        }

        return BackgroundScheduler(
            jobstores=jobstores,
            executors=executors,
            job_defaults=job_defaults,
            timezone="UTC",
        )

    def start(self, paused: bool = False) -> None:
        """Start the scheduler.

        Args:
            paused: Start without processing due timers
        """
        if self._started:
            logger.warning("Timers already started")
            return

        self._scheduler.start(paused=paused)
        self._started = True
        logger.info("Timers started")

    def shutdown(self, wait: bool = True) -> None:
        """Shutdown the scheduler.

        Args:
            wait: Whether to wait for running ticks to complete
        """
        if self._started:
            self._scheduler.shutdown(wait=wait)
            self._started = False
            logger.info("Timers shutdown")

    @property
    def is_running(self) -> bool:
        return self._started

    def schedule_once(
        self,
        job_id: str,
        when: datetime | None,
        func: Callable[..., Any],
        args: tuple[Any, ...] = (),
        max_instances: int | None = None,
    ) -> None:
        trigger = DateTrigger(run_date=when, timezone=timezone.utc)
        options: dict[str, Any] = {}
        if max_instances is not None:
            options["max_instances"] = max_instances
        self._scheduler.add_job(
            func,
            trigger=trigger,
            id=job_id,
            name=job_id,
            args=args,
            replace_existing=True,
            **options,
        )
        logger.debug(f"Armed one-shot timer {job_id} for {when or 'now'}")

    def schedule_recurring(
        self,
        job_id: str,
        interval: timedelta,
        func: Callable[..., Any],
        start_at: datetime | None = None,
        args: tuple[Any, ...] = (),
    ) -> None:
        trigger = IntervalTrigger(
            seconds=int(interval.total_seconds()),
            start_date=start_at,
            timezone=timezone.utc,
        )
        self._scheduler.add_job(
            func,
            trigger=trigger,
            id=job_id,
            name=job_id,
            args=args,
            replace_existing=True,
        )
        logger.debug(
            f"Armed recurring timer {job_id} every {interval} from {start_at or 'now'}"
        )

    def cancel(self, job_id: str) -> bool:
        try:
            self._scheduler.remove_job(job_id)
        except JobLookupError:
            return False
        logger.debug(f"Cancelled timer {job_id}")
        return True

    def next_run_time(self, job_id: str) -> datetime | None:
        job = self._scheduler.get_job(job_id)
        # Jobs added before start() have no computed run time yet
        if job is None or job.pending:
            return None
        return job.next_run_time

    def is_scheduled(self, job_id: str) -> bool:
        return self._scheduler.get_job(job_id) is not None

    def wakeup(self) -> None:
        if self._started:
            self._scheduler.wakeup()

    def get_jobs(self) -> list[dict[str, Any]]:
        """Get all armed timers.

        Returns:
            List of timer details
        """
        return [
            {
                "id": job.id,
                "next_run_time": None if job.pending else job.next_run_time,
                "trigger": str(job.trigger),
            }
            for job in self._scheduler.get_jobs()
        ]
