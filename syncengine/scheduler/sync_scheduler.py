"""Per-job-type scheduling.

A `SyncScheduler` owns the cadence of one job type. The next tick is
always armed from the moment the previous run finished (completion time
plus the configured interval), so long runs neither drift the schedule
nor overlap the next run. Settings are the source of truth; the armed
timer is derived state and is rebuilt whenever the schedule options
change.

Example timeline for a 30 minute interval::

    10:00  tick fires, run dispatched
    10:08  run completes -> next tick armed for 10:38
    10:38  tick fires
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Iterator

from ..events import EventBus, SettingChangedEvent, SyncCompletedEvent, SyncFailedEvent
from ..settings.models import SCHEDULE_ENABLED, SCHEDULE_INTERVAL
from ..sync.errors import DispatchError
from ..sync.models import TriggerSource, format_timestamp, utc_now
from ..synchronizers.base import BaseSynchronizer
from .dispatcher import SyncDispatcher
from .timers import Timers

logger = logging.getLogger(__name__)

RESCHEDULE_DEBOUNCE = timedelta(seconds=30)
FALLBACK_INTERVAL = timedelta(hours=1)


@dataclass(frozen=True)
class ActiveSchedule:
    """The recurrence currently armed for a job type."""

    interval_key: str
    interval: timedelta
    next_run_at: datetime


class SyncScheduler:
    """Keeps one job type's recurring tick aligned with its settings."""

    def __init__(
        self,
        synchronizer: BaseSynchronizer,
        dispatcher: SyncDispatcher,
        timers: Timers,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.synchronizer = synchronizer
        self.dispatcher = dispatcher
        self.timers = timers
        self.clock = clock
        self.active: ActiveSchedule | None = None
        self._initialized = False
        self._last_reschedule: datetime | None = None
        self._unsubscribers: list[Callable[[], None]] = []
        self._lock = threading.RLock()

    @property
    def sync_type(self) -> str:
        return self.synchronizer.get_sync_type_key()

    @property
    def job_id(self) -> str:
        return f"{self.sync_type}_sync"

    # --- Wiring ---

    def register(self, events: EventBus) -> None:
        """Subscribe to completion, failure and settings events."""
        if self._unsubscribers:
            return
        self._unsubscribers = [
            events.subscribe(SyncCompletedEvent, self.on_completed),
            events.subscribe(SyncFailedEvent, self.on_failed),
            events.subscribe(SettingChangedEvent, self._on_setting_changed),
        ]

    def unregister(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def ensure_initialized(self) -> bool:
        """Arm the initial timer once per scheduler.

        Returns:
            True if this call performed the initialization
        """
        with self._lock:
            if self._initialized:
                return False
            self.update_schedule()
            self._initialized = True
            return True

    # --- Ticks and outcomes ---

    def on_tick(self) -> None:
        """Timer callback: hand the run to the dispatcher without waiting."""
        logger.info(f"Scheduled tick for {self.sync_type}")
        try:
            self.dispatcher.run(self.sync_type, TriggerSource.SCHEDULE.value)
        except DispatchError as e:
            logger.error(f"Scheduled {self.sync_type} sync not dispatched: {e}")

    def on_completed(self, event: SyncCompletedEvent) -> None:
        if event.sync_type != self.sync_type:
            return
        logger.debug(
            f"Background sync completed for {event.sync_type}, "
            f"triggered by: {event.triggered_by}"
        )
        self.reschedule_after_completion(event.occurred_at)

    def on_failed(self, event: SyncFailedEvent) -> None:
        # A failed run still frees the slot and keeps the cadence
        if event.sync_type != self.sync_type:
            return
        logger.error(
            f"Background sync FAILED for {event.sync_type}, "
            f"triggered by: {event.triggered_by}: {event.error}"
        )
        self.reschedule_after_completion(event.occurred_at)

    def reschedule_after_completion(self, completed_at: datetime | None = None) -> bool:
        """Arm the next tick one full interval after the run finished.

        Args:
            completed_at: When the run finished (default: now)

        Returns:
            True if the timer was re-armed
        """
        if not self.synchronizer.is_schedule_enabled():
            logger.debug("Scheduling disabled, not rescheduling after sync completion")
            return False

        completed_at = completed_at or self.clock()

        with self._lock:
            if (
                self._last_reschedule is not None
                and abs(completed_at - self._last_reschedule) < RESCHEDULE_DEBOUNCE
            ):
                logger.debug(f"Skipping reschedule of {self.sync_type} - too recent")
                return False
            self._last_reschedule = completed_at

            interval_key = self.synchronizer.get_schedule_interval()
            next_run_at = completed_at + self.resolve_interval(interval_key)
            self._arm(interval_key, next_run_at)

        logger.debug(
            f"Rescheduled {self.sync_type} to {format_timestamp(next_run_at)} "
            f"({interval_key} interval from completion)"
        )
        return True

    # --- Settings ---

    def _on_setting_changed(self, event: SettingChangedEvent) -> None:
        self.on_config_changed(event.scope, event.old_value, event.new_value, event.option)

    def on_config_changed(
        self, scope: str, old_value: Any, new_value: Any, option: str
    ) -> None:
        """Re-derive the timer when this job type's schedule options change."""
        if scope != self.synchronizer.settings_scope():
            return
        if option not in (SCHEDULE_ENABLED, SCHEDULE_INTERVAL):
            return
        logger.info(
            f"Schedule option changed for {self.sync_type}: {option} "
            f"{old_value!r} -> {new_value!r}, updating schedule"
        )
        self.update_schedule()

    def update_schedule(self) -> None:
        """Align the armed timer with the current settings.

        Clears the timer when scheduling is disabled, keeps it when the
        interval is unchanged, otherwise re-arms it one interval from now.
        """
        with self._lock:
            interval_key = self.synchronizer.get_schedule_interval()
            armed = self.timers.is_scheduled(self.job_id)

            if not self.synchronizer.is_schedule_enabled():
                if armed or self.active is not None:
                    logger.info(f"Clearing scheduled {self.sync_type} sync (disabled)")
                    self.unschedule()
                return

            if armed and self.active is not None:
                if self.active.interval_key == interval_key:
                    logger.debug("Schedule interval unchanged, keeping existing schedule")
                    return
                logger.info(
                    f"Interval changed from {self.active.interval_key} "
                    f"to {interval_key}, rescheduling"
                )

            next_run_at = self.clock() + self.resolve_interval(interval_key)
            self._arm(interval_key, next_run_at)

        logger.info(
            f"Scheduled {self.sync_type} sync for {format_timestamp(next_run_at)} "
            f"with interval: {interval_key}"
        )

    def unschedule(self) -> None:
        with self._lock:
            self.timers.cancel(self.job_id)
            self.active = None

    def _arm(self, interval_key: str, next_run_at: datetime) -> None:
        interval = self.resolve_interval(interval_key)
        self.timers.cancel(self.job_id)
        self.timers.schedule_recurring(
            self.job_id, interval, self.on_tick, start_at=next_run_at
        )
        self.active = ActiveSchedule(
            interval_key=interval_key, interval=interval, next_run_at=next_run_at
        )

    def resolve_interval(self, interval_key: str) -> timedelta:
        """Duration of an interval key, one hour when the key is unknown."""
        interval = self.synchronizer.get_available_schedule_intervals().get(interval_key)
        if interval is None:
            logger.warning(
                f"Unknown schedule interval {interval_key!r} for {self.sync_type}, "
                f"using {FALLBACK_INTERVAL}"
            )
            return FALLBACK_INTERVAL
        return interval.duration

    # --- Status ---

    def get_next_scheduled_run(self) -> datetime | None:
        next_run = self.timers.next_run_time(self.job_id)
        if next_run is None and self.active is not None:
            return self.active.next_run_at
        return next_run

    def get_schedule_status(self) -> dict[str, Any]:
        """Schedule state for status displays."""
        next_run = self.get_next_scheduled_run()
        return {
            "enabled": self.synchronizer.is_schedule_enabled(),
            "interval": self.synchronizer.get_schedule_interval(),
            "next_run": next_run,
            "next_run_formatted": format_timestamp(next_run) if next_run else None,
            "is_scheduled": self.timers.is_scheduled(self.job_id),
        }


class SchedulerRegistry:
    """Schedulers keyed by job type, owned by the process bootstrap."""

    def __init__(
        self,
        dispatcher: SyncDispatcher,
        timers: Timers,
        events: EventBus,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.dispatcher = dispatcher
        self.timers = timers
        self.events = events
        self.clock = clock
        self._schedulers: dict[str, SyncScheduler] = {}
        self._lock = threading.Lock()

    def ensure(self, synchronizer: BaseSynchronizer) -> SyncScheduler:
        """Create, wire and initialize the scheduler for a job type once.

        Returns:
            The job type's scheduler
        """
        sync_type = synchronizer.get_sync_type_key()
        with self._lock:
            scheduler = self._schedulers.get(sync_type)
            if scheduler is None:
                scheduler = SyncScheduler(
                    synchronizer, self.dispatcher, self.timers, clock=self.clock
                )
                scheduler.register(self.events)
                self._schedulers[sync_type] = scheduler
        scheduler.ensure_initialized()
        return scheduler

    def get(self, sync_type: str) -> SyncScheduler | None:
        return self._schedulers.get(sync_type)

    def remove(self, sync_type: str) -> None:
        with self._lock:
            scheduler = self._schedulers.pop(sync_type, None)
        if scheduler is not None:
            scheduler.unregister()
            scheduler.unschedule()

    def clear(self) -> None:
        for sync_type in list(self._schedulers):
            self.remove(sync_type)

    def __contains__(self, sync_type: str) -> bool:
        return sync_type in self._schedulers

    def __iter__(self) -> Iterator[SyncScheduler]:
        return iter(list(self._schedulers.values()))

    def __len__(self) -> int:
        return len(self._schedulers)
