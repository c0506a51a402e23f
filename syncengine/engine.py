"""Sync engine bootstrap.

Wires the store, settings, event bus, timer facility, dispatcher,
per-type schedulers, watchdog and purge into one object the host
process starts and stops.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from .config import DB_PATH, SETTINGS_PATH
from .events import EventBus
from .scheduler.dispatcher import SyncDispatcher
from .scheduler.purge import SyncHistoryPurge
from .scheduler.sync_scheduler import SchedulerRegistry
from .scheduler.timers import APSchedulerTimers, Timers
from .scheduler.watchdog import TimeoutWatchdog
from .settings.loader import SettingsLoader
from .settings.store import SettingsStore
from .sync.database import DatabaseSyncService
from .sync.models import SyncStatus, TriggerSource, utc_now
from .sync.service import SyncService
from .synchronizers.base import BaseSynchronizer
from .synchronizers.registry import SynchronizerRegistry

logger = logging.getLogger(__name__)


class SyncEngine:
    """Owns every sync component for one process."""

    def __init__(
        self,
        db_path: str | None = None,
        settings: SettingsStore | None = None,
        sync_service: SyncService | None = None,
        timers: Timers | None = None,
        events: EventBus | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the engine.

        Args:
            db_path: SQLite path for sync history (ignored with `sync_service`)
            settings: Settings store (a new one by default)
            sync_service: Store for sync records
            timers: Timer facility (APScheduler by default)
            events: Event bus (a new one by default)
            clock: Time source shared by every component
        """
        self.clock = clock
        self.events = events or EventBus()

        self.settings = settings or SettingsStore(self.events)
        if self.settings.events is None:
            self.settings.events = self.events

        self.sync_service = sync_service or DatabaseSyncService(
            db_path or DB_PATH, clock=clock
        )
        self.timers = timers or APSchedulerTimers()

        self.synchronizers = SynchronizerRegistry()
        self.dispatcher = SyncDispatcher(
            self.synchronizers, self.timers, self.events, clock=clock
        )
        self.schedulers = SchedulerRegistry(
            self.dispatcher, self.timers, self.events, clock=clock
        )
        self.watchdog = TimeoutWatchdog(
            self.sync_service, self.settings, self.timers, clock=clock
        )
        self.purge = SyncHistoryPurge(
            self.sync_service, self.settings, self.timers, clock=clock
        )
        self._started = False

    @classmethod
    def from_environment(cls, **kwargs: Any) -> "SyncEngine":
        """Build an engine from SYNC_DB_PATH and SYNC_SETTINGS_PATH."""
        engine = cls(db_path=DB_PATH, **kwargs)
        engine.load_settings(SETTINGS_PATH)
        return engine

    def load_settings(self, file_path: str | Path) -> SettingsStore:
        """Load a YAML or JSON settings file into the engine's store."""
        return SettingsLoader(self.settings).load_file(file_path)

    @property
    def is_running(self) -> bool:
        return self._started

    def register(self, synchronizer: BaseSynchronizer) -> str:
        """Register a job type.

        Registering while the engine runs arms its schedule immediately.
        The synchronizer reads its options from the engine's settings.

        Returns:
            The job-type key
        """
        if synchronizer.settings is not self.settings:
            logger.info(
                f"Attaching {synchronizer.get_sync_type_key()} to the engine settings"
            )
            synchronizer.settings = self.settings
        sync_type = self.synchronizers.register(synchronizer)
        if self._started:
            self.schedulers.ensure(synchronizer)
        return sync_type

    def start(self, paused: bool = False) -> None:
        """Start timers, maintenance ticks and every job type's schedule."""
        if self._started:
            logger.warning("Sync engine already started")
            return

        self.timers.start(paused=paused)
        self.watchdog.schedule()
        self.purge.schedule()
        for synchronizer in self.synchronizers:
            self.schedulers.ensure(synchronizer)

        self._started = True
        logger.info(
            f"Sync engine started with {len(self.synchronizers)} synchronizer(s)"
        )

    def shutdown(self, wait: bool = True) -> None:
        """Stop every timer.

        Args:
            wait: Whether to wait for running executions to finish
        """
        if not self._started:
            return

        self.schedulers.clear()
        self.watchdog.unschedule()
        self.purge.unschedule()
        self.timers.shutdown(wait=wait)
        self._started = False
        logger.info("Sync engine shutdown")

    # --- Operations ---

    def run_now(
        self, sync_type: str, triggered_by: str = TriggerSource.MANUAL.value
    ) -> None:
        """Dispatch a sync in the background.

        Raises:
            UnknownSyncTypeError: If the job type is not registered
            DispatchError: If the execution could not be enqueued
        """
        self.synchronizers.get(sync_type)
        self.dispatcher.run(sync_type, triggered_by)

    def cancel(self, sync_type: str) -> bool:
        """Request cancellation of a job type's running sync.

        Returns:
            True if a running sync was moved to CANCELLED
        """
        running = self.sync_service.get_running_for_type(sync_type)
        if running is None:
            return False
        cancelled = self.sync_service.cancel(running.id)
        if cancelled:
            logger.info(f"Cancellation requested for {sync_type} sync {running.id}")
        return cancelled

    def get_status(self, sync_type: str) -> dict[str, Any]:
        """Status of one job type.

        Shows the running sync, else the last finished one, else NOT_STARTED.
        """
        synchronizer = self.synchronizers.get(sync_type)
        sync = self.sync_service.get_running_for_type(
            sync_type
        ) or self.sync_service.get_last_finished_for_type(sync_type)
        status = sync.status if sync is not None else SyncStatus.NOT_STARTED

        scheduler = self.schedulers.get(sync_type)
        return {
            "sync_type": sync_type,
            "label": synchronizer.get_sync_type_label(),
            "status": status.value,
            "status_label": status.label,
            "is_running": status is SyncStatus.RUNNING,
            "is_pending": self.dispatcher.is_pending(sync_type),
            "sync": sync.to_dict() if sync is not None else None,
            "schedule": scheduler.get_schedule_status() if scheduler else None,
        }

    def status_overview(self) -> dict[str, dict[str, Any]]:
        """Status of every registered job type, keyed by job-type key."""
        return {
            sync_type: self.get_status(sync_type)
            for sync_type in self.synchronizers.list_types()
        }

    def purge_older_than(self, days: int) -> int:
        """Delete finished history older than `days` days."""
        return self.purge.purge_older_than(days)
