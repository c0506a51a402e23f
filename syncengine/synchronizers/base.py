"""Base synchronizer class.

Defines the interface every job-type implementation extends, and drives
one execution end to end: single-flight guard, validation, record
creation, progress tracking, implicit completion and failure recording.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Sequence

from ..settings.models import (
    DEFAULT_SCHEDULE_INTERVAL,
    SCHEDULE_ENABLED,
    SCHEDULE_INTERVAL,
)
from ..settings.store import SettingsStore
from ..sync.errors import AlreadyRunningError, PersistenceError, SyncNotFoundError
from ..sync.models import Sync, SyncStatus, TriggerSource
from ..sync.service import SyncService

logger = logging.getLogger(__name__)

MINUTE_IN_SECONDS = 60
HOUR_IN_SECONDS = 60 * MINUTE_IN_SECONDS


@dataclass(frozen=True)
class ScheduleInterval:
    """A selectable recurrence for scheduled syncs."""

    interval_seconds: int
    display_label: str

    @property
    def duration(self) -> timedelta:
        return timedelta(seconds=self.interval_seconds)


DEFAULT_SCHEDULE_INTERVALS: dict[str, ScheduleInterval] = {
    "every_30_minutes": ScheduleInterval(30 * MINUTE_IN_SECONDS, "Every 30 minutes"),
    "every_60_minutes": ScheduleInterval(60 * MINUTE_IN_SECONDS, "Every 60 minutes"),
    "every_90_minutes": ScheduleInterval(90 * MINUTE_IN_SECONDS, "Every 90 minutes"),
    "every_2_hours": ScheduleInterval(2 * HOUR_IN_SECONDS, "Every 2 hours"),
    "every_4_hours": ScheduleInterval(4 * HOUR_IN_SECONDS, "Every 4 hours"),
    "every_6_hours": ScheduleInterval(6 * HOUR_IN_SECONDS, "Every 6 hours"),
    "every_8_hours": ScheduleInterval(8 * HOUR_IN_SECONDS, "Every 8 hours"),
    "every_12_hours": ScheduleInterval(12 * HOUR_IN_SECONDS, "Every 12 hours"),
    "every_24_hours": ScheduleInterval(24 * HOUR_IN_SECONDS, "Every 24 hours"),
}


def make_sync_type_key(label: str) -> str:
    """Derive a sync type key from a label ("Product Sync" -> "product_sync")."""
    return re.sub(r"[^a-z0-9]+", "_", label.strip().lower()).strip("_")


class CancellationToken:
    """Cooperative cancellation handle passed into the processing loop.

    Backed by the persisted status, so a cancel issued from another
    process (or a watchdog force-fail) is visible here.
    """

    def __init__(self, sync_service: SyncService, sync_id: int) -> None:
        self.sync_service = sync_service
        self.sync_id = sync_id

    def current(self) -> Sync | None:
        """Re-read the record from the store."""
        return self.sync_service.get(self.sync_id)

    @property
    def is_cancelled(self) -> bool:
        """True once the sync has been cancelled."""
        sync = self.current()
        return sync is not None and sync.status is SyncStatus.CANCELLED

    @property
    def should_stop(self) -> bool:
        """True once the sync reached any terminal status."""
        sync = self.current()
        return sync is None or sync.is_finished


class BaseSynchronizer(ABC):
    """Abstract base class for all job-type implementations.

    Subclasses provide:
    - `label` (and optionally `key`)
    - `get_items_to_sync()` returning the work list
    - `perform_sync()` processing it and reporting progress through
      `increment_synced()` / `increment_failed()`

    Optionally override `validate_can_sync()` for pre-flight checks.
    """

    label: str = ""
    key: str | None = None

    def __init__(
        self,
        sync_service: SyncService,
        settings: SettingsStore | None = None,
    ) -> None:
        """Initialize the synchronizer.

        Args:
            sync_service: Store for sync records
            settings: Scoped settings (schedule options live in this type's scope)
        """
        self.sync_service = sync_service
        self.settings = settings or SettingsStore()
        self.current_sync_id: int | None = None

    # --- Identity ---

    def get_sync_type_label(self) -> str:
        return self.label or type(self).__name__

    def get_sync_type_key(self) -> str:
        if not self.key:
            self.key = make_sync_type_key(self.get_sync_type_label())
        return self.key

    def settings_scope(self) -> str:
        """Settings scope holding this type's options."""
        return self.get_sync_type_key()

    # --- Execution ---

    def sync(self, triggered_by: str = TriggerSource.MANUAL.value) -> Sync | None:
        """Run one sync of this type end to end.

        Nothing raised by job code escapes; failures end up as a FAILED
        record. Only the single-flight guard and store failures propagate.

        Args:
            triggered_by: manual, schedule or api

        Returns:
            The final sync record

        Raises:
            AlreadyRunningError: When a sync of this type is already running
            PersistenceError: When the store fails
        """
        sync_type = self.get_sync_type_key()

        # Only one sync per type at a time
        if self.sync_service.get_running_for_type(sync_type) is not None:
            raise AlreadyRunningError(sync_type)

        self.current_sync_id = None

        try:
            self.validate_can_sync()
        except (AlreadyRunningError, PersistenceError):
            raise
        except Exception as e:
            logger.error(f"Sync {sync_type} validation failed: {e}")
            return self._record_failure(sync_type, triggered_by, str(e))

        try:
            sync_id = self.sync_service.create(sync_type, triggered_by)
            self.current_sync_id = sync_id
            logger.info(f"Starting {sync_type} sync {sync_id} ({triggered_by})")

            items = list(self.get_items_to_sync())
            self.sync_service.set_total(sync_id, len(items))

            self.perform_sync(items, sync_id, CancellationToken(self.sync_service, sync_id))

            # Job returned normally without reaching a terminal status
            sync = self.get_sync(sync_id)
            if sync.is_running:
                self.sync_service.set_complete(sync_id)

        except (AlreadyRunningError, PersistenceError):
            raise
        except Exception as e:
            logger.exception(f"Sync {sync_type} failed: {e}")
            if self.current_sync_id is None:
                return self._record_failure(sync_type, triggered_by, str(e))
            self.sync_service.set_failed(self.current_sync_id, str(e))

        final = self.sync_service.get(self.current_sync_id)
        if final is not None:
            logger.info(
                f"Sync {sync_type} {final.id} ended {final.status.value}: "
                f"{final.synced} synced, {final.failed} failed of {final.total}"
            )
        return final

    def _record_failure(
        self, sync_type: str, triggered_by: str, message: str
    ) -> Sync | None:
        """Create and immediately fail a record so the failure shows in history."""
        sync_id = self.sync_service.create(sync_type, triggered_by)
        self.current_sync_id = sync_id
        self.sync_service.set_failed(sync_id, message)
        return self.sync_service.get(sync_id)

    def increment_synced(self, sync_id: int, increment: int = 1) -> Sync:
        """Record successfully synced items.

        Returns:
            The record after the increment (possibly auto-completed)
        """
        self.sync_service.increment_synced(sync_id, increment)
        return self._update_status_for_total_complete(sync_id)

    def increment_failed(self, sync_id: int, increment: int = 1) -> Sync:
        """Record failed items.

        Returns:
            The record after the increment (possibly auto-completed)
        """
        self.sync_service.increment_failed(sync_id, increment)
        return self._update_status_for_total_complete(sync_id)

    def _update_status_for_total_complete(self, sync_id: int) -> Sync:
        sync = self.get_sync(sync_id)
        if sync.is_running and sync.processed >= sync.total:
            # Conditional transition; a concurrent completion is a no-op
            self.sync_service.set_complete(sync_id)
            return self.get_sync(sync_id)
        return sync

    def get_sync(self, sync_id: int) -> Sync:
        sync = self.sync_service.get(sync_id)
        if sync is None:
            raise SyncNotFoundError(sync_id)
        return sync

    # --- Job-specific hooks ---

    def validate_can_sync(self) -> None:
        """Check that the sync can run.

        Raise (typically `SyncValidationError`) to record an instantly
        failed sync instead of starting one.
        """

    @abstractmethod
    def get_items_to_sync(self) -> Sequence[Any]:
        """Return the work list.

        Items may be ids, records or any other object; each is one unit
        of work for `perform_sync()`.
        """

    @abstractmethod
    def perform_sync(
        self, items: Sequence[Any], sync_id: int, token: CancellationToken
    ) -> None:
        """Process the work list.

        Report progress through `increment_synced()` / `increment_failed()`
        and check `token` between units to honor cancellation.
        """

    # --- Scheduling ---

    def is_schedule_enabled(self) -> bool:
        return bool(self.settings.get(self.settings_scope(), SCHEDULE_ENABLED, False))

    def get_schedule_interval(self) -> str:
        return self.settings.get(
            self.settings_scope(), SCHEDULE_INTERVAL, DEFAULT_SCHEDULE_INTERVAL
        )

    def get_available_schedule_intervals(self) -> dict[str, ScheduleInterval]:
        """Selectable recurrences, keyed by interval key."""
        return dict(DEFAULT_SCHEDULE_INTERVALS)

    def get_schedule_options(self) -> dict[str, str]:
        """Interval key -> display label, for settings forms."""
        return {
            key: interval.display_label
            for key, interval in self.get_available_schedule_intervals().items()
        }
