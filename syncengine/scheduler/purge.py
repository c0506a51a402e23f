"""Sync history retention.

Runs daily and bounds the history table in two ordered phases:

1. Age, per status: COMPLETED and CANCELLED records older than
   `history_retention_days`, FAILED records older than
   `history_failed_retention_days` (kept longer for troubleshooting).
2. Count: when more than `max_history_records` finished records remain,
   only the newest ones are kept.

RUNNING records are never deleted regardless of age.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable

from ..settings.store import SettingsStore
from ..sync.errors import PersistenceError
from ..sync.models import SyncStatus, utc_now
from ..sync.service import SyncService
from .timers import Timers

logger = logging.getLogger(__name__)

PURGE_JOB_ID = "sync_history_purge"
PURGE_INTERVAL = timedelta(days=1)


class SyncHistoryPurge:
    """Applies the retention policy to sync history."""

    def __init__(
        self,
        sync_service: SyncService,
        settings: SettingsStore,
        timers: Timers | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.sync_service = sync_service
        self.settings = settings
        self.timers = timers
        self.clock = clock

    def schedule(self) -> bool:
        """Arm the daily purge if it is not armed yet."""
        if self.timers is None or self.timers.is_scheduled(PURGE_JOB_ID):
            return False
        self.timers.schedule_recurring(PURGE_JOB_ID, PURGE_INTERVAL, self.purge_old_records)
        logger.info("Scheduled sync history purge: daily")
        return True

    def unschedule(self) -> None:
        if self.timers is not None:
            self.timers.cancel(PURGE_JOB_ID)

    def purge_old_records(self) -> int:
        """Run both retention phases.

        Returns:
            Total number of records deleted
        """
        policy = self.settings.global_settings()
        now = self.clock()

        try:
            total_deleted = 0
            for status, days in (
                (SyncStatus.COMPLETED, policy.history_retention_days),
                (SyncStatus.CANCELLED, policy.history_retention_days),
                (SyncStatus.FAILED, policy.history_failed_retention_days),
            ):
                total_deleted += self.sync_service.delete_finished_older_than(
                    status, now - timedelta(days=days)
                )

            total_deleted += self.sync_service.delete_excess_finished(
                policy.max_history_records
            )
        except PersistenceError as e:
            logger.error(f"Sync History Purge failed: {e}")
            raise

        if total_deleted > 0:
            logger.info(f"Sync History Purge: Deleted {total_deleted} old records")
        return total_deleted

    def purge_older_than(self, days: int) -> int:
        """Delete every finished (non-RUNNING) record older than `days`.

        Args:
            days: Age threshold in days

        Returns:
            Number of records deleted
        """
        if days < 1:
            raise ValueError("days must be a positive integer")

        deleted = self.sync_service.delete_older_than(self.clock() - timedelta(days=days))
        if deleted > 0:
            logger.info(f"Manual purge: Deleted {deleted} records older than {days} days")
        return deleted

    def get_purge_statistics(self) -> dict[str, Any]:
        """Per-status counts plus the policy currently in effect."""
        stats = self.sync_service.purge_statistics()
        stats["policy"] = self.settings.global_settings().model_dump()
        return stats
