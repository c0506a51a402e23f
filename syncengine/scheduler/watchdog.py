"""Timeout watchdog for stuck syncs.

Runs on a fixed two minute tick, independent of any job type's schedule.
A RUNNING record whose heartbeat (`updated_at`) is older than the
configured timeout is force-failed, which frees its job type's
single-flight slot after a worker died or hung. Records are never
deleted here and fresh RUNNING records are never touched.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable

from ..settings.store import SettingsStore
from ..sync.models import utc_now
from ..sync.service import SyncService
from .timers import Timers

logger = logging.getLogger(__name__)

WATCHDOG_JOB_ID = "timeout_watchdog"
WATCHDOG_INTERVAL = timedelta(minutes=2)


class TimeoutWatchdog:
    """Marks stale RUNNING syncs as failed."""

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
        """Arm the recurring check if it is not armed yet.

        Returns:
            True if the timer was armed by this call
        """
        if self.timers is None or self.timers.is_scheduled(WATCHDOG_JOB_ID):
            return False
        self.timers.schedule_recurring(
            WATCHDOG_JOB_ID, WATCHDOG_INTERVAL, self.check_for_timeouts
        )
        logger.info(f"Scheduled timeout watchdog every {WATCHDOG_INTERVAL}")
        return True

    def unschedule(self) -> None:
        if self.timers is not None:
            self.timers.cancel(WATCHDOG_JOB_ID)

    def check_for_timeouts(self) -> list[int]:
        """Fail every RUNNING sync whose heartbeat exceeded the timeout.

        Returns:
            IDs of the syncs marked as failed
        """
        logger.debug("Checking for sync timeouts")

        timeout_minutes = self.settings.global_settings().sync_timeout_minutes
        timed_out = self.sync_service.list_timed_out(timeout_minutes)

        failed_ids: list[int] = []
        for sync in timed_out:
            elapsed_seconds = (self.clock() - sync.updated_at).total_seconds()
            elapsed_minutes = round(elapsed_seconds / 60, 1)
            message = (
                f"Sync timed out after {elapsed_minutes} minutes "
                f"(limit: {timeout_minutes} minutes)"
            )

            # Conditional update; a sync that finished meanwhile stays as is
            if self.sync_service.set_failed(sync.id, message):
                failed_ids.append(sync.id)
                logger.warning(
                    f"Timeout Watchdog: Marked stuck sync #{sync.id} ({sync.sync_type}) "
                    f"as failed ({elapsed_minutes}min elapsed, {timeout_minutes}min limit)"
                )

        return failed_ids
