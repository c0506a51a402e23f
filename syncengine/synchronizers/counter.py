"""Demo synchronizer that counts through a range of numbers.

Useful for exercising progress tracking, cancellation and scheduling
without any external system. Per-type options `processing_delay` and
`enable_random_failures` can be set in its settings scope.
"""

from __future__ import annotations

import logging
import random
import time
from typing import Any, Callable, Sequence

from ..settings.store import SettingsStore
from ..sync.service import SyncService
from .base import BaseSynchronizer, CancellationToken, ScheduleInterval

logger = logging.getLogger(__name__)


class CounterSynchronizer(BaseSynchronizer):
    """Counts from 1 to `count`, failing a random share of items."""

    label = "Dummy Counter Sync"

    def __init__(
        self,
        sync_service: SyncService,
        settings: SettingsStore | None = None,
        count: int = 20,
        delay: float = 1.0,
        failure_ratio: float = 0.1,
        rng: random.Random | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(sync_service, settings)
        self.count = count
        self.delay = delay
        self.failure_ratio = failure_ratio
        self.rng = rng or random.Random()
        self._sleep = sleep

    def get_items_to_sync(self) -> Sequence[Any]:
        return list(range(1, self.count + 1))

    def perform_sync(
        self, items: Sequence[Any], sync_id: int, token: CancellationToken
    ) -> None:
        logger.info(f"Starting counter sync with {len(items)} items")

        scope = self.settings_scope()
        delay = float(self.settings.get(scope, "processing_delay", self.delay))
        failures_enabled = bool(
            self.settings.get(scope, "enable_random_failures", self.failure_ratio > 0)
        )

        for item in items:
            if token.should_stop:
                logger.info(f"Counter sync {sync_id} stopped at item {item}")
                break

            logger.debug(f"Processing item: {item}")
            if delay > 0:
                self._sleep(delay)

            if failures_enabled and self.rng.random() < self.failure_ratio:
                logger.warning(f"Simulated failure for item: {item}")
                self.increment_failed(sync_id)
            else:
                self.increment_synced(sync_id)

        final = self.get_sync(sync_id)
        logger.info(
            f"Counter sync finished. Processed: {final.synced}, "
            f"Failed: {final.failed}, Total: {final.total}"
        )

    def get_available_schedule_intervals(self) -> dict[str, ScheduleInterval]:
        intervals = {"every_2_minutes": ScheduleInterval(2 * 60, "Every 2 minutes")}
        intervals.update(super().get_available_schedule_intervals())
        return intervals
