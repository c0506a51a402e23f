"""Background dispatcher for sync executions.

Turns "run this job type now" into a deferred execution on the timer
facility's worker pool, so triggers never block and a run outlives the
request that started it. Every dispatch ends in exactly one
`SyncCompletedEvent` or `SyncFailedEvent`.
"""

from __future__ import annotations

import logging
import sys
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterator

from ..events import EventBus, SyncCompletedEvent, SyncFailedEvent
from ..sync.errors import DispatchError
from ..sync.models import Sync, TriggerSource, utc_now
from ..synchronizers.registry import SynchronizerRegistry
from .timers import Timers

logger = logging.getLogger(__name__)

# Overlapping dispatches of one job type must all reach sync(), whose
# single-flight guard turns the extras into failure events
DISPATCH_MAX_INSTANCES = 32

_limits_lock = threading.Lock()
_limits_users = 0
_saved_limits: dict[int, tuple[int, int]] = {}


@contextmanager
def relaxed_limits() -> Iterator[None]:
    """Raise CPU-time and address-space soft limits to their hard limits.

    Limits are process-wide; the first concurrent caller raises them and
    the last one restores them.
    """
    global _limits_users

    if sys.platform == "win32":
        yield
        return

    import resource

    with _limits_lock:
        if _limits_users == 0:
            for limit in (resource.RLIMIT_CPU, resource.RLIMIT_AS):
                try:
                    soft, hard = resource.getrlimit(limit)
                    if soft != hard:
                        resource.setrlimit(limit, (hard, hard))
                        _saved_limits[limit] = (soft, hard)
                except (ValueError, OSError) as e:
                    logger.debug(f"Could not relax resource limit {limit}: {e}")
        _limits_users += 1

    try:
        yield
    finally:
        with _limits_lock:
            _limits_users -= 1
            if _limits_users == 0:
                for limit, values in _saved_limits.items():
                    try:
                        resource.setrlimit(limit, values)
                    except (ValueError, OSError) as e:
                        logger.debug(f"Could not restore resource limit {limit}: {e}")
                _saved_limits.clear()


class SyncDispatcher:
    """Runs synchronizers asynchronously and reports the outcome as events."""

    def __init__(
        self,
        registry: SynchronizerRegistry,
        timers: Timers,
        events: EventBus,
        rethrow: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            registry: Synchronizers by job-type key
            timers: Timer facility whose worker pool runs executions
            events: Bus receiving completion/failure events
            rethrow: Re-raise execution errors after publishing the failure
            clock: Time source for event timestamps
        """
        self.registry = registry
        self.timers = timers
        self.events = events
        self.rethrow = rethrow
        self.clock = clock

    @staticmethod
    def job_id(sync_type: str) -> str:
        return f"start_sync:{sync_type}"

    def run(self, sync_type: str, triggered_by: str = TriggerSource.MANUAL.value) -> None:
        """Request an execution of a job type as soon as possible.

        Replaces any pending request for the same job type and wakes the
        worker. Does not wait for the execution.

        Raises:
            DispatchError: If the execution could not be enqueued
        """
        job_id = self.job_id(sync_type)
        try:
            self.timers.cancel(job_id)
            self.timers.schedule_once(
                job_id,
                None,
                self.execute,
                args=(sync_type, triggered_by),
                max_instances=DISPATCH_MAX_INSTANCES,
            )
            self.timers.wakeup()
        except Exception as e:
            logger.error(f"Failed to dispatch {sync_type} sync: {e}")
            raise DispatchError(f"Could not enqueue {sync_type} sync: {e}") from e

        logger.info(f"Dispatched {sync_type} sync (triggered by {triggered_by})")

    def is_pending(self, sync_type: str) -> bool:
        """Check if an execution is queued but not yet started."""
        return self.timers.is_scheduled(self.job_id(sync_type))

    def execute(self, sync_type: str, triggered_by: str) -> Sync | None:
        """Run one sync and publish its outcome.

        Invoked by the worker pool.

        Returns:
            The final sync record, or None if the execution raised
        """
        try:
            synchronizer = self.registry.get(sync_type)
            with relaxed_limits():
                result = synchronizer.sync(triggered_by)
        except Exception as e:
            logger.error(f"Background sync {sync_type} failed: {e}")
            self.events.publish(
                SyncFailedEvent(
                    sync_type=sync_type,
                    triggered_by=triggered_by,
                    error=e,
                    occurred_at=self.clock(),
                )
            )
            if self.rethrow:
                raise
            return None

        self.events.publish(
            SyncCompletedEvent(
                sync_type=sync_type,
                triggered_by=triggered_by,
                result=result,
                occurred_at=self.clock(),
            )
        )
        return result
