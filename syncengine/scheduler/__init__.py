"""Timer facility, background dispatch, scheduling and maintenance ticks."""

from .dispatcher import SyncDispatcher, relaxed_limits
from .purge import PURGE_JOB_ID, SyncHistoryPurge
from .sync_scheduler import ActiveSchedule, SchedulerRegistry, SyncScheduler
from .timers import APSchedulerTimers, Timers
from .watchdog import WATCHDOG_JOB_ID, TimeoutWatchdog

__all__ = [
    "PURGE_JOB_ID",
    "WATCHDOG_JOB_ID",
    "APSchedulerTimers",
    "ActiveSchedule",
    "SchedulerRegistry",
    "SyncDispatcher",
    "SyncHistoryPurge",
    "SyncScheduler",
    "TimeoutWatchdog",
    "Timers",
    "relaxed_limits",
]
