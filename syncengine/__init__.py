"""Background sync engine: job history, single-flight execution,
completion-anchored scheduling, timeout recovery and retention."""

from .engine import SyncEngine
from .events import (
    Event,
    EventBus,
    SettingChangedEvent,
    SyncCompletedEvent,
    SyncFailedEvent,
)
from .logging_config import configure_logging
from .settings import GlobalSyncSettings, ScheduleSettings, SettingsStore, load_settings
from .sync import (
    AlreadyRunningError,
    DatabaseSyncService,
    Sync,
    SyncError,
    SyncService,
    SyncStatus,
    TriggerSource,
)
from .synchronizers import BaseSynchronizer, CancellationToken, CounterSynchronizer

__version__ = "0.1.0"

__all__ = [
    "AlreadyRunningError",
    "BaseSynchronizer",
    "CancellationToken",
    "CounterSynchronizer",
    "DatabaseSyncService",
    "Event",
    "EventBus",
    "GlobalSyncSettings",
    "ScheduleSettings",
    "SettingChangedEvent",
    "SettingsStore",
    "Sync",
    "SyncCompletedEvent",
    "SyncEngine",
    "SyncError",
    "SyncFailedEvent",
    "SyncService",
    "SyncStatus",
    "TriggerSource",
    "configure_logging",
    "load_settings",
]
