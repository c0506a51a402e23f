"""Engine settings: models, scoped store and file loader."""

from .loader import SettingsLoader, load_settings
from .models import (
    GLOBAL_SCOPE,
    SCHEDULE_ENABLED,
    SCHEDULE_INTERVAL,
    GlobalSyncSettings,
    ScheduleSettings,
)
from .store import SettingsStore

__all__ = [
    "GLOBAL_SCOPE",
    "SCHEDULE_ENABLED",
    "SCHEDULE_INTERVAL",
    "GlobalSyncSettings",
    "ScheduleSettings",
    "SettingsLoader",
    "SettingsStore",
    "load_settings",
]
