"""Sync records, persistence port and error taxonomy."""

from .database import DatabaseSyncService
from .errors import (
    AlreadyRunningError,
    ConfigValidationError,
    DispatchError,
    InvalidTransitionError,
    PersistenceError,
    ProcessingError,
    SyncError,
    SyncNotFoundError,
    SyncValidationError,
    UnknownSyncTypeError,
)
from .models import Sync, SyncStatus, TriggerSource
from .service import SyncService

__all__ = [
    "DatabaseSyncService",
    "Sync",
    "SyncService",
    "SyncStatus",
    "TriggerSource",
    # Errors
    "AlreadyRunningError",
    "ConfigValidationError",
    "DispatchError",
    "InvalidTransitionError",
    "PersistenceError",
    "ProcessingError",
    "SyncError",
    "SyncNotFoundError",
    "SyncValidationError",
    "UnknownSyncTypeError",
]
