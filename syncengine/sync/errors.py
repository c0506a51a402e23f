"""Exception taxonomy for the sync engine."""

from __future__ import annotations

from typing import Any


class SyncError(Exception):
    """Base exception for sync engine errors."""


class AlreadyRunningError(SyncError):
    """A sync of this type is already running.

    Expected and non-fatal: the caller should back off and retry later.
    """

    def __init__(self, sync_type: str) -> None:
        super().__init__(
            f'A sync of type "{sync_type}" is already running. Skipping this sync.'
        )
        self.sync_type = sync_type


class SyncValidationError(SyncError):
    """Pre-flight validation failed; recorded as an instantly failed sync."""


class ProcessingError(SyncError):
    """Job-specific processing failed mid-run."""


class PersistenceError(SyncError):
    """The sync store failed. Always fatal to the current operation."""


class SyncNotFoundError(SyncError):
    """No sync record exists with the given id."""

    def __init__(self, sync_id: int) -> None:
        super().__init__(f"Sync {sync_id} does not exist in the database.")
        self.sync_id = sync_id


class InvalidTransitionError(SyncError):
    """A status change or deletion is not allowed for this record."""


class UnknownSyncTypeError(SyncError):
    """No synchronizer is registered for the requested job-type."""

    def __init__(self, sync_type: str) -> None:
        super().__init__(f"No synchronizer registered for sync type: {sync_type}")
        self.sync_type = sync_type


class DispatchError(SyncError):
    """A background execution could not be enqueued."""


class ConfigValidationError(SyncError):
    """Raised when settings validation fails."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors = errors or []
