"""Persistence port for sync records.

Defines the interface every sync store must implement. The store is the
source of truth for sync status; the single-flight guarantee and counter
increments must be enforced by the store itself, not by callers.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from .models import Sync, SyncStatus, TriggerSource


class SyncService(ABC):
    """Abstract durable store of sync records.

    Records are keyed by id and queryable by (sync type, status). Every
    mutation refreshes `updated_at`, which doubles as the liveness
    heartbeat the timeout watchdog reads.
    """

    # --- Lifecycle ---

    @abstractmethod
    def create(
        self,
        sync_type: str,
        triggered_by: str = TriggerSource.MANUAL.value,
        details: dict[str, Any] | None = None,
    ) -> int:
        """Insert a RUNNING record for a sync type.

        Raises:
            AlreadyRunningError: If a RUNNING record already exists for the type
        """

    @abstractmethod
    def set_total(self, sync_id: int, total: int) -> None:
        """Record the number of items this sync will process."""

    @abstractmethod
    def increment_synced(self, sync_id: int, increment: int = 1) -> None:
        """Atomically add to the synced counter."""

    @abstractmethod
    def increment_failed(self, sync_id: int, increment: int = 1) -> None:
        """Atomically add to the failed counter."""

    @abstractmethod
    def set_status(self, sync_id: int, status: SyncStatus) -> bool:
        """Move a RUNNING record to a terminal status.

        Returns:
            True if the transition happened, False if the record was
            already terminal
        """

    @abstractmethod
    def set_failed(self, sync_id: int, error_message: str) -> bool:
        """Mark a RUNNING record as FAILED with an error message."""

    def set_complete(self, sync_id: int) -> bool:
        """Mark a RUNNING record as COMPLETED."""
        return self.set_status(sync_id, SyncStatus.COMPLETED)

    def cancel(self, sync_id: int) -> bool:
        """Request cooperative cancellation of a RUNNING record."""
        return self.set_status(sync_id, SyncStatus.CANCELLED)

    @abstractmethod
    def delete(self, sync_id: int) -> bool:
        """Delete a finished record.

        Raises:
            InvalidTransitionError: If the record is still RUNNING
        """

    # --- Queries ---

    @abstractmethod
    def get(self, sync_id: int) -> Sync | None:
        """Get a record by id, or None."""

    @abstractmethod
    def get_running_for_type(self, sync_type: str) -> Sync | None:
        """Get the RUNNING record for a sync type, if any."""

    @abstractmethod
    def get_last_finished_for_type(self, sync_type: str) -> Sync | None:
        """Get the most recently finished record (any terminal status)."""

    @abstractmethod
    def get_last_completed_for_type(self, sync_type: str) -> Sync | None:
        """Get the most recently COMPLETED record."""

    @abstractmethod
    def list_recent(self, limit: int = 10) -> list[Sync]:
        """List records, newest first."""

    @abstractmethod
    def list_timed_out(
        self, timeout_minutes: int, sync_type: str | None = None
    ) -> list[Sync]:
        """List RUNNING records whose heartbeat is older than the timeout."""

    # --- Retention ---

    @abstractmethod
    def delete_finished_older_than(
        self, status: SyncStatus, cutoff: datetime
    ) -> int:
        """Delete records with a terminal status that started before cutoff."""

    @abstractmethod
    def delete_excess_finished(self, keep: int) -> int:
        """Keep only the newest `keep` non-RUNNING records."""

    @abstractmethod
    def delete_older_than(self, cutoff: datetime) -> int:
        """Delete every non-RUNNING record that started before cutoff."""

    @abstractmethod
    def count_finished(self) -> int:
        """Count non-RUNNING records."""

    @abstractmethod
    def purge_statistics(self) -> dict[str, Any]:
        """Per-status counts with oldest/newest start times."""
