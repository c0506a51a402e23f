"""Job record model and status enums for sync executions.

A `Sync` is an immutable snapshot of one row in the sync history table.
Mutations go through the `SyncService`; callers re-read the record to
observe progress.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping


class SyncStatus(str, Enum):
    """Sync execution status values."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def label(self) -> str:
        """Human-readable label."""
        return self.value.replace("_", " ").title()

    @property
    def is_finished(self) -> bool:
        """Whether this is a terminal status."""
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {SyncStatus.COMPLETED, SyncStatus.FAILED, SyncStatus.CANCELLED}
)


class TriggerSource(str, Enum):
    """What started a sync execution."""

    MANUAL = "manual"
    SCHEDULE = "schedule"
    API = "api"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse a stored timestamp into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(value)
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format a datetime for storage.

    Fixed-width ISO strings so timestamps compare correctly as text.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


@dataclass(frozen=True)
class Sync:
    """One execution attempt of a job-type."""

    id: int
    sync_type: str
    status: SyncStatus
    total: int = 0
    synced: int = 0
    failed: int = 0
    started_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None
    duration_seconds: int | None = None
    triggered_by: str = TriggerSource.MANUAL.value
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Sync":
        """Build a record from a sync_history row."""
        raw_status = row["status"] or ""
        try:
            status = SyncStatus(raw_status)
        except ValueError:
            status = SyncStatus.NOT_STARTED

        details: dict[str, Any] = {}
        if row["sync_details"]:
            try:
                decoded = json.loads(row["sync_details"])
                if isinstance(decoded, dict):
                    details = decoded
            except json.JSONDecodeError:
                details = {}

        duration = row["duration_seconds"]
        return cls(
            id=int(row["id"]),
            sync_type=row["sync_type"],
            status=status,
            total=int(row["total_items"] or 0),
            synced=int(row["synced_items"] or 0),
            failed=int(row["failed_items"] or 0),
            started_at=parse_timestamp(row["started_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
            completed_at=parse_timestamp(row["completed_at"]),
            duration_seconds=int(duration) if duration is not None else None,
            triggered_by=row["triggered_by"] or TriggerSource.MANUAL.value,
            details=details,
        )

    @property
    def is_running(self) -> bool:
        return self.status is SyncStatus.RUNNING

    @property
    def is_finished(self) -> bool:
        return self.status.is_finished

    @property
    def processed(self) -> int:
        """Items handled so far, successful or not."""
        return self.synced + self.failed

    @property
    def percent_complete(self) -> int:
        """Share of items synced successfully, as a whole percentage."""
        if self.total == 0:
            return 0
        return int(round(self.synced / self.total * 100))

    @property
    def error_message(self) -> str | None:
        return self.details.get("error_message")

    def duration(self, now: datetime | None = None) -> int:
        """Elapsed whole seconds.

        Fixed once the record is terminal; measured against `now` while running.
        """
        if self.is_finished and self.duration_seconds is not None:
            return self.duration_seconds
        if self.started_at is None:
            return 0
        end = self.completed_at or now or utc_now()
        return max(0, int((end - self.started_at).total_seconds()))

    def to_dict(self) -> dict[str, Any]:
        """Serialize for status displays."""
        return {
            "id": self.id,
            "sync_type": self.sync_type,
            "status": self.status.value,
            "status_label": self.status.label,
            "total": self.total,
            "synced": self.synced,
            "failed": self.failed,
            "percent_complete": self.percent_complete,
            "duration": self.duration(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "completed_at": self.completed_at.isoformat()
            if self.completed_at
            else None,
            "triggered_by": self.triggered_by,
            "error_message": self.error_message,
            "is_running": self.is_running,
        }
