"""Pydantic models for engine settings."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

GLOBAL_SCOPE = "global_sync_settings"

# Per-type schedule option keys
SCHEDULE_ENABLED = "schedule_enabled"
SCHEDULE_INTERVAL = "schedule_interval"

DEFAULT_SCHEDULE_INTERVAL = "every_6_hours"

DEFAULT_HISTORY_RETENTION_DAYS = 30
# Keep failures longer for debugging
DEFAULT_HISTORY_FAILED_RETENTION_DAYS = 60
DEFAULT_MAX_HISTORY_RECORDS = 1000
DEFAULT_SYNC_TIMEOUT_MINUTES = 5


class GlobalSyncSettings(BaseModel):
    """Settings shared by every synchronizer."""

    model_config = ConfigDict(extra="forbid")

    history_retention_days: int = Field(default=DEFAULT_HISTORY_RETENTION_DAYS, ge=1)
    history_failed_retention_days: int = Field(
        default=DEFAULT_HISTORY_FAILED_RETENTION_DAYS, ge=1
    )
    max_history_records: int = Field(default=DEFAULT_MAX_HISTORY_RECORDS, ge=1)
    sync_timeout_minutes: int = Field(default=DEFAULT_SYNC_TIMEOUT_MINUTES, ge=1)


class ScheduleSettings(BaseModel):
    """Schedule settings scoped to one sync type."""

    model_config = ConfigDict(extra="allow")

    schedule_enabled: bool = False
    schedule_interval: str = DEFAULT_SCHEDULE_INTERVAL

    @field_validator("schedule_interval")
    @classmethod
    def validate_interval_key(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Schedule interval must not be empty")
        return v
