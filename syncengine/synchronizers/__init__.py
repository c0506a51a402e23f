"""Synchronizers: the per-job-type execution drivers."""

from .base import (
    DEFAULT_SCHEDULE_INTERVALS,
    BaseSynchronizer,
    CancellationToken,
    ScheduleInterval,
    make_sync_type_key,
)
from .counter import CounterSynchronizer
from .registry import SynchronizerRegistry

__all__ = [
    "DEFAULT_SCHEDULE_INTERVALS",
    "BaseSynchronizer",
    "CancellationToken",
    "CounterSynchronizer",
    "ScheduleInterval",
    "SynchronizerRegistry",
    "make_sync_type_key",
]
