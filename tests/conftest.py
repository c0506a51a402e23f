"""Pytest configuration and fixtures."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest

from syncengine.events import Event, EventBus
from syncengine.scheduler.dispatcher import SyncDispatcher
from syncengine.scheduler.timers import Timers
from syncengine.settings.store import SettingsStore
from syncengine.sync.database import DatabaseSyncService
from syncengine.synchronizers.base import BaseSynchronizer
from syncengine.synchronizers.registry import SynchronizerRegistry

START_TIME = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Controllable time source."""

    def __init__(self, start: datetime = START_TIME) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now

    def set(self, value: datetime) -> None:
        self.now = value


@dataclass
class ArmedTimer:
    job_id: str
    when: datetime
    func: Callable[..., Any]
    args: tuple[Any, ...]
    interval: timedelta | None = None
    max_instances: int | None = None


class ManualTimers(Timers):
    """Timer facility that only fires when a test asks it to."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.timers: dict[str, ArmedTimer] = {}
        self.history: list[ArmedTimer] = []
        self.wakeups = 0
        self.started = False

    def schedule_once(self, job_id, when, func, args=(), max_instances=None):
        timer = ArmedTimer(
            job_id, when or self.clock(), func, tuple(args), max_instances=max_instances
        )
        self.timers[job_id] = timer
        self.history.append(timer)

    def schedule_recurring(self, job_id, interval, func, start_at=None, args=()):
        timer = ArmedTimer(
            job_id, start_at or self.clock() + interval, func, tuple(args), interval
        )
        self.timers[job_id] = timer
        self.history.append(timer)

    def cancel(self, job_id):
        return self.timers.pop(job_id, None) is not None

    def next_run_time(self, job_id):
        timer = self.timers.get(job_id)
        return timer.when if timer else None

    def wakeup(self):
        self.wakeups += 1

    def start(self, paused=False):
        self.started = True

    def shutdown(self, wait=True):
        self.started = False

    def armed(self, job_id: str) -> list[ArmedTimer]:
        """Every timer ever armed under an id, oldest first."""
        return [timer for timer in self.history if timer.job_id == job_id]

    def fire(self, job_id: str) -> Any:
        """Run a timer's callback as if it came due."""
        timer = self.timers[job_id]
        if timer.interval is None:
            del self.timers[job_id]
        else:
            timer.when = timer.when + timer.interval
        return timer.func(*timer.args)


class ScriptedSynchronizer(BaseSynchronizer):
    """Synchronizer whose hooks are supplied by the test."""

    def __init__(
        self,
        sync_service,
        settings=None,
        label: str = "Widgets",
        items: Any = (),
        process: Callable[..., None] | None = None,
        validate: Callable[[], None] | None = None,
    ) -> None:
        super().__init__(sync_service, settings)
        self.label = label
        self.items = items
        self.process = process
        self.validate = validate

    def validate_can_sync(self) -> None:
        if self.validate is not None:
            self.validate()

    def get_items_to_sync(self):
        if callable(self.items):
            return self.items()
        return list(self.items)

    def perform_sync(self, items, sync_id, token):
        if self.process is not None:
            self.process(self, items, sync_id, token)


def process_all(synchronizer, items, sync_id, token):
    """Mark every item as synced."""
    for _ in items:
        synchronizer.increment_synced(sync_id)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db_path(tmp_path) -> str:
    return str(tmp_path / "data" / "sync.db")


@pytest.fixture
def service(db_path, clock) -> DatabaseSyncService:
    """Sync store on a temp SQLite file using the fake clock."""
    return DatabaseSyncService(db_path, clock=clock)


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def settings(events) -> SettingsStore:
    return SettingsStore(events)


@pytest.fixture
def timers(clock) -> ManualTimers:
    return ManualTimers(clock)


@pytest.fixture
def registry() -> SynchronizerRegistry:
    return SynchronizerRegistry()


@pytest.fixture
def dispatcher(registry, timers, events, clock) -> SyncDispatcher:
    return SyncDispatcher(registry, timers, events, clock=clock)


@pytest.fixture
def make_synchronizer(service, settings) -> Callable[..., ScriptedSynchronizer]:
    """Factory for scripted synchronizers sharing the test store and settings."""

    def factory(**kwargs: Any) -> ScriptedSynchronizer:
        kwargs.setdefault("process", process_all)
        return ScriptedSynchronizer(service, settings, **kwargs)

    return factory


@pytest.fixture
def recorded_events(events) -> list:
    """Every event published on the bus during the test."""
    received: list = []
    events.subscribe(Event, received.append)
    return received
