"""Tests for the background dispatcher."""

import sys
import threading
from unittest.mock import MagicMock

import pytest

from syncengine.events import SyncCompletedEvent, SyncFailedEvent
from syncengine.scheduler.dispatcher import (
    DISPATCH_MAX_INSTANCES,
    SyncDispatcher,
    relaxed_limits,
)
from syncengine.scheduler.timers import APSchedulerTimers
from syncengine.sync.errors import (
    AlreadyRunningError,
    DispatchError,
    UnknownSyncTypeError,
)
from syncengine.sync.models import SyncStatus


@pytest.fixture
def widgets(make_synchronizer, registry):
    synchronizer = make_synchronizer(items=[1, 2, 3])
    registry.register(synchronizer)
    return synchronizer


class TestRun:
    """Test enqueueing executions."""

    def test_run_enqueues_once(self, dispatcher, timers, widgets):
        """run() arms one immediate timer and wakes the worker."""
        dispatcher.run("widgets", "api")

        timer = timers.timers["start_sync:widgets"]
        assert timer.args == ("widgets", "api")
        assert timer.interval is None
        assert timer.max_instances == DISPATCH_MAX_INSTANCES
        assert timers.wakeups == 1
        assert dispatcher.is_pending("widgets") is True

    def test_run_replaces_pending_request(self, dispatcher, timers, widgets):
        """A second request replaces the pending duplicate."""
        dispatcher.run("widgets", "manual")
        dispatcher.run("widgets", "schedule")

        assert list(timers.timers) == ["start_sync:widgets"]
        assert timers.timers["start_sync:widgets"].args == ("widgets", "schedule")

    def test_run_does_not_execute(self, dispatcher, service, widgets):
        """Dispatching never runs the sync inline."""
        dispatcher.run("widgets")
        assert service.list_recent() == []

    def test_enqueue_failure_raises(self, registry, events, widgets):
        """Failures to enqueue surface as DispatchError."""
        timers = MagicMock()
        timers.schedule_once.side_effect = RuntimeError("scheduler shut down")
        dispatcher = SyncDispatcher(registry, timers, events)

        with pytest.raises(DispatchError, match="widgets"):
            dispatcher.run("widgets")


class TestExecute:
    """Test worker-side execution."""

    def test_fired_timer_runs_sync(
        self, dispatcher, timers, widgets, recorded_events, clock
    ):
        """The worker runs the sync and publishes one completion event."""
        dispatcher.run("widgets", "manual")
        result = timers.fire("start_sync:widgets")

        assert result.status is SyncStatus.COMPLETED
        assert dispatcher.is_pending("widgets") is False
        assert len(recorded_events) == 1
        event = recorded_events[0]
        assert isinstance(event, SyncCompletedEvent)
        assert event.sync_type == "widgets"
        assert event.triggered_by == "manual"
        assert event.result == result
        assert event.occurred_at == clock()

    def test_failed_sync_is_still_a_completion(
        self, dispatcher, make_synchronizer, registry, recorded_events
    ):
        """A FAILED record is an outcome of sync(), not an exception."""

        def process(synchronizer, items, sync_id, token):
            raise RuntimeError("boom")

        registry.register(make_synchronizer(items=[1], process=process))

        result = dispatcher.execute("widgets", "manual")

        assert result.status is SyncStatus.FAILED
        assert [type(event) for event in recorded_events] == [SyncCompletedEvent]

    def test_already_running_publishes_failure(
        self, dispatcher, service, widgets, recorded_events
    ):
        """The single-flight guard surfaces as a failure event."""
        service.create("widgets")

        assert dispatcher.execute("widgets", "schedule") is None

        assert len(recorded_events) == 1
        event = recorded_events[0]
        assert isinstance(event, SyncFailedEvent)
        assert isinstance(event.error, AlreadyRunningError)
        assert event.triggered_by == "schedule"

    def test_unknown_type_publishes_failure(self, dispatcher, recorded_events):
        """Unregistered job types fail without raising."""
        assert dispatcher.execute("nope", "manual") is None

        assert len(recorded_events) == 1
        assert isinstance(recorded_events[0].error, UnknownSyncTypeError)

    def test_rethrow(self, registry, timers, events, recorded_events):
        """With rethrow the error propagates after the failure event."""
        dispatcher = SyncDispatcher(registry, timers, events, rethrow=True)

        with pytest.raises(UnknownSyncTypeError):
            dispatcher.execute("nope", "manual")

        assert len(recorded_events) == 1

    def test_failing_subscriber_does_not_break_dispatch(
        self, dispatcher, events, widgets
    ):
        """Subscriber errors never reach the worker."""
        events.subscribe(SyncCompletedEvent, MagicMock(side_effect=ValueError("bad")))

        result = dispatcher.execute("widgets", "manual")

        assert result.status is SyncStatus.COMPLETED



class TestOverlappingDispatch:
    """Test overlapping dispatches on a running APScheduler worker pool."""

    def test_dispatch_during_run_reports_already_running(
        self, make_synchronizer, registry, events
    ):
        """A dispatch that lands while a run executes ends in a failure event."""
        started = threading.Event()
        release = threading.Event()
        completed, failed = [], []
        completed_seen = threading.Event()
        failed_seen = threading.Event()

        def process(synchronizer, items, sync_id, token):
            started.set()
            release.wait(10)
            for _ in items:
                synchronizer.increment_synced(sync_id)

        def on_completed(event):
            completed.append(event)
            completed_seen.set()

        def on_failed(event):
            failed.append(event)
            failed_seen.set()

        registry.register(make_synchronizer(items=[1, 2], process=process))
        events.subscribe(SyncCompletedEvent, on_completed)
        events.subscribe(SyncFailedEvent, on_failed)

        timers = APSchedulerTimers(max_workers=2)
        timers.start()
        dispatcher = SyncDispatcher(registry, timers, events)
        try:
            dispatcher.run("widgets", "manual")
            assert started.wait(10)

            dispatcher.run("widgets", "schedule")
            assert failed_seen.wait(10)

            release.set()
            assert completed_seen.wait(10)
        finally:
            release.set()
            timers.shutdown()

        assert len(failed) == 1
        assert failed[0].triggered_by == "schedule"
        assert isinstance(failed[0].error, AlreadyRunningError)
        assert len(completed) == 1
        assert completed[0].triggered_by == "manual"
        assert completed[0].result.status is SyncStatus.COMPLETED


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX resource limits")
class TestRelaxedLimits:
    """Test resource limit relaxation."""

    def test_limits_restored(self):
        """Soft limits are back to their original values afterwards."""
        import resource

        before = {
            limit: resource.getrlimit(limit)
            for limit in (resource.RLIMIT_CPU, resource.RLIMIT_AS)
        }

        with relaxed_limits():
            for limit, (soft, hard) in before.items():
                assert resource.getrlimit(limit)[0] == hard

        after = {limit: resource.getrlimit(limit) for limit in before}
        assert after == before

    def test_nested_use(self):
        """Overlapping executions share one relaxation."""
        with relaxed_limits():
            with relaxed_limits():
                pass
