"""Typed in-process event bus.

Components publish event objects and subscribe handlers by event class,
so the dispatcher, scheduler and settings store stay decoupled without a
string-keyed hook table.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, TypeVar

from .sync.models import Sync, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Event:
    """Base class for all engine events."""


@dataclass(frozen=True)
class SyncCompletedEvent(Event):
    """A background sync returned normally."""

    sync_type: str
    triggered_by: str
    result: Sync | None = None
    occurred_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class SyncFailedEvent(Event):
    """A background sync raised."""

    sync_type: str
    triggered_by: str
    error: BaseException
    occurred_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class SettingChangedEvent(Event):
    """A scoped setting changed value."""

    scope: str
    option: str
    old_value: Any
    new_value: Any


E = TypeVar("E", bound=Event)
Handler = Callable[[Any], None]


class EventBus:
    """Synchronous publish/subscribe dispatch keyed by event class.

    Handlers registered for a base class also receive subclasses. A failing
    handler is logged and does not prevent delivery to the others.
    """

    def __init__(self) -> None:
        self._handlers: dict[type[Event], list[Handler]] = {}
        self._lock = threading.Lock()

    def subscribe(
        self, event_type: type[E], handler: Callable[[E], None]
    ) -> Callable[[], None]:
        """Register a handler for an event class.

        Args:
            event_type: Event class to listen for
            handler: Called with each published event of that class

        Returns:
            Callable that removes the subscription
        """
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)

        def unsubscribe() -> None:
            with self._lock:
                handlers = self._handlers.get(event_type, [])
                if handler in handlers:
                    handlers.remove(handler)

        return unsubscribe

    def publish(self, event: Event) -> int:
        """Deliver an event to every matching handler.

        Args:
            event: Event instance

        Returns:
            Number of handlers invoked
        """
        with self._lock:
            handlers = [
                handler
                for event_type, registered in self._handlers.items()
                if isinstance(event, event_type)
                for handler in registered
            ]

        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception(
                    f"Event handler {handler!r} failed for {type(event).__name__}"
                )
        return len(handlers)

    def clear(self) -> None:
        """Remove all subscriptions."""
        with self._lock:
            self._handlers.clear()
