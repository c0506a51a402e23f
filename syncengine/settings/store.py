"""Scoped settings store.

Holds option values per scope (the global scope plus one scope per sync
type). Settings are the source of truth for scheduling; every change is
published as a `SettingChangedEvent` so derived state (timers) can be
re-derived.
"""

from __future__ import annotations

import copy
import logging
import threading
from typing import Any

from pydantic import ValidationError

from ..events import EventBus, SettingChangedEvent
from ..sync.errors import ConfigValidationError
from .models import GLOBAL_SCOPE, GlobalSyncSettings, ScheduleSettings

logger = logging.getLogger(__name__)


class SettingsStore:
    """In-memory scoped option store with change notification."""

    def __init__(self, events: EventBus | None = None) -> None:
        self.events = events
        self._scopes: dict[str, dict[str, Any]] = {}
        self._lock = threading.RLock()

    def get(self, scope: str, option: str, default: Any = None) -> Any:
        """Get an option value.

        Args:
            scope: Settings scope (sync type key or the global scope)
            option: Option name
            default: Value returned when the option is unset

        Returns:
            Stored value or default
        """
        with self._lock:
            return self._scopes.get(scope, {}).get(option, default)

    def get_scope(self, scope: str) -> dict[str, Any]:
        """Get a copy of every option set in a scope."""
        with self._lock:
            return copy.deepcopy(self._scopes.get(scope, {}))

    def set(self, scope: str, option: str, value: Any) -> bool:
        """Validate and store an option value.

        Args:
            scope: Settings scope
            option: Option name
            value: New value

        Returns:
            True if the stored value changed

        Raises:
            ConfigValidationError: If the value fails validation
        """
        with self._lock:
            current = self._scopes.get(scope, {})
            old_value = current.get(option)
            validated = self._validate(scope, {**current, option: value})
            new_value = validated[option]

            if option in current and old_value == new_value:
                return False

            self._scopes.setdefault(scope, {})[option] = new_value

        logger.info(f"Setting {scope}.{option} changed: {old_value!r} -> {new_value!r}")
        if self.events is not None:
            self.events.publish(
                SettingChangedEvent(
                    scope=scope,
                    option=option,
                    old_value=old_value,
                    new_value=new_value,
                )
            )
        return True

    def update(self, scope: str, values: dict[str, Any]) -> list[str]:
        """Set several options in one scope.

        Returns:
            Names of the options that changed
        """
        self._validate(scope, {**self.get_scope(scope), **values})
        return [option for option, value in values.items() if self.set(scope, option, value)]

    def global_settings(self) -> GlobalSyncSettings:
        """Global retention and timeout settings with defaults applied."""
        return GlobalSyncSettings(**self.get_scope(GLOBAL_SCOPE))

    def schedule_settings(self, scope: str) -> ScheduleSettings:
        """Schedule settings for a sync type with defaults applied."""
        return ScheduleSettings(**self.get_scope(scope))

    def scopes(self) -> list[str]:
        with self._lock:
            return list(self._scopes)

    @staticmethod
    def _validate(scope: str, values: dict[str, Any]) -> dict[str, Any]:
        model = GlobalSyncSettings if scope == GLOBAL_SCOPE else ScheduleSettings
        try:
            return model(**values).model_dump()
        except ValidationError as e:
            raise ConfigValidationError(
                f"Invalid settings for scope {scope}",
                errors=[
                    {
                        "scope": scope,
                        "field": ".".join(str(loc) for loc in err["loc"]),
                        "error": err["msg"],
                    }
                    for err in e.errors()
                ],
            ) from e
