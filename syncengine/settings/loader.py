"""Settings file loader.

Supports loading global and per-type sync settings from YAML and JSON
files, so schedules and retention policy can be managed as configuration.

Expected layout::

    global:
      history_retention_days: 30
      sync_timeout_minutes: 5
    synchronizers:
      product_sync:
        schedule_enabled: true
        schedule_interval: every_2_hours
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml

from ..sync.errors import ConfigValidationError
from .models import GLOBAL_SCOPE
from .store import SettingsStore

logger = logging.getLogger(__name__)


class SettingsLoader:
    """Loads and validates sync settings from files."""

    def __init__(self, store: SettingsStore) -> None:
        """Initialize the loader.

        Args:
            store: Store that receives the loaded values
        """
        self.store = store

    def load_file(self, file_path: str | Path) -> SettingsStore:
        """Load settings from a YAML or JSON file into the store.

        A missing file leaves defaults in place.

        Args:
            file_path: Path to the settings file

        Returns:
            The populated store

        Raises:
            ConfigValidationError: If validation fails
        """
        path = Path(file_path)

        if not path.exists():
            logger.warning(f"Settings file not found, using defaults: {path}")
            return self.store

        suffix = path.suffix.lower()
        with open(path, encoding="utf-8") as f:
            if suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            elif suffix == ".json":
                data = json.load(f)
            else:
                raise ValueError(f"Unsupported settings format: {suffix}")

        self.load_data(data or {}, str(path))
        logger.info(f"Loaded sync settings from {path.name}")
        return self.store

    def load_data(self, data: Any, source: str = "<data>") -> SettingsStore:
        """Apply already-parsed settings data to the store.

        Args:
            data: Parsed settings document
            source: Source name for error messages

        Returns:
            The populated store

        Raises:
            ConfigValidationError: If any scope fails validation
        """
        if not isinstance(data, dict):
            raise ConfigValidationError(
                f"Invalid settings format in {source}",
                errors=[{"file": source, "error": "Expected a mapping"}],
            )

        scopes: dict[str, Any] = {}
        if data.get("global"):
            scopes[GLOBAL_SCOPE] = data["global"]
        for sync_type, values in (data.get("synchronizers") or {}).items():
            scopes[str(sync_type)] = values

        errors: list[dict[str, Any]] = []
        for scope, values in scopes.items():
            if not isinstance(values, dict):
                errors.append(
                    {"file": source, "scope": scope, "error": "Expected a mapping"}
                )
                continue
            try:
                self.store.update(scope, values)
            except ConfigValidationError as e:
                errors.extend({"file": source, **err} for err in e.errors)

        if errors:
            raise ConfigValidationError(
                f"Validation failed for {len(errors)} setting(s) in {source}",
                errors=errors,
            )

        return self.store


def load_settings(
    file_path: str | Path, store: SettingsStore | None = None
) -> SettingsStore:
    """Convenience function to load a settings file.

    Args:
        file_path: Path to YAML or JSON settings file
        store: Existing store to populate (a new one by default)

    Returns:
        Populated SettingsStore
    """
    return SettingsLoader(store or SettingsStore()).load_file(file_path)
