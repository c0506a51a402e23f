"""Tests for settings models, store and loader."""

import json

import pytest
from pydantic import ValidationError

from syncengine.events import SettingChangedEvent
from syncengine.settings import (
    GLOBAL_SCOPE,
    GlobalSyncSettings,
    ScheduleSettings,
    SettingsLoader,
    SettingsStore,
    load_settings,
)
from syncengine.sync.errors import ConfigValidationError


class TestModels:
    """Test settings model defaults and validation."""

    def test_global_defaults(self):
        """Defaults match the documented retention policy."""
        settings = GlobalSyncSettings()
        assert settings.history_retention_days == 30
        assert settings.history_failed_retention_days == 60
        assert settings.max_history_records == 1000
        assert settings.sync_timeout_minutes == 5

    def test_global_values_must_be_positive(self):
        """Zero and negative values are rejected."""
        with pytest.raises(ValidationError):
            GlobalSyncSettings(sync_timeout_minutes=0)
        with pytest.raises(ValidationError):
            GlobalSyncSettings(max_history_records=-1)

    def test_global_rejects_unknown_options(self):
        with pytest.raises(ValidationError):
            GlobalSyncSettings(retention=5)

    def test_schedule_defaults(self):
        settings = ScheduleSettings()
        assert settings.schedule_enabled is False
        assert settings.schedule_interval == "every_6_hours"

    def test_schedule_interval_not_empty(self):
        with pytest.raises(ValidationError):
            ScheduleSettings(schedule_interval="  ")

    def test_schedule_keeps_job_options(self):
        """Job-specific options live next to the schedule options."""
        settings = ScheduleSettings(processing_delay=2)
        assert settings.model_dump()["processing_delay"] == 2


class TestSettingsStore:
    """Test the scoped store."""

    def test_get_default(self, settings):
        assert settings.get("widgets", "schedule_enabled", "unset") == "unset"

    def test_set_and_get(self, settings):
        assert settings.set("widgets", "schedule_enabled", True) is True
        assert settings.get("widgets", "schedule_enabled") is True

    def test_set_publishes_change(self, settings, recorded_events):
        """Changes are published with old and new values."""
        settings.set("widgets", "schedule_interval", "every_2_hours")
        settings.set("widgets", "schedule_interval", "every_4_hours")

        assert recorded_events == [
            SettingChangedEvent("widgets", "schedule_interval", None, "every_2_hours"),
            SettingChangedEvent(
                "widgets", "schedule_interval", "every_2_hours", "every_4_hours"
            ),
        ]

    def test_unchanged_value_not_published(self, settings, recorded_events):
        """Setting the same value again is silent."""
        settings.set("widgets", "schedule_enabled", True)
        assert settings.set("widgets", "schedule_enabled", True) is False

        assert len(recorded_events) == 1

    def test_values_are_validated(self, settings):
        """Invalid values raise and are not stored."""
        with pytest.raises(ConfigValidationError) as exc_info:
            settings.set(GLOBAL_SCOPE, "sync_timeout_minutes", 0)

        assert exc_info.value.errors[0]["field"] == "sync_timeout_minutes"
        assert settings.get(GLOBAL_SCOPE, "sync_timeout_minutes") is None

    def test_values_are_coerced(self, settings):
        """Stored values are the validated ones."""
        settings.set(GLOBAL_SCOPE, "history_retention_days", "14")
        assert settings.get(GLOBAL_SCOPE, "history_retention_days") == 14

    def test_update(self, settings):
        """update() returns the options that changed."""
        settings.set("widgets", "schedule_enabled", True)

        changed = settings.update(
            "widgets", {"schedule_enabled": True, "schedule_interval": "every_8_hours"}
        )

        assert changed == ["schedule_interval"]

    def test_update_validates_everything_first(self, settings):
        """A bad value in an update stores nothing."""
        with pytest.raises(ConfigValidationError):
            settings.update(
                GLOBAL_SCOPE, {"history_retention_days": 10, "max_history_records": 0}
            )

        assert settings.get_scope(GLOBAL_SCOPE) == {}

    def test_typed_views(self, settings):
        """Typed views apply defaults."""
        settings.set(GLOBAL_SCOPE, "max_history_records", 50)

        assert settings.global_settings().max_history_records == 50
        assert settings.global_settings().sync_timeout_minutes == 5
        assert settings.schedule_settings("widgets").schedule_enabled is False

    def test_store_without_bus(self):
        """A store without an event bus still works."""
        store = SettingsStore()
        assert store.set("widgets", "schedule_enabled", True) is True
        assert store.scopes() == ["widgets"]


class TestSettingsLoader:
    """Test loading settings files."""

    def test_load_yaml(self, tmp_path, settings):
        """YAML files populate global and per-type scopes."""
        path = tmp_path / "sync.yaml"
        path.write_text(
            "global:\n"
            "  history_retention_days: 14\n"
            "  sync_timeout_minutes: 15\n"
            "synchronizers:\n"
            "  product_sync:\n"
            "    schedule_enabled: true\n"
            "    schedule_interval: every_2_hours\n"
        )

        SettingsLoader(settings).load_file(path)

        assert settings.global_settings().history_retention_days == 14
        assert settings.global_settings().sync_timeout_minutes == 15
        assert settings.schedule_settings("product_sync").schedule_enabled is True
        assert settings.get("product_sync", "schedule_interval") == "every_2_hours"

    def test_load_json(self, tmp_path):
        """JSON files are accepted too."""
        path = tmp_path / "sync.json"
        path.write_text(json.dumps({"global": {"max_history_records": 10}}))

        store = load_settings(path)

        assert store.global_settings().max_history_records == 10

    def test_missing_file_keeps_defaults(self, tmp_path, settings):
        """A missing file is not an error."""
        SettingsLoader(settings).load_file(tmp_path / "missing.yaml")
        assert settings.global_settings() == GlobalSyncSettings()

    def test_empty_file(self, tmp_path, settings):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        SettingsLoader(settings).load_file(path)
        assert settings.scopes() == []

    def test_validation_errors_collected(self, tmp_path, settings):
        """Every invalid scope is reported at once."""
        path = tmp_path / "bad.yaml"
        path.write_text(
            "global:\n"
            "  sync_timeout_minutes: 0\n"
            "synchronizers:\n"
            "  product_sync:\n"
            "    schedule_interval: ''\n"
            "  stock_sync: not-a-mapping\n"
        )

        with pytest.raises(ConfigValidationError) as exc_info:
            SettingsLoader(settings).load_file(path)

        scopes = {error["scope"] for error in exc_info.value.errors}
        assert scopes == {GLOBAL_SCOPE, "product_sync", "stock_sync"}
        assert all(error["file"] == str(path) for error in exc_info.value.errors)

    def test_not_a_mapping(self, settings):
        with pytest.raises(ConfigValidationError):
            SettingsLoader(settings).load_data(["a", "b"])

    def test_unsupported_format(self, tmp_path, settings):
        path = tmp_path / "sync.ini"
        path.write_text("[global]")
        with pytest.raises(ValueError):
            SettingsLoader(settings).load_file(path)

    def test_loading_publishes_changes(self, settings, recorded_events):
        """Loaded values flow through the store's change events."""
        SettingsLoader(settings).load_data(
            {"synchronizers": {"widgets": {"schedule_enabled": True}}}
        )

        assert [event.option for event in recorded_events] == ["schedule_enabled"]
