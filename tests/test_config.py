"""Tests for memwatch.telemetry.config."""

import logging

import pytest

from memwatch.telemetry.config import MonitorConfig


class TestDefaults:
    def test_defaults(self):
        config = MonitorConfig()
        assert config.interval_ms == 1000
        assert config.warning_threshold == 70
        assert config.critical_threshold == 90
        assert config.enable_auto_gc is False
        assert config.auto_gc_threshold is None
        assert config.auto_gc_cooldown_ms == 10_000
        assert config.enable_leak_detection is True
        assert config.leak_sensitivity == "medium"
        assert config.history_size == 50
        assert config.max_snapshots == 10
        assert config.snapshot_schedule == "off"
        assert config.auto_delete_oldest is True

    def test_frozen(self):
        with pytest.raises(AttributeError):
            MonitorConfig().history_size = 5  # type: ignore[misc]


class TestNormalisation:
    def test_max_snapshots_clamped(self):
        assert MonitorConfig(max_snapshots=100).max_snapshots == 50
        assert MonitorConfig(max_snapshots=0).max_snapshots == 1

    def test_history_size_at_least_one(self):
        assert MonitorConfig(history_size=0).history_size == 1

    def test_unknown_sensitivity_falls_back(self, caplog):
        with caplog.at_level(logging.WARNING):
            config = MonitorConfig(leak_sensitivity="extreme")
        assert config.leak_sensitivity == "medium"
        assert "Unknown leak sensitivity" in caplog.text

    def test_unknown_schedule_disables(self):
        assert MonitorConfig(snapshot_schedule="2m").snapshot_schedule == "off"

    def test_inverted_thresholds_warn(self, caplog):
        with caplog.at_level(logging.WARNING):
            MonitorConfig(warning_threshold=95, critical_threshold=80)
        assert "critical takes precedence" in caplog.text


class TestSerialisation:
    def test_roundtrip(self):
        config = MonitorConfig(
            enable_auto_gc=True, auto_gc_threshold=85.0,
            leak_sensitivity="high", snapshot_schedule="5m",
        )
        assert MonitorConfig.from_dict(config.to_dict()) == config

    def test_partial_dict(self):
        config = MonitorConfig.from_dict({"history_size": 20})
        assert config.history_size == 20
        assert config.leak_sensitivity == "medium"

    def test_unknown_keys_ignored(self):
        config = MonitorConfig.from_dict({"theme": "dark", "warning_threshold": 60})
        assert config.warning_threshold == 60.0

    def test_string_flags(self):
        config = MonitorConfig.from_dict({
            "enable_auto_gc": "false",
            "enable_leak_detection": "No",
            "auto_delete_oldest": "off",
        })
        assert config.enable_auto_gc is False
        assert config.enable_leak_detection is False
        assert config.auto_delete_oldest is False
        assert MonitorConfig.from_dict({"enable_auto_gc": "true"}).enable_auto_gc is True

    def test_invalid_string_flag_falls_back(self, caplog):
        with caplog.at_level(logging.WARNING):
            config = MonitorConfig.from_dict({"enable_auto_gc": "sometimes"})
        assert config.enable_auto_gc is False
        assert "enable_auto_gc" in caplog.text

    def test_null_flag_uses_default(self):
        assert MonitorConfig.from_dict({"enable_leak_detection": None}).enable_leak_detection

    def test_replace(self):
        config = MonitorConfig().replace(history_size=10)
        assert config.history_size == 10
        assert MonitorConfig().history_size == 50
