"""Engine configuration.

A :class:`MonitorConfig` is a plain value: the engine keeps its own copy
and only changes it through :meth:`TelemetryEngine.reconfigure`.  The
serialised form (:meth:`MonitorConfig.to_dict`) is what an external
collaborator persists under its own storage key.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from memwatch.telemetry.auto_gc_controller import AUTO_GC_COOLDOWN_MS
from memwatch.telemetry.history_buffer import DEFAULT_HISTORY_SIZE
from memwatch.telemetry.leak_scorer import DEFAULT_SENSITIVITY, SENSITIVITY_PROFILES
from memwatch.telemetry.severity_classifier import (
    DEFAULT_CRITICAL_THRESHOLD,
    DEFAULT_WARNING_THRESHOLD,
)
from memwatch.telemetry.snapshot_scheduler import SNAPSHOT_SCHEDULE_INTERVALS
from memwatch.telemetry.snapshot_store import DEFAULT_MAX_SNAPSHOTS, clamp_max_snapshots

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_MS: int = 1000

_TRUE_STRINGS = frozenset({"true", "yes", "on", "1"})
_FALSE_STRINGS = frozenset({"false", "no", "off", "0", ""})


def _parse_bool(key: str, value: Any, default: bool) -> bool:
    """Read a persisted flag; strings are matched by word, not truthiness."""
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_STRINGS:
            return True
        if word in _FALSE_STRINGS:
            return False
        logger.warning("Invalid value %r for %s; using %r.", value, key, default)
        return default
    if value is None:
        return default
    return bool(value)


@dataclass(frozen=True)
class MonitorConfig:
    """All tunables of the telemetry engine, with their defaults."""

    interval_ms: int = DEFAULT_INTERVAL_MS
    warning_threshold: float = DEFAULT_WARNING_THRESHOLD
    critical_threshold: float = DEFAULT_CRITICAL_THRESHOLD
    enable_auto_gc: bool = False
    auto_gc_threshold: Optional[float] = None
    auto_gc_cooldown_ms: int = AUTO_GC_COOLDOWN_MS
    enable_leak_detection: bool = True
    leak_sensitivity: str = DEFAULT_SENSITIVITY
    history_size: int = DEFAULT_HISTORY_SIZE
    max_snapshots: int = DEFAULT_MAX_SNAPSHOTS
    snapshot_schedule: str = "off"
    auto_delete_oldest: bool = True

    def __post_init__(self) -> None:
        # Frozen dataclass: normalise through object.__setattr__.
        object.__setattr__(self, "max_snapshots", clamp_max_snapshots(self.max_snapshots))
        object.__setattr__(self, "history_size", max(int(self.history_size), 1))
        object.__setattr__(self, "interval_ms", max(int(self.interval_ms), 1))

        if self.leak_sensitivity not in SENSITIVITY_PROFILES:
            logger.warning(
                "Unknown leak sensitivity %r; using %r.",
                self.leak_sensitivity, DEFAULT_SENSITIVITY,
            )
            object.__setattr__(self, "leak_sensitivity", DEFAULT_SENSITIVITY)

        if self.snapshot_schedule not in SNAPSHOT_SCHEDULE_INTERVALS:
            logger.warning(
                "Unknown snapshot schedule %r; disabling auto-snapshots.",
                self.snapshot_schedule,
            )
            object.__setattr__(self, "snapshot_schedule", "off")

        if self.warning_threshold >= self.critical_threshold:
            logger.warning(
                "Warning threshold %.1f is not below critical threshold %.1f; "
                "critical takes precedence.",
                self.warning_threshold, self.critical_threshold,
            )

    def replace(self, **changes: Any) -> MonitorConfig:
        """Return a copy with *changes* applied."""
        return dataclasses.replace(self, **changes)

    # -- serialisation helpers ------------------------------------------------

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> MonitorConfig:
        """Build a config from a (possibly partial) persisted dict.

        Unknown keys are ignored; missing keys take their defaults.
        """
        defaults = cls()
        raw_gc_threshold = data.get("auto_gc_threshold", defaults.auto_gc_threshold)
        return cls(
            interval_ms=int(data.get("interval_ms", defaults.interval_ms)),
            warning_threshold=float(data.get("warning_threshold", defaults.warning_threshold)),
            critical_threshold=float(data.get("critical_threshold", defaults.critical_threshold)),
            enable_auto_gc=_parse_bool(
                "enable_auto_gc", data.get("enable_auto_gc"), defaults.enable_auto_gc,
            ),
            auto_gc_threshold=float(raw_gc_threshold) if raw_gc_threshold is not None else None,
            auto_gc_cooldown_ms=int(data.get("auto_gc_cooldown_ms", defaults.auto_gc_cooldown_ms)),
            enable_leak_detection=_parse_bool(
                "enable_leak_detection", data.get("enable_leak_detection"),
                defaults.enable_leak_detection,
            ),
            leak_sensitivity=str(data.get("leak_sensitivity", defaults.leak_sensitivity)),
            history_size=int(data.get("history_size", defaults.history_size)),
            max_snapshots=int(data.get("max_snapshots", defaults.max_snapshots)),
            snapshot_schedule=str(data.get("snapshot_schedule", defaults.snapshot_schedule)),
            auto_delete_oldest=_parse_bool(
                "auto_delete_oldest", data.get("auto_delete_oldest"),
                defaults.auto_delete_oldest,
            ),
        )
