"""Telemetry engine: history, GC detection, trend and leak scoring, snapshots."""

from memwatch.telemetry.auto_gc_controller import AutoGCController, AutoGCTrigger
from memwatch.telemetry.baseline_tracker import Baseline, BaselineTracker
from memwatch.telemetry.config import MonitorConfig
from memwatch.telemetry.engine import EventType, MonitorEvent, TelemetryEngine, TickResult
from memwatch.telemetry.errors import MemwatchError, SnapshotCapacityError, SnapshotNotFoundError
from memwatch.telemetry.gc_event_detector import GCAnalysis, GCEvent, GCEventDetector
from memwatch.telemetry.history_buffer import HistoryBuffer
from memwatch.telemetry.leak_scorer import LeakAnalysis, LeakScorer, SensitivityProfile
from memwatch.telemetry.sample import Sample
from memwatch.telemetry.severity_classifier import Severity, SeverityClassifier
from memwatch.telemetry.snapshot_scheduler import SnapshotScheduler
from memwatch.telemetry.snapshot_store import Snapshot, SnapshotComparison, SnapshotStore
from memwatch.telemetry.trend_analyzer import Trend, TrendAnalysis, TrendAnalyzer

__all__ = [
    "AutoGCController",
    "AutoGCTrigger",
    "Baseline",
    "BaselineTracker",
    "MonitorConfig",
    "EventType",
    "MonitorEvent",
    "TelemetryEngine",
    "TickResult",
    "MemwatchError",
    "SnapshotCapacityError",
    "SnapshotNotFoundError",
    "GCAnalysis",
    "GCEvent",
    "GCEventDetector",
    "HistoryBuffer",
    "LeakAnalysis",
    "LeakScorer",
    "SensitivityProfile",
    "Sample",
    "Severity",
    "SeverityClassifier",
    "SnapshotScheduler",
    "Snapshot",
    "SnapshotComparison",
    "SnapshotStore",
    "Trend",
    "TrendAnalysis",
    "TrendAnalyzer",
]
