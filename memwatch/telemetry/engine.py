"""The telemetry engine: one synchronous analysis pass per tick.

Each call to :meth:`TelemetryEngine.tick` records a sample, recomputes
trend, GC events, baseline and leak probability from the bounded history,
classifies severity, consults the auto-GC controller and the snapshot
schedule, and returns everything as a :class:`TickResult` carrying typed
:class:`MonitorEvent` values.  The engine never calls back into the
caller; dispatching events (logging, queueing, running ``gc.collect()``)
is the caller's job.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from memwatch.telemetry.auto_gc_controller import AutoGCController, AutoGCTrigger
from memwatch.telemetry.baseline_tracker import Baseline, BaselineTracker
from memwatch.telemetry.config import MonitorConfig
from memwatch.telemetry.errors import SnapshotCapacityError
from memwatch.telemetry.gc_event_detector import GCAnalysis, GCEventDetector
from memwatch.telemetry.history_buffer import HistoryBuffer
from memwatch.telemetry.leak_scorer import LeakAnalysis, LeakScorer, LeakStatus, get_profile
from memwatch.telemetry.sample import Sample
from memwatch.telemetry.severity_classifier import (
    Severity,
    SeverityClassifier,
    usage_percentage,
)
from memwatch.telemetry.snapshot_scheduler import SnapshotScheduler
from memwatch.telemetry.snapshot_store import (
    AnalysisContext,
    Snapshot,
    SnapshotComparison,
    SnapshotStore,
)
from memwatch.telemetry.trend_analyzer import TrendAnalysis, TrendAnalyzer

logger = logging.getLogger(__name__)


# ============================================================================
# Events
# ============================================================================


class EventType(str, Enum):
    """Kinds of event a tick can produce."""

    update = "update"
    warning = "warning"
    critical = "critical"
    leak_detected = "leak_detected"
    auto_gc = "auto_gc"
    snapshot_captured = "snapshot_captured"
    snapshot_rejected = "snapshot_rejected"


@dataclass(frozen=True)
class MonitorEvent:
    type: EventType
    timestamp: int
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {
            "type": self.type.value,
            "timestamp": self.timestamp,
            "data": dict(self.data),
        }


@dataclass
class TickResult:
    """Everything one analysis pass produced."""

    sample: Sample
    trend: TrendAnalysis
    gc_analysis: GCAnalysis
    baseline: Baseline
    leak: LeakAnalysis
    severity: Severity
    usage_percentage: Optional[float]
    events: List[MonitorEvent] = field(default_factory=list)
    snapshot: Optional[Snapshot] = None
    auto_gc: Optional[AutoGCTrigger] = None

    def has_event(self, event_type: EventType) -> bool:
        return any(e.type is event_type for e in self.events)

    def to_dict(self) -> Dict[str, object]:
        return {
            "sample": self.sample.to_dict(),
            "trend": self.trend.to_dict(),
            "gc_analysis": self.gc_analysis.to_dict(),
            "baseline": self.baseline.to_dict(),
            "leak": self.leak.to_dict(),
            "severity": self.severity.value,
            "usage_percentage": self.usage_percentage,
            "events": [e.to_dict() for e in self.events],
            "snapshot": self.snapshot.to_dict() if self.snapshot is not None else None,
        }


# ============================================================================
# Telemetry Engine
# ============================================================================


class TelemetryEngine:
    """Own the history, analyzers, controller and snapshot store.

    Usage::

        engine = TelemetryEngine(MonitorConfig(enable_auto_gc=True, auto_gc_threshold=85))
        for sample in samples:
            result = engine.tick(sample)
            for event in result.events:
                handle(event)

    Every mutating operation holds a single lock, so a background poller
    and user calls such as :meth:`take_snapshot` never interleave.
    """

    def __init__(self, config: Optional[MonitorConfig] = None) -> None:
        self._config = config or MonitorConfig()
        self._lock = threading.Lock()

        self._history = HistoryBuffer(self._config.history_size)
        self._trend_analyzer = TrendAnalyzer()
        self._baseline_tracker = BaselineTracker()
        self._store = SnapshotStore(
            max_snapshots=self._config.max_snapshots,
            auto_delete_oldest=self._config.auto_delete_oldest,
        )
        self._scheduler = SnapshotScheduler()
        self._controller = AutoGCController()
        self._classifier = SeverityClassifier()
        self._apply_config(self._config)

        self._schedule_pending = True
        self._last_result: Optional[TickResult] = None
        # Latest clock value seen by tick(); stands in for missing timestamps.
        self._clock: int = 0

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> MonitorConfig:
        return self._config

    @property
    def history(self) -> List[Sample]:
        return self._history.all()

    @property
    def last_result(self) -> Optional[TickResult]:
        return self._last_result

    @property
    def severity(self) -> Severity:
        return self._last_result.severity if self._last_result else Severity.normal

    @property
    def leak_analysis(self) -> LeakAnalysis:
        if self._last_result is None:
            return LeakAnalysis.empty(status=LeakStatus.insufficient_samples)
        return self._last_result.leak

    @property
    def auto_gc_controller(self) -> AutoGCController:
        return self._controller

    @property
    def scheduler(self) -> SnapshotScheduler:
        return self._scheduler

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def reconfigure(self, config: MonitorConfig) -> None:
        """Replace the engine's configuration.

        History, snapshots and the cooldown timestamp are kept; a changed
        snapshot schedule restarts on the next tick.
        """
        with self._lock:
            previous = self._config
            self._config = config
            self._apply_config(config)
            if config.snapshot_schedule != previous.snapshot_schedule:
                self._schedule_pending = True
        logger.debug("Engine reconfigured: %s", config.to_dict())

    def _apply_config(self, config: MonitorConfig) -> None:
        profile = get_profile(config.leak_sensitivity)
        self._history.resize(config.history_size)
        self._gc_detector = GCEventDetector(profile.gc_drop_threshold)
        self._scorer = LeakScorer(profile)
        self._classifier.warning_threshold = config.warning_threshold
        self._classifier.critical_threshold = config.critical_threshold
        self._controller.enabled = config.enable_auto_gc
        self._controller.threshold = config.auto_gc_threshold
        self._controller.cooldown_ms = config.auto_gc_cooldown_ms
        self._store.auto_delete_oldest = config.auto_delete_oldest
        self._store.max_snapshots = config.max_snapshots

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def tick(self, sample: Sample, now: Optional[int] = None) -> TickResult:
        """Record *sample* and run one full analysis pass.

        *now* is the clock value used for the cooldown and the snapshot
        schedule; it defaults to the sample's own timestamp, or to the
        previous clock value when the sample has none.
        """
        with self._lock:
            if now is None:
                now = sample.timestamp if sample.has_timestamp else self._clock
            self._clock = now
            self._history.push(sample)
            samples = self._history.all()

            trend = self._trend_analyzer.analyze(samples)
            gc_analysis = self._gc_detector.detect(samples)
            baseline = self._baseline_tracker.track(samples, gc_analysis)
            if self._config.enable_leak_detection:
                leak = self._scorer.score(samples, trend, gc_analysis, baseline)
            else:
                leak = LeakAnalysis.empty(trend=trend.trend, status=LeakStatus.disabled)

            severity = self._classifier.classify(sample.used, sample.limit)
            usage = usage_percentage(sample.used, sample.limit)

            result = TickResult(
                sample=sample,
                trend=trend,
                gc_analysis=gc_analysis,
                baseline=baseline,
                leak=leak,
                severity=severity,
                usage_percentage=usage,
            )
            previous = self._last_result
            self._last_result = result

            result.events.append(MonitorEvent(
                EventType.update, now,
                {"used": sample.used, "total": sample.total, "limit": sample.limit,
                 "usage_percentage": usage},
            ))
            self._emit_severity_events(result, previous, now)
            self._emit_leak_event(result, previous, now)

            trigger = self._controller.evaluate(usage, now)
            if trigger is not None:
                result.auto_gc = trigger
                result.events.append(MonitorEvent(EventType.auto_gc, now, trigger.to_dict()))

            self._run_schedule(result, now)
            return result

    def _emit_severity_events(
        self,
        result: TickResult,
        previous: Optional[TickResult],
        now: int,
    ) -> None:
        prev_severity = previous.severity if previous is not None else Severity.normal
        if result.severity is prev_severity or result.severity is Severity.normal:
            return
        event_type = (
            EventType.critical if result.severity is Severity.critical else EventType.warning
        )
        logger.info(
            "Memory usage %s: %.1f%%.",
            result.severity.value, result.usage_percentage or 0.0,
        )
        result.events.append(MonitorEvent(event_type, now, {
            "usage_percentage": result.usage_percentage,
            "threshold": self._classifier.threshold_for(result.severity),
            "sample": result.sample.to_dict(),
        }))

    def _emit_leak_event(
        self,
        result: TickResult,
        previous: Optional[TickResult],
        now: int,
    ) -> None:
        was_leaking = previous.leak.is_leaking if previous is not None else False
        if not result.leak.is_leaking or was_leaking:
            return
        logger.info(
            "Probable memory leak detected (probability %d%%).", result.leak.probability,
        )
        result.events.append(MonitorEvent(EventType.leak_detected, now, {
            "is_leaking": True,
            "probability": result.leak.probability,
            "trend": result.leak.trend.value,
            "recommendation": result.leak.recommendation,
        }))

    def _run_schedule(self, result: TickResult, now: int) -> None:
        if self._schedule_pending:
            self._scheduler.configure(self._config.snapshot_schedule, now)
            self._schedule_pending = False
        if not self._scheduler.poll(now):
            return
        try:
            snapshot = self._capture(None, True, now)
        except SnapshotCapacityError as exc:
            result.events.append(MonitorEvent(
                EventType.snapshot_rejected, now, {"reason": str(exc), "is_auto": True},
            ))
            return
        result.snapshot = snapshot
        result.events.append(MonitorEvent(
            EventType.snapshot_captured, now, snapshot.to_dict(),
        ))

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def take_snapshot(self, label: Optional[str] = None, now: Optional[int] = None) -> Snapshot:
        """Capture a manual snapshot of the latest sample.

        Raises :class:`SnapshotCapacityError` when the store is full and
        auto-delete is disabled.
        """
        with self._lock:
            return self._capture(label, False, now)

    def delete_snapshot(self, snapshot_id: str) -> bool:
        with self._lock:
            return self._store.delete(snapshot_id)

    def clear_snapshots(self) -> None:
        with self._lock:
            self._store.clear()

    def snapshots(self) -> List[Snapshot]:
        with self._lock:
            return self._store.list()

    def compare_snapshots(self, id_a: str, id_b: str) -> SnapshotComparison:
        with self._lock:
            return self._store.compare(id_a, id_b)

    def _capture(self, label: Optional[str], is_auto: bool, now: Optional[int]) -> Snapshot:
        latest = self._history.latest()
        if now is None:
            now = self._clock
        return self._store.capture(label, is_auto, latest, self._analysis_context(), now)

    def _analysis_context(self) -> AnalysisContext:
        result = self._last_result
        if result is None:
            return AnalysisContext()
        return AnalysisContext(
            trend=result.trend.trend,
            leak_probability=result.leak.probability,
            severity=result.severity,
            usage_percentage=result.usage_percentage or 0.0,
        )

    # ------------------------------------------------------------------
    # Remediation
    # ------------------------------------------------------------------

    def request_gc(self, now: Optional[int] = None) -> AutoGCTrigger:
        """Manual remediation: bypasses the cooldown but restarts it."""
        with self._lock:
            result = self._last_result
            if now is None:
                now = self._clock
            usage = result.usage_percentage if result is not None else None
            return self._controller.force(usage, now)

    def reset(self) -> None:
        """Forget history and the last analysis; snapshots are kept."""
        with self._lock:
            self._history.clear()
            self._last_result = None
            self._controller.reset()
