"""Capacity-bounded store of labelled memory snapshots.

A snapshot freezes the latest sample together with the analysis that was
active when it was taken.  The store only knows about capacity: when full
it either evicts the oldest entry (auto-delete enabled) or refuses the
capture with :class:`SnapshotCapacityError`.  Scheduling lives in
:mod:`memwatch.telemetry.snapshot_scheduler`.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Tuple

from memwatch.telemetry.errors import SnapshotCapacityError, SnapshotNotFoundError
from memwatch.telemetry.sample import Sample
from memwatch.telemetry.severity_classifier import Severity
from memwatch.telemetry.trend_analyzer import Trend

logger = logging.getLogger(__name__)


# ============================================================================
# Constants
# ============================================================================

DEFAULT_MAX_SNAPSHOTS: int = 10
MIN_SNAPSHOTS_LIMIT: int = 1
MAX_SNAPSHOTS_LIMIT: int = 50


def clamp_max_snapshots(value: int) -> int:
    return max(MIN_SNAPSHOTS_LIMIT, min(MAX_SNAPSHOTS_LIMIT, int(value)))


# ============================================================================
# Data classes
# ============================================================================


@dataclass(frozen=True)
class AnalysisContext:
    """Classification active at capture time."""

    trend: Trend = Trend.stable
    leak_probability: int = 0
    severity: Severity = Severity.normal
    usage_percentage: float = 0.0

    def to_dict(self) -> Dict[str, object]:
        return {
            "trend": self.trend.value,
            "leak_probability": self.leak_probability,
            "severity": self.severity.value,
            "usage_percentage": self.usage_percentage,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> AnalysisContext:
        return cls(
            trend=Trend(str(data.get("trend", Trend.stable.value))),
            leak_probability=int(data.get("leak_probability", 0)),  # type: ignore[arg-type]
            severity=Severity(str(data.get("severity", Severity.normal.value))),
            usage_percentage=float(data.get("usage_percentage", 0.0)),  # type: ignore[arg-type]
        )


@dataclass(frozen=True)
class Snapshot:
    """An immutable, labelled capture of memory state."""

    id: str
    label: str
    timestamp: int
    heap_used: float
    heap_total: float
    heap_limit: float
    is_auto: bool
    analysis_context: AnalysisContext = field(default_factory=AnalysisContext)
    dom_nodes: Optional[int] = None
    event_listeners: Optional[int] = None

    def to_dict(self) -> Dict[str, object]:
        data = asdict(self)
        data["analysis_context"] = self.analysis_context.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Snapshot:
        raw_context = data.get("analysis_context")
        dom_nodes = data.get("dom_nodes")
        listeners = data.get("event_listeners")
        return cls(
            id=str(data.get("id", "")),
            label=str(data.get("label", "")),
            timestamp=int(data.get("timestamp", 0)),
            heap_used=float(data.get("heap_used", math.nan)),
            heap_total=float(data.get("heap_total", math.nan)),
            heap_limit=float(data.get("heap_limit", math.nan)),
            is_auto=bool(data.get("is_auto", False)),
            analysis_context=(
                AnalysisContext.from_dict(raw_context)
                if isinstance(raw_context, dict)
                else AnalysisContext()
            ),
            dom_nodes=int(dom_nodes) if dom_nodes is not None else None,
            event_listeners=int(listeners) if listeners is not None else None,
        )


@dataclass(frozen=True)
class FieldDelta:
    """Change of one field between two snapshots.

    When either side is missing or not a finite number the delta is marked
    unavailable and ``diff``/``percentage`` are None.
    """

    field: str
    value_a: Optional[float]
    value_b: Optional[float]
    diff: Optional[float]
    percentage: Optional[float]
    direction: str  # "up", "down", "same", "n/a"
    is_available: bool

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


@dataclass
class SnapshotComparison:
    """Per-field deltas from snapshot A (baseline) to snapshot B."""

    snapshot_a: Snapshot
    snapshot_b: Snapshot
    deltas: List[FieldDelta]
    elapsed_ms: int = 0

    def get(self, field_name: str) -> FieldDelta:
        for delta in self.deltas:
            if delta.field == field_name:
                return delta
        raise KeyError(field_name)

    def to_dict(self) -> Dict[str, object]:
        return {
            "snapshot_a": self.snapshot_a.id,
            "snapshot_b": self.snapshot_b.id,
            "elapsed_ms": self.elapsed_ms,
            "deltas": [d.to_dict() for d in self.deltas],
        }


_COMPARED_FIELDS: Tuple[str, ...] = (
    "heap_used",
    "heap_total",
    "heap_limit",
    "dom_nodes",
    "event_listeners",
)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def compute_delta(field_name: str, value_a: Any, value_b: Any) -> FieldDelta:
    """Build a :class:`FieldDelta` for one field."""
    if not (_is_number(value_a) and _is_number(value_b)):
        return FieldDelta(
            field=field_name,
            value_a=float(value_a) if _is_number(value_a) else None,
            value_b=float(value_b) if _is_number(value_b) else None,
            diff=None,
            percentage=None,
            direction="n/a",
            is_available=False,
        )

    diff = float(value_b) - float(value_a)
    percentage = diff / value_a * 100.0 if value_a > 0 else None
    if diff > 0:
        direction = "up"
    elif diff < 0:
        direction = "down"
    else:
        direction = "same"

    return FieldDelta(
        field=field_name,
        value_a=float(value_a),
        value_b=float(value_b),
        diff=diff,
        percentage=percentage,
        direction=direction,
        is_available=True,
    )


# ============================================================================
# Snapshot Store
# ============================================================================


class SnapshotStore:
    """Capture, evict, delete and compare snapshots.

    Usage::

        store = SnapshotStore(max_snapshots=3, auto_delete_oldest=True)
        first = store.capture(None, False, sample, context)
        ...
        comparison = store.compare(first.id, store.list()[-1].id)
        print(comparison.get("heap_used").percentage)
    """

    def __init__(
        self,
        max_snapshots: int = DEFAULT_MAX_SNAPSHOTS,
        auto_delete_oldest: bool = True,
    ) -> None:
        self._max_snapshots = clamp_max_snapshots(max_snapshots)
        self.auto_delete_oldest = auto_delete_oldest
        # (insertion sequence, snapshot); the sequence breaks timestamp ties.
        self._entries: List[Tuple[int, Snapshot]] = []
        self._counter = 0

    # ------------------------------------------------------------------
    # Capacity
    # ------------------------------------------------------------------

    @property
    def max_snapshots(self) -> int:
        return self._max_snapshots

    @max_snapshots.setter
    def max_snapshots(self, value: int) -> None:
        self._max_snapshots = clamp_max_snapshots(value)
        # Shrinking below the current size trims the oldest entries.
        while len(self._entries) > self._max_snapshots:
            evicted = self._evict_oldest()
            logger.debug("Evicted %s after capacity change.", evicted.id)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def is_full(self) -> bool:
        return len(self._entries) >= self._max_snapshots

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def capture(
        self,
        label: Optional[str],
        is_auto: bool,
        sample: Optional[Sample],
        context: Optional[AnalysisContext] = None,
        timestamp: Optional[int] = None,
    ) -> Snapshot:
        """Record a snapshot of *sample*.

        Raises
        ------
        SnapshotCapacityError
            If the store is full and auto-delete is disabled.  The store
            is left unchanged.
        """
        if self.is_full:
            if not self.auto_delete_oldest:
                logger.warning(
                    "Snapshot rejected: store is full (%d) and auto-delete is off.",
                    self._max_snapshots,
                )
                raise SnapshotCapacityError(self._max_snapshots)
            evicted = self._evict_oldest()
            logger.debug("Evicted oldest snapshot %s to make room.", evicted.id)

        self._counter += 1
        number = self._counter
        if not label:
            label = f"Auto {number}" if is_auto else f"Snapshot {number}"
        if timestamp is None:
            timestamp = sample.timestamp if sample is not None else 0

        snapshot = Snapshot(
            id=f"snapshot-{number}",
            label=label,
            timestamp=int(timestamp),
            heap_used=sample.used if sample is not None else 0.0,
            heap_total=sample.total if sample is not None else 0.0,
            heap_limit=sample.limit if sample is not None else 0.0,
            is_auto=is_auto,
            analysis_context=context or AnalysisContext(),
            dom_nodes=sample.dom_nodes if sample is not None else None,
            event_listeners=sample.listeners if sample is not None else None,
        )
        self._entries.append((number, snapshot))
        logger.debug("Captured %s (%s).", snapshot.id, snapshot.label)
        return snapshot

    def delete(self, snapshot_id: str) -> bool:
        for pos, (_, snapshot) in enumerate(self._entries):
            if snapshot.id == snapshot_id:
                del self._entries[pos]
                return True
        return False

    def clear(self) -> None:
        self._entries.clear()

    def get(self, snapshot_id: str) -> Snapshot:
        for _, snapshot in self._entries:
            if snapshot.id == snapshot_id:
                return snapshot
        raise SnapshotNotFoundError(snapshot_id)

    def list(self) -> List[Snapshot]:
        """Snapshots ordered oldest to newest."""
        return [s for _, s in sorted(self._entries, key=self._age_key)]

    def compare(self, id_a: str, id_b: str) -> SnapshotComparison:
        """Compare snapshot *id_a* (baseline) to *id_b*."""
        snap_a = self.get(id_a)
        snap_b = self.get(id_b)
        return compare_snapshots(snap_a, snap_b)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _age_key(entry: Tuple[int, Snapshot]) -> Tuple[int, int]:
        seq, snapshot = entry
        return snapshot.timestamp, seq

    def _evict_oldest(self) -> Snapshot:
        oldest = min(self._entries, key=self._age_key)
        self._entries.remove(oldest)
        return oldest[1]


def compare_snapshots(snap_a: Snapshot, snap_b: Snapshot) -> SnapshotComparison:
    """Field-by-field comparison of two snapshots, A being the baseline."""
    deltas = [
        compute_delta(name, getattr(snap_a, name), getattr(snap_b, name))
        for name in _COMPARED_FIELDS
    ]
    return SnapshotComparison(
        snapshot_a=snap_a,
        snapshot_b=snap_b,
        deltas=deltas,
        elapsed_ms=snap_b.timestamp - snap_a.timestamp,
    )
