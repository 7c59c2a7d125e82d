"""Infer garbage-collection events from sharp drops in used memory."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional, Sequence

from memwatch.telemetry.sample import Sample

logger = logging.getLogger(__name__)

# A drop of at least this fraction of the previous sample counts as a GC.
GC_DETECTION_THRESHOLD: float = 0.10

# Average recovery at or above this ratio means collections are doing their job.
GC_EFFECTIVE_RECOVERY: float = 0.15


@dataclass(frozen=True)
class GCEvent:
    """A drop between two adjacent samples.  ``index`` is the post-drop sample."""

    index: int
    used_before: float
    used_after: float
    drop_bytes: float
    drop_ratio: float
    timestamp: int

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> GCEvent:
        return cls(
            index=int(data.get("index", 0)),  # type: ignore[arg-type]
            used_before=float(data.get("used_before", 0.0)),  # type: ignore[arg-type]
            used_after=float(data.get("used_after", 0.0)),  # type: ignore[arg-type]
            drop_bytes=float(data.get("drop_bytes", 0.0)),  # type: ignore[arg-type]
            drop_ratio=float(data.get("drop_ratio", 0.0)),  # type: ignore[arg-type]
            timestamp=int(data.get("timestamp", 0)),  # type: ignore[arg-type]
        )


@dataclass
class GCAnalysis:
    """All GC events in the current history plus summary statistics."""

    events: List[GCEvent] = field(default_factory=list)
    avg_recovery_ratio: float = 0.0
    last_gc_timestamp: Optional[int] = None
    is_effective: bool = False

    @property
    def event_count(self) -> int:
        return len(self.events)

    def to_dict(self) -> Dict[str, object]:
        return {
            "events": [e.to_dict() for e in self.events],
            "event_count": self.event_count,
            "avg_recovery_ratio": self.avg_recovery_ratio,
            "last_gc_timestamp": self.last_gc_timestamp,
            "is_effective": self.is_effective,
        }


class GCEventDetector:
    """Scan adjacent sample pairs for drops of at least *threshold*.

    Stateless: every call recomputes the events from the samples it is
    given, so events never outlive the history that produced them.
    """

    def __init__(self, threshold: float = GC_DETECTION_THRESHOLD) -> None:
        self._threshold = threshold

    @property
    def threshold(self) -> float:
        return self._threshold

    def detect(self, samples: Sequence[Sample]) -> GCAnalysis:
        events: List[GCEvent] = []

        for i in range(1, len(samples)):
            prev = samples[i - 1]
            cur = samples[i]
            if not (prev.is_valid and cur.is_valid) or prev.used <= 0:
                continue
            drop = prev.used - cur.used
            ratio = drop / prev.used
            if ratio >= self._threshold:
                events.append(GCEvent(
                    index=i,
                    used_before=prev.used,
                    used_after=cur.used,
                    drop_bytes=drop,
                    drop_ratio=ratio,
                    timestamp=cur.timestamp,
                ))

        if not events:
            return GCAnalysis()

        avg_recovery = sum(e.drop_ratio for e in events) / len(events)
        logger.debug(
            "Detected %d GC event(s), average recovery %.1f%%.",
            len(events), avg_recovery * 100.0,
        )
        return GCAnalysis(
            events=events,
            avg_recovery_ratio=avg_recovery,
            last_gc_timestamp=events[-1].timestamp,
            is_effective=avg_recovery >= GC_EFFECTIVE_RECOVERY,
        )
