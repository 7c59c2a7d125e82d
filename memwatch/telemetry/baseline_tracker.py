"""Post-collection memory floor and its trend.

Each detected GC event leaves a "floor": the usage right after the drop.
A floor that keeps rising across collections means the collector is not
reclaiming what the application allocated, which is stronger evidence of
a leak than the raw series simply going up.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

from memwatch.telemetry.gc_event_detector import GCAnalysis
from memwatch.telemetry.sample import Sample
from memwatch.telemetry.trend_analyzer import Trend, classify_slope, linear_regression

logger = logging.getLogger(__name__)

# Minimum floor observations needed before a baseline trend is reported.
MIN_BASELINE_POINTS: int = 2

# Growth of current usage over the floor considered significant.
BASELINE_GROWTH_THRESHOLD: float = 0.20


@dataclass
class Baseline:
    """Floor series derived from GC events.

    ``has_trend`` is False when fewer than two floors were observed; callers
    treat that as "no baseline growth evidence", never as an error.
    """

    points: List[Tuple[int, float]] = field(default_factory=list)
    slope: float = 0.0
    intercept: float = 0.0
    r_squared: float = 0.0
    trend: Trend = Trend.stable
    has_trend: bool = False
    baseline_value: float = 0.0
    current_value: float = 0.0
    growth_ratio: float = 0.0

    @property
    def is_rising(self) -> bool:
        return self.has_trend and self.trend is Trend.increasing

    @property
    def is_significant_growth(self) -> bool:
        return self.growth_ratio > BASELINE_GROWTH_THRESHOLD

    def to_dict(self) -> Dict[str, object]:
        return {
            "points": [[i, v] for i, v in self.points],
            "slope": self.slope,
            "intercept": self.intercept,
            "r_squared": self.r_squared,
            "trend": self.trend.value,
            "has_trend": self.has_trend,
            "baseline_value": self.baseline_value,
            "current_value": self.current_value,
            "growth_ratio": self.growth_ratio,
        }


class BaselineTracker:
    """Build the floor series from GC events and regress it."""

    def track(self, samples: Sequence[Sample], gc_analysis: GCAnalysis) -> Baseline:
        valid = [s.used for s in samples if s.is_valid]
        if not valid:
            return Baseline()

        current = valid[-1]
        points = [(e.index, e.used_after) for e in gc_analysis.events]

        if len(points) < MIN_BASELINE_POINTS:
            # Without a floor series, the lowest observed value is the
            # best available approximation of the baseline.
            floor = min(valid)
            return Baseline(
                points=points,
                baseline_value=floor,
                current_value=current,
                growth_ratio=(current - floor) / floor if floor > 0 else 0.0,
            )

        fit = linear_regression([(float(i), v) for i, v in points])
        mean_floor = sum(v for _, v in points) / len(points)
        trend, _ = classify_slope(fit.slope, mean_floor)

        logger.debug(
            "Baseline over %d floors: slope=%.1f B/sample (%s).",
            len(points), fit.slope, trend.value,
        )
        return Baseline(
            points=points,
            slope=fit.slope,
            intercept=fit.intercept,
            r_squared=fit.r_squared,
            trend=trend,
            has_trend=True,
            baseline_value=mean_floor,
            current_value=current,
            growth_ratio=(current - mean_floor) / mean_floor if mean_floor > 0 else 0.0,
        )
