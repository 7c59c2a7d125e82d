"""Least-squares trend analysis over the sample history.

The regression uses the sample's position in the history as the
independent variable, so slopes are expressed in bytes per sample.  Ticks
are assumed to be evenly spaced; irregular polling (a throttled host, a
paused event loop) is a known limitation that is not corrected for.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Dict, List, Sequence, Tuple

from memwatch.telemetry.sample import Sample

logger = logging.getLogger(__name__)


# ============================================================================
# Constants
# ============================================================================

# Slope relative to the mean of the series above which a trend counts as
# increasing (and below the negative of which it counts as decreasing).
TREND_EPSILON: float = 0.01


# ============================================================================
# Data classes
# ============================================================================


class Trend(str, Enum):
    """Direction of memory usage over the observed window."""

    increasing = "increasing"
    stable = "stable"
    decreasing = "decreasing"


@dataclass(frozen=True)
class RegressionResult:
    """Output of an ordinary least-squares fit."""

    slope: float
    intercept: float
    r_squared: float

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class TrendAnalysis:
    """Regression of ``used`` against sample index plus its classification."""

    slope: float  # bytes per sample
    intercept: float
    r_squared: float
    trend: Trend
    sample_count: int
    normalized_slope: float = 0.0

    def to_dict(self) -> Dict[str, object]:
        data = asdict(self)
        data["trend"] = self.trend.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> TrendAnalysis:
        return cls(
            slope=float(data.get("slope", 0.0)),  # type: ignore[arg-type]
            intercept=float(data.get("intercept", 0.0)),  # type: ignore[arg-type]
            r_squared=float(data.get("r_squared", 0.0)),  # type: ignore[arg-type]
            trend=Trend(str(data.get("trend", Trend.stable.value))),
            sample_count=int(data.get("sample_count", 0)),  # type: ignore[arg-type]
            normalized_slope=float(data.get("normalized_slope", 0.0)),  # type: ignore[arg-type]
        )


# ============================================================================
# Regression helpers
# ============================================================================


def linear_regression(points: Sequence[Tuple[float, float]]) -> RegressionResult:
    """Simple OLS linear regression over ``(x, y)`` pairs.

    Returns zeros for fewer than two points.  R² is 0 when ``y`` has no
    variance and is clamped to ``[0, 1]``.
    """
    n = len(points)
    if n < 2:
        return RegressionResult(slope=0.0, intercept=0.0, r_squared=0.0)

    sum_x = sum(x for x, _ in points)
    sum_y = sum(y for _, y in points)
    sum_xy = sum(x * y for x, y in points)
    sum_x2 = sum(x * x for x, _ in points)

    denom = n * sum_x2 - sum_x * sum_x
    if denom == 0:
        return RegressionResult(slope=0.0, intercept=sum_y / n, r_squared=0.0)

    slope = (n * sum_xy - sum_x * sum_y) / denom
    intercept = (sum_y - slope * sum_x) / n

    mean_y = sum_y / n
    ss_tot = sum((y - mean_y) ** 2 for _, y in points)
    if ss_tot == 0:
        return RegressionResult(slope=slope, intercept=intercept, r_squared=0.0)

    ss_res = sum((y - (slope * x + intercept)) ** 2 for x, y in points)
    r_squared = 1.0 - ss_res / ss_tot

    return RegressionResult(
        slope=slope,
        intercept=intercept,
        r_squared=max(0.0, min(1.0, r_squared)),
    )


def classify_slope(slope: float, mean_value: float) -> Tuple[Trend, float]:
    """Classify *slope* relative to the scale of the data it came from."""
    if mean_value <= 0 or not math.isfinite(mean_value):
        return Trend.stable, 0.0
    normalized = slope / mean_value
    if normalized > TREND_EPSILON:
        return Trend.increasing, normalized
    if normalized < -TREND_EPSILON:
        return Trend.decreasing, normalized
    return Trend.stable, normalized


# ============================================================================
# Trend Analyzer
# ============================================================================


class TrendAnalyzer:
    """Fit a line to the ``used`` series and classify its direction.

    Usage::

        analysis = TrendAnalyzer().analyze(history.all())
        if analysis.trend is Trend.increasing:
            ...
    """

    def analyze(self, samples: Sequence[Sample]) -> TrendAnalysis:
        points = self.points(samples)
        if len(points) < 2:
            return TrendAnalysis(
                slope=0.0,
                intercept=points[0][1] if points else 0.0,
                r_squared=0.0,
                trend=Trend.stable,
                sample_count=len(points),
            )

        fit = linear_regression(points)
        mean_used = sum(y for _, y in points) / len(points)
        trend, normalized = classify_slope(fit.slope, mean_used)

        logger.debug(
            "Trend over %d samples: slope=%.1f B/sample r2=%.3f (%s).",
            len(points), fit.slope, fit.r_squared, trend.value,
        )
        return TrendAnalysis(
            slope=fit.slope,
            intercept=fit.intercept,
            r_squared=fit.r_squared,
            trend=trend,
            sample_count=len(points),
            normalized_slope=normalized,
        )

    @staticmethod
    def points(samples: Sequence[Sample]) -> List[Tuple[float, float]]:
        """``(index, used)`` pairs for every valid sample.

        The index is the position in the full history, so a skipped
        malformed sample leaves a gap rather than shifting later points.
        """
        return [
            (float(i), float(s.used))
            for i, s in enumerate(samples)
            if s.is_valid
        ]
