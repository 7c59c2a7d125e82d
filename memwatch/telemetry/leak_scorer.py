"""Weighted leak-probability scoring.

Combines five independent signals into a 0-100 probability:

1. **Slope** (max 30): how fast ``used`` grows per sample.
2. **R²** (max 20): how consistent that growth is.
3. **GC ineffectiveness** (max 25): collections happen but the floor does
   not go down.
4. **Observation time** (max 15): longer observation, more confidence.
5. **Baseline growth** (max 10): the post-GC floor itself is rising.

Two hard gates run first -- at least ten samples and the profile's minimum
observation time -- so short bursts never produce a positive score.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Dict, Optional, Sequence

from memwatch.telemetry.baseline_tracker import Baseline
from memwatch.telemetry.gc_event_detector import GCAnalysis
from memwatch.telemetry.sample import Sample
from memwatch.telemetry.trend_analyzer import Trend, TrendAnalysis

logger = logging.getLogger(__name__)


# ============================================================================
# Constants
# ============================================================================

MIN_LEAK_DETECTION_SAMPLES: int = 10
LEAK_PROBABILITY_THRESHOLD: int = 70

_SLOPE_CAP: float = 30.0
_R_SQUARED_CAP: float = 20.0
_GC_CAP: float = 25.0
_TIME_CAP: float = 15.0
_BASELINE_CAP: float = 10.0

_POOR_RECOVERY_RATIO: float = 0.3
_STABLE_TREND_CAP: float = 30.0

# Below this probability no recommendation is produced.
_RECOMMENDATION_FLOOR: int = 30


# ============================================================================
# Sensitivity profiles
# ============================================================================


@dataclass(frozen=True)
class SensitivityProfile:
    """Static thresholds controlling how aggressively leaks are flagged."""

    name: str
    min_slope_bytes_per_sample: float
    min_r_squared: float
    min_gc_cycles: int
    min_observation_s: float
    probability_multiplier: float = 1.0
    gc_drop_threshold: float = 0.10
    leak_probability_threshold: int = LEAK_PROBABILITY_THRESHOLD

    @property
    def min_observation_ms(self) -> float:
        return self.min_observation_s * 1000.0

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


SENSITIVITY_PROFILES: Dict[str, SensitivityProfile] = {
    "low": SensitivityProfile(
        name="low",
        min_slope_bytes_per_sample=100_000,
        min_r_squared=0.8,
        min_gc_cycles=3,
        min_observation_s=60.0,
        probability_multiplier=0.7,
    ),
    "medium": SensitivityProfile(
        name="medium",
        min_slope_bytes_per_sample=50_000,
        min_r_squared=0.7,
        min_gc_cycles=2,
        min_observation_s=30.0,
        probability_multiplier=1.0,
    ),
    "high": SensitivityProfile(
        name="high",
        min_slope_bytes_per_sample=10_000,
        min_r_squared=0.6,
        min_gc_cycles=1,
        min_observation_s=15.0,
        probability_multiplier=1.2,
    ),
}

DEFAULT_SENSITIVITY: str = "medium"


def get_profile(name: str) -> SensitivityProfile:
    """Look up a sensitivity profile by name (``low``, ``medium``, ``high``)."""
    try:
        return SENSITIVITY_PROFILES[name]
    except KeyError:
        raise ValueError(
            f"Unknown leak sensitivity {name!r}; expected one of "
            f"{', '.join(SENSITIVITY_PROFILES)}"
        ) from None


# ============================================================================
# Data classes
# ============================================================================


class LeakStatus(str, Enum):
    """Why a :class:`LeakAnalysis` carries the probability it does."""

    disabled = "disabled"
    insufficient_samples = "insufficient_samples"
    insufficient_observation = "insufficient_observation"
    analyzed = "analyzed"


@dataclass
class LeakFactors:
    """Per-factor contributions to the raw probability."""

    slope: float = 0.0
    r_squared: float = 0.0
    gc: float = 0.0
    observation: float = 0.0
    baseline: float = 0.0

    @property
    def total(self) -> float:
        return self.slope + self.r_squared + self.gc + self.observation + self.baseline

    def dominant(self) -> Optional[str]:
        """Name of the largest contribution, or None when all are zero."""
        ranked = [
            ("gc", self.gc),
            ("baseline", self.baseline),
            ("slope", self.slope),
            ("r_squared", self.r_squared),
            ("observation", self.observation),
        ]
        name, value = max(ranked, key=lambda item: item[1])
        return name if value > 0 else None

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class LeakAnalysis:
    """Result of one scoring pass.  Replaced, never mutated."""

    probability: int
    is_leaking: bool
    trend: Trend
    status: LeakStatus
    recommendation: Optional[str] = None
    slope: float = 0.0
    r_squared: float = 0.0
    gc_event_count: int = 0
    observation_ms: int = 0
    confidence: int = 0
    factors: LeakFactors = field(default_factory=LeakFactors)

    @property
    def has_sufficient_data(self) -> bool:
        return self.status is LeakStatus.analyzed

    def to_dict(self) -> Dict[str, object]:
        return {
            "probability": self.probability,
            "is_leaking": self.is_leaking,
            "trend": self.trend.value,
            "status": self.status.value,
            "recommendation": self.recommendation,
            "slope": self.slope,
            "r_squared": self.r_squared,
            "gc_event_count": self.gc_event_count,
            "observation_ms": self.observation_ms,
            "confidence": self.confidence,
            "factors": self.factors.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> LeakAnalysis:
        raw_factors = data.get("factors") or {}
        factors = LeakFactors(
            slope=float(raw_factors.get("slope", 0.0)),  # type: ignore[union-attr]
            r_squared=float(raw_factors.get("r_squared", 0.0)),  # type: ignore[union-attr]
            gc=float(raw_factors.get("gc", 0.0)),  # type: ignore[union-attr]
            observation=float(raw_factors.get("observation", 0.0)),  # type: ignore[union-attr]
            baseline=float(raw_factors.get("baseline", 0.0)),  # type: ignore[union-attr]
        )
        recommendation = data.get("recommendation")
        return cls(
            probability=int(data.get("probability", 0)),  # type: ignore[arg-type]
            is_leaking=bool(data.get("is_leaking", False)),
            trend=Trend(str(data.get("trend", Trend.stable.value))),
            status=LeakStatus(str(data.get("status", LeakStatus.analyzed.value))),
            recommendation=str(recommendation) if recommendation is not None else None,
            slope=float(data.get("slope", 0.0)),  # type: ignore[arg-type]
            r_squared=float(data.get("r_squared", 0.0)),  # type: ignore[arg-type]
            gc_event_count=int(data.get("gc_event_count", 0)),  # type: ignore[arg-type]
            observation_ms=int(data.get("observation_ms", 0)),  # type: ignore[arg-type]
            confidence=int(data.get("confidence", 0)),  # type: ignore[arg-type]
            factors=factors,
        )

    @classmethod
    def empty(cls, trend: Trend = Trend.stable, status: LeakStatus = LeakStatus.disabled) -> LeakAnalysis:
        return cls(probability=0, is_leaking=False, trend=trend, status=status)


# ============================================================================
# Leak Scorer
# ============================================================================


class LeakScorer:
    """Turn trend, GC and baseline signals into a leak probability.

    Usage::

        scorer = LeakScorer(get_profile("medium"))
        analysis = scorer.score(samples, trend, gc_analysis, baseline)
        if analysis.is_leaking:
            print(analysis.probability, analysis.recommendation)
    """

    def __init__(self, profile: Optional[SensitivityProfile] = None) -> None:
        self._profile = profile or SENSITIVITY_PROFILES[DEFAULT_SENSITIVITY]

    @property
    def profile(self) -> SensitivityProfile:
        return self._profile

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def score(
        self,
        samples: Sequence[Sample],
        trend: TrendAnalysis,
        gc_analysis: GCAnalysis,
        baseline: Baseline,
    ) -> LeakAnalysis:
        """Score the current history.

        Parameters
        ----------
        samples:
            The history the other signals were derived from, oldest first.
        trend:
            Regression over the raw series.
        gc_analysis:
            GC events detected in the same history.
        baseline:
            Floor series built from those events.
        """
        profile = self._profile
        valid_count = sum(1 for s in samples if s.is_valid)

        if valid_count < MIN_LEAK_DETECTION_SAMPLES:
            return LeakAnalysis(
                probability=0,
                is_leaking=False,
                trend=trend.trend,
                status=LeakStatus.insufficient_samples,
                slope=trend.slope,
                gc_event_count=gc_analysis.event_count,
            )

        observation_ms = observation_window_ms(samples)
        if observation_ms < profile.min_observation_ms:
            return LeakAnalysis(
                probability=0,
                is_leaking=False,
                trend=trend.trend,
                status=LeakStatus.insufficient_observation,
                slope=trend.slope,
                gc_event_count=gc_analysis.event_count,
                observation_ms=observation_ms,
                confidence=round(observation_ms / profile.min_observation_ms * 50),
            )

        factors = self._compute_factors(trend, gc_analysis, baseline, observation_ms)
        probability = self._apply_dampening(
            factors.total * profile.probability_multiplier,
            trend,
            gc_analysis,
            baseline,
        )

        confidence = round(min(
            100.0,
            valid_count / 20.0 * 25.0
            + (25.0 if gc_analysis.event_count >= profile.min_gc_cycles
               else gc_analysis.event_count * 10.0)
            + observation_ms / profile.min_observation_ms * 25.0
            + trend.r_squared * 25.0,
        ))

        is_leaking = probability >= profile.leak_probability_threshold
        if is_leaking:
            logger.debug(
                "Leak probability %d%% (slope=%.1f B/sample, r2=%.3f, gc=%d).",
                probability, trend.slope, trend.r_squared, gc_analysis.event_count,
            )

        return LeakAnalysis(
            probability=probability,
            is_leaking=is_leaking,
            trend=trend.trend,
            status=LeakStatus.analyzed,
            recommendation=self._generate_recommendation(
                probability, trend, gc_analysis, factors,
            ),
            slope=trend.slope,
            r_squared=trend.r_squared,
            gc_event_count=gc_analysis.event_count,
            observation_ms=observation_ms,
            confidence=confidence,
            factors=factors,
        )

    # ------------------------------------------------------------------
    # Factors
    # ------------------------------------------------------------------

    def _compute_factors(
        self,
        trend: TrendAnalysis,
        gc_analysis: GCAnalysis,
        baseline: Baseline,
        observation_ms: int,
    ) -> LeakFactors:
        profile = self._profile
        factors = LeakFactors()

        if trend.slope > 0 and profile.min_slope_bytes_per_sample > 0:
            factors.slope = min(
                _SLOPE_CAP,
                trend.slope / profile.min_slope_bytes_per_sample * 15.0,
            )

        if trend.r_squared >= profile.min_r_squared:
            span = 1.0 - profile.min_r_squared
            bonus = (trend.r_squared - profile.min_r_squared) / span if span > 0 else 1.0
            factors.r_squared = min(_R_SQUARED_CAP, 10.0 + bonus * 10.0)

        factors.gc = self._gc_contribution(trend, gc_analysis, baseline)

        if profile.min_observation_ms > 0:
            ratio = min(2.0, observation_ms / profile.min_observation_ms)
        else:
            ratio = 2.0
        factors.observation = min(_TIME_CAP, ratio * 7.5)

        if baseline.is_rising:
            factors.baseline = _BASELINE_CAP

        return factors

    def _gc_contribution(
        self,
        trend: TrendAnalysis,
        gc_analysis: GCAnalysis,
        baseline: Baseline,
    ) -> float:
        count = gc_analysis.event_count
        if count == 0:
            # Growth with no collection observed yet: an early-stage signal.
            return 5.0 if trend.slope > 0 else 0.0
        if count < self._profile.min_gc_cycles:
            return 0.0
        if baseline.has_trend:
            if baseline.slope < 0:
                return 0.0
            if baseline.is_rising or not gc_analysis.is_effective:
                return _GC_CAP
            # Collections reclaim memory, just not much of it.
            return 15.0 if gc_analysis.avg_recovery_ratio < _POOR_RECOVERY_RATIO else 0.0
        # Single collection: usage climbing back above the floor it left.
        last_floor = gc_analysis.events[-1].used_after
        return 15.0 if baseline.current_value > last_floor else 0.0

    def _apply_dampening(
        self,
        raw: float,
        trend: TrendAnalysis,
        gc_analysis: GCAnalysis,
        baseline: Baseline,
    ) -> int:
        """Reduce false positives from healthy sawtooth and flat series."""
        probability = raw

        if gc_analysis.is_effective and not baseline.is_rising:
            probability = max(0.0, probability - 20.0)

        if trend.trend is Trend.decreasing:
            probability = min(probability, 10.0)
        elif trend.trend is Trend.stable:
            probability = min(probability, _STABLE_TREND_CAP)

        if trend.slope <= 0 or trend.slope < self._profile.min_slope_bytes_per_sample * 0.3:
            probability = min(probability, 20.0)

        return int(round(max(0.0, min(100.0, probability))))

    # ------------------------------------------------------------------
    # Recommendations
    # ------------------------------------------------------------------

    @staticmethod
    def _generate_recommendation(
        probability: int,
        trend: TrendAnalysis,
        gc_analysis: GCAnalysis,
        factors: LeakFactors,
    ) -> Optional[str]:
        """Short advisory text keyed on the dominant factor."""
        if probability < _RECOMMENDATION_FLOOR:
            return None

        if probability >= 80:
            prefix = "Critical: high probability of a memory leak."
        elif probability >= 60:
            prefix = "Warning: possible memory leak."
        else:
            prefix = "Note: memory usage is trending upward."

        dominant = factors.dominant()
        if dominant == "gc":
            detail = (
                f"GC appears ineffective: {gc_analysis.event_count} collection(s) "
                f"with {gc_analysis.avg_recovery_ratio * 100:.0f}% average recovery "
                f"did not lower the memory floor."
            )
        elif dominant == "baseline":
            detail = (
                "The post-GC baseline keeps rising; look for objects retained "
                "across collections such as caches or global registries."
            )
        elif dominant == "slope":
            detail = (
                f"Memory grows by {_format_growth_rate(trend.slope)} per sample; "
                f"investigate listener/DOM growth and unbounded collections."
            )
        else:
            detail = (
                "Growth is steady and consistent; keep monitoring and take "
                "snapshots to narrow down the source."
            )
        return f"{prefix} {detail}"


def observation_window_ms(samples: Sequence[Sample]) -> int:
    """Time between the first and last samples that carry a usable timestamp."""
    timed = [s.timestamp for s in samples if s.has_timestamp]
    if len(timed) < 2:
        return 0
    return max(timed[-1] - timed[0], 0)


def _format_growth_rate(bytes_per_sample: float) -> str:
    magnitude = abs(bytes_per_sample)
    if magnitude >= 1024 * 1024:
        return f"{bytes_per_sample / (1024 * 1024):.2f} MB"
    if magnitude >= 1024:
        return f"{bytes_per_sample / 1024:.2f} KB"
    return f"{bytes_per_sample:.0f} bytes"
