"""Tests for memwatch.telemetry.leak_scorer."""

import pytest

from memwatch.telemetry.baseline_tracker import BaselineTracker
from memwatch.telemetry.gc_event_detector import GCEventDetector
from memwatch.telemetry.leak_scorer import (
    DEFAULT_SENSITIVITY,
    MIN_LEAK_DETECTION_SAMPLES,
    SENSITIVITY_PROFILES,
    LeakAnalysis,
    LeakFactors,
    LeakScorer,
    LeakStatus,
    get_profile,
    observation_window_ms,
)
from memwatch.telemetry.sample import MISSING_TIMESTAMP, Sample
from memwatch.telemetry.trend_analyzer import Trend, TrendAnalyzer


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_samples(values: list[float], timestamps: list[int]) -> list[Sample]:
    return [
        Sample(timestamp=ts, used=v, total=v * 2, limit=v * 8)
        for ts, v in zip(timestamps, values)
    ]


def _score(samples: list[Sample], sensitivity: str = DEFAULT_SENSITIVITY) -> LeakAnalysis:
    gc_analysis = GCEventDetector().detect(samples)
    return LeakScorer(get_profile(sensitivity)).score(
        samples,
        TrendAnalyzer().analyze(samples),
        gc_analysis,
        BaselineTracker().track(samples, gc_analysis),
    )


def _leaking_series() -> list[Sample]:
    """Twenty samples over 40 s: steady growth, two weak collections, rising floor."""
    count = 20
    values = [2_000_000 + 61_440 * i + 80_000 * (i % 7) for i in range(count)]
    timestamps = [i * 40_000 // (count - 1) for i in range(count)]
    return _make_samples(values, timestamps)


def _evenly_spaced(values: list[float], duration_ms: int) -> list[Sample]:
    step = duration_ms // (len(values) - 1)
    return _make_samples(values, [i * step for i in range(len(values))])


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------

class TestProfiles:
    def test_profiles_defined(self):
        assert set(SENSITIVITY_PROFILES) == {"low", "medium", "high"}

    def test_medium_values(self):
        profile = get_profile("medium")
        assert profile.min_slope_bytes_per_sample == 50_000
        assert profile.min_r_squared == 0.7
        assert profile.min_gc_cycles == 2
        assert profile.min_observation_ms == 30_000
        assert profile.probability_multiplier == 1.0

    def test_sensitivity_ordering(self):
        low, high = get_profile("low"), get_profile("high")
        assert low.min_slope_bytes_per_sample > high.min_slope_bytes_per_sample
        assert low.min_observation_s > high.min_observation_s
        assert low.probability_multiplier < high.probability_multiplier

    def test_unknown_profile(self):
        with pytest.raises(ValueError, match="Unknown leak sensitivity"):
            get_profile("paranoid")


# ---------------------------------------------------------------------------
# LeakFactors
# ---------------------------------------------------------------------------

class TestLeakFactors:
    def test_total(self):
        factors = LeakFactors(slope=10, r_squared=5, gc=25, observation=7.5, baseline=10)
        assert factors.total == pytest.approx(57.5)

    def test_dominant(self):
        assert LeakFactors(slope=30, gc=25).dominant() == "slope"
        assert LeakFactors(slope=10, gc=25).dominant() == "gc"
        assert LeakFactors().dominant() is None


# ---------------------------------------------------------------------------
# Gates
# ---------------------------------------------------------------------------

class TestGates:
    def test_too_few_samples(self):
        values = [1_000_000 + 500_000 * i for i in range(MIN_LEAK_DETECTION_SAMPLES - 1)]
        analysis = _score(_evenly_spaced(values, 120_000))
        assert analysis.status is LeakStatus.insufficient_samples
        assert analysis.probability == 0
        assert not analysis.is_leaking
        assert not analysis.has_sufficient_data

    def test_short_observation(self):
        values = [1_000_000 + 500_000 * i for i in range(10)]
        analysis = _score(_evenly_spaced(values, 9_000))
        assert analysis.status is LeakStatus.insufficient_observation
        assert analysis.probability == 0
        assert analysis.observation_ms == 9_000

    def test_observation_gate_depends_on_profile(self):
        samples = _leaking_series()
        assert _score(samples, "low").status is LeakStatus.insufficient_observation
        assert _score(samples, "medium").status is LeakStatus.analyzed

    def test_missing_timestamp_does_not_extend_observation(self):
        untimed = Sample.from_dict({"used": 1_000_000, "total": 2_000_000, "limit": 8_000_000})
        assert not untimed.has_timestamp
        values = [1_000_000 + 500_000 * i for i in range(1, 12)]
        timed = _make_samples(values, [100_000 + 550 * i for i in range(11)])
        analysis = _score([untimed] + timed)
        assert analysis.status is LeakStatus.insufficient_observation
        assert analysis.observation_ms == 5_500
        assert analysis.probability == 0
        assert not analysis.is_leaking

    def test_observation_window_skips_untimed_samples(self):
        samples = _make_samples(
            [1.0, 2.0, 3.0, 4.0],
            [MISSING_TIMESTAMP, 1_000, 4_000, MISSING_TIMESTAMP],
        )
        assert observation_window_ms(samples) == 3_000
        assert observation_window_ms(samples[:2]) == 0
        assert observation_window_ms([]) == 0

    def test_invalid_samples_do_not_count(self):
        values = [1_000_000.0 + 500_000 * i for i in range(12)]
        values[3] = float("nan")
        values[5] = -1.0
        values[7] = float("nan")
        analysis = _score(_evenly_spaced(values, 60_000))
        assert analysis.status is LeakStatus.insufficient_samples


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

class TestScoring:
    def test_leaking_series_medium(self):
        analysis = _score(_leaking_series(), "medium")
        assert analysis.status is LeakStatus.analyzed
        assert analysis.gc_event_count == 2
        assert analysis.trend is Trend.increasing
        assert analysis.probability >= 70
        assert analysis.is_leaking
        assert analysis.factors.gc == 25.0
        assert analysis.factors.baseline == 10.0

    def test_leaking_series_low_is_gated(self):
        analysis = _score(_leaking_series(), "low")
        assert analysis.probability == 0
        assert not analysis.is_leaking

    def test_leaking_series_high_is_capped(self):
        analysis = _score(_leaking_series(), "high")
        assert analysis.probability == 100

    def test_flat_series_is_capped(self):
        analysis = _score(_evenly_spaced([1_000_000.0] * 20, 57_000))
        assert analysis.status is LeakStatus.analyzed
        assert analysis.probability <= 20
        assert not analysis.is_leaking

    def test_decreasing_series_capped_at_ten(self):
        values = [10_000_000 - 200_000 * i for i in range(20)]
        analysis = _score(_evenly_spaced(values, 57_000))
        assert analysis.trend is Trend.decreasing
        assert analysis.probability <= 10

    def test_healthy_sawtooth(self):
        values = [5_000_000 + 1_000_000 * (i % 5) for i in range(30)]
        analysis = _score(_evenly_spaced(values, 58_000))
        assert analysis.gc_event_count == 5
        assert analysis.factors.gc == 0.0
        assert not analysis.is_leaking
        assert analysis.probability < 20

    def test_stable_trend_capped_at_thirty(self):
        # Steady growth that is tiny relative to a large heap.
        values = [1e9 + 100_000 * i for i in range(21)]
        analysis = _score(_evenly_spaced(values, 60_000))
        assert analysis.trend is Trend.stable
        assert analysis.factors.total == pytest.approx(70.0)
        assert analysis.probability == 30
        assert not analysis.is_leaking

    def test_poor_recovery_over_flat_floor(self):
        values = [8_000_000 + 1_000_000 * (i % 3) for i in range(30)]
        analysis = _score(_evenly_spaced(values, 58_000))
        assert analysis.gc_event_count == 9
        assert analysis.factors.gc == 15.0
        assert analysis.factors.baseline == 0.0

    def test_ineffective_gc_over_flat_floor(self):
        values = [10_000_000 + 1_500_000 * (i % 2) for i in range(30)]
        analysis = _score(_evenly_spaced(values, 58_000))
        assert analysis.gc_event_count == 14
        assert analysis.factors.gc == 25.0

    def test_probability_bounds(self):
        for sensitivity in SENSITIVITY_PROFILES:
            analysis = _score(_leaking_series(), sensitivity)
            assert 0 <= analysis.probability <= 100
            assert isinstance(analysis.probability, int)

    def test_recommendation_for_leak(self):
        analysis = _score(_leaking_series(), "medium")
        assert analysis.recommendation is not None
        assert analysis.recommendation.startswith("Critical")
        assert "GC appears ineffective" in analysis.recommendation

    def test_no_recommendation_below_floor(self):
        analysis = _score(_evenly_spaced([1_000_000.0] * 20, 57_000))
        assert analysis.recommendation is None


# ---------------------------------------------------------------------------
# LeakAnalysis
# ---------------------------------------------------------------------------

class TestLeakAnalysis:
    def test_to_dict_from_dict_roundtrip(self):
        analysis = _score(_leaking_series(), "medium")
        restored = LeakAnalysis.from_dict(analysis.to_dict())
        assert restored.probability == analysis.probability
        assert restored.is_leaking == analysis.is_leaking
        assert restored.status is analysis.status
        assert restored.factors.gc == analysis.factors.gc

    def test_empty(self):
        empty = LeakAnalysis.empty(status=LeakStatus.disabled)
        assert empty.probability == 0
        assert empty.status is LeakStatus.disabled
        assert empty.trend is Trend.stable
