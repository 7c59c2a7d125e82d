"""Tests for memwatch.telemetry.snapshot_store."""

import pytest

from memwatch.telemetry.errors import (
    MemwatchError,
    SnapshotCapacityError,
    SnapshotNotFoundError,
)
from memwatch.telemetry.sample import Sample
from memwatch.telemetry.severity_classifier import Severity
from memwatch.telemetry.snapshot_store import (
    AnalysisContext,
    Snapshot,
    SnapshotStore,
    compare_snapshots,
    compute_delta,
)
from memwatch.telemetry.trend_analyzer import Trend


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_sample(ts: int = 0, used: float = 1_000_000.0, **kwargs) -> Sample:
    return Sample(timestamp=ts, used=used, total=used * 2, limit=used * 4, **kwargs)


def _fill(store: SnapshotStore, count: int) -> list[Snapshot]:
    return [store.capture(None, False, _make_sample(ts=i * 1000)) for i in range(count)]


# ---------------------------------------------------------------------------
# Capacity
# ---------------------------------------------------------------------------

class TestCapacity:
    def test_limits_clamped(self):
        assert SnapshotStore(max_snapshots=100).max_snapshots == 50
        assert SnapshotStore(max_snapshots=0).max_snapshots == 1

    def test_evicts_oldest_when_auto_delete(self):
        store = SnapshotStore(max_snapshots=3, auto_delete_oldest=True)
        _fill(store, 4)
        assert len(store) == 3
        assert [s.id for s in store.list()] == ["snapshot-2", "snapshot-3", "snapshot-4"]

    def test_rejects_when_auto_delete_off(self):
        store = SnapshotStore(max_snapshots=3, auto_delete_oldest=False)
        _fill(store, 3)
        with pytest.raises(SnapshotCapacityError) as exc_info:
            store.capture(None, False, _make_sample(ts=9000))
        assert exc_info.value.max_snapshots == 3
        assert isinstance(exc_info.value, MemwatchError)
        assert [s.id for s in store.list()] == ["snapshot-1", "snapshot-2", "snapshot-3"]

    def test_eviction_uses_timestamp_order(self):
        store = SnapshotStore(max_snapshots=2)
        store.capture(None, False, _make_sample(), timestamp=200)
        store.capture(None, False, _make_sample(), timestamp=100)
        store.capture(None, False, _make_sample(), timestamp=300)
        assert [s.id for s in store.list()] == ["snapshot-1", "snapshot-3"]

    def test_shrinking_trims_oldest(self):
        store = SnapshotStore(max_snapshots=5)
        _fill(store, 5)
        store.max_snapshots = 2
        assert [s.id for s in store.list()] == ["snapshot-4", "snapshot-5"]

    def test_is_full(self):
        store = SnapshotStore(max_snapshots=1)
        assert not store.is_full
        _fill(store, 1)
        assert store.is_full


# ---------------------------------------------------------------------------
# Capture
# ---------------------------------------------------------------------------

class TestCapture:
    def test_default_labels(self):
        store = SnapshotStore()
        manual = store.capture(None, False, _make_sample())
        auto = store.capture(None, True, _make_sample())
        assert manual.label == "Snapshot 1"
        assert auto.label == "Auto 2"
        assert auto.is_auto

    def test_custom_label(self):
        snap = SnapshotStore().capture("before deploy", False, _make_sample())
        assert snap.label == "before deploy"

    def test_counter_survives_deletion(self):
        store = SnapshotStore()
        first = store.capture(None, False, _make_sample())
        store.delete(first.id)
        second = store.capture(None, False, _make_sample())
        assert second.id == "snapshot-2"
        assert second.label == "Snapshot 2"

    def test_copies_sample_and_context(self):
        context = AnalysisContext(
            trend=Trend.increasing, leak_probability=75,
            severity=Severity.warning, usage_percentage=72.5,
        )
        sample = _make_sample(ts=5000, used=123.0, dom_nodes=40, listeners=7)
        snap = SnapshotStore().capture(None, False, sample, context)
        assert snap.timestamp == 5000
        assert snap.heap_used == 123.0
        assert snap.heap_total == 246.0
        assert snap.heap_limit == 492.0
        assert snap.dom_nodes == 40
        assert snap.event_listeners == 7
        assert snap.analysis_context.leak_probability == 75

    def test_capture_without_sample(self):
        snap = SnapshotStore().capture(None, False, None)
        assert snap.heap_used == 0.0
        assert snap.timestamp == 0

    def test_snapshot_roundtrip(self):
        snap = SnapshotStore().capture(None, True, _make_sample(dom_nodes=3))
        assert Snapshot.from_dict(snap.to_dict()) == snap


# ---------------------------------------------------------------------------
# Lookup and deletion
# ---------------------------------------------------------------------------

class TestLookup:
    def test_get_missing_raises(self):
        store = SnapshotStore()
        with pytest.raises(SnapshotNotFoundError) as exc_info:
            store.get("snapshot-99")
        assert isinstance(exc_info.value, KeyError)
        assert str(exc_info.value) == "Snapshot not found: snapshot-99"

    def test_delete(self):
        store = SnapshotStore()
        snaps = _fill(store, 2)
        assert store.delete(snaps[0].id)
        assert not store.delete(snaps[0].id)
        assert len(store) == 1

    def test_clear(self):
        store = SnapshotStore()
        _fill(store, 3)
        store.clear()
        assert store.list() == []


# ---------------------------------------------------------------------------
# Comparison
# ---------------------------------------------------------------------------

class TestComparison:
    def test_heap_used_delta(self):
        store = SnapshotStore()
        a = store.capture(None, False, _make_sample(ts=0, used=1_000_000.0))
        b = store.capture(None, False, _make_sample(ts=60_000, used=1_500_000.0))
        comparison = store.compare(a.id, b.id)
        delta = comparison.get("heap_used")
        assert delta.diff == pytest.approx(500_000.0)
        assert delta.percentage == pytest.approx(50.0)
        assert delta.direction == "up"
        assert comparison.elapsed_ms == 60_000

    def test_down_and_same(self):
        assert compute_delta("x", 10.0, 5.0).direction == "down"
        assert compute_delta("x", 10.0, 10.0).direction == "same"

    def test_zero_baseline_has_no_percentage(self):
        delta = compute_delta("heap_used", 0.0, 100.0)
        assert delta.diff == 100.0
        assert delta.percentage is None
        assert delta.is_available

    def test_missing_field_unavailable(self):
        store = SnapshotStore()
        a = store.capture(None, False, _make_sample())
        b = store.capture(None, False, _make_sample(dom_nodes=10))
        delta = store.compare(a.id, b.id).get("dom_nodes")
        assert not delta.is_available
        assert delta.diff is None
        assert delta.percentage is None
        assert delta.direction == "n/a"
        assert delta.value_b == 10.0

    def test_compare_missing_id(self):
        store = SnapshotStore()
        a = store.capture(None, False, _make_sample())
        with pytest.raises(SnapshotNotFoundError):
            store.compare(a.id, "snapshot-42")

    def test_compare_snapshots_function(self):
        store = SnapshotStore()
        a, b = _fill(store, 2)
        comparison = compare_snapshots(a, b)
        assert comparison.get("heap_used").direction == "same"
        assert comparison.to_dict()["snapshot_a"] == a.id

    def test_get_unknown_field(self):
        store = SnapshotStore()
        a, b = _fill(store, 2)
        with pytest.raises(KeyError):
            store.compare(a.id, b.id).get("nope")
