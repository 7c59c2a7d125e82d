"""Tests for memwatch.telemetry.poller."""

import logging
import os
import time

import psutil
import pytest

from memwatch.telemetry.engine import TelemetryEngine
from memwatch.telemetry.poller import MemoryPoller, ProcessSampler, monotonic_ms
from memwatch.telemetry.sample import Sample


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class _FakeSampler:
    """Stands in for ProcessSampler with a scripted series."""

    def __init__(self, values=None, fail_after=None):
        self.pid = 4242
        self._values = list(values or [1_000_000.0])
        self._fail_after = fail_after
        self.calls = 0

    def sample(self) -> Sample:
        if self._fail_after is not None and self.calls >= self._fail_after:
            raise psutil.NoSuchProcess(self.pid)
        used = self._values[min(self.calls, len(self._values) - 1)]
        self.calls += 1
        return Sample(timestamp=self.calls * 1000, used=used, total=used, limit=used * 4)


def _wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


# ---------------------------------------------------------------------------
# ProcessSampler
# ---------------------------------------------------------------------------

class TestProcessSampler:
    def test_samples_current_process(self):
        sampler = ProcessSampler()
        assert sampler.pid == os.getpid()
        sample = sampler.sample()
        assert sample.is_valid
        assert sample.used > 0
        assert sample.limit >= sample.used

    def test_timestamps_monotonic(self):
        sampler = ProcessSampler()
        first = sampler.sample().timestamp
        second = sampler.sample().timestamp
        assert second >= first
        assert monotonic_ms() >= second

    def test_missing_process(self):
        with pytest.raises(psutil.NoSuchProcess):
            ProcessSampler(pid=2 ** 22 + 12345)


# ---------------------------------------------------------------------------
# MemoryPoller
# ---------------------------------------------------------------------------

class TestMemoryPoller:
    def test_poll_once(self):
        engine = TelemetryEngine()
        seen = []
        poller = MemoryPoller(engine, _FakeSampler(), interval_ms=10, on_result=seen.append)
        result = poller.poll_once()
        assert poller.tick_count == 1
        assert seen == [result]
        assert len(engine.history) == 1

    def test_background_loop(self):
        engine = TelemetryEngine()
        poller = MemoryPoller(engine, _FakeSampler(), interval_ms=10)
        poller.start()
        try:
            assert poller.is_running
            assert _wait_for(lambda: poller.tick_count >= 3)
        finally:
            poller.stop()
        assert not poller.is_running
        assert len(engine.history) >= 3

    def test_duplicate_start_warns(self, caplog):
        poller = MemoryPoller(TelemetryEngine(), _FakeSampler(), interval_ms=10)
        poller.start()
        try:
            with caplog.at_level(logging.WARNING):
                poller.start()
            assert "already running" in caplog.text
        finally:
            poller.stop()

    def test_stops_when_process_exits(self):
        sampler = _FakeSampler(fail_after=2)
        poller = MemoryPoller(TelemetryEngine(), sampler, interval_ms=10)
        poller.start()
        assert _wait_for(lambda: not poller.is_running)
        poller.stop()
        assert poller.tick_count == 2

    def test_interval_defaults_to_config(self):
        engine = TelemetryEngine()
        poller = MemoryPoller(engine, _FakeSampler())
        assert poller._interval_s == pytest.approx(engine.config.interval_ms / 1000.0)
