"""High-level Python SDK for memwatch.

Monitors the current Python process (or any pid) with minimal integration
effort: a background poller samples memory through ``psutil``, the
telemetry engine analyses every sample, and the monitor acts on the
resulting events, running ``gc.collect()`` whenever the engine asks for
remediation.

Example::

    from memwatch.sdk import MemoryMonitor

    monitor = MemoryMonitor(enable_auto_gc=True, auto_gc_threshold=80)

    with monitor.monitor():
        run_service()

    monitor.report()
"""

from __future__ import annotations

import gc
import logging
from collections import deque
from contextlib import contextmanager
from typing import Any, Callable, Deque, Iterator, List, Optional

import psutil

from memwatch.analysis.report_generator import ReportGenerator
from memwatch.telemetry.config import MonitorConfig
from memwatch.telemetry.engine import EventType, MonitorEvent, TelemetryEngine, TickResult
from memwatch.telemetry.poller import MemoryPoller, ProcessSampler
from memwatch.telemetry.snapshot_store import Snapshot, SnapshotComparison

logger = logging.getLogger(__name__)

# Events kept for inspection through :attr:`MemoryMonitor.events`.
_MAX_RECENT_EVENTS: int = 200


class MemoryMonitor:
    """In-process memory monitor.

    Parameters
    ----------
    config : MonitorConfig | None
        Base configuration.  Defaults to :class:`MonitorConfig` defaults.
    pid : int | None
        Process to monitor.  ``None`` means the current process.
    on_event : callable | None
        Called with every :class:`MonitorEvent` except ``update``.
    **overrides
        Individual :class:`MonitorConfig` fields, applied on top of *config*.
    """

    def __init__(
        self,
        config: Optional[MonitorConfig] = None,
        pid: Optional[int] = None,
        on_event: Optional[Callable[[MonitorEvent], None]] = None,
        **overrides: Any,
    ) -> None:
        config = config or MonitorConfig()
        if overrides:
            config = config.replace(**overrides)

        self._engine = TelemetryEngine(config)
        self._sampler = ProcessSampler(pid)
        self._on_event = on_event
        self._poller: Optional[MemoryPoller] = None
        self._events: Deque[MonitorEvent] = deque(maxlen=_MAX_RECENT_EVENTS)
        self._gc_runs: int = 0

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def engine(self) -> TelemetryEngine:
        return self._engine

    @property
    def is_active(self) -> bool:
        return self._poller is not None and self._poller.is_running

    @property
    def events(self) -> List[MonitorEvent]:
        return list(self._events)

    @property
    def gc_runs(self) -> int:
        """How many times this monitor has run ``gc.collect()``."""
        return self._gc_runs

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start background monitoring."""
        if self.is_active:
            logger.warning("MemoryMonitor is already active.")
            return
        self._poller = MemoryPoller(
            self._engine,
            self._sampler,
            on_result=self._handle_result,
        )
        self._poller.start()

    def stop(self) -> Optional[TickResult]:
        """Stop monitoring and return the last analysis pass."""
        if self._poller is None:
            logger.warning("MemoryMonitor is not active.")
            return self._engine.last_result
        self._poller.stop()
        self._poller = None
        return self._engine.last_result

    @contextmanager
    def monitor(self) -> Iterator[MemoryMonitor]:
        """Context manager that monitors the enclosed block.

        A final sample is taken on exit so short blocks still produce an
        analysis pass.  It is skipped with a warning when the process can
        no longer be read.
        """
        self.start()
        try:
            yield self
        finally:
            self.stop()
            try:
                self.sample()
            except (psutil.NoSuchProcess, psutil.AccessDenied) as exc:
                logger.warning("Skipping final sample: %s", exc)

    def sample(self) -> TickResult:
        """Take one sample synchronously and handle its events."""
        result = self._engine.tick(self._sampler.sample())
        self._handle_result(result)
        return result

    def take_snapshot(self, label: Optional[str] = None) -> Snapshot:
        """Capture a manual snapshot of the most recent sample."""
        if self._engine.last_result is None:
            self.sample()
        snapshot = self._engine.take_snapshot(label)
        self._record(MonitorEvent(EventType.snapshot_captured, snapshot.timestamp, snapshot.to_dict()))
        return snapshot

    def snapshots(self) -> List[Snapshot]:
        return self._engine.snapshots()

    def compare(self, id_a: str, id_b: str) -> SnapshotComparison:
        return self._engine.compare_snapshots(id_a, id_b)

    def collect(self) -> int:
        """Manual remediation: run ``gc.collect()`` now, bypassing the cooldown.

        Returns the number of unreachable objects found.
        """
        self._engine.request_gc()
        return self._run_gc()

    def report(
        self,
        format: str = "terminal",
        output_path: Optional[str] = None,
    ) -> Optional[str]:
        """Generate a report of the current engine state.

        Parameters
        ----------
        format : str
            ``"terminal"`` or ``"json"``.
        output_path : str | None
            File path for JSON output.
        """
        if self._engine.last_result is None:
            logger.warning("No samples yet. Call start()/stop() or use monitor() first.")
            return None
        generator = ReportGenerator(
            result=self._engine.last_result,
            snapshots=self._engine.snapshots(),
            config=self._engine.config,
        )
        return generator.generate_report(format=format, output_path=output_path)

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    def _handle_result(self, result: TickResult) -> None:
        for event in result.events:
            if event.type is EventType.update:
                continue
            if event.type is EventType.auto_gc:
                self._run_gc()
            elif event.type is EventType.snapshot_rejected:
                logger.warning("Auto-snapshot rejected: %s", event.data.get("reason"))
            self._record(event)

    def _record(self, event: MonitorEvent) -> None:
        self._events.append(event)
        if self._on_event is not None:
            self._on_event(event)

    def _run_gc(self) -> int:
        collected = gc.collect()
        self._gc_runs += 1
        logger.debug("gc.collect() found %d unreachable object(s).", collected)
        return collected
