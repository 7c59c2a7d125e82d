"""Process sampling and the background polling loop.

:class:`ProcessSampler` reads one process's memory through ``psutil`` and
returns a :class:`Sample`; :class:`MemoryPoller` calls it on a daemon
thread and feeds every sample to a :class:`TelemetryEngine`.  The engine
itself never talks to the operating system.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from typing import Callable, Optional

import psutil

from memwatch.telemetry.engine import TelemetryEngine, TickResult
from memwatch.telemetry.sample import Sample

logger = logging.getLogger(__name__)


def monotonic_ms() -> int:
    """Current monotonic clock in integer milliseconds."""
    return int(time.monotonic() * 1000)


# ============================================================================
# Process Sampler
# ============================================================================


class ProcessSampler:
    """Read memory figures of one process.

    ``used`` is the resident set size, ``total`` the virtual size and
    ``limit`` the machine's physical memory, so the usage percentage is the
    share of RAM the process holds.

    Parameters
    ----------
    pid:
        Process to sample.  Defaults to the current process.
    """

    def __init__(self, pid: Optional[int] = None) -> None:
        self._pid = pid if pid is not None else os.getpid()
        self._process = psutil.Process(self._pid)

    @property
    def pid(self) -> int:
        return self._pid

    def sample(self) -> Sample:
        """Take one sample.

        Raises ``psutil.NoSuchProcess`` once the process has exited.
        """
        info = self._process.memory_info()
        limit = psutil.virtual_memory().total
        return Sample(
            timestamp=monotonic_ms(),
            used=float(info.rss),
            total=float(info.vms),
            limit=float(limit),
        )


# ============================================================================
# Memory Poller
# ============================================================================


class MemoryPoller:
    """Drive an engine from a background thread.

    Usage::

        poller = MemoryPoller(engine, ProcessSampler(), on_result=print)
        poller.start()
        ...
        poller.stop()
    """

    def __init__(
        self,
        engine: TelemetryEngine,
        sampler: ProcessSampler,
        interval_ms: Optional[int] = None,
        on_result: Optional[Callable[[TickResult], None]] = None,
    ) -> None:
        self._engine = engine
        self._sampler = sampler
        interval = interval_ms if interval_ms is not None else engine.config.interval_ms
        self._interval_s: float = max(interval, 1) / 1000.0
        self._on_result = on_result

        self._stop_event: threading.Event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._tick_count = 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def tick_count(self) -> int:
        return self._tick_count

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Begin background polling."""
        if self.is_running:
            logger.warning("MemoryPoller is already running; ignoring duplicate start().")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            name="memwatch-poller",
            daemon=True,
        )
        self._thread.start()
        logger.debug(
            "Memory poller started (pid=%d, interval=%.0f ms).",
            self._sampler.pid, self._interval_s * 1000,
        )

    def stop(self) -> None:
        """Stop polling and wait for the thread to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=max(self._interval_s * 5, 2.0))
            self._thread = None
        logger.debug("Memory poller stopped after %d tick(s).", self._tick_count)

    def poll_once(self) -> TickResult:
        """Sample and tick synchronously."""
        result = self._engine.tick(self._sampler.sample())
        self._tick_count += 1
        if self._on_result is not None:
            self._on_result(result)
        return result

    # ------------------------------------------------------------------
    # Background loop
    # ------------------------------------------------------------------

    def _poll_loop(self) -> None:
        while not self._stop_event.is_set():
            loop_start = time.monotonic()
            try:
                self.poll_once()
            except psutil.NoSuchProcess:
                logger.warning("Process %d exited; stopping poller.", self._sampler.pid)
                return
            elapsed = time.monotonic() - loop_start
            sleep_time = self._interval_s - elapsed
            if sleep_time > 0:
                self._stop_event.wait(timeout=sleep_time)
