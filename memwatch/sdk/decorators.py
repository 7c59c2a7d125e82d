"""Decorator helpers for quick memory monitoring.

Wraps a function in a :class:`~memwatch.sdk.monitor.MemoryMonitor` so a
long-running job can be watched with a single line of code.
"""

from __future__ import annotations

import functools
import logging
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


def monitor_memory(
    func: Optional[Callable[..., Any]] = None,
    *,
    interval_ms: int = 1000,
    report_format: Optional[str] = "terminal",
    output_path: Optional[str] = None,
    **config_overrides: Any,
) -> Any:
    """Decorator that monitors memory while a function runs.

    Usage::

        @monitor_memory
        def job():
            ...

        @monitor_memory(interval_ms=250, enable_auto_gc=True, auto_gc_threshold=80,
                        report_format="json", output_path="job-memory.json")
        def job():
            ...

    ``report_format=None`` skips the report.
    """
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            from memwatch.sdk.monitor import MemoryMonitor
            monitor = MemoryMonitor(interval_ms=interval_ms, **config_overrides)
            with monitor.monitor():
                result = fn(*args, **kwargs)
            if report_format is not None:
                monitor.report(format=report_format, output_path=output_path)
            return result
        return wrapper

    if func is not None:
        return decorator(func)
    return decorator
