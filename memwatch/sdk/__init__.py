"""Python SDK: in-process memory monitor and decorator."""

from memwatch.sdk.decorators import monitor_memory
from memwatch.sdk.monitor import MemoryMonitor

__all__ = ["monitor_memory", "MemoryMonitor"]
