"""Fixed-capacity history of memory samples."""

from __future__ import annotations

import logging
from collections import deque
from typing import Deque, List, Optional

from memwatch.telemetry.sample import Sample

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_SIZE: int = 50


class HistoryBuffer:
    """Insertion-ordered ring of samples that drops the oldest on overflow.

    Analyzers only ever see copies returned by :meth:`all`; the buffer is
    the sole owner of its storage.
    """

    def __init__(self, capacity: int = DEFAULT_HISTORY_SIZE) -> None:
        self._capacity = max(int(capacity), 1)
        self._samples: Deque[Sample] = deque(maxlen=self._capacity)

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._samples)

    def push(self, sample: Sample) -> None:
        """Append *sample*, evicting the oldest entry when full."""
        self._samples.append(sample)

    def all(self) -> List[Sample]:
        """Return the samples ordered oldest to newest."""
        return list(self._samples)

    def latest(self) -> Optional[Sample]:
        return self._samples[-1] if self._samples else None

    def earliest(self) -> Optional[Sample]:
        return self._samples[0] if self._samples else None

    def clear(self) -> None:
        self._samples.clear()

    def resize(self, capacity: int) -> None:
        """Change the capacity, keeping the newest samples."""
        capacity = max(int(capacity), 1)
        if capacity == self._capacity:
            return
        self._samples = deque(self._samples, maxlen=capacity)
        logger.debug("History buffer resized from %d to %d.", self._capacity, capacity)
        self._capacity = capacity
