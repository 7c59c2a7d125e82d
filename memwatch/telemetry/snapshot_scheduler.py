"""Deadline-based schedule for automatic snapshots.

The scheduler never owns a timer.  Whoever drives the engine polls it
with the current clock value; :meth:`SnapshotScheduler.poll` answers
whether a capture is due and advances the deadline.  Reconfiguring
replaces the single deadline, so there is never more than one schedule.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

logger = logging.getLogger(__name__)

SNAPSHOT_SCHEDULE_INTERVALS: Dict[str, int] = {
    "off": 0,
    "1m": 60_000,
    "5m": 5 * 60_000,
    "10m": 10 * 60_000,
    "30m": 30 * 60_000,
    "1h": 60 * 60_000,
    "6h": 6 * 60 * 60_000,
    "24h": 24 * 60 * 60_000,
}


def schedule_interval_ms(name: str) -> int:
    try:
        return SNAPSHOT_SCHEDULE_INTERVALS[name]
    except KeyError:
        raise ValueError(
            f"Unknown snapshot schedule {name!r}; expected one of "
            f"{', '.join(SNAPSHOT_SCHEDULE_INTERVALS)}"
        ) from None


class SnapshotScheduler:
    """Periodic auto-capture deadline.

    The first capture is due immediately after a schedule is enabled;
    later ones every interval.  A poll that arrives late fires once and
    re-anchors at the poll time instead of firing a burst of catch-up
    captures.
    """

    def __init__(self) -> None:
        self._interval_name = "off"
        self._interval_ms = 0
        self._next_due: Optional[int] = None

    @property
    def interval(self) -> str:
        return self._interval_name

    @property
    def is_active(self) -> bool:
        return self._next_due is not None

    @property
    def next_due(self) -> Optional[int]:
        return self._next_due

    def configure(self, interval: str, now: int) -> None:
        """Cancel any current schedule and start *interval* at *now*."""
        interval_ms = schedule_interval_ms(interval)
        if interval == self._interval_name and self.is_active == (interval_ms > 0):
            return

        self._interval_name = interval
        self._interval_ms = interval_ms
        self._next_due = now if interval_ms > 0 else None
        if interval_ms > 0:
            logger.info("Auto-snapshot schedule set to every %s.", interval)
        else:
            logger.info("Auto-snapshot schedule disabled.")

    def cancel(self) -> None:
        self._interval_name = "off"
        self._interval_ms = 0
        self._next_due = None

    def poll(self, now: int) -> bool:
        """Return True when a capture is due at *now* and schedule the next."""
        if self._next_due is None or now < self._next_due:
            return False
        self._next_due = now + self._interval_ms
        return True
