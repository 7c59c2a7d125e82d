"""Exception types raised by the telemetry engine."""

from __future__ import annotations


class MemwatchError(Exception):
    """Base class for all memwatch errors."""


class SnapshotCapacityError(MemwatchError):
    """Raised when a capture is refused because the snapshot store is full.

    Only raised when auto-eviction is disabled; with eviction enabled the
    oldest snapshot makes room instead.
    """

    def __init__(self, max_snapshots: int) -> None:
        super().__init__(
            f"Snapshot store is full ({max_snapshots} snapshots) and "
            f"auto-delete of the oldest snapshot is disabled."
        )
        self.max_snapshots = max_snapshots


class SnapshotNotFoundError(MemwatchError, KeyError):
    """Raised when a snapshot id is not present in the store."""

    def __init__(self, snapshot_id: str) -> None:
        super().__init__(snapshot_id)
        self.snapshot_id = snapshot_id

    def __str__(self) -> str:
        return f"Snapshot not found: {self.snapshot_id}"
