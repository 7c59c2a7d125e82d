"""Point-in-time memory measurement fed into the engine each tick."""

from __future__ import annotations

import math
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional


def _to_float(value: Any) -> float:
    """Coerce *value* to float; anything unparsable becomes NaN."""
    if value is None:
        return math.nan
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def _to_optional_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


# Stand-in for a missing or unparsable timestamp; real clock values are >= 0.
MISSING_TIMESTAMP: int = -1


def is_valid_bytes(value: Optional[float]) -> bool:
    """Return True for a finite, non-negative byte count."""
    return value is not None and math.isfinite(value) and value >= 0


@dataclass(frozen=True)
class Sample:
    """A single memory measurement.

    ``timestamp`` is a monotonic clock value in milliseconds.  Memory
    fields are in bytes.  ``used <= total <= limit`` is expected but not
    enforced; inconsistent values are recorded as-is and the analyzers
    skip whatever they cannot use.
    """

    timestamp: int
    used: float
    total: float
    limit: float
    dom_nodes: Optional[int] = None
    listeners: Optional[int] = None

    @property
    def is_valid(self) -> bool:
        """Whether ``used`` can take part in derived computations."""
        return is_valid_bytes(self.used)

    @property
    def has_timestamp(self) -> bool:
        """Whether ``timestamp`` is a usable clock value."""
        return self.timestamp >= 0

    # -- serialisation helpers ------------------------------------------------

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> Sample:
        raw_ts = data.get("timestamp")
        try:
            timestamp = int(raw_ts)  # type: ignore[arg-type]
        except (TypeError, ValueError, OverflowError):
            timestamp = MISSING_TIMESTAMP
        return cls(
            timestamp=timestamp,
            used=_to_float(data.get("used")),
            total=_to_float(data.get("total")),
            limit=_to_float(data.get("limit")),
            dom_nodes=_to_optional_int(data.get("dom_nodes")),
            listeners=_to_optional_int(data.get("listeners")),
        )
