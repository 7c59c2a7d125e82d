"""Map the current usage ratio to a coarse severity level."""

from __future__ import annotations

import math
from enum import Enum
from typing import Optional

from memwatch.telemetry.sample import is_valid_bytes

DEFAULT_WARNING_THRESHOLD: float = 70.0
DEFAULT_CRITICAL_THRESHOLD: float = 90.0


class Severity(str, Enum):
    """Health of the current sample relative to configured thresholds."""

    normal = "normal"
    warning = "warning"
    critical = "critical"


def usage_percentage(used: float, limit: float) -> Optional[float]:
    """Return ``used / limit * 100``, or None when the ratio is undefined."""
    if not is_valid_bytes(used) or not is_valid_bytes(limit) or limit == 0:
        return None
    return used / limit * 100.0


def classify_severity(
    used: float,
    limit: float,
    warning_threshold: float = DEFAULT_WARNING_THRESHOLD,
    critical_threshold: float = DEFAULT_CRITICAL_THRESHOLD,
) -> Severity:
    """Classify *used* against *limit*.

    An unknown or zero limit is ``normal``.  The critical threshold is
    checked first, so inverted thresholds still give a deterministic answer.
    """
    pct = usage_percentage(used, limit)
    if pct is None:
        return Severity.normal
    if not math.isnan(critical_threshold) and pct >= critical_threshold:
        return Severity.critical
    if not math.isnan(warning_threshold) and pct >= warning_threshold:
        return Severity.warning
    return Severity.normal


class SeverityClassifier:
    """Thresholds bundled with :func:`classify_severity`."""

    def __init__(
        self,
        warning_threshold: float = DEFAULT_WARNING_THRESHOLD,
        critical_threshold: float = DEFAULT_CRITICAL_THRESHOLD,
    ) -> None:
        self.warning_threshold = warning_threshold
        self.critical_threshold = critical_threshold

    def classify(self, used: float, limit: float) -> Severity:
        return classify_severity(
            used, limit, self.warning_threshold, self.critical_threshold,
        )

    def threshold_for(self, severity: Severity) -> Optional[float]:
        """The configured threshold that *severity* corresponds to."""
        if severity is Severity.critical:
            return self.critical_threshold
        if severity is Severity.warning:
            return self.warning_threshold
        return None
