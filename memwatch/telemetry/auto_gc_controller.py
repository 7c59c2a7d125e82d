"""Rate-limited automatic remediation (garbage-collection requests).

The controller is a two-state machine.  In ``idle`` a qualifying tick
(enabled, threshold configured, usage at or above it) emits a trigger and
moves to ``cooldown``; qualifying ticks are ignored until the cooldown
window has elapsed since the last trigger.  The cooldown is a timestamp
comparison, not a timer, so there is nothing to cancel on shutdown.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Dict, Optional

logger = logging.getLogger(__name__)

AUTO_GC_COOLDOWN_MS: int = 10_000


class ControllerState(str, Enum):
    idle = "idle"
    cooldown = "cooldown"


@dataclass(frozen=True)
class AutoGCTrigger:
    """A single remediation request."""

    threshold: Optional[float]
    usage_percentage: Optional[float]
    timestamp: int
    forced: bool = False

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


class AutoGCController:
    """Decide when to request garbage collection.

    Parameters
    ----------
    enabled:
        Master switch for automatic triggers.  :meth:`force` ignores it.
    threshold:
        Usage percentage (0-100) at or above which a tick qualifies.
        ``None`` disables automatic triggers.
    cooldown_ms:
        Minimum time between automatic triggers.  Zero or negative means
        every qualifying tick triggers.
    """

    def __init__(
        self,
        enabled: bool = False,
        threshold: Optional[float] = None,
        cooldown_ms: int = AUTO_GC_COOLDOWN_MS,
    ) -> None:
        self.enabled = enabled
        self.threshold = threshold
        self.cooldown_ms = cooldown_ms
        self._last_triggered: Optional[int] = None

    @property
    def last_triggered(self) -> Optional[int]:
        return self._last_triggered

    def state(self, now: int) -> ControllerState:
        if self.is_on_cooldown(now):
            return ControllerState.cooldown
        return ControllerState.idle

    def is_on_cooldown(self, now: int) -> bool:
        if self._last_triggered is None or self.cooldown_ms <= 0:
            return False
        return now - self._last_triggered < self.cooldown_ms

    def evaluate(self, usage_percentage: Optional[float], now: int) -> Optional[AutoGCTrigger]:
        """Return a trigger when this tick qualifies and the controller is idle."""
        if not self.enabled or self.threshold is None or usage_percentage is None:
            return None
        if usage_percentage < self.threshold:
            return None
        if self.is_on_cooldown(now):
            logger.debug(
                "Auto-GC suppressed: %.1f%% >= %.1f%% but on cooldown.",
                usage_percentage, self.threshold,
            )
            return None

        self._last_triggered = now
        logger.info(
            "Auto-GC triggered at %.1f%% usage (threshold %.1f%%).",
            usage_percentage, self.threshold,
        )
        return AutoGCTrigger(
            threshold=self.threshold,
            usage_percentage=usage_percentage,
            timestamp=now,
        )

    def force(self, usage_percentage: Optional[float], now: int) -> AutoGCTrigger:
        """Trigger regardless of cooldown; restarts the cooldown window."""
        self._last_triggered = now
        logger.info("Manual GC requested.")
        return AutoGCTrigger(
            threshold=self.threshold,
            usage_percentage=usage_percentage,
            timestamp=now,
            forced=True,
        )

    def reset(self) -> None:
        self._last_triggered = None
