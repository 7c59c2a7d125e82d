"""Deterministic synthetic sample series.

Used by ``memwatch simulate`` and the test-suite to exercise the engine
without a live process.  Every scenario draws its noise from a
``random.Random(seed)``, so the same arguments always give the same series.

Scenarios
---------
``leak``
    Allocation bursts collected every eight samples while the post-GC
    floor keeps climbing.
``sawtooth``
    The same bursts over a flat floor: a healthy collector.
``spike``
    A flat series with a short allocation spike every fifteen samples.
``flat``
    Constant usage plus noise.
"""

from __future__ import annotations

import logging
import random
from typing import Callable, Dict, List

from memwatch.telemetry.sample import Sample

logger = logging.getLogger(__name__)

_MB: float = 1024.0 * 1024.0

DEFAULT_LIMIT_BYTES: float = 512 * _MB
_GC_CYCLE: int = 8
_SPIKE_EVERY: int = 15
_NOISE_SIGMA: float = 16 * 1024.0


def _leak(i: int, rng: random.Random) -> float:
    return 10 * _MB + 0.3 * _MB * i + 0.6 * _MB * (i % _GC_CYCLE) + rng.gauss(0.0, _NOISE_SIGMA)


def _sawtooth(i: int, rng: random.Random) -> float:
    return 50 * _MB + 2 * _MB * (i % _GC_CYCLE) + rng.gauss(0.0, _NOISE_SIGMA)


def _spike(i: int, rng: random.Random) -> float:
    spike = 20 * _MB if i % _SPIKE_EVERY in (_SPIKE_EVERY - 2, _SPIKE_EVERY - 1) else 0.0
    return 40 * _MB + spike + rng.gauss(0.0, _NOISE_SIGMA)


def _flat(i: int, rng: random.Random) -> float:
    return 40 * _MB + rng.gauss(0.0, _NOISE_SIGMA)


SCENARIOS: Dict[str, Callable[[int, random.Random], float]] = {
    "leak": _leak,
    "sawtooth": _sawtooth,
    "spike": _spike,
    "flat": _flat,
}


def generate_scenario(
    name: str,
    count: int = 60,
    interval_ms: int = 1000,
    seed: int = 0,
    start_ms: int = 0,
    limit: float = DEFAULT_LIMIT_BYTES,
) -> List[Sample]:
    """Generate *count* samples of scenario *name*.

    Raises
    ------
    ValueError
        If *name* is not a known scenario.
    """
    try:
        usage_fn = SCENARIOS[name]
    except KeyError:
        raise ValueError(
            f"Unknown scenario {name!r}; expected one of {', '.join(SCENARIOS)}"
        ) from None

    rng = random.Random(seed)
    samples: List[Sample] = []
    for i in range(max(count, 0)):
        used = max(0.0, usage_fn(i, rng))
        samples.append(Sample(
            timestamp=start_ms + i * interval_ms,
            used=used,
            total=min(limit, used * 1.25),
            limit=limit,
            listeners=100 + 3 * i if name == "leak" else 100,
        ))

    logger.debug("Generated %d %s samples (seed=%d).", len(samples), name, seed)
    return samples
