"""Opt-in timing hooks, enabled with BALANCEREC_DEBUG=1."""

from __future__ import annotations

import logging
import os
import time
from contextlib import contextmanager
from typing import Callable, Iterator

DEBUG_BALANCEREC = os.getenv("BALANCEREC_DEBUG", "").lower() in {"1", "true", "yes", "on"}

logger = logging.getLogger(__name__)


def debug_enabled() -> bool:
    """Return True when lightweight instrumentation should run."""
    return DEBUG_BALANCEREC


@contextmanager
def time_block(label: str, *, emitter: Callable[[str], None] | None = None) -> Iterator[None]:
    """Log how long the block took, in ms, when debugging is on."""
    if not DEBUG_BALANCEREC:
        yield
        return

    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        target = emitter or logger.debug
        target(f"[DEBUG] {label} took {elapsed_ms:.3f} ms")


class LatencyTracker:
    """Running average of a repeated operation, logged every ``every`` calls."""

    def __init__(self, label: str, every: int = 1000) -> None:
        self.label = label
        self.every = max(1, int(every))
        self._total_s = 0.0
        self._count = 0

    def add(self, seconds: float) -> None:
        self._total_s += seconds
        self._count += 1
        if self._count % self.every == 0:
            avg_us = (self._total_s / self._count) * 1e6
            logger.info("%s avg %.1f µs over %d calls", self.label, avg_us, self._count)

    @property
    def count(self) -> int:
        return self._count
