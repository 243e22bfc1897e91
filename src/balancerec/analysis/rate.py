from __future__ import annotations

from collections import deque
from typing import Deque


class RateController:
    """
    Estimate the sample delivery rate from arrival timestamps.

    Notes
    -----
    - Timestamps are assumed to be in seconds (monotonic increasing).
    - Only the most recent ``window_size`` stamps are kept, so bursts after
      a Bluetooth hiccup age out quickly.
    """

    def __init__(self, window_size: int = 100, default_hz: float = 0.0) -> None:
        if window_size <= 1:
            raise ValueError("window_size must be > 1")
        self._times: Deque[float] = deque(maxlen=window_size)
        self.default_hz = float(default_hz)

    def add_sample_time(self, t: float) -> None:
        """
        Append a new sample timestamp.

        Parameters
        ----------
        t:
            Sample timestamp in seconds (monotonic increasing).
        """
        self._times.append(float(t))

    @property
    def estimated_hz(self) -> float:
        """Estimate Hz from the current timestamp window only."""
        if len(self._times) < 2:
            return self.default_hz
        span = self._times[-1] - self._times[0]
        if span <= 0:
            return self.default_hz
        return (len(self._times) - 1) / span

    @property
    def sample_period_s(self) -> float | None:
        """Mean spacing between samples, or ``None`` before a rate is known."""
        hz = self.estimated_hz
        if hz <= 0:
            return None
        return 1.0 / hz
