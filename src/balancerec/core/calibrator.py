"""Tare and centre-of-pressure offsets applied to raw board readings."""

from __future__ import annotations

import logging

from .models import AdjustedSample, CalibrationOffset, RawSample

logger = logging.getLogger(__name__)


class Calibrator:
    """
    Holds the tare weight and CoP origin for one board connection.

    Offsets start at zero. ``tare`` captures both the weight and the origin,
    ``reset_origin`` only moves the origin. The controller is the only caller
    of the mutating methods, always from its consumer thread.
    """

    def __init__(self) -> None:
        self._offset = CalibrationOffset()

    @property
    def offset(self) -> CalibrationOffset:
        return self._offset

    @property
    def is_tared(self) -> bool:
        return self._offset.tared

    def tare(self, sample: RawSample) -> CalibrationOffset:
        """Capture ``sample`` as the new baseline (overwrites, never accumulates)."""
        self._offset = CalibrationOffset(
            tare_weight_kg=sample.total_kg,
            origin_x=sample.cop_x,
            origin_y=sample.cop_y,
            tared=True,
        )
        logger.debug("Tare captured: %s", self._offset)
        return self._offset

    def reset_origin(self, sample: RawSample) -> CalibrationOffset:
        """Move the CoP origin to ``sample`` and keep the tare weight."""
        current = self._offset
        self._offset = CalibrationOffset(
            tare_weight_kg=current.tare_weight_kg,
            origin_x=sample.cop_x,
            origin_y=sample.cop_y,
            tared=current.tared,
        )
        return self._offset

    def adjust(self, sample: RawSample) -> AdjustedSample:
        offset = self._offset
        # Untared boards report the raw total rather than failing.
        weight = sample.total_kg - offset.tare_weight_kg if offset.tared else sample.total_kg
        return AdjustedSample(
            weight_kg=weight,
            x=sample.cop_x - offset.origin_x,
            y=sample.cop_y - offset.origin_y,
        )
