"""
Sub-pixel localization of circular correlation peaks.

The correlation surfaces produced by the DFT are periodic, so neighbours are
taken modulo the sequence length and peaks in the upper half of the index
range are read as negative shifts.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .errors import InvalidDimensionError
from ..utils.logging import setup_logger

logger = setup_logger(__name__)


@dataclass(frozen=True)
class PeakEstimate:
    """Refined location of a peak on a circular axis.

    Attributes:
        index: Integer index of the discrete maximum
        offset: Quadratic sub-pixel correction applied to index
        position: index + offset, minus length when beyond length / 2
        length: Length of the circular axis
        degenerate: True when the parabola fit was unusable and offset fell back to 0
    """
    index: int
    offset: float
    position: float
    length: int
    degenerate: bool = False


def parabolic_offset(y0: float, y1: float, y2: float) -> Tuple[float, bool]:
    """Vertex of the parabola through (-1, y0), (0, y1), (1, y2).

    Returns:
        (offset, degenerate). A zero denominator or a non-finite result gives
        offset 0 with degenerate set.
    """
    denom = y0 + y2 - 2.0 * y1
    if denom == 0 or not np.isfinite(denom):
        return 0.0, True
    offset = 0.5 * (y0 - y2) / denom
    if not np.isfinite(offset):
        return 0.0, True
    return float(offset), False


class SubpixelPeakFinder:
    """Quadratic peak refinement with FFT wraparound resolution."""

    @staticmethod
    def refine(index: int, y0: float, y1: float, y2: float, length: int) -> PeakEstimate:
        """Refine an integer peak given its samples at index-1, index, index+1 (mod length)."""
        length = int(length)
        if length <= 0:
            raise InvalidDimensionError(f"Peak axis length must be positive, got {length}")
        index = int(index) % length
        offset, degenerate = parabolic_offset(float(y0), float(y1), float(y2))
        if degenerate:
            logger.warning(
                "Degenerate correlation around index %d (samples %.6g, %.6g, %.6g); "
                "using the integer peak.",
                index, y0, y1, y2,
            )
        position = index + offset
        # the DFT wraps around, so the upper half encodes negative shifts
        if position > length / 2:
            position -= length
        return PeakEstimate(index=index, offset=offset, position=float(position),
                            length=length, degenerate=degenerate)

    @classmethod
    def find(cls, values: np.ndarray) -> PeakEstimate:
        """Locate and refine the maximum real value of a circular 1D sequence."""
        real = np.real(np.asarray(values)).reshape(-1)
        n = len(real)
        if n == 0:
            raise InvalidDimensionError("Cannot locate a peak in an empty sequence")
        p = int(np.argmax(real))
        return cls.refine(p, real[(p - 1) % n], real[p], real[(p + 1) % n], n)

    @classmethod
    def find_along_axes(cls, field: np.ndarray, index: Tuple[int, ...]) -> Tuple[PeakEstimate, ...]:
        """Refine a known N-D peak independently along each axis."""
        real = np.real(field)
        estimates = []
        for axis, dim in enumerate(real.shape):
            if dim == 1:
                # a single layer carries no shift information
                estimates.append(PeakEstimate(index=0, offset=0.0, position=0.0, length=1))
                continue
            back = list(index)
            fwd = list(index)
            back[axis] = (index[axis] - 1) % dim
            fwd[axis] = (index[axis] + 1) % dim
            estimates.append(cls.refine(
                index[axis], real[tuple(back)], real[tuple(index)], real[tuple(fwd)], dim
            ))
        return tuple(estimates)

    @staticmethod
    def to_angle(estimate: PeakEstimate) -> float:
        """Angle in radians for a peak on an axis spanning a full turn."""
        return estimate.position * 2.0 * np.pi / estimate.length

    @staticmethod
    def to_translation(estimate: PeakEstimate, voxel_width: float) -> float:
        """World-space shift aligning source onto target along one grid axis.

        The correlation of source against target peaks at minus the shift, so
        the position is negated.
        """
        return -estimate.position * voxel_width
