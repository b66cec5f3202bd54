"""
Axis-aligned bounding boxes of ray cloud endpoints.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

import numpy as np

from .errors import EmptyCloudError


@dataclass(frozen=True, eq=False)
class BoundingBox:
    """3D bounding box defined by min/max corners.

    Attributes:
        min_corner: (3,) minimum X, Y, Z
        max_corner: (3,) maximum X, Y, Z
    """
    min_corner: np.ndarray
    max_corner: np.ndarray

    def __post_init__(self):
        lo = np.asarray(self.min_corner, dtype=np.float64).reshape(3)
        hi = np.asarray(self.max_corner, dtype=np.float64).reshape(3)
        if np.any(lo > hi):
            raise ValueError(f"Bounding box min {lo} exceeds max {hi}")
        object.__setattr__(self, "min_corner", lo)
        object.__setattr__(self, "max_corner", hi)

    @classmethod
    def from_points(cls, points: np.ndarray) -> "BoundingBox":
        """Compute the extents of an Nx3 array of endpoints.

        Raises:
            EmptyCloudError: If there are no points
        """
        points = np.asarray(points, dtype=np.float64)
        if points.size == 0:
            raise EmptyCloudError("Cannot compute a bounding box of an empty cloud")
        if points.ndim != 2 or points.shape[1] != 3:
            raise ValueError(f"points must be (N, 3), got {points.shape}")
        return cls(points.min(axis=0), points.max(axis=0))

    @property
    def extent(self) -> np.ndarray:
        return self.max_corner - self.min_corner


def shared_extent(boxes: Iterable[BoundingBox]) -> np.ndarray:
    """Componentwise maximum extent over several boxes.

    Each cloud keeps its own minimum corner; grids built from the shared
    extent therefore have identical dimensions.
    """
    extents = [box.extent for box in boxes]
    if not extents:
        raise EmptyCloudError("No bounding boxes to combine")
    return np.max(np.vstack(extents), axis=0)
