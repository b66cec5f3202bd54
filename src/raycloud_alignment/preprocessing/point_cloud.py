"""
Ray cloud container.

A ray cloud stores, per ray, the sensor position the ray started from, the
endpoint it hit, a timestamp and an RGBA colour. Registration only reads the
endpoints; the other attributes travel with the rays through transforms,
splitting and file round trips.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional, TYPE_CHECKING

import numpy as np

from ..acceleration.jit_kernels import transform_points

if TYPE_CHECKING:
    from ..alignment.bounding_box import BoundingBox


def _as_points(values, n: Optional[int] = None) -> np.ndarray:
    arr = np.asarray(values, dtype=np.float64)
    if arr.size == 0:
        return np.empty((0, 3), dtype=np.float64)
    arr = arr.reshape(-1, 3)
    if n is not None and len(arr) != n:
        raise ValueError(f"Expected {n} rows, got {len(arr)}")
    return arr


@dataclass
class PointCloud:
    """
    In-memory ray cloud.

    Attributes:
        ends: (N, 3) ray endpoints
        starts: (N, 3) ray start (sensor) positions, defaults to ends
        times: (N,) timestamps, defaults to zeros
        colours: (N, 4) uint8 RGBA, defaults to opaque white
    """
    ends: np.ndarray
    starts: Optional[np.ndarray] = None
    times: Optional[np.ndarray] = None
    colours: Optional[np.ndarray] = field(default=None, repr=False)

    def __post_init__(self):
        self.ends = _as_points(self.ends).copy()
        n = len(self.ends)
        self.starts = self.ends.copy() if self.starts is None else _as_points(self.starts, n).copy()
        if self.times is None:
            self.times = np.zeros(n, dtype=np.float64)
        else:
            self.times = np.asarray(self.times, dtype=np.float64).reshape(-1).copy()
            if len(self.times) != n:
                raise ValueError(f"Expected {n} times, got {len(self.times)}")
        if self.colours is None:
            self.colours = np.full((n, 4), 255, dtype=np.uint8)
        else:
            self.colours = np.asarray(self.colours, dtype=np.uint8).reshape(-1, 4).copy()
            if len(self.colours) != n:
                raise ValueError(f"Expected {n} colours, got {len(self.colours)}")

    def __len__(self) -> int:
        return len(self.ends)

    @classmethod
    def empty(cls) -> "PointCloud":
        return cls(np.empty((0, 3)))

    def bounding_box(self) -> BoundingBox:
        """Extents of the endpoints (recomputed on every call)."""
        from ..alignment.bounding_box import BoundingBox

        return BoundingBox.from_points(self.ends)

    def apply_transform(self, rotation: np.ndarray, translation: np.ndarray) -> None:
        """Rigidly transform starts and ends in place: p' = R @ p + t."""
        T = np.eye(4)
        T[:3, :3] = np.asarray(rotation, dtype=np.float64).reshape(3, 3)
        T[:3, 3] = np.asarray(translation, dtype=np.float64).reshape(3)
        self.ends = transform_points(self.ends, T)
        self.starts = transform_points(self.starts, T)

    def copy(self) -> "PointCloud":
        return PointCloud(self.ends, self.starts, self.times, self.colours)

    def subset(self, mask: np.ndarray) -> "PointCloud":
        """Rays selected by a boolean mask or an index array."""
        return PointCloud(self.ends[mask], self.starts[mask], self.times[mask], self.colours[mask])

    @classmethod
    def concatenate(cls, clouds: Iterable["PointCloud"]) -> "PointCloud":
        clouds = [c for c in clouds if len(c)]
        if not clouds:
            return cls.empty()
        return cls(
            np.vstack([c.ends for c in clouds]),
            np.vstack([c.starts for c in clouds]),
            np.concatenate([c.times for c in clouds]),
            np.vstack([c.colours for c in clouds]),
        )
