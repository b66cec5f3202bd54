"""
Regular 3D complex density fields built from ray cloud endpoints.

A DensityGrid3D is anchored at its cloud's minimum corner, holds one
complex cell per voxel and is transformed in place between the spatial and
frequency domains. Forward and inverse transforms follow NumPy's fftn/ifftn
convention, so inverse_transform(forward_transform(x)) == x * ROUND_TRIP_SCALE
with ROUND_TRIP_SCALE == 1.0.
"""

from __future__ import annotations

from typing import Optional, Sequence, Tuple

import numpy as np

from .bounding_box import BoundingBox
from .errors import DimensionMismatchError, EmptyCloudError, InvalidDimensionError
from ..utils.logging import setup_logger

logger = setup_logger(__name__)

ROUND_TRIP_SCALE = 1.0


def grid_dims(extent: np.ndarray, voxel_width: float) -> Tuple[int, int, int]:
    """Number of voxels per axis needed to cover an extent.

    One cell is added to ceil(extent / width) so that points on the maximum
    corner still fall inside the grid.
    """
    if not voxel_width > 0:
        raise InvalidDimensionError(f"Voxel width must be positive, got {voxel_width}")
    extent = np.asarray(extent, dtype=np.float64).reshape(3)
    if np.any(extent < 0) or not np.all(np.isfinite(extent)):
        raise InvalidDimensionError(f"Grid extent must be finite and non-negative, got {extent}")
    return tuple(int(np.ceil(e / voxel_width)) + 1 for e in extent)


class DensityGrid3D:
    """
    A 3D field of complex voxel values.

    Attributes:
        origin: World-space minimum corner of the grid (3,)
        voxel_width: Edge length of a cubic voxel
        dims: Number of voxels along X, Y and Z
        cells: Complex array of shape dims, indexed [x, y, z]
        dropped_points: Number of accumulated points that fell outside the grid
    """

    def __init__(self, origin: Sequence[float], voxel_width: float, dims: Sequence[int]):
        origin = np.asarray(origin, dtype=np.float64).reshape(3)
        dims = tuple(int(d) for d in dims)
        if len(dims) != 3:
            raise InvalidDimensionError(f"Expected 3 grid dimensions, got {len(dims)}")
        if any(d <= 0 for d in dims):
            raise InvalidDimensionError(f"Grid dimensions must be positive, got {dims}")
        if not voxel_width > 0:
            raise InvalidDimensionError(f"Voxel width must be positive, got {voxel_width}")

        self.origin = origin
        self.voxel_width = float(voxel_width)
        self.dims = dims
        self.cells = np.zeros(dims, dtype=np.complex128)
        self.dropped_points = 0

    @classmethod
    def from_points(
        cls,
        points: np.ndarray,
        voxel_width: float,
        *,
        extent: Optional[np.ndarray] = None,
    ) -> "DensityGrid3D":
        """Build a grid anchored at the points' minimum corner and accumulate them.

        Args:
            points: Nx3 endpoint positions
            voxel_width: Voxel edge length
            extent: Optional extent shared with another cloud. Defaults to the
                points' own bounding box extent.

        Raises:
            EmptyCloudError: If points is empty
            InvalidDimensionError: If voxel_width or the extent is invalid
        """
        points = np.asarray(points, dtype=np.float64)
        if points.size == 0:
            raise EmptyCloudError("Cannot build a density grid from an empty cloud")
        box = BoundingBox.from_points(points)
        if extent is None:
            extent = box.extent
        grid = cls(box.min_corner, voxel_width, grid_dims(extent, voxel_width))
        grid.accumulate_points(points)
        return grid

    # ------------------------ Accumulation ------------------------
    @property
    def shape(self) -> Tuple[int, int, int]:
        return self.dims

    def voxel_index(self, points: np.ndarray) -> np.ndarray:
        """Integer voxel index floor((p - origin) / width) for Nx3 points."""
        points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        return np.floor((points - self.origin) / self.voxel_width).astype(np.int64)

    def accumulate(self, point: Sequence[float]) -> bool:
        """Add (1, 0) to the cell containing a single point.

        Returns:
            False if the point lies outside the grid and was dropped
        """
        return self.accumulate_points(np.asarray(point, dtype=np.float64).reshape(1, 3)) == 0

    def accumulate_points(self, points: np.ndarray) -> int:
        """Add (1, 0) per point to the containing cells.

        Points outside [0, dims) are dropped and counted on dropped_points.

        Returns:
            Number of points dropped by this call
        """
        points = np.asarray(points, dtype=np.float64)
        if points.size == 0:
            return 0

        idx = self.voxel_index(points)
        mask = np.all((idx >= 0) & (idx < np.asarray(self.dims)), axis=1)
        n_dropped = int(len(idx) - np.count_nonzero(mask))
        if n_dropped:
            self.dropped_points += n_dropped
            logger.warning(
                "Dropped %d of %d points outside the %s density grid.",
                n_dropped, len(idx), "x".join(str(d) for d in self.dims),
            )

        idx = idx[mask]
        if len(idx) == 0:
            return n_dropped
        lin = np.ravel_multi_index((idx[:, 0], idx[:, 1], idx[:, 2]), self.dims)
        counts = np.bincount(lin, minlength=self.cells.size)
        self.cells += counts.reshape(self.dims)
        return n_dropped

    # ------------------------ Transforms ------------------------
    def forward_transform(self) -> "DensityGrid3D":
        """In-place 3D DFT of the whole grid."""
        self.cells = np.fft.fftn(self.cells)
        return self

    def inverse_transform(self) -> "DensityGrid3D":
        """In-place inverse 3D DFT (scaled by 1/N, see ROUND_TRIP_SCALE)."""
        self.cells = np.fft.ifftn(self.cells)
        return self

    def conjugate_multiply(self, other: "DensityGrid3D") -> "DensityGrid3D":
        """In place cells * conj(other.cells), the cross-power spectrum.

        Raises:
            DimensionMismatchError: If the grids differ in shape
        """
        if self.dims != other.dims:
            raise DimensionMismatchError(
                f"Cannot correlate grids of shape {self.dims} and {other.dims}"
            )
        self.cells *= np.conj(other.cells)
        return self

    def normalize_magnitude(self) -> "DensityGrid3D":
        """Divide every cell by its magnitude, leaving zero cells untouched."""
        mag = np.abs(self.cells)
        mag[mag == 0] = 1.0
        self.cells /= mag
        return self

    # ------------------------ Queries ------------------------
    def max_real_index(self) -> Tuple[int, int, int]:
        """Index of the cell with the largest real component."""
        flat = int(np.argmax(self.cells.real))
        return tuple(int(i) for i in np.unravel_index(flat, self.dims))

    def real_at(self, index: Sequence[int]) -> float:
        """Real value at an index, wrapping each axis circularly."""
        wrapped = tuple(int(i) % d for i, d in zip(index, self.dims))
        return float(self.cells[wrapped].real)

    def magnitude(self) -> np.ndarray:
        return np.abs(self.cells)

    def total(self) -> complex:
        return complex(self.cells.sum())

    def copy(self) -> "DensityGrid3D":
        grid = DensityGrid3D(self.origin, self.voxel_width, self.dims)
        grid.cells = self.cells.copy()
        grid.dropped_points = self.dropped_points
        return grid

    def __repr__(self) -> str:
        return (
            f"DensityGrid3D(origin={self.origin.tolist()}, voxel_width={self.voxel_width}, "
            f"dims={self.dims})"
        )
