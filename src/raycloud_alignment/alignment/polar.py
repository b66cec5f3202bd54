"""
Polar resampling of Fourier magnitude fields.

Rotating a cloud about the vertical axis rotates the in-plane part of its
Fourier magnitude by the same angle. Resampling each depth layer of the
magnitude onto an (angle, radius) grid turns that rotation into a circular
shift along the angle axis, which a 1D correlation can then measure.

The source field is an unshifted DFT, so the in-plane centre is index (0, 0)
and sample positions wrap around the grid edges.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .array1d import Array1D
from .errors import InvalidDimensionError
from ..utils.logging import setup_logger

logger = setup_logger(__name__)


@dataclass(frozen=True, eq=False)
class PolarField:
    """Radius-weighted magnitudes indexed by (angle bin, radius bin, depth layer).

    Attributes:
        values: Real array of shape (num_angles, num_radii, depth)
        radii: Normalized radius of each radius bin, in (0, 1)
    """
    values: np.ndarray
    radii: np.ndarray

    @property
    def num_angles(self) -> int:
        return self.values.shape[0]

    @property
    def num_radii(self) -> int:
        return self.values.shape[1]

    @property
    def depth(self) -> int:
        return self.values.shape[2]

    def layer_profiles(self) -> List[Array1D]:
        """One angular profile per depth layer, summed over radius."""
        summed = self.values.sum(axis=1)
        return [Array1D.from_values(summed[:, k]) for k in range(self.depth)]

    def angular_profile(self) -> Array1D:
        """Single angular profile summed over radius and depth."""
        return Array1D.from_values(self.values.sum(axis=(1, 2)))

    def angular_spectrum(self) -> np.ndarray:
        """Magnitude of the DFT along the angle axis, per (radius, depth)."""
        return np.abs(np.fft.fft(self.values, axis=0))


class PolarResampler:
    """
    Converts the X/Y plane of a 3D magnitude field into polar layers.

    For angle bin a and radius bin r the sample position is
    (x, y) = radius(r) * 0.5 * (nx * sin(angle(a)), ny * cos(angle(a))),
    i.e. a circle of physical frequency for grids with anisotropic dims.
    Each sample is bilinearly interpolated from the four surrounding cells and
    weighted by its radius (the polar area element).
    """

    def __init__(self, num_angles: Optional[int] = None, num_radii: Optional[int] = None):
        if num_angles is not None and int(num_angles) <= 0:
            raise InvalidDimensionError(f"Polar angle resolution must be positive, got {num_angles}")
        if num_radii is not None and int(num_radii) <= 0:
            raise InvalidDimensionError(f"Polar radius resolution must be positive, got {num_radii}")
        self.num_angles = None if num_angles is None else int(num_angles)
        self.num_radii = None if num_radii is None else int(num_radii)

    @staticmethod
    def default_resolution(dims: Sequence[int]) -> Tuple[int, int]:
        max_rad = max(1, max(int(dims[0]), int(dims[1])) // 2)
        return 4 * max_rad, max_rad

    def resolution_for(self, dims: Sequence[int]) -> Tuple[int, int]:
        default_angles, default_radii = self.default_resolution(dims)
        num_angles = self.num_angles if self.num_angles is not None else default_angles
        num_radii = self.num_radii if self.num_radii is not None else default_radii
        return num_angles, num_radii

    def resample(self, field) -> PolarField:
        """Resample the magnitude of a 3D field (array or DensityGrid3D) into a PolarField."""
        cells = getattr(field, "cells", field)
        magnitude = np.abs(np.asarray(cells))
        if magnitude.ndim != 3:
            raise InvalidDimensionError(f"Expected a 3D field, got shape {magnitude.shape}")
        nx, ny, _ = magnitude.shape
        num_angles, num_radii = self.resolution_for(magnitude.shape)

        angles = 2.0 * np.pi * np.arange(num_angles) / num_angles
        radii = (0.5 + np.arange(num_radii)) / num_radii

        # (num_angles, num_radii) sample positions around the DC cell
        pos_x = np.mod(np.outer(np.sin(angles), radii) * 0.5 * nx, nx)
        pos_y = np.mod(np.outer(np.cos(angles), radii) * 0.5 * ny, ny)
        fx = np.floor(pos_x)
        fy = np.floor(pos_y)
        blend_x = (pos_x - fx)[..., None]
        blend_y = (pos_y - fy)[..., None]
        x0 = fx.astype(np.int64) % nx
        y0 = fy.astype(np.int64) % ny
        x1 = (x0 + 1) % nx
        y1 = (y0 + 1) % ny

        values = (
            magnitude[x0, y0, :] * (1.0 - blend_x) * (1.0 - blend_y)
            + magnitude[x1, y0, :] * blend_x * (1.0 - blend_y)
            + magnitude[x0, y1, :] * (1.0 - blend_x) * blend_y
            + magnitude[x1, y1, :] * blend_x * blend_y
        )
        values *= radii[None, :, None]

        logger.debug(
            "Resampled %dx%dx%d magnitude field into %d angles x %d radii.",
            nx, ny, magnitude.shape[2], num_angles, num_radii,
        )
        return PolarField(values=values, radii=radii)
