"""JIT-compiled kernels for performance-critical operations.

These kernels provide compiled CPU implementations of the per-ray loops that
run on every endpoint of a cloud: applying a rigid transform and measuring
the residual between corresponding endpoints.
"""

from __future__ import annotations

import numba
import numpy as np


@numba.jit(nopython=True, parallel=False)
def transform_points_jit(points: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Apply 4x4 transformation matrix to points (JIT-compiled).

    Args:
        points: (N, 3) array of XYZ coordinates.
        matrix: (4, 4) transformation matrix.

    Returns:
        Transformed points (N, 3).
    """
    n = points.shape[0]
    result = np.empty_like(points)

    for i in range(n):
        x = points[i, 0]
        y = points[i, 1]
        z = points[i, 2]
        result[i, 0] = matrix[0, 0] * x + matrix[0, 1] * y + matrix[0, 2] * z + matrix[0, 3]
        result[i, 1] = matrix[1, 0] * x + matrix[1, 1] * y + matrix[1, 2] * z + matrix[1, 3]
        result[i, 2] = matrix[2, 0] * x + matrix[2, 1] * y + matrix[2, 2] * z + matrix[2, 3]

    return result


@numba.jit(nopython=True, parallel=False)
def squared_endpoint_differences_jit(points1: np.ndarray, points2: np.ndarray) -> np.ndarray:
    """Squared Euclidean distance between corresponding endpoints (JIT-compiled).

    Args:
        points1: (N, 3) array of XYZ coordinates.
        points2: (N, 3) array of XYZ coordinates.

    Returns:
        1D array of squared distances of length N.
    """
    n = points1.shape[0]
    out = np.empty(n, dtype=np.float64)

    for i in range(n):
        dx = points1[i, 0] - points2[i, 0]
        dy = points1[i, 1] - points2[i, 1]
        dz = points1[i, 2] - points2[i, 2]
        out[i] = dx * dx + dy * dy + dz * dz

    return out


def transform_points(points: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Contiguous float64 wrapper around transform_points_jit."""
    points = np.ascontiguousarray(points, dtype=np.float64).reshape(-1, 3)
    matrix = np.ascontiguousarray(matrix, dtype=np.float64)
    if matrix.shape != (4, 4):
        raise ValueError(f"Transform must be 4x4 matrix, got {matrix.shape}")
    if points.shape[0] == 0:
        return points.copy()
    return transform_points_jit(points, matrix)


def sum_squared_endpoint_differences(points1: np.ndarray, points2: np.ndarray) -> float:
    """Sum of squared distances between corresponding endpoints."""
    a = np.ascontiguousarray(points1, dtype=np.float64).reshape(-1, 3)
    b = np.ascontiguousarray(points2, dtype=np.float64).reshape(-1, 3)
    if a.shape != b.shape:
        raise ValueError(f"Point sets must correspond, got {a.shape} and {b.shape}")
    if a.shape[0] == 0:
        return 0.0
    return float(squared_endpoint_differences_jit(a, b).sum())


def endpoint_rms(points1: np.ndarray, points2: np.ndarray) -> float:
    """Root mean square distance between corresponding endpoints."""
    n = np.asarray(points1).reshape(-1, 3).shape[0]
    if n == 0:
        return 0.0
    return float(np.sqrt(sum_squared_endpoint_differences(points1, points2) / n))
