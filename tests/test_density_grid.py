"""Tests for DensityGrid3D accumulation, transforms and correlation."""

import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.append(str(Path(__file__).parent.parent / "src"))

from raycloud_alignment.alignment.density_grid import DensityGrid3D, ROUND_TRIP_SCALE, grid_dims
from raycloud_alignment.alignment.errors import (
    DimensionMismatchError,
    EmptyCloudError,
    InvalidDimensionError,
)
from raycloud_alignment.alignment.peak import SubpixelPeakFinder


def test_grid_dims_adds_one_cell():
    assert grid_dims(np.array([1.0, 0.0, 2.4]), 0.5) == (3, 1, 6)


@pytest.mark.parametrize("dims", [(0, 4, 4), (4, -1, 4), (4, 4, 0)])
def test_init_rejects_non_positive_dims(dims):
    with pytest.raises(InvalidDimensionError):
        DensityGrid3D(np.zeros(3), 1.0, dims)


def test_init_rejects_non_positive_voxel_width():
    with pytest.raises(InvalidDimensionError):
        DensityGrid3D(np.zeros(3), 0.0, (2, 2, 2))
    with pytest.raises(ValueError):
        grid_dims(np.ones(3), -1.0)


def test_from_points_empty_raises():
    with pytest.raises(EmptyCloudError):
        DensityGrid3D.from_points(np.empty((0, 3)), 0.5)


def test_round_trip_scale():
    rng = np.random.default_rng(1)
    grid = DensityGrid3D(np.zeros(3), 1.0, (6, 5, 4))
    original = rng.standard_normal((6, 5, 4)) + 1j * rng.standard_normal((6, 5, 4))
    grid.cells = original.copy()

    grid.forward_transform().inverse_transform()

    np.testing.assert_allclose(grid.cells, original * ROUND_TRIP_SCALE, atol=1e-12)


def test_accumulate_in_and_out_of_bounds():
    grid = DensityGrid3D(np.zeros(3), 0.5, (4, 4, 2))
    assert grid.accumulate([0.1, 0.6, 0.2]) is True
    assert grid.cells[0, 1, 0] == 1 + 0j
    assert grid.accumulate([5.0, 0.0, 0.0]) is False
    assert grid.accumulate([-0.01, 0.0, 0.0]) is False
    assert grid.dropped_points == 2
    assert grid.total() == 1 + 0j


def test_from_points_keeps_every_point():
    rng = np.random.default_rng(2)
    points = rng.uniform(-3.0, 7.0, size=(500, 3))
    grid = DensityGrid3D.from_points(points, 0.5)
    assert grid.dropped_points == 0
    assert grid.total() == pytest.approx(500)
    np.testing.assert_allclose(grid.origin, points.min(axis=0))


def test_from_points_with_shared_extent():
    points = np.array([[0.0, 0.0, 0.0], [1.0, 1.0, 1.0]])
    grid = DensityGrid3D.from_points(points, 0.5, extent=np.array([4.0, 2.0, 1.0]))
    assert grid.dims == (9, 5, 3)


def test_impulse_peak_is_exact():
    dims = (8, 6, 5)
    impulse = DensityGrid3D(np.zeros(3), 1.0, dims)
    impulse.cells[3, 2, 4] = 1.0
    reference = DensityGrid3D(np.zeros(3), 1.0, dims)
    reference.cells[0, 0, 0] = 1.0

    corr = impulse.forward_transform().copy().conjugate_multiply(reference.forward_transform())
    corr.inverse_transform()
    assert corr.max_real_index() == (3, 2, 4)

    # self correlation peaks at zero shift
    auto = impulse.copy().conjugate_multiply(impulse).inverse_transform()
    assert auto.max_real_index() == (0, 0, 0)


def test_integer_shift_recovered_with_sign():
    rng = np.random.default_rng(3)
    dims = (16, 16, 8)
    idx = np.column_stack([
        rng.integers(2, 10, 200),
        rng.integers(2, 10, 200),
        rng.integers(1, 5, 200),
    ]).astype(float) + 0.5
    shift = np.array([3.0, -2.0, 1.0])

    source = DensityGrid3D(np.zeros(3), 1.0, dims)
    source.accumulate_points(idx)
    target = DensityGrid3D(np.zeros(3), 1.0, dims)
    target.accumulate_points(idx + shift)

    corr = source.forward_transform().copy().conjugate_multiply(target.forward_transform())
    corr.inverse_transform()
    peak = corr.max_real_index()
    assert peak == (13, 2, 7)

    estimates = SubpixelPeakFinder.find_along_axes(corr.cells, peak)
    translation = [SubpixelPeakFinder.to_translation(e, 1.0) for e in estimates]
    np.testing.assert_allclose(translation, shift, atol=1e-9)


def test_conjugate_multiply_dimension_mismatch():
    points = np.random.default_rng(4).uniform(0, 5, size=(100, 3))
    a = DensityGrid3D.from_points(points, 0.5)
    b = DensityGrid3D.from_points(points, 0.25)
    with pytest.raises(DimensionMismatchError):
        a.conjugate_multiply(b)


def test_normalize_magnitude_leaves_zeros():
    grid = DensityGrid3D(np.zeros(3), 1.0, (2, 2, 1))
    grid.cells[:] = np.array([[[3 + 4j], [0]], [[-2], [1j]]])
    grid.normalize_magnitude()
    np.testing.assert_allclose(np.abs(grid.cells).ravel(), [1, 0, 1, 1])
    assert grid.cells[0, 0, 0] == pytest.approx(0.6 + 0.8j)


def test_real_at_wraps():
    grid = DensityGrid3D(np.zeros(3), 1.0, (3, 2, 2))
    grid.cells[2, 1, 0] = 7.0
    assert grid.real_at((-1, -1, 2)) == 7.0
