"""Tests for debug image output."""

import numpy as np
import rasterio

from raycloud_alignment.alignment.polar import PolarResampler
from raycloud_alignment.visualization.debug_images import (
    colourize_layers,
    depth_colours,
    write_magnitude_image,
    write_polar_images,
)


def test_depth_colour_ramp():
    np.testing.assert_allclose(depth_colours(2), [[1.0, 0.0, 0.0], [0.5, 0.25, 0.5]])


def test_colourize_scales_to_field_maximum():
    field = np.zeros((6, 4, 2))
    field[1, 2, 0] = 3.0
    rgba = colourize_layers(field)
    assert rgba.shape == (4, 4, 6)
    assert rgba.dtype == np.uint8
    assert rgba[0, 2, 1] == 255
    assert (rgba[3] == 255).all()


def test_write_images(tmp_path):
    rng = np.random.default_rng(0)
    field = rng.standard_normal((10, 8, 3)) + 1j * rng.standard_normal((10, 8, 3))

    path = write_magnitude_image(field, tmp_path / "spectrum.png")
    with rasterio.open(path) as src:
        assert (src.count, src.width, src.height) == (4, 10, 8)

    polar = PolarResampler(num_angles=24, num_radii=5).resample(field)
    polar_path, spectrum_path = write_polar_images(polar, tmp_path / "polar.png", tmp_path / "spec.png")
    with rasterio.open(spectrum_path) as src:
        assert (src.width, src.height) == (24, 5)
    assert (tmp_path / "polar.png").exists()
