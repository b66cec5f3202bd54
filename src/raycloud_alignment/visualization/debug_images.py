"""
Debug Images of Registration Fields

Writes the intermediate magnitude fields of a registration as RGBA PNG
images. Depth layers are blended into one image with a colour ramp from red
(bottom layer) to blue (top layer), and each image is scaled to its own
maximum. The images are diagnostic output only and are never read back.
"""

from __future__ import annotations

from pathlib import Path
from typing import Tuple, Union

import numpy as np
import rasterio

from ..utils.logging import setup_logger

logger = setup_logger(__name__)


def depth_colours(depth: int) -> np.ndarray:
    """(depth, 3) RGB weights: for h = z / depth, (1 - h, (1 - h) * h, h)."""
    h = np.arange(depth, dtype=np.float64) / float(depth)
    return np.column_stack([1.0 - h, (1.0 - h) * h, h])


def colourize_layers(field: np.ndarray) -> np.ndarray:
    """
    Blend a (width, height, depth) magnitude field into an RGBA image.

    Returns:
        uint8 array of shape (4, height, width), band-first as rasterio writes it
    """
    field = np.abs(np.asarray(field))
    if field.ndim == 2:
        field = field[..., None]
    depth = field.shape[2]
    rgb = np.tensordot(field, depth_colours(depth), axes=([2], [0])) / depth
    peak = float(rgb.max())
    if peak > 0:
        rgb *= 255.0 / peak
    rgba = np.empty((4, field.shape[1], field.shape[0]), dtype=np.uint8)
    rgba[:3] = np.clip(rgb, 0, 255).astype(np.uint8).transpose(2, 1, 0)
    rgba[3] = 255
    return rgba


def write_rgba_png(rgba: np.ndarray, output_path: Union[str, Path]) -> str:
    """Write a (4, height, width) uint8 array as a PNG file."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    _, height, width = rgba.shape
    with rasterio.open(
        str(output_path),
        "w",
        driver="PNG",
        height=height,
        width=width,
        count=4,
        dtype="uint8",
    ) as dst:
        dst.write(rgba)
    logger.debug(f"Wrote {width}x{height} debug image to {output_path}")
    return str(output_path)


def write_magnitude_image(field, output_path: Union[str, Path]) -> str:
    """
    Write the in-plane magnitude of a 3D spectrum (array or DensityGrid3D).

    The X/Y quadrants are shifted so that the zero frequency sits at the
    image centre.
    """
    cells = np.asarray(getattr(field, "cells", field))
    shifted = np.fft.fftshift(np.abs(cells), axes=(0, 1))
    return write_rgba_png(colourize_layers(shifted), output_path)


def write_polar_images(polar, polar_path: Union[str, Path], spectrum_path: Union[str, Path]) -> Tuple[str, str]:
    """
    Write a PolarField (angle along X, radius along Y) and its angular spectrum.

    Both images are shifted by half a turn along the angle axis.
    """
    values = np.fft.fftshift(polar.values, axes=0)
    spectrum = np.fft.fftshift(polar.angular_spectrum(), axes=0)
    return (
        write_rgba_png(colourize_layers(values), polar_path),
        write_rgba_png(colourize_layers(spectrum), spectrum_path),
    )
