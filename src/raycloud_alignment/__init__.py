"""
Ray Cloud Alignment Package

A Python package for rigid registration of 3D ray clouds captured from
different sensor positions. Alignment is correspondence free: both clouds
are binned into density grids, the rotation about the vertical axis is found
by correlating polar-resampled Fourier magnitudes, and the translation by 3D
phase correlation. Loading, saving, chunked splitting and transform
application for PLY and LAS/LAZ ray clouds are included.
"""

__version__ = "0.1.0"

from .preprocessing import *
from .alignment import *
from .acceleration import *
from .utils import *
from .visualization import *

__all__ = [
    "preprocessing",
    "alignment",
    "acceleration",
    "utils",
    "visualization",
]
