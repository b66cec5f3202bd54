"""
Spatial Alignment Module

This module provides correspondence-free rigid registration of ray clouds
using Fourier-domain correlation of voxel density grids, with support for
applying the estimated transform to files in streaming fashion.
"""

from .errors import (
    RegistrationError,
    InvalidDimensionError,
    DimensionMismatchError,
    EmptyCloudError,
    PipelineStageError,
)
from .bounding_box import BoundingBox, shared_extent
from .density_grid import DensityGrid3D, ROUND_TRIP_SCALE
from .array1d import Array1D
from .polar import PolarField, PolarResampler
from .peak import PeakEstimate, SubpixelPeakFinder
from .transform import RigidTransform
from .pipeline import (
    PipelineState,
    RegistrationPipeline,
    RegistrationResult,
    register_clouds,
)
from .streaming_alignment import (
    apply_transform_to_files,
    save_transform_matrix,
    load_transform_matrix,
)

__all__ = [
    "RegistrationError",
    "InvalidDimensionError",
    "DimensionMismatchError",
    "EmptyCloudError",
    "PipelineStageError",
    "BoundingBox",
    "shared_extent",
    "DensityGrid3D",
    "ROUND_TRIP_SCALE",
    "Array1D",
    "PolarField",
    "PolarResampler",
    "PeakEstimate",
    "SubpixelPeakFinder",
    "RigidTransform",
    "PipelineState",
    "RegistrationPipeline",
    "RegistrationResult",
    "register_clouds",
    "apply_transform_to_files",
    "save_transform_matrix",
    "load_transform_matrix",
]
