"""
Error kinds raised by the spectral registration core.

Degenerate correlation surfaces and points falling outside a density grid
are not exceptions: they are recovered where they happen and surfaced as
flags and counts on the stage results.
"""

from __future__ import annotations

from typing import Any, Optional


class RegistrationError(Exception):
    """Base class for registration failures."""


class InvalidDimensionError(RegistrationError, ValueError):
    """A grid size, voxel width or polar resolution is not positive."""


class DimensionMismatchError(RegistrationError, ValueError):
    """Two fields of different shape were combined."""


class EmptyCloudError(RegistrationError, ValueError):
    """A point cloud without points was handed to the registration."""


class PipelineStageError(RegistrationError):
    """A registration pipeline run aborted in a given stage.

    Attributes:
        stage: The pipeline state in which the failure happened
        cause: The underlying error
    """

    def __init__(self, stage: Any, cause: Optional[BaseException] = None):
        self.stage = stage
        self.cause = cause
        stage_name = getattr(stage, "value", stage)
        message = f"Registration failed in stage '{stage_name}'"
        if cause is not None:
            message += f": {type(cause).__name__}: {cause}"
        super().__init__(message)
