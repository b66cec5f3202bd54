"""
Acceleration Module

Optional performance layer of the registration:
- Parallel fan-out of independent grid builds
- JIT-compiled kernels for rigid transforms and endpoint residuals
"""

from .parallel_executor import GridParallelExecutor
from .jit_kernels import (
    transform_points,
    sum_squared_endpoint_differences,
    endpoint_rms,
)

__all__ = [
    "GridParallelExecutor",
    "transform_points",
    "sum_squared_endpoint_differences",
    "endpoint_rms",
]
