"""
Utility Functions Module

This module provides common utility functions used across the project.
- Typed YAML configuration
- Logging
- Per-ray split criteria and statistics
"""

from .logging import setup_logger, set_package_log_level
from .config import (
    AppConfig,
    RegistrationConfig,
    DebugConfig,
    LoggingConfig,
    ParallelConfig,
    IOConfig,
    load_config,
)
from .point_cloud_filters import (
    SPLIT_CRITERIA,
    create_split_mask,
    get_split_statistics,
)

__all__ = [
    "setup_logger",
    "set_package_log_level",
    "AppConfig",
    "RegistrationConfig",
    "DebugConfig",
    "LoggingConfig",
    "ParallelConfig",
    "IOConfig",
    "load_config",
    "SPLIT_CRITERIA",
    "create_split_mask",
    "get_split_statistics",
]
