"""
Ray Cloud Preprocessing Module

This module contains the ray cloud container and its file handling:
- In-memory ray clouds with rigid transform application
- PLY and LAS/LAZ loading, saving and chunked reading
- Chunked splitting of ray cloud files by a per-ray criterion
"""

from .point_cloud import PointCloud
from .loader import RayCloudLoader, load_cloud, save_cloud, iter_cloud_chunks
from .splitting import ChunkedCloudWriter, split_cloud_file, default_split_paths, time_bounds

__all__ = [
    "PointCloud",
    "RayCloudLoader",
    "load_cloud",
    "save_cloud",
    "iter_cloud_chunks",
    "ChunkedCloudWriter",
    "split_cloud_file",
    "default_split_paths",
    "time_bounds",
]
