"""
Ray Cloud Data Loader

This module handles loading, saving and chunked reading of ray cloud files.

Supported formats:
- PLY ray clouds (plyfile): vertex x,y,z is the ray end, nx,ny,nz is the
  start-minus-end offset, plus time and red,green,blue,alpha
- LAS/LAZ point clouds (laspy): each point becomes a zero-length ray at its
  position, with gps_time and RGB when the point format carries them
"""

from pathlib import Path
from typing import Iterator, Optional

import laspy
import numpy as np
from plyfile import PlyData, PlyElement

from .point_cloud import PointCloud
from ..utils.logging import setup_logger

logger = setup_logger(__name__)

PLY_SUFFIXES = ('.ply',)
LAS_SUFFIXES = ('.las', '.laz')

_PLY_VERTEX_DTYPE = [
    ('x', 'f8'), ('y', 'f8'), ('z', 'f8'),
    ('time', 'f8'),
    ('nx', 'f8'), ('ny', 'f8'), ('nz', 'f8'),
    ('red', 'u1'), ('green', 'u1'), ('blue', 'u1'), ('alpha', 'u1'),
]

# fixed-width vertex count, patched once the total is known
PLY_COUNT_WIDTH = 12


def ply_vertices(cloud: PointCloud) -> np.ndarray:
    """Little-endian PLY vertex records of a cloud."""
    vertex = np.empty(len(cloud), dtype=np.dtype(_PLY_VERTEX_DTYPE).newbyteorder("<"))
    vertex["x"], vertex["y"], vertex["z"] = cloud.ends.T
    vertex["time"] = cloud.times
    vertex["nx"], vertex["ny"], vertex["nz"] = (cloud.starts - cloud.ends).T
    vertex["red"], vertex["green"], vertex["blue"], vertex["alpha"] = cloud.colours.T
    return vertex


def ply_header(count: int = 0) -> bytes:
    """Binary little-endian ray cloud PLY header, vertex count zero-padded to PLY_COUNT_WIDTH."""
    element = PlyElement.describe(np.empty(0, dtype=np.dtype(_PLY_VERTEX_DTYPE).newbyteorder("<")), "vertex")
    header = PlyData([element], text=False, byte_order="<").header
    header = header.replace("element vertex 0", "element vertex " + str(count).zfill(PLY_COUNT_WIDTH))
    return (header + "\n").encode("ascii")


def warn_las_losses(cloud: PointCloud, file_path) -> bool:
    """Warn when saving as LAS drops ray starts or alpha. Returns True if it warned."""
    lossy = bool(np.any(cloud.colours[:, 3] != 255)) or not np.array_equal(cloud.starts, cloud.ends)
    if lossy:
        logger.warning(f"LAS output {Path(file_path).name} keeps ray ends only; ray starts and alpha are dropped")
    return lossy


def _check_path(file_path) -> Path:
    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")
    suffix = file_path.suffix.lower()
    if suffix not in PLY_SUFFIXES + LAS_SUFFIXES:
        raise ValueError(f"Unsupported file format: {file_path.suffix}")
    return file_path


def _cloud_from_ply_vertices(vertex) -> PointCloud:
    """Build a PointCloud from a (possibly memory-mapped) PLY vertex record array."""
    names = vertex.dtype.names
    ends = np.column_stack([
        np.asarray(vertex['x'], dtype=np.float64),
        np.asarray(vertex['y'], dtype=np.float64),
        np.asarray(vertex['z'], dtype=np.float64),
    ]) if len(vertex) else np.empty((0, 3))

    starts = None
    if all(n in names for n in ('nx', 'ny', 'nz')):
        offsets = np.column_stack([
            np.asarray(vertex['nx'], dtype=np.float64),
            np.asarray(vertex['ny'], dtype=np.float64),
            np.asarray(vertex['nz'], dtype=np.float64),
        ]) if len(vertex) else np.empty((0, 3))
        starts = ends + offsets

    times = np.asarray(vertex['time'], dtype=np.float64) if 'time' in names else None

    colours = None
    if all(n in names for n in ('red', 'green', 'blue')):
        alpha = np.asarray(vertex['alpha'], dtype=np.uint8) if 'alpha' in names \
            else np.full(len(vertex), 255, dtype=np.uint8)
        colours = np.column_stack([
            np.asarray(vertex['red'], dtype=np.uint8),
            np.asarray(vertex['green'], dtype=np.uint8),
            np.asarray(vertex['blue'], dtype=np.uint8),
            alpha,
        ])
    return PointCloud(ends, starts, times, colours)


def _cloud_from_las(las) -> PointCloud:
    """Build a PointCloud from a laspy record (LasData or chunk)."""
    ends = np.column_stack([
        np.asarray(las.x, dtype=np.float64),
        np.asarray(las.y, dtype=np.float64),
        np.asarray(las.z, dtype=np.float64),
    ])
    dims = set(las.point_format.dimension_names)
    times = np.asarray(las.gps_time, dtype=np.float64) if 'gps_time' in dims else None

    colours = None
    if {'red', 'green', 'blue'} <= dims:
        rgb = np.column_stack([
            np.asarray(las.red), np.asarray(las.green), np.asarray(las.blue)
        ]).astype(np.uint32)
        # LAS stores 16-bit colour channels
        if rgb.size and rgb.max() > 255:
            rgb = rgb >> 8
        colours = np.column_stack([rgb.astype(np.uint8), np.full(len(ends), 255, dtype=np.uint8)])
    return PointCloud(ends, None, times, colours)


class RayCloudLoader:
    """
    A class for loading and saving ray clouds.

    Features:
    - PLY ray clouds with start, time and colour attributes
    - LAS/LAZ point clouds via laspy
    - Chunked iteration for files too large to hold twice in memory
    """

    def __init__(self, *, chunk_points: int = 1_000_000):
        """
        Initialize the ray cloud loader.

        Args:
            chunk_points: Number of rays per chunk yielded by iter_chunks
        """
        if chunk_points <= 0:
            raise ValueError(f"chunk_points must be positive, got {chunk_points}")
        self.chunk_points = int(chunk_points)

    def load(self, file_path: str | Path) -> PointCloud:
        """
        Load a ray cloud file.

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file format is unsupported
        """
        file_path = _check_path(file_path)
        logger.info(f"Loading ray cloud from {file_path}")

        try:
            if file_path.suffix.lower() in PLY_SUFFIXES:
                ply = PlyData.read(str(file_path))
                cloud = _cloud_from_ply_vertices(ply['vertex'].data)
            else:
                cloud = _cloud_from_las(laspy.read(file_path))
        except Exception as e:
            logger.error(f"Error loading ray cloud from {file_path}: {e}")
            raise

        if len(cloud) == 0:
            logger.warning(f"No rays found in file: {file_path}")
        logger.info(f"Loaded {len(cloud):,} rays from {file_path.name}")
        return cloud

    def save(self, cloud: PointCloud, file_path: str | Path) -> str:
        """
        Save a ray cloud. The format follows the file suffix.

        PLY output stores positions as doubles, so they round-trip exactly.
        LAS output quantizes positions to the header scale (1 mm).

        Returns:
            Path to created file
        """
        file_path = Path(file_path)
        suffix = file_path.suffix.lower()
        if suffix not in PLY_SUFFIXES + LAS_SUFFIXES:
            raise ValueError(f"Unsupported file format: {file_path.suffix}")
        file_path.parent.mkdir(parents=True, exist_ok=True)

        if suffix in PLY_SUFFIXES:
            vertex = ply_vertices(cloud)
            PlyData([PlyElement.describe(vertex, "vertex")], text=False, byte_order="<").write(str(file_path))
        else:
            warn_las_losses(cloud, file_path)
            header = laspy.LasHeader(point_format=3, version="1.2")
            header.scales = np.array([0.001, 0.001, 0.001])
            header.offsets = cloud.ends.min(axis=0) if len(cloud) else np.zeros(3)
            las = laspy.LasData(header)
            las.x = cloud.ends[:, 0]
            las.y = cloud.ends[:, 1]
            las.z = cloud.ends[:, 2]
            las.gps_time = cloud.times
            las.red = cloud.colours[:, 0].astype(np.uint16) << 8
            las.green = cloud.colours[:, 1].astype(np.uint16) << 8
            las.blue = cloud.colours[:, 2].astype(np.uint16) << 8
            las.write(str(file_path))

        logger.info(f"Saved {len(cloud):,} rays to {file_path}")
        return str(file_path)

    def iter_chunks(self, file_path: str | Path, chunk_points: Optional[int] = None) -> Iterator[PointCloud]:
        """
        Yield the rays of a file as consecutive PointCloud chunks.

        LAS/LAZ files are streamed with laspy's chunk iterator; binary PLY files
        are memory-mapped and sliced.
        """
        file_path = _check_path(file_path)
        n = int(chunk_points or self.chunk_points)
        if n <= 0:
            raise ValueError(f"chunk_points must be positive, got {n}")

        if file_path.suffix.lower() in PLY_SUFFIXES:
            vertex = PlyData.read(str(file_path), mmap='c')['vertex'].data
            for start in range(0, len(vertex), n):
                yield _cloud_from_ply_vertices(vertex[start:start + n])
            return

        with laspy.open(file_path) as reader:
            for chunk in reader.chunk_iterator(n):
                yield _cloud_from_las(chunk)

    def get_metadata(self, file_path: str | Path) -> dict:
        """
        Extract basic metadata from a ray cloud file by streaming it once.

        Returns:
            Dictionary with filename, size, ray count, bounds and time range
        """
        file_path = _check_path(file_path)
        num_rays = 0
        lo = np.full(3, np.inf)
        hi = np.full(3, -np.inf)
        t_min, t_max = np.inf, -np.inf
        for chunk in self.iter_chunks(file_path):
            if len(chunk) == 0:
                continue
            num_rays += len(chunk)
            lo = np.minimum(lo, chunk.ends.min(axis=0))
            hi = np.maximum(hi, chunk.ends.max(axis=0))
            t_min = min(t_min, float(chunk.times.min()))
            t_max = max(t_max, float(chunk.times.max()))

        metadata = {
            'filename': file_path.name,
            'file_size_mb': file_path.stat().st_size / (1024 * 1024),
            'num_rays': num_rays,
            'format': file_path.suffix.lower().lstrip('.'),
        }
        if num_rays:
            metadata['bounds'] = {
                'min_x': float(lo[0]), 'max_x': float(hi[0]),
                'min_y': float(lo[1]), 'max_y': float(hi[1]),
                'min_z': float(lo[2]), 'max_z': float(hi[2]),
            }
            metadata['time_range'] = (t_min, t_max)
        return metadata


def load_cloud(file_path: str | Path) -> PointCloud:
    """Load a ray cloud with default loader settings."""
    return RayCloudLoader().load(file_path)


def save_cloud(cloud: PointCloud, file_path: str | Path) -> str:
    """Save a ray cloud with default loader settings."""
    return RayCloudLoader().save(cloud, file_path)


def iter_cloud_chunks(file_path: str | Path, chunk_points: int = 1_000_000) -> Iterator[PointCloud]:
    """Yield a ray cloud file chunk by chunk."""
    return RayCloudLoader(chunk_points=chunk_points).iter_chunks(file_path)
