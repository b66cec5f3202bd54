"""
Chunked splitting of ray cloud files.

Each ray of the input is routed to an "inside" or an "outside" output
according to a per-ray criterion (see utils.point_cloud_filters). The input
is read chunk by chunk and both outputs are written chunk by chunk, so files
of any size can be split without holding them in memory.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Tuple

import laspy
import numpy as np

from .loader import LAS_SUFFIXES, RayCloudLoader, ply_vertices, ply_header, warn_las_losses
from .point_cloud import PointCloud
from ..utils.logging import setup_logger
from ..utils.point_cloud_filters import create_split_mask, get_split_statistics, SPLIT_CRITERIA

logger = setup_logger(__name__)


class ChunkedCloudWriter:
    """
    Append-only ray cloud writer used as a context manager.

    Chunks go straight to disk: LAS/LAZ through a laspy writer, PLY as raw
    little-endian vertex records after a header whose vertex count is
    patched on close. Neither format keeps written rays in memory.
    """

    def __init__(self, file_path: str | Path, loader: Optional[RayCloudLoader] = None):
        self.file_path = Path(file_path)
        self.loader = loader or RayCloudLoader()
        self.count = 0
        self._is_las = self.file_path.suffix.lower() in LAS_SUFFIXES
        self._ply_file = None
        self._las_writer = None
        self._las_header = None
        self._warned_las = False

    def __enter__(self) -> "ChunkedCloudWriter":
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        return self

    def write_chunk(self, chunk: PointCloud) -> None:
        if len(chunk) == 0:
            return
        self.count += len(chunk)
        if not self._is_las:
            if self._ply_file is None:
                self._ply_file = open(self.file_path, "wb")
                self._ply_file.write(ply_header())
            ply_vertices(chunk).tofile(self._ply_file)
            self._ply_file.flush()
            return

        if not self._warned_las:
            self._warned_las = warn_las_losses(chunk, self.file_path)
        if self._las_writer is None:
            header = laspy.LasHeader(point_format=3, version="1.2")
            header.scales = np.array([0.001, 0.001, 0.001])
            header.offsets = np.floor(chunk.ends.min(axis=0))
            self._las_header = header
            self._las_writer = laspy.open(self.file_path, mode='w', header=header)
        record = laspy.ScaleAwarePointRecord.zeros(len(chunk), header=self._las_header)
        record.x = chunk.ends[:, 0]
        record.y = chunk.ends[:, 1]
        record.z = chunk.ends[:, 2]
        record.gps_time = chunk.times
        record.red = chunk.colours[:, 0].astype(np.uint16) << 8
        record.green = chunk.colours[:, 1].astype(np.uint16) << 8
        record.blue = chunk.colours[:, 2].astype(np.uint16) << 8
        self._las_writer.write_points(record)

    def close(self) -> None:
        if self._las_writer is not None:
            self._las_writer.close()
            self._las_writer = None
        elif self._ply_file is not None:
            # the count placeholder has a fixed width, so the header keeps its size
            self._ply_file.seek(0)
            self._ply_file.write(ply_header(self.count))
            self._ply_file.close()
            self._ply_file = None
        else:
            # nothing was written; still produce an empty file
            self.loader.save(PointCloud.empty(), self.file_path)

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
            return
        if self._las_writer is not None:
            self._las_writer.close()
            self._las_writer = None
        if self._ply_file is not None:
            self._ply_file.close()
            self._ply_file = None


def default_split_paths(file_path: str | Path) -> Tuple[Path, Path]:
    """<stub>_inside.ply and <stub>_outside.ply next to the input."""
    file_path = Path(file_path)
    stub = file_path.with_suffix("")
    return (
        stub.with_name(stub.name + "_inside.ply"),
        stub.with_name(stub.name + "_outside.ply"),
    )


def time_bounds(file_path: str | Path, *, chunk_points: int = 1_000_000) -> Tuple[float, float]:
    """Minimum and maximum ray time, found by streaming the file once."""
    metadata = RayCloudLoader(chunk_points=chunk_points).get_metadata(file_path)
    if not metadata["num_rays"]:
        raise ValueError(f"No rays found in {file_path}")
    min_time, max_time = metadata["time_range"]
    logger.info(
        f"minimum time: {min_time} maximum time: {max_time}, difference: {max_time - min_time}"
    )
    return min_time, max_time


def split_cloud_file(
    file_path: str | Path,
    criterion: str,
    value,
    *,
    percent: bool = False,
    inside_path: Optional[str | Path] = None,
    outside_path: Optional[str | Path] = None,
    chunk_points: int = 1_000_000,
) -> dict:
    """Split a ray cloud file into inside and outside files.

    Args:
        file_path: Input ray cloud (PLY/LAS/LAZ)
        criterion: One of SPLIT_CRITERIA
        value: Criterion parameter (3-vector or scalar)
        percent: Only for "time": interpret value as a percentage of the
            file's time span
        inside_path: Output for rays where the criterion is false
        outside_path: Output for rays where the criterion is true
        chunk_points: Rays per processed chunk

    Returns:
        Split statistics including the output paths
    """
    if criterion not in SPLIT_CRITERIA:
        raise ValueError(f"Unknown split criterion '{criterion}', expected one of {SPLIT_CRITERIA}")
    if percent and criterion != "time":
        raise ValueError("Percentage thresholds are only supported for the time criterion")

    default_in, default_out = default_split_paths(file_path)
    inside_path = Path(inside_path) if inside_path is not None else default_in
    outside_path = Path(outside_path) if outside_path is not None else default_out

    if percent:
        min_time, max_time = time_bounds(file_path, chunk_points=chunk_points)
        value = min_time + (max_time - min_time) * float(value) / 100.0

    loader = RayCloudLoader(chunk_points=chunk_points)
    total = 0
    outside_count = 0
    previous_start = None
    previous_time = None

    with ChunkedCloudWriter(inside_path, loader) as inside_writer, \
            ChunkedCloudWriter(outside_path, loader) as outside_writer:
        for chunk in loader.iter_chunks(file_path):
            if len(chunk) == 0:
                continue
            mask = create_split_mask(
                chunk, criterion, value,
                previous_start=previous_start, previous_time=previous_time,
            )
            outside_writer.write_chunk(chunk.subset(mask))
            inside_writer.write_chunk(chunk.subset(~mask))
            total += len(chunk)
            outside_count += int(np.count_nonzero(mask))
            previous_start = chunk.starts[-1].copy()
            previous_time = float(chunk.times[-1])

    stats = get_split_statistics(total, outside_count, criterion, value)
    stats["inside_path"] = str(inside_path)
    stats["outside_path"] = str(outside_path)
    logger.info(
        f"Split {total:,} rays by {stats['split_description']}: "
        f"{stats['inside_rays']:,} inside -> {inside_path.name}, "
        f"{stats['outside_rays']:,} outside -> {outside_path.name} "
        f"({stats['outside_percentage']:.1f}% outside)"
    )
    return stats
