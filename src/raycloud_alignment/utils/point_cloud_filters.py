"""
Ray Cloud Filtering Utilities

Shared utilities for classifying rays by a per-ray criterion. A mask value of
True means the ray lies "outside" the split; these masks drive the chunked
file splitting in preprocessing.splitting.
"""

from __future__ import annotations

from typing import Optional, TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from ..preprocessing.point_cloud import PointCloud

SPLIT_CRITERIA = ("pos", "startpos", "raydir", "colour", "alpha", "range", "speed", "time")
VECTOR_CRITERIA = ("pos", "startpos", "raydir", "colour")


def _plane_vector(value) -> np.ndarray:
    """v / |v|^2, so that p . result == 1 on the plane through v normal to v."""
    vec = np.asarray(value, dtype=np.float64).reshape(3)
    norm_sq = float(vec @ vec)
    if norm_sq == 0.0:
        raise ValueError("Split vector must be non-zero")
    return vec / norm_sq


def create_split_mask(
    cloud: PointCloud,
    criterion: str,
    value,
    *,
    previous_start: Optional[np.ndarray] = None,
    previous_time: Optional[float] = None,
) -> np.ndarray:
    """Create a boolean mask of the rays that fall outside a split.

    Criteria (True = outside):
        pos v:       end . (v / |v|^2) > 1
        startpos v:  start . (v / |v|^2) > 0
        raydir v:    normalize(end - start) . (v / |v|^2) > 0
        colour v:    (rgb / 255) . (v / |v|^2) > 0
        alpha a:     alpha > uint8(255 * a), with 0 <= a <= 1
        range r:     |start - end| > r
        speed s:     |start_i - start_(i-1)| / (t_i - t_(i-1)) > s
        time t:      time > t

    Args:
        cloud: Rays to classify
        criterion: One of SPLIT_CRITERIA
        value: 3-vector for vector criteria, scalar otherwise
        previous_start: Start of the ray preceding this chunk (speed only)
        previous_time: Time of the ray preceding this chunk (speed only)

    Returns:
        Boolean array of length len(cloud)

    Examples:
        >>> from raycloud_alignment.preprocessing.point_cloud import PointCloud
        >>> cloud = PointCloud(np.array([[0.0, 0, 0], [3.0, 0, 0]]))
        >>> create_split_mask(cloud, "pos", [2.0, 0.0, 0.0])
        array([False,  True])
    """
    n = len(cloud)
    if criterion not in SPLIT_CRITERIA:
        raise ValueError(f"Unknown split criterion '{criterion}', expected one of {SPLIT_CRITERIA}")
    if n == 0:
        return np.zeros(0, dtype=bool)

    if criterion == "pos":
        return cloud.ends @ _plane_vector(value) > 1.0
    if criterion == "startpos":
        return cloud.starts @ _plane_vector(value) > 0.0
    if criterion == "raydir":
        dirs = cloud.ends - cloud.starts
        lengths = np.linalg.norm(dirs, axis=1)
        # zero-length rays keep a zero direction
        lengths[lengths == 0] = 1.0
        return (dirs / lengths[:, None]) @ _plane_vector(value) > 0.0
    if criterion == "colour":
        rgb = cloud.colours[:, :3].astype(np.float64) / 255.0
        return rgb @ _plane_vector(value) > 0.0
    if criterion == "alpha":
        alpha = float(value)
        if not 0.0 <= alpha <= 1.0:
            raise ValueError(f"Alpha threshold must lie in [0, 1], got {alpha}")
        threshold = np.uint8(255.0 * alpha)
        return cloud.colours[:, 3] > threshold
    if criterion == "range":
        return np.linalg.norm(cloud.starts - cloud.ends, axis=1) > float(value)
    if criterion == "time":
        return cloud.times > float(value)

    # speed: sensor displacement between consecutive rays over elapsed time
    starts = cloud.starts
    times = cloud.times
    if previous_start is not None and previous_time is not None:
        starts = np.vstack([np.asarray(previous_start, dtype=np.float64).reshape(1, 3), starts])
        times = np.concatenate([[float(previous_time)], times])
        first = np.zeros(0, dtype=bool)
    else:
        first = np.zeros(1, dtype=bool)
    if len(starts) < 2:
        return first
    with np.errstate(divide="ignore", invalid="ignore"):
        speeds = np.linalg.norm(np.diff(starts, axis=0), axis=1) / np.diff(times)
        fast = speeds > float(value)
    return np.concatenate([first, fast])


def get_split_statistics(total_rays: int, outside_rays: int, criterion: str, value) -> dict:
    """Generate statistics about a split.

    Args:
        total_rays: Number of rays processed
        outside_rays: Number of rays classified outside
        criterion: Split criterion used
        value: Split parameter used

    Returns:
        Dictionary with counts, outside percentage and a description
    """
    percentage = (outside_rays / total_rays * 100.0) if total_rays > 0 else 0.0
    if isinstance(value, (list, tuple, np.ndarray)):
        value_desc = ",".join(f"{float(v):g}" for v in np.asarray(value).reshape(-1))
    else:
        value_desc = f"{float(value):g}"

    return {
        "total_rays": total_rays,
        "inside_rays": total_rays - outside_rays,
        "outside_rays": outside_rays,
        "outside_percentage": percentage,
        "split_description": f"{criterion} {value_desc}",
    }
