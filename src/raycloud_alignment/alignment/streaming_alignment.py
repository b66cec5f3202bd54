"""
Streaming alignment utilities

Applies an estimated rigid transform to ray cloud files chunk by chunk, and
stores transforms as 4x4 text matrices next to the aligned output.
"""

from pathlib import Path
from typing import List, Union

import numpy as np

from .transform import RigidTransform
from ..preprocessing.loader import RayCloudLoader
from ..preprocessing.splitting import ChunkedCloudWriter
from ..utils.logging import setup_logger

logger = setup_logger(__name__)


def _as_matrix(transform: Union[np.ndarray, RigidTransform]) -> np.ndarray:
    if isinstance(transform, RigidTransform):
        return transform.as_matrix()
    transform = np.asarray(transform, dtype=np.float64)
    if transform.shape != (4, 4):
        raise ValueError(f"Transform must be 4x4 matrix, got {transform.shape}")
    return transform


def apply_transform_to_files(
    input_files: List[str],
    output_dir: str,
    transform: Union[np.ndarray, RigidTransform],
    *,
    chunk_points: int = 1_000_000,
) -> List[str]:
    """Apply a rigid transform to ray cloud files in streaming fashion.

    Ray starts and ends are both transformed; times and colours are copied.
    Each input is written to output_dir as <stem>_aligned<suffix>.

    Args:
        input_files: Input PLY/LAS/LAZ file paths
        output_dir: Directory to write transformed files
        transform: 4x4 matrix or RigidTransform
        chunk_points: Number of rays to process per chunk

    Returns:
        List of output file paths

    Raises:
        ValueError: If transform is not a 4x4 matrix
    """
    T = _as_matrix(transform)
    R = T[:3, :3]
    t = T[:3, 3]

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    loader = RayCloudLoader(chunk_points=chunk_points)

    logger.info(f"Applying transformation to {len(input_files)} files (chunk size: {chunk_points} rays)")
    output_files = []
    for input_file in input_files:
        input_path = Path(input_file)
        output_path = output_dir / f"{input_path.stem}_aligned{input_path.suffix}"
        logger.info(f"Transforming {input_path.name} -> {output_path.name}")

        with ChunkedCloudWriter(output_path, loader) as writer:
            for chunk in loader.iter_chunks(input_path):
                chunk.apply_transform(R, t)
                writer.write_chunk(chunk)

        logger.info(f"Wrote transformed file: {output_path} ({writer.count:,} rays)")
        output_files.append(str(output_path))

    return output_files


def save_transform_matrix(transform: Union[np.ndarray, RigidTransform], output_file: str) -> None:
    """Save a transformation matrix to a text file.

    Args:
        transform: 4x4 matrix or RigidTransform
        output_file: Path to output file
    """
    np.savetxt(output_file, _as_matrix(transform), fmt='%.18e', header='4x4 transformation matrix')
    logger.info(f"Saved transformation matrix to {output_file}")


def load_transform_matrix(input_file: str) -> np.ndarray:
    """Load a 4x4 transformation matrix from a text file."""
    transform = np.loadtxt(input_file)
    if transform.shape != (4, 4):
        raise ValueError(f"Expected 4x4 matrix, got shape {transform.shape}")
    logger.info(f"Loaded transformation matrix from {input_file}")
    return transform
