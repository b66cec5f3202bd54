"""
Align ray cloud A onto ray cloud B, rigidly.

Writes the transformed version of cloud A as <stubA>_aligned.ply next to it,
together with the estimated 4x4 transform (<stubA>_transform.txt).

Usage:
    uv run scripts/align_clouds.py cloudA.ply cloudB.ply [--config config/profiles/fine_rotation.yaml]
"""

import argparse
import logging
import sys
from pathlib import Path

import numpy as np

# Add the src to the path to import modules
sys.path.append(str(Path(__file__).parent.parent / "src"))

from raycloud_alignment.alignment import (
    PipelineStageError,
    RegistrationPipeline,
    RigidTransform,
    load_transform_matrix,
    save_transform_matrix,
)
from raycloud_alignment.preprocessing import RayCloudLoader
from raycloud_alignment.utils.config import AppConfig, load_config
from raycloud_alignment.utils.logging import set_package_log_level, setup_logger


def main():
    parser = argparse.ArgumentParser(description="Align raycloudA onto raycloudB, rigidly")
    parser.add_argument("cloud_a", type=str, help="Ray cloud to move")
    parser.add_argument("cloud_b", type=str, help="Reference ray cloud")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to YAML configuration file (defaults to config/default.yaml)",
    )
    parser.add_argument("--voxel-width", type=float, default=None, help="Override alignment.voxel_width")
    parser.add_argument("--no-rotation", action="store_true", help="Only estimate a translation")
    parser.add_argument("--debug-images", action="store_true", help="Write intermediate magnitude images")
    parser.add_argument(
        "--truth",
        type=str,
        default=None,
        help="4x4 ground-truth transform (e.g. from generate_synthetic_clouds.py) to report the error against",
    )
    args = parser.parse_args()

    cfg: AppConfig = load_config(args.config)
    if args.voxel_width is not None:
        cfg.alignment.voxel_width = args.voxel_width
    if args.no_rotation:
        cfg.alignment.estimate_rotation = False
    if args.debug_images:
        cfg.debug.image_output = True

    log_level = getattr(logging, cfg.logging.level.upper(), logging.INFO)
    logger = setup_logger(__name__, level=log_level, log_file=cfg.logging.file)
    set_package_log_level(log_level, cfg.logging.file)

    loader = RayCloudLoader(chunk_points=cfg.io.chunk_points)
    cloud_a = loader.load(args.cloud_a)
    cloud_b = loader.load(args.cloud_b)

    try:
        result = RegistrationPipeline.from_config(cfg).run(cloud_a, cloud_b)
    except PipelineStageError as e:
        logger.error(str(e))
        sys.exit(1)

    logger.info(f"Estimated transform: {result.transform}")
    logger.info(f"Rotation quaternion (w, x, y, z): {np.round(result.transform.quaternion, 6).tolist()}")
    if result.rotation.estimated:
        logger.info(f"Rotation half-turn scores: {result.rotation.half_turn_scores}")
    if result.degenerate_stages:
        logger.warning(f"Degenerate peaks in: {[s.value for s in result.degenerate_stages]}")

    path_a = Path(args.cloud_a)
    stub = path_a.with_suffix("")
    out_cloud = stub.with_name(stub.name + "_aligned.ply")
    out_transform = stub.with_name(stub.name + "_transform.txt")
    loader.save(cloud_a, out_cloud)
    save_transform_matrix(result.transform, str(out_transform))
    logger.info(f"Wrote {out_cloud} and {out_transform}")

    if args.truth:
        truth = RigidTransform.from_matrix(load_transform_matrix(args.truth))
        error = result.transform.then(truth.inverse())
        logger.info(
            f"Error against {Path(args.truth).name}: rotation {abs(error.angle_degrees):.3f} deg, "
            f"translation {np.linalg.norm(error.translation):.4f}"
        )


if __name__ == "__main__":
    main()
