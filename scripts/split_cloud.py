"""
Split a ray cloud into <stub>_inside.ply and <stub>_outside.ply.

A ray goes to the outside file when the criterion holds:

    split_cloud.py cloud.ply pos 0,0,1          - end . (v/|v|^2) > 1
    split_cloud.py cloud.ply startpos 0,0,1     - start . (v/|v|^2) > 0
    split_cloud.py cloud.ply raydir 0,0,0.8     - normalized direction . (v/|v|^2) > 0
    split_cloud.py cloud.ply colour 0.5,0,0     - rgb . (v/|v|^2) > 0
    split_cloud.py cloud.ply alpha 0.0          - alpha > 255 * a
    split_cloud.py cloud.ply range 10           - ray length > r
    split_cloud.py cloud.ply speed 1.0          - sensor speed > s
    split_cloud.py cloud.ply time 1000          - time > t
    split_cloud.py cloud.ply time 50 %          - time > min + (max - min) * p / 100
"""

import argparse
import logging
import sys
from pathlib import Path

# Add the src to the path to import modules
sys.path.append(str(Path(__file__).parent.parent / "src"))

from raycloud_alignment.preprocessing import split_cloud_file
from raycloud_alignment.utils.config import load_config
from raycloud_alignment.utils.logging import set_package_log_level, setup_logger
from raycloud_alignment.utils.point_cloud_filters import SPLIT_CRITERIA, VECTOR_CRITERIA


def parse_value(criterion: str, text: str):
    if criterion in VECTOR_CRITERIA:
        parts = [float(v) for v in text.split(",")]
        if len(parts) != 3:
            raise argparse.ArgumentTypeError(f"{criterion} expects a vector x,y,z, got '{text}'")
        return parts
    return float(text)


def main():
    parser = argparse.ArgumentParser(description="Split a ray cloud by a per-ray criterion")
    parser.add_argument("cloud", type=str, help="Input ray cloud (.ply, .las, .laz)")
    parser.add_argument("criterion", choices=SPLIT_CRITERIA)
    parser.add_argument("value", type=str, help="Scalar, or x,y,z for vector criteria")
    parser.add_argument("percent", nargs="?", choices=["%"], default=None,
                        help="Interpret a time value as a percentage of the time span")
    parser.add_argument("--config", type=str, default=None)
    args = parser.parse_args()

    cfg = load_config(args.config)
    log_level = getattr(logging, cfg.logging.level.upper(), logging.INFO)
    logger = setup_logger(__name__, level=log_level, log_file=cfg.logging.file)
    set_package_log_level(log_level, cfg.logging.file)

    try:
        value = parse_value(args.criterion, args.value)
        stats = split_cloud_file(
            args.cloud,
            args.criterion,
            value,
            percent=args.percent is not None,
            chunk_points=cfg.io.chunk_points,
        )
    except (ValueError, FileNotFoundError, argparse.ArgumentTypeError) as e:
        logger.error(str(e))
        sys.exit(1)

    logger.info(
        f"{stats['inside_rays']:,} rays inside, {stats['outside_rays']:,} outside "
        f"({stats['outside_percentage']:.1f}%)"
    )


if __name__ == "__main__":
    main()
