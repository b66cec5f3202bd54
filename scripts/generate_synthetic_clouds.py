"""
Generate a synthetic ray cloud pair with a known rigid misalignment.

- Builds a structured scene: a ground patch, three vertical walls of different
  lengths and orientations, and a pillar. The walls break the point symmetry
  of the scene so that the rotation can be recovered unambiguously.
- Rays start at a scanner position and end on the scene.
- Cloud B is cloud A moved by a rotation about the vertical axis plus a
  translation, with fresh sampling noise.
- Writes <out>/scene_a.ply, <out>/scene_b.ply and the ground-truth transform.
"""
from __future__ import annotations

import argparse
import math
import sys
from pathlib import Path

import numpy as np

# Add the src to the path to import modules
sys.path.append(str(Path(__file__).parent.parent / "src"))

from raycloud_alignment.alignment import RigidTransform, save_transform_matrix
from raycloud_alignment.preprocessing import PointCloud, save_cloud
from raycloud_alignment.utils.logging import setup_logger

logger = setup_logger(__name__)


def wall(rng, p0, p1, height, n, thickness=0.02):
    """Points on a vertical wall between two XY endpoints."""
    s = rng.uniform(0.0, 1.0, n)
    xy = np.outer(1.0 - s, p0) + np.outer(s, p1)
    xy += thickness * rng.standard_normal((n, 2))
    z = rng.uniform(0.0, height, n)
    return np.column_stack([xy, z])


def make_scene(seed=0, density=1.0):
    rng = np.random.default_rng(seed)

    def n(count):
        return max(1, int(count * density))

    ground = np.column_stack([
        rng.uniform(-10.0, 10.0, n(8000)),
        rng.uniform(-8.0, 8.0, n(8000)),
        0.02 * rng.standard_normal(n(8000)),
    ])
    walls = [
        wall(rng, (-9.0, 6.0), (7.0, 6.0), 3.0, n(3000)),
        wall(rng, (-9.0, -7.0), (-9.0, 6.0), 2.5, n(2500)),
        wall(rng, (2.0, -6.0), (8.0, -1.0), 2.0, n(2000)),
    ]
    theta = rng.uniform(0.0, 2.0 * np.pi, n(800))
    pillar = np.column_stack([
        4.0 + 0.5 * np.cos(theta),
        2.0 + 0.5 * np.sin(theta),
        rng.uniform(0.0, 4.0, n(800)),
    ])
    return np.vstack([ground, *walls, pillar])


def make_rays(ends, scanner=(0.0, 0.0, 1.5), time_span=10.0):
    """A ray cloud whose rays all start at one scanner position."""
    starts = np.tile(np.asarray(scanner, dtype=float), (len(ends), 1))
    times = np.linspace(0.0, time_span, len(ends))
    return PointCloud(ends, starts, times)


def main():
    parser = argparse.ArgumentParser(description="Generate a misaligned synthetic ray cloud pair")
    parser.add_argument("--out", type=str, default="data/synthetic", help="Output directory")
    parser.add_argument("--angle", type=float, default=17.0, help="Rotation about Z in degrees")
    parser.add_argument("--translation", type=float, nargs=3, default=[1.3, -0.8, 0.3])
    parser.add_argument("--seed", type=int, default=0)
    parser.add_argument("--density", type=float, default=1.0, help="Point count multiplier")
    args = parser.parse_args()

    out = Path(args.out)
    out.mkdir(parents=True, exist_ok=True)

    truth = RigidTransform(angle=math.radians(args.angle), translation=args.translation)
    # A is a resampled copy of the scene moved by the inverse of the truth,
    # so aligning A onto B must recover the truth
    cloud_a = make_rays(make_scene(args.seed, args.density))
    inverse = truth.inverse()
    cloud_a.apply_transform(inverse.rotation, inverse.translation)
    cloud_b = make_rays(make_scene(args.seed + 1, args.density))

    save_cloud(cloud_a, out / "scene_a.ply")
    save_cloud(cloud_b, out / "scene_b.ply")
    save_transform_matrix(truth, str(out / "scene_a_truth.txt"))
    logger.info(f"Wrote synthetic pair to {out}: aligning scene_a onto scene_b needs {truth}")


if __name__ == "__main__":
    main()
