"""
Spectral Rigid Registration

Aligns a source ray cloud onto a target ray cloud without point
correspondences:

1. Both clouds are binned into density grids of identical dimensions (each
   anchored at its own minimum corner) and transformed to the frequency
   domain.
2. The Fourier magnitudes are translation invariant. Resampled into polar
   layers, a rotation about the vertical axis becomes a circular shift along
   the angle axis, found by 1D correlation of the angular profiles.
3. The source is rotated by that angle and re-gridded.
4. A 3D cross-correlation of the re-gridded source against the target gives
   the remaining translation.

Each stage is a method returning an immutable value consumed by the next,
so stages can be run and tested in isolation. run() chains them and records
the states visited.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, TYPE_CHECKING

import numpy as np
from sklearn.neighbors import NearestNeighbors

from .array1d import Array1D
from .bounding_box import BoundingBox, shared_extent
from .density_grid import DensityGrid3D, grid_dims
from .errors import EmptyCloudError, InvalidDimensionError, PipelineStageError
from .peak import PeakEstimate, SubpixelPeakFinder
from .polar import PolarResampler
from .transform import RigidTransform, rotation_about_z, wrap_angle
from ..acceleration.parallel_executor import GridParallelExecutor
from ..utils.config import AppConfig, DebugConfig, ParallelConfig, RegistrationConfig
from ..utils.logging import setup_logger
from ..visualization.debug_images import write_magnitude_image, write_polar_images

if TYPE_CHECKING:
    from ..preprocessing.point_cloud import PointCloud

logger = setup_logger(__name__)


class PipelineState(str, Enum):
    INIT = "init"
    GRIDS_BUILT = "grids_built"
    ROTATION_ESTIMATED = "rotation_estimated"
    SOURCE_ROTATED = "source_rotated"
    TRANSLATION_ESTIMATED = "translation_estimated"
    DONE = "done"


# ------------------------ Stage results ------------------------


@dataclass(frozen=True, eq=False)
class GridPair:
    """Forward-transformed source and target grids of identical dimensions."""
    source: DensityGrid3D
    target: DensityGrid3D
    extent: np.ndarray

    @property
    def dims(self) -> Tuple[int, int, int]:
        return self.source.dims


@dataclass(frozen=True)
class RotationEstimate:
    """
    Rotation about the vertical axis aligning source onto target.

    Attributes:
        angle: Radians in (-pi, pi]
        peak: Refined angular correlation peak, None when rotation was not estimated
        half_turn_scores: Translation correlation peaks of the (angle, angle + pi)
            candidates, empty when the half turn was not resolved
        flipped: True when the half-turn candidate won
    """
    angle: float = 0.0
    peak: Optional[PeakEstimate] = None
    half_turn_scores: Tuple[float, ...] = ()
    flipped: bool = False

    @property
    def estimated(self) -> bool:
        return self.peak is not None

    @property
    def degenerate(self) -> bool:
        return self.peak is not None and self.peak.degenerate


@dataclass(frozen=True, eq=False)
class RotatedSource:
    """Source endpoints after the rotation stage, with grids rebuilt to match."""
    points: np.ndarray
    angle: float
    grids: GridPair


@dataclass(frozen=True, eq=False)
class TranslationEstimate:
    """
    Translation aligning the rotated source onto the target.

    Attributes:
        translation: (3,) world-space translation
        peaks: Per-axis refined correlation peaks
        peak_index: Integer index of the 3D correlation maximum
        peak_value: Correlation value at peak_index
        origin_offset: Target grid origin minus source grid origin
    """
    translation: np.ndarray
    peaks: Tuple[PeakEstimate, ...]
    peak_index: Tuple[int, int, int]
    peak_value: float
    origin_offset: np.ndarray

    @property
    def degenerate(self) -> bool:
        return any(p.degenerate for p in self.peaks)


@dataclass(frozen=True, eq=False)
class RegistrationResult:
    """
    Outcome of a full pipeline run.

    Attributes:
        transform: Rigid transform mapping source endpoints onto the target
        rotation: Rotation stage result
        translation: Translation stage result
        dropped_points: Points that fell outside any grid built during the run
        degenerate_stages: Stages whose peak refinement fell back to the integer peak
        states: States visited, in order
        residual_rmse: Nearest-neighbour RMSE of the aligned source against the target
    """
    transform: RigidTransform
    rotation: RotationEstimate
    translation: TranslationEstimate
    dropped_points: int = 0
    degenerate_stages: Tuple[PipelineState, ...] = ()
    states: Tuple[PipelineState, ...] = field(default=())
    residual_rmse: Optional[float] = None


# ------------------------ Helpers ------------------------


def _endpoints(cloud) -> np.ndarray:
    """Nx3 endpoint array of a PointCloud or a raw array."""
    points = np.asarray(getattr(cloud, "ends", cloud), dtype=np.float64)
    if points.size == 0:
        raise EmptyCloudError("Cannot register an empty cloud")
    return points.reshape(-1, 3)


def build_spectrum(points: np.ndarray, voxel_width: float, extent: np.ndarray) -> DensityGrid3D:
    """Density grid of points over extent, forward transformed.

    Module level so that it can run in worker processes.
    """
    return DensityGrid3D.from_points(points, voxel_width, extent=extent).forward_transform()


def nearest_neighbour_rmse(
    source: np.ndarray,
    target: np.ndarray,
    transform: RigidTransform,
    *,
    max_pairs: int = 3000,
) -> float:
    """RMSE of transformed source samples to their nearest target endpoints."""
    if source.size == 0 or target.size == 0:
        return float("inf")
    rng = np.random.default_rng(0)
    n_src = min(max_pairs, len(source))
    # cap product to ~2e6 distance evaluations
    max_prod = 2_000_000
    n_tgt = min(len(target), max(1000, int(max_prod / max(1, n_src))))
    idx_s = rng.choice(len(source), n_src, replace=False) if len(source) > n_src else np.arange(len(source))
    idx_t = rng.choice(len(target), n_tgt, replace=False) if len(target) > n_tgt else np.arange(len(target))
    nn = NearestNeighbors(n_neighbors=1, algorithm="kd_tree")
    nn.fit(target[idx_t])
    d, _ = nn.kneighbors(transform.apply(source[idx_s]))
    return float(np.sqrt(np.mean(d.reshape(-1) ** 2)))


# ------------------------ Pipeline ------------------------


class RegistrationPipeline:
    """
    Estimates the rigid transform aligning a source cloud onto a target cloud.

    Example:
        pipeline = RegistrationPipeline(RegistrationConfig(voxel_width=0.25))
        result = pipeline.run(source_cloud, target_cloud)
        print(result.transform)
    """

    def __init__(
        self,
        config: Optional[RegistrationConfig] = None,
        *,
        debug: Optional[DebugConfig] = None,
        parallel: Optional[ParallelConfig] = None,
    ):
        """
        Args:
            config: Registration settings (voxel width, rotation and polar options)
            debug: Debug image output settings
            parallel: Build the two grids in worker processes when enabled

        Raises:
            InvalidDimensionError: If the voxel width or a polar resolution is not positive
        """
        self.config = config or RegistrationConfig()
        self.debug = debug or DebugConfig()
        self.parallel = parallel or ParallelConfig()

        if not self.config.voxel_width > 0:
            raise InvalidDimensionError(f"Voxel width must be positive, got {self.config.voxel_width}")
        self.voxel_width = float(self.config.voxel_width)
        self.resampler = PolarResampler(
            self.config.polar_angle_resolution, self.config.polar_radius_resolution
        )

    @classmethod
    def from_config(cls, app_config: AppConfig) -> "RegistrationPipeline":
        return cls(app_config.alignment, debug=app_config.debug, parallel=app_config.parallel)

    # ------------------------ Stages ------------------------
    def build_grids(self, source_points: np.ndarray, target_points: np.ndarray) -> GridPair:
        """Init -> GridsBuilt: grid both clouds over their shared extent and transform them."""
        source_points = _endpoints(source_points)
        target_points = _endpoints(target_points)
        extent = shared_extent([
            BoundingBox.from_points(source_points),
            BoundingBox.from_points(target_points),
        ])
        source_grid, target_grid = self._build_spectra([source_points, target_points], extent)
        logger.info(
            "Built %s density grids (voxel width %.3f).",
            "x".join(str(d) for d in source_grid.dims), self.voxel_width,
        )

        if self.debug.image_output:
            out = Path(self.debug.output_dir)
            write_magnitude_image(source_grid, out / "translationInvariant1.png")
            write_magnitude_image(target_grid, out / "translationInvariant2.png")
        return GridPair(source=source_grid, target=target_grid, extent=extent)

    def estimate_rotation(
        self,
        grids: GridPair,
        source_points: Optional[np.ndarray] = None,
        target_points: Optional[np.ndarray] = None,
    ) -> RotationEstimate:
        """GridsBuilt -> RotationEstimated: angle from the polar magnitude correlation.

        The magnitude spectrum of a real field is point symmetric, so the angle
        is only known up to a half turn. When both point sets are given and
        resolve_half_turn is set, the two candidates are told apart by their
        translation correlation peaks.
        """
        if not self.config.estimate_rotation:
            logger.info("Rotation estimation disabled; keeping the source heading.")
            return RotationEstimate()

        polar_source = self.resampler.resample(grids.source)
        polar_target = self.resampler.resample(grids.target)
        if self.debug.image_output:
            out = Path(self.debug.output_dir)
            write_polar_images(polar_source, out / "translationInvPolar1.png", out / "euclideanInvariant1.png")
            write_polar_images(polar_target, out / "translationInvPolar2.png", out / "euclideanInvariant2.png")

        correlation: Optional[Array1D] = None
        for source_profile, target_profile in zip(polar_source.layer_profiles(), polar_target.layer_profiles()):
            layer = source_profile.remove_mean().correlate(target_profile.remove_mean())
            if correlation is None:
                correlation = layer
            else:
                correlation += layer

        peak = SubpixelPeakFinder.find(correlation.values)
        angle = wrap_angle(SubpixelPeakFinder.to_angle(peak))
        logger.info(
            "Angular correlation peak at bin %d%+.3f of %d: %.3f deg.",
            peak.index, peak.offset, peak.length, np.rad2deg(angle),
        )

        if not self.config.resolve_half_turn or source_points is None or target_points is None:
            return RotationEstimate(angle=angle, peak=peak)

        source_points = _endpoints(source_points)
        target_points = _endpoints(target_points)
        candidates = (angle, wrap_angle(angle + np.pi))
        scores = []
        for candidate in candidates:
            pair = self._regrid_source(self._rotate(source_points, candidate), target_points, grids)
            corr = self._correlate(pair)
            scores.append(corr.real_at(corr.max_real_index()))
        flipped = scores[1] > scores[0]
        logger.info(
            "Half-turn scores: %.4g at %.3f deg, %.4g at %.3f deg.",
            scores[0], np.rad2deg(candidates[0]), scores[1], np.rad2deg(candidates[1]),
        )
        return RotationEstimate(
            angle=candidates[1] if flipped else candidates[0],
            peak=peak,
            half_turn_scores=tuple(float(s) for s in scores),
            flipped=bool(flipped),
        )

    def rotate_source(
        self,
        rotation: RotationEstimate,
        source_points: np.ndarray,
        target_points: np.ndarray,
        grids: GridPair,
    ) -> RotatedSource:
        """RotationEstimated -> SourceRotated: rotate a copy of the source and re-grid it.

        The caller's cloud is not touched until the final transform is applied.
        """
        source_points = _endpoints(source_points)
        if rotation.angle == 0.0:
            return RotatedSource(points=source_points, angle=0.0, grids=grids)
        target_points = _endpoints(target_points)
        rotated = self._rotate(source_points, rotation.angle)
        pair = self._regrid_source(rotated, target_points, grids)
        logger.info("Rotated source by %.3f deg and rebuilt its grid.", np.rad2deg(rotation.angle))
        return RotatedSource(points=rotated, angle=rotation.angle, grids=pair)

    def estimate_translation(self, rotated: RotatedSource) -> TranslationEstimate:
        """SourceRotated -> TranslationEstimated: 3D correlation peak to world translation.

        The grids are anchored at their own clouds' minimum corners, so the
        origin difference is added to the voxel shift.
        """
        corr = self._correlate(rotated.grids)
        index = corr.max_real_index()
        peaks = SubpixelPeakFinder.find_along_axes(corr.cells, index)
        shift = np.array([SubpixelPeakFinder.to_translation(p, self.voxel_width) for p in peaks])
        origin_offset = rotated.grids.target.origin - rotated.grids.source.origin
        translation = shift + origin_offset
        logger.info(
            "Translation: %s plus origin difference %s gives %s.",
            np.array2string(shift, precision=4),
            np.array2string(origin_offset, precision=4),
            np.array2string(translation, precision=4),
        )
        return TranslationEstimate(
            translation=translation,
            peaks=peaks,
            peak_index=index,
            peak_value=corr.real_at(index),
            origin_offset=origin_offset,
        )

    @staticmethod
    def compose(rotation: RotationEstimate, translation: TranslationEstimate) -> RigidTransform:
        """TranslationEstimated -> Done: rotation first, then translation."""
        return RigidTransform(angle=rotation.angle, translation=translation.translation)

    # ------------------------ Run ------------------------
    def run(self, source, target, *, apply: bool = True) -> RegistrationResult:
        """
        Register source onto target.

        Args:
            source: PointCloud (or Nx3 endpoints) to align
            target: PointCloud (or Nx3 endpoints) to align onto
            apply: Apply the final transform to source when it is a PointCloud

        Returns:
            RegistrationResult

        Raises:
            PipelineStageError: If a stage fails; .stage names the state the
                pipeline was in and the source is left unchanged
        """
        t0 = time.time()
        state = PipelineState.INIT
        states: List[PipelineState] = [state]
        try:
            source_points = _endpoints(source)
            target_points = _endpoints(target)
            logger.info(f"Registering {len(source_points):,} source onto {len(target_points):,} target endpoints")

            grids = self.build_grids(source_points, target_points)
            state = PipelineState.GRIDS_BUILT
            states.append(state)

            rotation = self.estimate_rotation(grids, source_points, target_points)
            state = PipelineState.ROTATION_ESTIMATED
            states.append(state)

            rotated = self.rotate_source(rotation, source_points, target_points, grids)
            state = PipelineState.SOURCE_ROTATED
            states.append(state)

            translation = self.estimate_translation(rotated)
            state = PipelineState.TRANSLATION_ESTIMATED
            states.append(state)

            transform = self.compose(rotation, translation)
        except Exception as e:
            logger.error(f"Registration aborted in state '{state.value}': {e}")
            raise PipelineStageError(state, e) from e

        if apply and hasattr(source, "apply_transform"):
            source.apply_transform(transform.rotation, transform.translation)
        states.append(PipelineState.DONE)

        built = {id(g): g for g in (grids.source, grids.target, rotated.grids.source, rotated.grids.target)}
        dropped = sum(g.dropped_points for g in built.values())
        degenerate = []
        if rotation.degenerate:
            degenerate.append(PipelineState.ROTATION_ESTIMATED)
        if translation.degenerate:
            degenerate.append(PipelineState.TRANSLATION_ESTIMATED)

        rmse = nearest_neighbour_rmse(source_points, target_points, transform)
        logger.info(f"Registration done in {time.time() - t0:.2f}s: {transform} (NN RMSE {rmse:.4f})")
        if dropped:
            logger.warning(f"{dropped} points fell outside their density grids and were ignored")

        return RegistrationResult(
            transform=transform,
            rotation=rotation,
            translation=translation,
            dropped_points=int(dropped),
            degenerate_stages=tuple(degenerate),
            states=tuple(states),
            residual_rmse=rmse,
        )

    # ------------------------ Internals ------------------------
    @staticmethod
    def _rotate(points: np.ndarray, angle: float) -> np.ndarray:
        return points @ rotation_about_z(angle).T

    def _build_spectra(self, points_list: Sequence[np.ndarray], extent: np.ndarray) -> List[DensityGrid3D]:
        kwargs = {"voxel_width": self.voxel_width, "extent": extent}
        if self.parallel.enabled and len(points_list) > 1:
            executor = GridParallelExecutor(n_workers=self.parallel.n_workers)
            return executor.map_tasks(list(points_list), build_spectrum, kwargs)
        return [build_spectrum(points, **kwargs) for points in points_list]

    def _regrid_source(self, rotated_points: np.ndarray, target_points: np.ndarray, grids: GridPair) -> GridPair:
        """Grid rotated source points; the target is rebuilt only if the grid must grow."""
        extent = np.maximum(grids.extent, BoundingBox.from_points(rotated_points).extent)
        if grid_dims(extent, self.voxel_width) == grids.target.dims:
            source_grid = build_spectrum(rotated_points, self.voxel_width, extent)
            return GridPair(source=source_grid, target=grids.target, extent=extent)
        source_grid, target_grid = self._build_spectra([rotated_points, target_points], extent)
        return GridPair(source=source_grid, target=target_grid, extent=extent)

    def _correlate(self, grids: GridPair) -> DensityGrid3D:
        """Inverse transform of the (optionally phase-only) cross-power spectrum."""
        corr = grids.source.copy().conjugate_multiply(grids.target)
        if self.config.normalize_cross_power:
            corr.normalize_magnitude()
        return corr.inverse_transform()


def register_clouds(
    source: "PointCloud",
    target: "PointCloud",
    config: Optional[RegistrationConfig] = None,
    *,
    apply: bool = True,
    debug: Optional[DebugConfig] = None,
    parallel: Optional[ParallelConfig] = None,
) -> RegistrationResult:
    """Run a RegistrationPipeline once with the given settings."""
    return RegistrationPipeline(config, debug=debug, parallel=parallel).run(source, target, apply=apply)
