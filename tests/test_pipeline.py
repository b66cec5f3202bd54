"""
Tests for the spectral registration pipeline.

Scenes are small structured clouds (ground, walls of different lengths and
orientations, a pillar) so that both the rotation and the half turn are
identifiable.
"""

import numpy as np
import pytest

from raycloud_alignment.acceleration.jit_kernels import endpoint_rms
from raycloud_alignment.alignment.errors import (
    EmptyCloudError,
    InvalidDimensionError,
    PipelineStageError,
)
from raycloud_alignment.alignment.pipeline import (
    PipelineState,
    RegistrationPipeline,
    register_clouds,
)
from raycloud_alignment.alignment.transform import RigidTransform, wrap_angle
from raycloud_alignment.preprocessing.point_cloud import PointCloud
from raycloud_alignment.utils.config import DebugConfig, ParallelConfig, RegistrationConfig


def _wall(rng, p0, p1, height, n):
    s = rng.uniform(0.0, 1.0, n)
    xy = np.outer(1.0 - s, p0) + np.outer(s, p1) + 0.02 * rng.standard_normal((n, 2))
    return np.column_stack([xy, rng.uniform(0.0, height, n)])


def _scene(seed=0, scale=1.0):
    rng = np.random.default_rng(seed)
    ground = np.column_stack([
        rng.uniform(-10.0, 10.0, int(6000 * scale)),
        rng.uniform(-8.0, 8.0, int(6000 * scale)),
        0.02 * rng.standard_normal(int(6000 * scale)),
    ])
    theta = rng.uniform(0.0, 2.0 * np.pi, int(600 * scale))
    pillar = np.column_stack([
        4.0 + 0.5 * np.cos(theta), 2.0 + 0.5 * np.sin(theta), rng.uniform(0.0, 4.0, len(theta))
    ])
    return np.vstack([
        ground,
        _wall(rng, (-9.0, 6.0), (7.0, 6.0), 3.0, int(3000 * scale)),
        _wall(rng, (-9.0, -7.0), (-9.0, 6.0), 2.5, int(2500 * scale)),
        _wall(rng, (2.0, -6.0), (8.0, -1.0), 2.0, int(2000 * scale)),
        pillar,
    ])


@pytest.fixture(scope="module")
def scene():
    return _scene()


class TestTranslationOnly:

    def test_pure_translation(self, scene):
        shift = np.array([1.3, -0.7, 0.4])
        pipeline = RegistrationPipeline(RegistrationConfig(voxel_width=0.25, estimate_rotation=False))

        result = pipeline.run(scene, scene + shift)

        assert result.transform.angle == 0.0
        assert not result.rotation.estimated
        np.testing.assert_allclose(result.transform.translation, shift, atol=0.05)
        assert result.dropped_points == 0
        assert result.states == (
            PipelineState.INIT,
            PipelineState.GRIDS_BUILT,
            PipelineState.ROTATION_ESTIMATED,
            PipelineState.SOURCE_ROTATED,
            PipelineState.TRANSLATION_ESTIMATED,
            PipelineState.DONE,
        )

    def test_phase_only_correlation(self, scene):
        shift = np.array([-2.0, 0.6, 0.0])
        config = RegistrationConfig(voxel_width=0.25, estimate_rotation=False, normalize_cross_power=True)
        result = RegistrationPipeline(config).run(scene, scene + shift)
        np.testing.assert_allclose(result.transform.translation, shift, atol=0.05)

    def test_parallel_grid_build_matches(self, scene):
        shift = np.array([0.5, 0.5, -0.25])
        config = RegistrationConfig(voxel_width=0.25, estimate_rotation=False)
        serial = RegistrationPipeline(config).run(scene, scene + shift)
        parallel = RegistrationPipeline(config, parallel=ParallelConfig(enabled=True, n_workers=2)).run(
            scene, scene + shift
        )
        np.testing.assert_allclose(parallel.transform.translation, serial.transform.translation)


class TestRotation:

    def test_rotation_recovery(self, scene):
        truth = np.deg2rad(17.0)
        target = RigidTransform(angle=truth).apply(scene)
        config = RegistrationConfig(voxel_width=0.25, polar_angle_resolution=360)

        result = RegistrationPipeline(config).run(scene, target)

        assert result.rotation.estimated
        assert len(result.rotation.half_turn_scores) == 2
        assert abs(np.rad2deg(wrap_angle(result.transform.angle - truth))) < 2.0

    def test_full_pipeline_on_point_cloud(self, scene):
        truth = RigidTransform(angle=np.deg2rad(-25.0), translation=[2.0, -1.5, 0.3])
        source = PointCloud(scene)
        target = PointCloud(truth.apply(scene))
        initial = endpoint_rms(source.ends, target.ends)
        config = RegistrationConfig(voxel_width=0.25, polar_angle_resolution=360)

        result = register_clouds(source, target, config)

        assert abs(np.rad2deg(wrap_angle(result.transform.angle - truth.angle))) < 2.0
        np.testing.assert_allclose(result.transform.translation, truth.translation, atol=0.5)
        # the source cloud was moved onto the target
        final = endpoint_rms(source.ends, target.ends)
        assert final < 0.5
        assert final < 0.2 * initial
        assert result.residual_rmse < 0.5


class TestStages:

    def test_build_grids_share_dimensions(self, scene):
        pipeline = RegistrationPipeline(RegistrationConfig(voxel_width=0.5))
        grids = pipeline.build_grids(scene, RigidTransform(angle=0.5).apply(scene))
        assert grids.source.dims == grids.target.dims
        assert grids.source.dropped_points == 0
        assert not np.allclose(grids.source.origin, grids.target.origin)

    def test_disabled_rotation_stage(self, scene):
        pipeline = RegistrationPipeline(RegistrationConfig(voxel_width=0.5, estimate_rotation=False))
        grids = pipeline.build_grids(scene, scene)
        rotation = pipeline.estimate_rotation(grids, scene, scene)
        assert rotation.angle == 0.0
        assert rotation.peak is None
        rotated = pipeline.rotate_source(rotation, scene, scene, grids)
        assert rotated.grids is grids

    def test_debug_images_written(self, tmp_path):
        points = _scene(seed=3, scale=0.2)
        pipeline = RegistrationPipeline(
            RegistrationConfig(voxel_width=0.5, polar_angle_resolution=90),
            debug=DebugConfig(image_output=True, output_dir=str(tmp_path)),
        )
        pipeline.run(points, RigidTransform(angle=0.3).apply(points))
        for name in (
            "translationInvariant1.png", "translationInvariant2.png",
            "translationInvPolar1.png", "translationInvPolar2.png",
            "euclideanInvariant1.png", "euclideanInvariant2.png",
        ):
            assert (tmp_path / name).exists()


class TestErrors:

    def test_invalid_voxel_width(self):
        with pytest.raises(InvalidDimensionError):
            RegistrationPipeline(RegistrationConfig(voxel_width=0.0))

    def test_invalid_polar_resolution(self):
        with pytest.raises(InvalidDimensionError):
            RegistrationPipeline(RegistrationConfig(polar_angle_resolution=0))

    def test_empty_cloud_aborts_in_init(self, scene):
        with pytest.raises(PipelineStageError) as excinfo:
            RegistrationPipeline().run(np.empty((0, 3)), scene)
        assert excinfo.value.stage is PipelineState.INIT
        assert isinstance(excinfo.value.cause, EmptyCloudError)
        assert "init" in str(excinfo.value)

    def test_failure_leaves_source_untouched(self, scene):
        source = PointCloud(scene[:100])
        before = source.ends.copy()
        with pytest.raises(PipelineStageError):
            RegistrationPipeline().run(source, PointCloud.empty())
        np.testing.assert_array_equal(source.ends, before)

    def test_degenerate_correlation_is_reported(self):
        # a single point per cloud gives a flat angular correlation
        result = RegistrationPipeline().run(np.array([[1.0, 2.0, 3.0]]), np.array([[4.0, 5.0, 6.0]]))

        assert result.states[-1] is PipelineState.DONE
        assert result.rotation.degenerate
        assert PipelineState.ROTATION_ESTIMATED in result.degenerate_stages
        np.testing.assert_allclose(result.translation.origin_offset, [3.0, 3.0, 3.0])
        np.testing.assert_allclose(result.transform.translation, [3.0, 3.0, 3.0])
