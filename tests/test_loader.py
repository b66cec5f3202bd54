"""Tests for ray cloud loading, saving and chunked reading."""

import logging

import numpy as np
import pytest

from raycloud_alignment.preprocessing.loader import (
    RayCloudLoader,
    iter_cloud_chunks,
    load_cloud,
    save_cloud,
)
from raycloud_alignment.preprocessing.point_cloud import PointCloud


@pytest.fixture
def cloud():
    rng = np.random.default_rng(7)
    n = 25
    ends = rng.uniform(-50.0, 50.0, size=(n, 3))
    starts = ends + rng.uniform(-5.0, 5.0, size=(n, 3))
    times = np.linspace(100.0, 124.0, n)
    colours = rng.integers(1, 256, size=(n, 4)).astype(np.uint8)
    return PointCloud(ends, starts, times, colours)


class TestPly:

    def test_round_trip_is_exact(self, cloud, tmp_path):
        path = save_cloud(cloud, tmp_path / "rays.ply")
        loaded = load_cloud(path)

        np.testing.assert_array_equal(loaded.ends, cloud.ends)
        np.testing.assert_allclose(loaded.starts, cloud.starts, atol=1e-12)
        np.testing.assert_array_equal(loaded.times, cloud.times)
        np.testing.assert_array_equal(loaded.colours, cloud.colours)

    def test_chunks(self, cloud, tmp_path):
        path = tmp_path / "rays.ply"
        save_cloud(cloud, path)
        chunks = list(iter_cloud_chunks(path, chunk_points=10))
        assert [len(c) for c in chunks] == [10, 10, 5]
        np.testing.assert_array_equal(PointCloud.concatenate(chunks).ends, cloud.ends)


class TestLas:

    def test_round_trip_is_millimetric(self, cloud, tmp_path):
        path = tmp_path / "rays.las"
        save_cloud(cloud, path)
        loaded = load_cloud(path)

        np.testing.assert_allclose(loaded.ends, cloud.ends, atol=1e-3)
        # LAS points carry no start, so rays have zero length
        np.testing.assert_array_equal(loaded.starts, loaded.ends)
        np.testing.assert_allclose(loaded.times, cloud.times)
        np.testing.assert_array_equal(loaded.colours[:, :3], cloud.colours[:, :3])

    def test_chunks(self, cloud, tmp_path):
        path = tmp_path / "rays.las"
        save_cloud(cloud, path)
        chunks = list(RayCloudLoader(chunk_points=10).iter_chunks(path))
        assert sum(len(c) for c in chunks) == 25
        assert max(len(c) for c in chunks) <= 10


class TestErrors:

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_cloud(tmp_path / "missing.ply")

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "cloud.txt"
        path.write_text("0 0 0\n")
        with pytest.raises(ValueError):
            load_cloud(path)
        with pytest.raises(ValueError):
            save_cloud(PointCloud(np.zeros((1, 3))), path)

    def test_invalid_chunk_size(self):
        with pytest.raises(ValueError):
            RayCloudLoader(chunk_points=0)


def test_metadata(cloud, tmp_path):
    path = tmp_path / "rays.ply"
    save_cloud(cloud, path)
    meta = RayCloudLoader(chunk_points=7).get_metadata(path)
    assert meta["num_rays"] == 25
    assert meta["format"] == "ply"
    assert meta["bounds"]["min_x"] == pytest.approx(cloud.ends[:, 0].min())
    assert meta["time_range"] == (100.0, 124.0)


def test_las_save_warns_about_dropped_ray_data(cloud, tmp_path, caplog):
    with caplog.at_level(logging.WARNING):
        save_cloud(cloud, tmp_path / "rays.las")
    assert "ray starts and alpha are dropped" in caplog.text

    caplog.clear()
    points = PointCloud(cloud.ends)
    with caplog.at_level(logging.WARNING):
        save_cloud(points, tmp_path / "points.las")
    assert "dropped" not in caplog.text
