"""Tests for chunked splitting of ray cloud files."""

from pathlib import Path

import numpy as np
import pytest

from raycloud_alignment.preprocessing.loader import iter_cloud_chunks, load_cloud, save_cloud
from raycloud_alignment.preprocessing.point_cloud import PointCloud
from raycloud_alignment.preprocessing.splitting import (
    ChunkedCloudWriter,
    default_split_paths,
    split_cloud_file,
    time_bounds,
)


@pytest.fixture
def timed_cloud(tmp_path):
    n = 100
    ends = np.column_stack([np.arange(n, dtype=float), np.zeros(n), np.zeros(n)])
    path = tmp_path / "scan.ply"
    save_cloud(PointCloud(ends, times=np.arange(n, dtype=float)), path)
    return path


def test_default_split_paths():
    inside, outside = default_split_paths(Path("a/b/cloud.laz"))
    assert inside == Path("a/b/cloud_inside.ply")
    assert outside == Path("a/b/cloud_outside.ply")


def test_time_split_across_chunks(timed_cloud):
    stats = split_cloud_file(timed_cloud, "time", 49.5, chunk_points=7)

    assert stats["total_rays"] == 100
    assert stats["outside_rays"] == 50
    inside = load_cloud(stats["inside_path"])
    outside = load_cloud(stats["outside_path"])
    assert len(inside) == 50 and len(outside) == 50
    assert inside.times.max() < 49.5 < outside.times.min()
    np.testing.assert_array_equal(outside.times, np.arange(50, 100, dtype=float))


def test_time_percent_uses_time_span(timed_cloud, tmp_path):
    assert time_bounds(timed_cloud, chunk_points=9) == (0.0, 99.0)
    stats = split_cloud_file(
        timed_cloud, "time", 50, percent=True,
        inside_path=tmp_path / "early.ply", outside_path=tmp_path / "late.ply",
        chunk_points=9,
    )
    assert stats["outside_rays"] == 50
    assert (tmp_path / "early.ply").exists()


def test_speed_carries_previous_ray_between_chunks(tmp_path):
    n = 20
    steps = np.ones(n)
    steps[0] = 0.0
    steps[7] = 100.0
    starts = np.column_stack([np.cumsum(steps), np.zeros(n), np.zeros(n)])
    path = tmp_path / "moving.ply"
    save_cloud(PointCloud(starts + [0.0, 0.0, -1.0], starts, times=np.arange(n, dtype=float)), path)

    stats = split_cloud_file(path, "speed", 10.0, chunk_points=7)

    assert stats["outside_rays"] == 1
    np.testing.assert_array_equal(load_cloud(stats["outside_path"]).times, [7.0])


def test_las_outputs(timed_cloud, tmp_path):
    stats = split_cloud_file(
        timed_cloud, "pos", [60.0, 0.0, 0.0],
        inside_path=tmp_path / "in.las", outside_path=tmp_path / "out.las",
        chunk_points=30,
    )
    assert len(load_cloud(tmp_path / "in.las")) == stats["inside_rays"] == 61
    assert len(load_cloud(tmp_path / "out.las")) == stats["outside_rays"] == 39


def test_invalid_requests(timed_cloud):
    with pytest.raises(ValueError):
        split_cloud_file(timed_cloud, "colour", [1.0, 0.0, 0.0], percent=True)
    with pytest.raises(ValueError):
        split_cloud_file(timed_cloud, "bogus", 1.0)


def test_ply_writer_streams_chunks(tmp_path):
    rng = np.random.default_rng(3)
    path = tmp_path / "out.ply"
    chunks = [
        PointCloud(ends, ends + [0.0, 0.0, 1.5], times=np.arange(200.0) + 200 * i)
        for i, ends in enumerate(rng.uniform(-10.0, 10.0, size=(3, 200, 3)))
    ]

    sizes = []
    with ChunkedCloudWriter(path) as writer:
        for chunk in chunks:
            writer.write_chunk(chunk)
            sizes.append(path.stat().st_size)

    assert sizes[0] < sizes[1] < sizes[2]
    # each chunk adds exactly its vertex records to the file
    assert sizes[2] - sizes[1] == sizes[1] - sizes[0]
    assert path.stat().st_size == sizes[2]

    loaded = load_cloud(path)
    expected = PointCloud.concatenate(chunks)
    assert writer.count == len(loaded) == 600
    np.testing.assert_array_equal(loaded.ends, expected.ends)
    np.testing.assert_allclose(loaded.starts, expected.starts, atol=1e-12)
    np.testing.assert_array_equal(loaded.times, expected.times)
    assert [len(c) for c in iter_cloud_chunks(path, chunk_points=250)] == [250, 250, 100]


def test_writer_without_chunks_writes_empty_file(tmp_path):
    with ChunkedCloudWriter(tmp_path / "empty.ply"):
        pass
    assert len(load_cloud(tmp_path / "empty.ply")) == 0
