"""Tests for endpoint bounding boxes and the shared grid extent."""

import numpy as np
import pytest

from raycloud_alignment.alignment.bounding_box import BoundingBox, shared_extent
from raycloud_alignment.alignment.errors import EmptyCloudError
from raycloud_alignment.preprocessing.point_cloud import PointCloud


def test_from_points_extents():
    points = np.array([[0.0, 5.0, -1.0], [2.0, 3.0, 4.0], [1.0, 4.0, 0.0]])
    box = BoundingBox.from_points(points)
    np.testing.assert_allclose(box.min_corner, [0.0, 3.0, -1.0])
    np.testing.assert_allclose(box.max_corner, [2.0, 5.0, 4.0])
    np.testing.assert_allclose(box.extent, [2.0, 2.0, 5.0])


def test_empty_cloud():
    with pytest.raises(EmptyCloudError):
        BoundingBox.from_points(np.empty((0, 3)))
    # the error kinds are also ValueErrors
    with pytest.raises(ValueError):
        PointCloud.empty().bounding_box()


def test_min_above_max_rejected():
    with pytest.raises(ValueError):
        BoundingBox(np.array([1.0, 0.0, 0.0]), np.zeros(3))


def test_shared_extent_is_componentwise_max():
    a = BoundingBox(np.zeros(3), np.array([4.0, 1.0, 2.0]))
    b = BoundingBox(np.array([10.0, 10.0, 10.0]), np.array([11.0, 13.0, 10.5]))
    np.testing.assert_allclose(shared_extent([a, b]), [4.0, 3.0, 2.0])
    with pytest.raises(EmptyCloudError):
        shared_extent([])


def test_box_follows_transformed_cloud():
    cloud = PointCloud(np.array([[1.0, 0.0, 0.0], [2.0, 0.0, 1.0]]))
    before = cloud.bounding_box()
    cloud.apply_transform(np.eye(3), np.array([0.0, 5.0, 0.0]))
    after = cloud.bounding_box()
    np.testing.assert_allclose(after.min_corner - before.min_corner, [0.0, 5.0, 0.0])
