"""Unit tests for geometry utilities."""

import math

import numpy as np
import pytest

from pydrake.all import RigidTransform, RotationMatrix

from scenesync.utils.geometry_utils import (
    aabb_contains,
    aabb_intersects,
    angle_between_deg,
    centroid,
    closest_point_on_aabb,
    deserialize_rigid_transform,
    facing_rotation,
    serialize_rigid_transform,
    transform_axis_x,
)


def test_closest_point_on_aabb_clamps_each_axis():
    closest = closest_point_on_aabb(
        np.array([3.0, -2.0, 0.5]), np.array([0.0, 0.0, 0.0]), np.array([1.0, 1.0, 1.0])
    )
    np.testing.assert_allclose(closest, [1.0, 0.0, 0.5])


def test_touching_boxes_do_not_intersect():
    assert not aabb_intersects(
        np.zeros(3), np.ones(3), np.array([1.0, 0.0, 0.0]), np.array([2.0, 1.0, 1.0])
    )
    assert aabb_intersects(
        np.zeros(3), np.ones(3), np.array([0.5, 0.5, 0.5]), np.array([2.0, 2.0, 2.0])
    )


def test_aabb_contains():
    assert aabb_contains(np.zeros(3), np.ones(3), np.full(3, 0.2), np.full(3, 0.8))
    assert not aabb_contains(np.zeros(3), np.ones(3), np.full(3, 0.2), np.full(3, 1.2))


def test_angle_between_deg():
    assert math.isclose(angle_between_deg(np.array([1.0, 0, 0]), np.array([0, 1.0, 0])), 90.0)
    assert math.isclose(angle_between_deg(np.array([1.0, 0, 0]), np.array([-2.0, 0, 0])), 180.0)
    assert angle_between_deg(np.zeros(3), np.array([1.0, 0, 0])) == 0.0


def test_facing_rotation_points_x_axis_along_direction():
    rotation = facing_rotation(np.array([0.0, 2.0, 0.5]))
    np.testing.assert_allclose(rotation.matrix()[:, 0], [0.0, 1.0, 0.0], atol=1e-12)


def test_facing_rotation_zero_direction_is_identity():
    rotation = facing_rotation(np.zeros(3))
    np.testing.assert_allclose(rotation.matrix(), np.eye(3))


def test_transform_axis_x():
    transform = RigidTransform(RotationMatrix.MakeZRotation(np.pi), [1.0, 2.0, 3.0])
    np.testing.assert_allclose(transform_axis_x(transform), [-1.0, 0.0, 0.0], atol=1e-12)


def test_centroid():
    np.testing.assert_allclose(
        centroid([np.array([0.0, 0.0, 0.0]), np.array([2.0, 4.0, 0.0])]), [1.0, 2.0, 0.0]
    )


def test_transform_serialization():
    transform = RigidTransform(RotationMatrix.MakeZRotation(0.3), [1.0, -2.0, 0.5])
    data = serialize_rigid_transform(transform)

    assert set(data) == {"translation", "rotation_wxyz"}
    assert deserialize_rigid_transform(data).IsNearlyEqualTo(transform, 1e-9)


def test_deserialize_normalizes_quaternion():
    transform = deserialize_rigid_transform(
        {"translation": [0, 0, 0], "rotation_wxyz": [2.0, 0.0, 0.0, 0.0]}
    )
    np.testing.assert_allclose(transform.rotation().matrix(), np.eye(3))


def test_deserialize_rejects_zero_quaternion():
    with pytest.raises(ValueError):
        deserialize_rigid_transform({"rotation_wxyz": [0.0, 0.0, 0.0, 0.0]})
