"""Pure geometric utilities for boxes, poses and planar directions.

Depends only on numpy and PyDrake. All coordinates are Z-up (Drake standard),
with the floor at z = 0.
"""

import logging
import math

import numpy as np

from pydrake.all import Quaternion, RigidTransform, RotationMatrix

console_logger = logging.getLogger(__name__)


def closest_point_on_aabb(
    point: np.ndarray, bbox_min: np.ndarray, bbox_max: np.ndarray
) -> np.ndarray:
    """Find the closest point on (or in) an AABB to a given point.

    Args:
        point: Query point [x, y, z].
        bbox_min: AABB minimum corner [x, y, z].
        bbox_max: AABB maximum corner [x, y, z].

    Returns:
        Closest point of the AABB [x, y, z].
    """
    # Clamp each coordinate to the AABB bounds.
    return np.clip(point, bbox_min, bbox_max)


def aabb_intersects(
    min_a: np.ndarray, max_a: np.ndarray, min_b: np.ndarray, max_b: np.ndarray
) -> bool:
    """Check if two AABBs overlap (touching faces do not count).

    Args:
        min_a: First AABB minimum [x, y, z].
        max_a: First AABB maximum [x, y, z].
        min_b: Second AABB minimum [x, y, z].
        max_b: Second AABB maximum [x, y, z].

    Returns:
        True if AABBs overlap.
    """
    return bool(np.all(min_a < max_b) and np.all(max_a > min_b))


def aabb_contains(
    outer_min: np.ndarray,
    outer_max: np.ndarray,
    inner_min: np.ndarray,
    inner_max: np.ndarray,
    tolerance: float = 1e-6,
) -> bool:
    """Check if the inner AABB lies fully inside the outer AABB."""
    return bool(
        np.all(inner_min >= outer_min - tolerance)
        and np.all(inner_max <= outer_max + tolerance)
    )


def angle_between_deg(vec_a: np.ndarray, vec_b: np.ndarray) -> float:
    """Unsigned angle between two vectors in degrees.

    Returns 0.0 when either vector is (close to) zero length.
    """
    norm_a = np.linalg.norm(vec_a)
    norm_b = np.linalg.norm(vec_b)
    if norm_a < 1e-9 or norm_b < 1e-9:
        return 0.0
    cos_angle = float(np.dot(vec_a, vec_b) / (norm_a * norm_b))
    return math.degrees(math.acos(max(-1.0, min(1.0, cos_angle))))


def facing_rotation(direction: np.ndarray) -> RotationMatrix:
    """Yaw-only rotation whose +X axis points along the horizontal direction.

    Args:
        direction: Direction to face [x, y, z]. Only x-y components are used.

    Returns:
        RotationMatrix about the world Z axis.
    """
    dx = float(direction[0])
    dy = float(direction[1])
    if abs(dx) < 1e-6 and abs(dy) < 1e-6:
        console_logger.warning("Zero facing direction, keeping identity rotation")
        return RotationMatrix()
    return RotationMatrix.MakeZRotation(math.atan2(dy, dx))


def transform_axis_x(transform: RigidTransform) -> np.ndarray:
    """World-frame direction of the local +X axis of a pose."""
    return transform.rotation().matrix()[:, 0].copy()


def centroid(points: list[np.ndarray]) -> np.ndarray:
    """Arithmetic mean of a non-empty list of points."""
    return np.mean(np.asarray(points, dtype=float), axis=0)


def serialize_rigid_transform(transform: RigidTransform) -> dict[str, list[float]]:
    """Convert RigidTransform to serializable dict."""
    translation = transform.translation()
    quaternion = transform.rotation().ToQuaternion().wxyz()

    return {
        "translation": [
            float(translation[0]),
            float(translation[1]),
            float(translation[2]),
        ],
        "rotation_wxyz": [
            float(quaternion[0]),
            float(quaternion[1]),
            float(quaternion[2]),
            float(quaternion[3]),
        ],
    }


def deserialize_rigid_transform(data: dict) -> RigidTransform:
    """Convert serialized dict back to RigidTransform.

    Args:
        data: Dict with "translation" and "rotation_wxyz" keys as produced by
            serialize_rigid_transform(). The quaternion does not need to be
            normalized.

    Returns:
        RigidTransform reconstructed from the serialized data.
    """
    translation = np.asarray(data.get("translation", [0, 0, 0]), dtype=float)
    rotation_wxyz = np.asarray(data.get("rotation_wxyz", [1, 0, 0, 0]), dtype=float)
    norm = np.linalg.norm(rotation_wxyz)
    if norm < 1e-9:
        raise ValueError(f"Invalid zero quaternion in transform: {data}")
    rotation = RotationMatrix(Quaternion(wxyz=rotation_wxyz / norm))
    return RigidTransform(rotation, translation)
