"""SE(2) operations for 2D scan matching (rigid transforms in the plane).

Key functions:
    - se2_compose: Compose two SE(2) poses (p1 ⊕ p2)
    - se2_inverse: Invert an SE(2) pose (p⁻¹)
    - se2_apply: Transform points by an SE(2) pose
    - se2_relative: Relative pose between two global poses
    - wrap_angle / shortest_angular_distance: angle normalisation helpers

Poses are NumPy arrays [x, y, theta] of shape (3,) or Pose2d instances.

Author: Navigation Engineer
Date: 2024
"""

from typing import Union

import numpy as np

from .types import PointCloud2D, Pose2d

PoseLike = Union[np.ndarray, Pose2d]


def _as_pose_array(p: PoseLike, name: str = "p") -> np.ndarray:
    if isinstance(p, Pose2d):
        return p.to_array()
    p = np.asarray(p, dtype=np.float64)
    if p.shape != (3,):
        raise ValueError(f"{name} must have shape (3,), got {p.shape}")
    return p


def wrap_angle(theta: float) -> float:
    """
    Normalize angle to the range [-π, π].

    Examples:
        >>> wrap_angle(3 * np.pi)
        3.141592653589793
        >>> wrap_angle(np.pi + 0.1)
        -3.0415926535897927
    """
    return float(np.arctan2(np.sin(theta), np.cos(theta)))


def shortest_angular_distance(from_angle: float, to_angle: float) -> float:
    """Signed smallest rotation taking `from_angle` onto `to_angle`, in [-π, π]."""
    return wrap_angle(to_angle - from_angle)


def se2_compose(p1: PoseLike, p2: PoseLike) -> np.ndarray:
    """
    Compose two SE(2) poses: p_result = p1 ⊕ p2.

    The composition formula for SE(2):
        x = x1 + x2*cos(theta1) - y2*sin(theta1)
        y = y1 + x2*sin(theta1) + y2*cos(theta1)
        theta = theta1 + theta2  (wrapped to [-π, π])

    Args:
        p1: First pose, array [x1, y1, theta1] or Pose2d.
        p2: Second pose, array [x2, y2, theta2] or Pose2d.

    Returns:
        Composed pose as array [x, y, theta] of shape (3,).

    Raises:
        ValueError: If poses do not have shape (3,).

    Examples:
        >>> p1 = np.array([0, 0, np.pi/2])
        >>> p2 = np.array([1, 0, 0])
        >>> np.allclose(se2_compose(p1, p2), [0, 1, np.pi/2], atol=1e-10)
        True
    """
    x1, y1, th1 = _as_pose_array(p1, "p1")
    x2, y2, th2 = _as_pose_array(p2, "p2")

    c = np.cos(th1)
    s = np.sin(th1)

    return np.array(
        [x1 + x2 * c - y2 * s, y1 + x2 * s + y2 * c, wrap_angle(th1 + th2)],
        dtype=np.float64,
    )


def se2_inverse(p: PoseLike) -> np.ndarray:
    """
    Compute the inverse of an SE(2) pose, so that p ⊕ p⁻¹ = identity.

    Raises:
        ValueError: If pose does not have shape (3,).

    Examples:
        >>> p = np.array([1, 2, np.pi/4])
        >>> np.allclose(se2_compose(p, se2_inverse(p)), [0, 0, 0], atol=1e-10)
        True
    """
    x, y, th = _as_pose_array(p)

    c = np.cos(th)
    s = np.sin(th)

    return np.array(
        [-(x * c + y * s), -(-x * s + y * c), wrap_angle(-th)], dtype=np.float64
    )


def se2_apply(p: PoseLike, points: PointCloud2D) -> PointCloud2D:
    """
    Transform 2D points by an SE(2) pose: R(theta) * points + [x, y].

    Points are rotated first and then translated, which takes sensor-frame
    scan points into the map frame when `p` is the scan pose.

    Args:
        p: Pose [x, y, theta] or Pose2d.
        points: Points to transform, shape (N, 2).

    Returns:
        Transformed points, shape (N, 2).

    Raises:
        ValueError: If points does not have shape (N, 2).

    Examples:
        >>> pts = np.array([[1, 0], [0, 1]])
        >>> np.allclose(se2_apply(np.array([0, 0, np.pi/2]), pts), [[0, 1], [-1, 0]])
        True
    """
    x, y, th = _as_pose_array(p)

    points = np.asarray(points, dtype=np.float64)
    if points.ndim != 2 or points.shape[1] != 2:
        raise ValueError(f"points must have shape (N, 2), got {points.shape}")

    c = np.cos(th)
    s = np.sin(th)
    R = np.array([[c, -s], [s, c]], dtype=np.float64)

    return points @ R.T + np.array([x, y], dtype=np.float64)


def se2_relative(p_from: PoseLike, p_to: PoseLike) -> np.ndarray:
    """
    Relative pose of `p_to` in the frame of `p_from`: p_from⁻¹ ⊕ p_to.

    This is the (dx, dy, dtheta) carried by pose-graph constraints.

    Examples:
        >>> rel = se2_relative(np.array([0, 0, 0]), np.array([1, 1, np.pi/2]))
        >>> np.allclose(rel, [1, 1, np.pi/2])
        True
    """
    return se2_compose(se2_inverse(p_from), p_to)
