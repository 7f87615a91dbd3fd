"""Synthetic 2D LiDAR scans from wall-segment worlds.

Rays are cast from the sensor pose against every wall segment and only the
closest hit is kept, so near walls occlude far ones. Used by the demo and
the tests to produce realistic scans with known ground truth.

Author: Navigation Engineer
Date: 2024
"""

from typing import List, Optional, Sequence, Tuple

import numpy as np

from .laser import ranges_to_points
from .se2 import PoseLike, _as_pose_array

Wall = Tuple[Sequence[float], Sequence[float]]


def ray_segment_distance(
    origin: np.ndarray,
    directions: np.ndarray,
    start: np.ndarray,
    end: np.ndarray,
) -> np.ndarray:
    """
    Distance along each ray to a line segment (inf where it misses).

    Solves origin + t*d = start + u*(end - start) with t >= 0, 0 <= u <= 1
    using Cramer's rule, for all ray directions at once.

    Args:
        origin: Ray origin [x, y].
        directions: Unit ray directions, shape (N, 2).
        start: Segment start [x, y].
        end: Segment end [x, y].

    Returns:
        Distances of shape (N,).
    """
    seg = np.asarray(end, dtype=float) - np.asarray(start, dtype=float)
    diff = np.asarray(start, dtype=float) - np.asarray(origin, dtype=float)
    distances = np.full(directions.shape[0], np.inf)
    if seg @ seg < 1e-10:
        return distances

    det = directions[:, 0] * seg[1] - directions[:, 1] * seg[0]
    hit = np.abs(det) > 1e-10
    safe_det = np.where(hit, det, 1.0)
    t = (diff[0] * seg[1] - diff[1] * seg[0]) / safe_det
    u = (diff[0] * directions[:, 1] - diff[1] * directions[:, 0]) / safe_det
    hit &= (t >= 0) & (u >= 0) & (u <= 1)
    distances[hit] = t[hit]
    return distances


def simulate_ranges(
    pose: PoseLike,
    walls: List[Wall],
    num_rays: int = 360,
    angle_min: float = -np.pi,
    max_range: float = 10.0,
    noise_std: float = 0.0,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """
    Simulate the range readings of a 2D LiDAR at `pose`.

    Args:
        pose: Sensor pose [x, y, theta] in the world frame.
        walls: Wall segments as (start, end) point pairs.
        num_rays: Number of evenly spaced rays over a full turn.
        angle_min: Sensor-frame angle of the first ray (radians).
        max_range: Readings without a hit closer than this are NaN.
        noise_std: Standard deviation of additive range noise (meters).
        rng: Random generator for the noise (required when noise_std > 0).

    Returns:
        Ranges of shape (num_rays,); NaN where nothing was hit. The angular
        increment is 2*pi / num_rays.
    """
    x, y, theta = _as_pose_array(pose, "pose")
    angles = theta + angle_min + 2.0 * np.pi * np.arange(num_rays) / num_rays
    directions = np.column_stack([np.cos(angles), np.sin(angles)])

    ranges = np.full(num_rays, np.inf)
    for start, end in walls:
        ranges = np.minimum(ranges, ray_segment_distance([x, y], directions, start, end))

    if noise_std > 0:
        if rng is None:
            raise ValueError("rng is required when noise_std > 0")
        ranges = ranges + rng.normal(0.0, noise_std, num_rays)

    ranges[~(ranges < max_range)] = np.nan
    return ranges


def simulate_scan(
    pose: PoseLike,
    walls: List[Wall],
    num_rays: int = 360,
    max_range: float = 10.0,
    noise_std: float = 0.0,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """Simulate a scan at `pose` and return its sensor-frame points, shape (M, 2)."""
    ranges = simulate_ranges(
        pose, walls, num_rays=num_rays, max_range=max_range, noise_std=noise_std, rng=rng
    )
    return ranges_to_points(ranges, -np.pi, 2.0 * np.pi / num_rays)


def box_walls(x_min: float, y_min: float, x_max: float, y_max: float) -> List[Wall]:
    """Four walls of an axis-aligned rectangle."""
    return [
        ((x_min, y_min), (x_max, y_min)),
        ((x_max, y_min), (x_max, y_max)),
        ((x_max, y_max), (x_min, y_max)),
        ((x_min, y_max), (x_min, y_min)),
    ]
