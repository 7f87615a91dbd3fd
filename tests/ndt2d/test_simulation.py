"""Unit tests for ndt2d.simulation (ray-cast scans).

Author: Navigation Engineer
Date: 2024
"""

import numpy as np
import pytest

from ndt2d import box_walls, se2_apply, simulate_ranges, simulate_scan
from ndt2d.simulation import ray_segment_distance


class TestRaySegmentDistance:
    """Test suite for ray_segment_distance."""

    def test_hit_and_miss(self):
        directions = np.array([[1.0, 0.0], [-1.0, 0.0], [0.0, 1.0]])
        d = ray_segment_distance(np.zeros(2), directions, [2.0, -1.0], [2.0, 1.0])
        assert d[0] == pytest.approx(2.0)
        assert np.isinf(d[1])
        assert np.isinf(d[2])

    def test_degenerate_segment(self):
        d = ray_segment_distance(np.zeros(2), np.array([[1.0, 0.0]]), [1.0, 0.0], [1.0, 0.0])
        assert np.isinf(d[0])


class TestSimulateScan:
    """Test suite for simulate_ranges / simulate_scan."""

    def test_closed_room_all_rays_hit(self):
        points = simulate_scan(np.zeros(3), box_walls(-2.0, -1.0, 3.0, 1.5), num_rays=180)
        assert points.shape == (180, 2)

    def test_points_lie_on_walls(self):
        pose = np.array([0.5, 0.2, 0.3])
        points = se2_apply(pose, simulate_scan(pose, box_walls(-2.0, -1.0, 3.0, 1.5)))
        on_x = np.isclose(points[:, 0], -2.0) | np.isclose(points[:, 0], 3.0)
        on_y = np.isclose(points[:, 1], -1.0) | np.isclose(points[:, 1], 1.5)
        assert np.all(on_x | on_y)

    def test_nearest_wall_occludes(self):
        walls = [((1.0, -1.0), (1.0, 1.0)), ((3.0, -1.0), (3.0, 1.0))]
        ranges = simulate_ranges(np.zeros(3), walls, num_rays=4)
        # Ray 2 points along +x (angle_min = -pi)
        assert ranges[2] == pytest.approx(1.0)
        assert np.isnan(ranges[0])

    def test_max_range(self):
        ranges = simulate_ranges(np.zeros(3), box_walls(-20.0, -20.0, 20.0, 20.0), max_range=5.0)
        assert np.all(np.isnan(ranges))

    def test_noise(self):
        walls = box_walls(-2.0, -2.0, 2.0, 2.0)
        clean = simulate_ranges(np.zeros(3), walls)
        noisy = simulate_ranges(np.zeros(3), walls, noise_std=0.01, rng=np.random.default_rng(1))
        assert not np.allclose(clean, noisy)
        assert np.max(np.abs(clean - noisy)) < 0.1

        with pytest.raises(ValueError, match="rng"):
            simulate_ranges(np.zeros(3), walls, noise_std=0.01)
