"""Unit tests for ndt2d.se2 and the Pose2d type.

Author: Navigation Engineer
Date: 2024
"""

import numpy as np
import pytest

from ndt2d import (
    Pose2d,
    se2_apply,
    se2_compose,
    se2_inverse,
    se2_relative,
    shortest_angular_distance,
    wrap_angle,
)


class TestWrapAngle:
    """Test suite for wrap_angle and shortest_angular_distance."""

    def test_wrap_zero(self):
        assert np.isclose(wrap_angle(0.0), 0.0, atol=1e-10)

    def test_wrap_large_negative(self):
        assert np.isclose(wrap_angle(-3 * np.pi), -np.pi, atol=1e-10)

    def test_wrap_slightly_over_pi(self):
        """Test that π + ε wraps to the negative side."""
        result = wrap_angle(np.pi + 0.1)
        assert result < 0
        assert np.isclose(result, -np.pi + 0.1, atol=1e-10)

    def test_shortest_distance_across_pi(self):
        """Going from 170° to -170° is a +20° turn, not -340°."""
        d = shortest_angular_distance(np.radians(170), np.radians(-170))
        assert np.isclose(d, np.radians(20), atol=1e-10)


class TestSE2Compose:
    """Test suite for se2_compose and se2_inverse."""

    def test_compose_identity_left(self):
        p = np.array([1.0, 2.0, np.pi / 4])
        np.testing.assert_allclose(se2_compose(np.zeros(3), p), p, atol=1e-10)

    def test_compose_with_rotation(self):
        """Forward motion after a 90° turn moves along +y."""
        result = se2_compose(np.array([0.0, 0.0, np.pi / 2]), np.array([1.0, 0.0, 0.0]))
        np.testing.assert_allclose(result, [0.0, 1.0, np.pi / 2], atol=1e-10)

    def test_inverse_cancels(self):
        p = np.array([1.0, -2.0, 0.7])
        np.testing.assert_allclose(se2_compose(p, se2_inverse(p)), np.zeros(3), atol=1e-10)
        np.testing.assert_allclose(se2_compose(se2_inverse(p), p), np.zeros(3), atol=1e-10)

    def test_accepts_pose2d(self):
        p = Pose2d(1.0, 2.0, 0.3)
        np.testing.assert_allclose(se2_compose(p, Pose2d.identity()), p.to_array())

    def test_invalid_shape(self):
        with pytest.raises(ValueError, match="shape \\(3,\\)"):
            se2_compose(np.zeros(2), np.zeros(3))


class TestSE2Apply:
    """Test suite for se2_apply."""

    def test_rotate_then_translate(self):
        """Points are rotated by theta first, then translated."""
        pose = np.array([10.0, 5.0, np.pi / 2])
        points = np.array([[1.0, 0.0], [0.0, 1.0]])
        np.testing.assert_allclose(
            se2_apply(pose, points), [[10.0, 6.0], [9.0, 5.0]], atol=1e-10
        )

    def test_empty_points(self):
        result = se2_apply(np.array([1.0, 2.0, 0.5]), np.empty((0, 2)))
        assert result.shape == (0, 2)

    def test_invalid_points_shape(self):
        with pytest.raises(ValueError, match="must have shape \\(N, 2\\)"):
            se2_apply(np.zeros(3), np.array([1.0, 2.0]))

    def test_relative_consistent_with_apply(self):
        """Points seen from p_to map identically through p_from ⊕ rel."""
        p_from = np.array([1.0, 2.0, 0.3])
        p_to = np.array([-0.5, 4.0, -1.2])
        rel = se2_relative(p_from, p_to)
        points = np.array([[1.0, 0.5], [-2.0, 3.0]])
        np.testing.assert_allclose(
            se2_apply(p_to, points),
            se2_apply(p_from, se2_apply(rel, points)),
            atol=1e-10,
        )


class TestPose2d:
    """Test suite for the Pose2d dataclass."""

    def test_array_conversion(self):
        p = Pose2d.from_array([1.0, 2.0, 0.5])
        assert p == Pose2d(1.0, 2.0, 0.5)
        np.testing.assert_array_equal(p.to_array(), [1.0, 2.0, 0.5])

    def test_non_finite_rejected(self):
        with pytest.raises(ValueError, match="theta must be finite"):
            Pose2d(0.0, 0.0, np.nan)

    def test_compose_and_inverse(self):
        p = Pose2d(1.0, 2.0, np.pi / 3)
        identity = p.compose(p.inverse())
        np.testing.assert_allclose(identity.to_array(), np.zeros(3), atol=1e-10)

    def test_relative_to(self):
        origin = Pose2d(1.0, 1.0, np.pi / 2)
        target = Pose2d(1.0, 2.0, np.pi / 2)
        np.testing.assert_allclose(
            target.relative_to(origin).to_array(), [1.0, 0.0, 0.0], atol=1e-10
        )
