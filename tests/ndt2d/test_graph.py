"""Unit tests for ndt2d.graph (scan arena and constraints).

Author: Navigation Engineer
Date: 2024
"""

import numpy as np
import pytest

from ndt2d import Constraint, MatchResult, PoseGraph, Pose2d, Scan


def make_scan(scan_id, pose):
    return Scan(scan_id, pose, [[1.0, 0.0], [0.0, 1.0]])


@pytest.fixture
def graph():
    g = PoseGraph()
    g.add_scan(make_scan(0, Pose2d(0.0, 0.0, 0.0)))
    g.add_scan(make_scan(1, Pose2d(1.0, 0.0, np.pi / 2)))
    return g


class TestPoseGraph:
    """Test suite for PoseGraph."""

    def test_arena_indices(self, graph):
        assert len(graph) == 2
        assert graph.add_scan(make_scan(2, Pose2d(2.0, 0.0, 0.0))) == 2
        assert [scan.id for scan in graph] == [0, 1, 2]
        assert graph[1].pose.x == 1.0

    def test_update_scan(self, graph):
        graph.update_scan(1, graph[1].with_pose(Pose2d(1.1, 0.0, np.pi / 2)))
        assert graph[1].pose.x == 1.1
        with pytest.raises(IndexError):
            graph.update_scan(5, graph[0])

    def test_odom_constraint(self, graph):
        edge = graph.add_odom_constraint(0, 1, [1.0, 0.0, np.pi / 2])
        assert edge.kind == "odom"
        assert edge.covariance is None
        assert graph.odom_constraints == [edge]
        assert graph.loop_constraints == []

    def test_constraint_index_checked(self, graph):
        with pytest.raises(IndexError):
            graph.add_odom_constraint(0, 2, [0.0, 0.0, 0.0])
        with pytest.raises(IndexError):
            graph.add_loop_constraint(-1, 1, [0.0, 0.0, 0.0], np.eye(3))

    def test_constraint_from_match(self, graph):
        result = MatchResult(Pose2d(1.0, 1.0, np.pi / 2), 12.0, 0.01 * np.eye(3))
        edge = graph.constraint_from_match(1, 0, result)

        assert edge.kind == "loop"
        # (1, 1) seen from (1, 0) facing +y is one meter straight ahead
        np.testing.assert_allclose(edge.transform, [1.0, 0.0, 0.0], atol=1e-10)
        np.testing.assert_array_equal(edge.covariance, 0.01 * np.eye(3))
        assert graph.loop_constraints == [edge]

    def test_poses(self, graph):
        np.testing.assert_allclose(graph.poses(), [[0.0, 0.0, 0.0], [1.0, 0.0, np.pi / 2]])
        assert PoseGraph().poses().shape == (0, 3)


class TestConstraint:
    """Test suite for Constraint validation."""

    def test_bad_transform_shape(self):
        with pytest.raises(ValueError, match="transform"):
            Constraint(0, 1, [0.0, 0.0])

    def test_bad_covariance_shape(self):
        with pytest.raises(ValueError, match="covariance"):
            Constraint(0, 1, [0.0, 0.0, 0.0], np.eye(2))

    def test_bad_kind(self):
        with pytest.raises(ValueError, match="kind"):
            Constraint(0, 1, [0.0, 0.0, 0.0], kind="gps")
