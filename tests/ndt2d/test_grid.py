"""Unit tests for ndt2d.grid (the NDT map).

Author: Navigation Engineer
Date: 2024
"""

import warnings

import numpy as np
import pytest

from ndt2d import NDTGrid, Pose2d, Scan, se2_apply


def reference_scan():
    return Scan(0, Pose2d.identity(), [[3.5, 3.5], [3.45, 3.4], [3.55, 3.6]])


def centered_grid(resolution=1.0, size=10.0):
    return NDTGrid(resolution, size, size, -0.5 * size, -0.5 * size)


class TestGridConstruction:
    """Test suite for NDTGrid construction and indexing."""

    def test_cell_count(self):
        grid = NDTGrid(0.25, 10.0, 5.0, 0.0, 0.0)
        assert (grid.nx, grid.ny) == (40, 20)
        assert len(grid.cells) == 800

    @pytest.mark.parametrize(
        "args",
        [(0.0, 10.0, 10.0), (-1.0, 10.0, 10.0), (1.0, 0.0, 10.0), (1.0, 10.0, -2.0)],
    )
    def test_invalid_parameters(self, args):
        with pytest.raises(ValueError):
            NDTGrid(*args)

    def test_cell_index_floor_division(self):
        grid = centered_grid()
        assert grid.cell_index((-5.0, -5.0)) == (0, 0)
        assert grid.cell_index((3.5, 3.5)) == (8, 8)
        assert grid.cell_index((-0.01, 0.0)) == (4, 5)
        assert grid.cell_index((4.999, 4.999)) == (9, 9)

    def test_cell_index_outside(self):
        grid = centered_grid()
        assert grid.cell_index((5.0, 0.0)) is None
        assert grid.cell_index((0.0, -5.01)) is None
        assert grid.cell_index((100.0, 100.0)) is None


class TestGridLikelihood:
    """Test suite for NDTGrid.add_scan / compute / likelihood."""

    def test_reference_single_cell(self):
        """A query point equal to the accumulated mean scores exactly 1."""
        grid = centered_grid()
        grid.add_scan(reference_scan(), Pose2d.identity())
        grid.compute()

        assert grid.likelihood([[3.5, 3.5]]) == 1.0
        assert grid.likelihood(np.array([3.5, 3.5])) == 1.0

    def test_sum_not_average(self):
        grid = centered_grid()
        grid.add_scan(reference_scan())
        grid.compute()

        one = grid.likelihood([[3.5, 3.5]])
        three = grid.likelihood([[3.5, 3.5], [3.5, 3.5], [3.5, 3.5]])
        assert three == pytest.approx(3.0 * one)

    def test_points_outside_are_dropped(self):
        grid = centered_grid()
        scan = Scan(0, Pose2d.identity(), [[6.0, 0.0], [6.1, 0.1], [6.2, 0.3], [-7.0, 1.0]])
        added = grid.add_scan(scan)
        grid.compute()

        assert added == 0
        assert all(cell.n == 0 for cell in grid.cells)
        assert grid.likelihood(np.array([6.1, 0.1])) == 0.0
        assert grid.likelihood([[6.1, 0.1], [-7.0, 1.0]]) == 0.0

    def test_scan_pose_transform(self):
        """Scan points are rotated by theta, then translated into the grid."""
        local = np.array([[1.0, 0.0], [1.1, 0.05], [0.9, -0.05], [1.05, 0.1]])
        pose = Pose2d(1.0, 2.0, np.pi / 2)
        grid = centered_grid()
        grid.add_scan(Scan(0, pose, local))
        grid.compute()

        world = se2_apply(pose, local)
        cell = grid.cell(*grid.cell_index(world.mean(axis=0)))
        assert cell.n == 4
        np.testing.assert_allclose(cell.mean, world.mean(axis=0), atol=1e-12)

    def test_explicit_pose_overrides_scan_pose(self):
        grid = centered_grid()
        scan = Scan(0, Pose2d(100.0, 100.0, 0.0), [[3.5, 3.5], [3.45, 3.4], [3.55, 3.6]])
        assert grid.add_scan(scan, Pose2d.identity()) == 3

    def test_degenerate_cell_scores_zero(self):
        grid = centered_grid()
        grid.add_scan(Scan(0, Pose2d.identity(), [[1.5, 1.5], [1.6, 1.4]]))
        grid.compute()
        assert grid.likelihood(np.array([1.55, 1.45])) == 0.0

    def test_single_and_vectorised_paths_agree(self):
        rng = np.random.default_rng(3)
        grid = centered_grid(resolution=0.5)
        grid.add_scan(Scan(0, Pose2d.identity(), rng.uniform(-4.0, 4.0, size=(400, 2))))
        grid.compute()

        queries = rng.uniform(-5.5, 5.5, size=(50, 2))
        per_point = grid.point_likelihoods(queries)
        singles = np.array([grid.likelihood(q) for q in queries])
        np.testing.assert_allclose(per_point, singles, rtol=1e-12, atol=1e-300)
        assert np.all((per_point >= 0.0) & (per_point <= 1.0))

    def test_empty_query(self):
        grid = centered_grid()
        grid.compute()
        assert grid.likelihood(np.empty((0, 2))) == 0.0


class TestGridCompute:
    """Test suite for compute() semantics."""

    def test_compute_idempotent(self):
        rng = np.random.default_rng(0)
        grid = centered_grid(resolution=0.5)
        grid.add_scan(Scan(0, Pose2d.identity(), rng.normal(0.0, 1.0, size=(300, 2))))
        grid.compute()
        before = [(c.mean_x, c.mean_y, c.cov_xx, c.cov_xy, c.cov_yy) for c in grid.cells]
        queries = rng.normal(0.0, 1.0, size=(100, 2))
        scores_before = grid.point_likelihoods(queries)

        grid.compute()

        after = [(c.mean_x, c.mean_y, c.cov_xx, c.cov_xy, c.cov_yy) for c in grid.cells]
        assert before == after
        np.testing.assert_array_equal(grid.point_likelihoods(queries), scores_before)

    def test_query_before_compute_warns(self):
        grid = centered_grid()
        grid.add_scan(reference_scan())
        with pytest.warns(RuntimeWarning, match="before compute"):
            assert grid.likelihood([[3.5, 3.5]]) == 0.0

    def test_new_points_after_compute_are_stale(self):
        grid = centered_grid()
        grid.add_scan(reference_scan())
        grid.compute()
        grid.add_scan(Scan(1, Pose2d.identity(), [[3.52, 3.48]]))
        assert not grid.computed

        with warnings.catch_warnings():
            warnings.simplefilter("ignore", RuntimeWarning)
            assert grid.likelihood([[3.5, 3.5]]) == 0.0

        grid.compute()
        assert grid.likelihood([[3.5, 3.5]]) > 0.0


class TestGridFromScans:
    """Test suite for NDTGrid.from_scans and sample."""

    def test_extent_covers_all_points(self):
        scans = [
            Scan(0, Pose2d(0.0, 0.0, 0.0), [[1.0, 1.0], [1.1, 1.2], [0.9, 1.1]]),
            Scan(1, Pose2d(-3.0, 2.0, np.pi), [[1.0, 1.0], [1.1, 1.2], [0.9, 1.1]]),
        ]
        grid = NDTGrid.from_scans(scans, resolution=0.5, padding=0.3)

        assert grid.computed
        assert sum(cell.n for cell in grid.cells) == 6
        for scan in scans:
            for p in se2_apply(scan.pose, scan.points):
                assert grid.cell_index(p) is not None
        assert grid.origin_x == pytest.approx(np.floor((-4.1 - 0.3) / 0.5) * 0.5)

    def test_range_max_filters_points(self):
        scan = Scan(0, Pose2d.identity(), [[1.0, 0.0], [1.1, 0.1], [0.9, 0.2], [50.0, 0.0]])
        grid = NDTGrid.from_scans([scan], resolution=1.0, range_max=10.0)
        assert sum(cell.n for cell in grid.cells) == 3
        assert grid.size_x < 10.0

    def test_no_points(self):
        grid = NDTGrid.from_scans([Scan(0, Pose2d.identity(), [])], resolution=1.0)
        assert grid.likelihood([[0.5, 0.5]]) == 0.0

    def test_sample_shape_and_peak(self):
        grid = centered_grid()
        grid.add_scan(reference_scan())
        grid.compute()
        raster = grid.sample(0.5)

        assert raster.shape == (20, 20)
        # Raster node (3.5, 3.5) is column 17, row 17
        assert raster[17, 17] == pytest.approx(1.0)
        assert raster[0, 0] == 0.0


class TestGridNonFinitePoints:
    """Test suite for NaN / inf points reaching the grid."""

    def test_non_finite_points_dropped_silently(self):
        grid = centered_grid()
        points = [
            [np.nan, 1.0], [1.0, np.nan], [np.nan, np.nan], [3.5, 3.5], [3.45, 3.4], [3.55, 3.6]
        ]
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            added = grid.add_scan(Scan(0, Pose2d.identity(), points))
            assert grid.add_points([[np.inf, 1.0], [1.0, -np.inf]]) == 0
            grid.compute()
            assert grid.likelihood([[np.nan, 0.0], [0.0, np.inf]]) == 0.0
            assert grid.likelihood(np.array([np.nan, 0.0])) == 0.0
            assert grid.likelihood([[3.5, 3.5]]) == 1.0

        assert added == 3
