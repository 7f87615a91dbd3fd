"""Single NDT cell: running point statistics summarised as a 2D Gaussian.

A cell accumulates the sufficient statistics of the points that fall inside
it (count, sums of coordinates and of their products). `compute()` turns
those sums into a mean and a population covariance, and `score()` evaluates
the Gaussian kernel exp(-0.5 * d) where d is the squared Mahalanobis distance
of the query point to the cell distribution.

Covariance inversion uses the closed-form 2x2 adjugate. The determinant is
floored at DETERMINANT_FLOOR so that thin cells (points along a wall, which
have a numerically singular covariance) still score points by their
perpendicular distance to the line. A cell is degenerate, and scores 0 for
any query, when it holds fewer than MIN_POINTS points or when its points have
no spread at all.

Author: Navigation Engineer
Date: 2024
"""

import math

import numpy as np

MIN_POINTS = 3
DETERMINANT_FLOOR = 5e-7
MIN_SPREAD = 1e-9


class Cell:
    """Accumulates 2D points and fits a Gaussian to them.

    Attributes:
        n: Number of accumulated points.
        mean_x, mean_y: Mean of the points (valid after `compute`).
        cov_xx, cov_xy, cov_yy: Population covariance (valid after `compute`).
        valid: True when the last `compute` produced a usable Gaussian.

    Example:
        >>> cell = Cell()
        >>> for p in [(0.0, 0.0), (1.0, 0.0), (0.0, 1.0)]:
        ...     cell.add_point(p)
        >>> cell.compute()
        >>> cell.score((cell.mean_x, cell.mean_y))
        1.0
    """

    __slots__ = (
        "n",
        "sum_x",
        "sum_y",
        "sum_xx",
        "sum_xy",
        "sum_yy",
        "mean_x",
        "mean_y",
        "cov_xx",
        "cov_xy",
        "cov_yy",
        "info_xx",
        "info_xy",
        "info_yy",
        "valid",
        "computed",
    )

    def __init__(self) -> None:
        self.n = 0
        self.sum_x = 0.0
        self.sum_y = 0.0
        self.sum_xx = 0.0
        self.sum_xy = 0.0
        self.sum_yy = 0.0
        self._clear_gaussian()

    def _clear_gaussian(self) -> None:
        self.mean_x = 0.0
        self.mean_y = 0.0
        self.cov_xx = 0.0
        self.cov_xy = 0.0
        self.cov_yy = 0.0
        self.info_xx = 0.0
        self.info_xy = 0.0
        self.info_yy = 0.0
        self.valid = False
        self.computed = False

    def add_point(self, point) -> None:
        """Fold a single point (x, y) into the running sums."""
        x = float(point[0])
        y = float(point[1])
        self.n += 1
        self.sum_x += x
        self.sum_y += y
        self.sum_xx += x * x
        self.sum_xy += x * y
        self.sum_yy += y * y
        self.computed = False

    def add_points(self, points: np.ndarray) -> None:
        """Fold an (N, 2) array of points into the running sums."""
        points = np.asarray(points, dtype=np.float64)
        if points.size == 0:
            return
        if points.ndim != 2 or points.shape[1] != 2:
            raise ValueError(f"points must have shape (N, 2), got {points.shape}")
        x = points[:, 0]
        y = points[:, 1]
        self.n += points.shape[0]
        self.sum_x += float(np.sum(x))
        self.sum_y += float(np.sum(y))
        self.sum_xx += float(np.sum(x * x))
        self.sum_xy += float(np.sum(x * y))
        self.sum_yy += float(np.sum(y * y))
        self.computed = False

    def compute(self) -> None:
        """Finalize mean, covariance and inverse covariance from the sums.

        Deterministic in the sums, so calling it again without new points
        reproduces identical values.
        """
        self._clear_gaussian()
        self.computed = True
        if self.n < MIN_POINTS:
            return

        n = float(self.n)
        self.mean_x = self.sum_x / n
        self.mean_y = self.sum_y / n
        # Population covariance; cancellation can leave tiny negative variances
        self.cov_xx = max(self.sum_xx / n - self.mean_x * self.mean_x, 0.0)
        self.cov_xy = self.sum_xy / n - self.mean_x * self.mean_y
        self.cov_yy = max(self.sum_yy / n - self.mean_y * self.mean_y, 0.0)

        if self.cov_xx + self.cov_yy < MIN_SPREAD:
            return

        det = self.cov_xx * self.cov_yy - self.cov_xy * self.cov_xy
        det = max(det, DETERMINANT_FLOOR)
        self.info_xx = self.cov_yy / det
        self.info_xy = -self.cov_xy / det
        self.info_yy = self.cov_xx / det
        self.valid = True

    @property
    def mean(self) -> np.ndarray:
        return np.array([self.mean_x, self.mean_y], dtype=np.float64)

    @property
    def covariance(self) -> np.ndarray:
        return np.array(
            [[self.cov_xx, self.cov_xy], [self.cov_xy, self.cov_yy]], dtype=np.float64
        )

    @property
    def information(self) -> np.ndarray:
        """Inverse covariance used for scoring (zeros when degenerate)."""
        return np.array(
            [[self.info_xx, self.info_xy], [self.info_xy, self.info_yy]],
            dtype=np.float64,
        )

    def mahalanobis_sq(self, point) -> float:
        """Squared Mahalanobis distance of `point`, or inf for unusable cells."""
        if not (self.computed and self.valid):
            return math.inf
        dx = float(point[0]) - self.mean_x
        dy = float(point[1]) - self.mean_y
        d = self.info_xx * dx * dx + 2.0 * self.info_xy * dx * dy + self.info_yy * dy * dy
        return max(d, 0.0)

    def score(self, point) -> float:
        """Gaussian-proportional likelihood of `point` in [0, 1].

        Returns exactly 1.0 at the mean and 0.0 for degenerate or stale cells.
        """
        d = self.mahalanobis_sq(point)
        if math.isinf(d):
            return 0.0
        return math.exp(-0.5 * d)

    def __repr__(self) -> str:
        if not (self.computed and self.valid):
            return f"Cell(n={self.n}, valid=False)"
        return (
            f"Cell(n={self.n}, mean=({self.mean_x:.4f}, {self.mean_y:.4f}), "
            f"cov=({self.cov_xx:.5f}, {self.cov_xy:.5f}, {self.cov_yy:.5f}))"
        )
