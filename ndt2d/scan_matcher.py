"""Correlative NDT scan matcher for 2D LiDAR scans.

The matcher owns an NDT grid built from previously accumulated scans and
refines the pose of a new scan by exhaustive evaluation of a discretized
neighborhood of candidate poses around an initial guess. Each candidate is
scored with the grid's additive likelihood; the best candidate is the refined
pose.

Search enumeration order (fixed, so results are reproducible):
    theta-major, then y, then x, each axis ascending from -size to +size.
    The first candidate reaching the maximum score wins ties.

Match covariance:
    Candidate scores are treated as log-likelihoods; the weights
    w = exp(score - best_score) define a distribution over the search window
    whose second moments give the (x, y, theta) covariance, as in correlative
    scan matching (Olson, 2009). A quantization term res^2 / 12 per axis is
    added. A flat score surface spreads the weights over the whole window and
    therefore yields a wide covariance; when nothing matched at all the
    covariance of a uniform distribution over the window is returned.

Work per match is fixed: (points used) x (number of candidates), see
MatcherConfig.num_candidates.

Author: Navigation Engineer
Date: 2024
"""

import math
from typing import Iterable, List, Optional

import numpy as np

from .config import MatcherConfig
from .grid import NDTGrid
from .se2 import PoseLike, se2_apply, wrap_angle
from .types import MatchResult, PointCloud2D, Pose2d, Scan, as_points


def _axis_offsets(resolution: float, size: float) -> np.ndarray:
    """Symmetric offsets -n*res, ..., 0, ..., +n*res with n*res <= size."""
    n = int(math.floor(size / resolution + 1e-9))
    return resolution * np.arange(-n, n + 1, dtype=np.float64)


def _as_pose2d(pose: PoseLike) -> Pose2d:
    if isinstance(pose, Pose2d):
        return pose
    return Pose2d.from_array(pose)


class ScanMatcherNDT:
    """
    Scan-to-map matcher over an internal NDT grid.

    Attributes:
        resolution: NDT cell size (meters).
        angular_res, angular_size: Heading search step and half-width (radians).
        linear_res, linear_size: Position search step and half-width (meters).
        range_max: Maximum usable sensor range (meters).

    Example:
        >>> matcher = ScanMatcherNDT(MatcherConfig(resolution=0.25))
        >>> matcher.add_scans(previous_scans)
        >>> result = matcher.match_scan(new_scan, initial_guess, scan_points_to_use=200)
        >>> result.pose, result.score, result.covariance
    """

    def __init__(self, config: Optional[MatcherConfig] = None) -> None:
        if config is None:
            config = MatcherConfig()
        self.config = config
        self.resolution = config.resolution
        self.angular_res = config.angular_resolution
        self.angular_size = config.angular_size
        self.linear_res = config.linear_resolution
        self.linear_size = config.linear_size
        self.range_max = config.range_max

        self._linear_offsets = _axis_offsets(self.linear_res, self.linear_size)
        self._angular_offsets = _axis_offsets(self.angular_res, self.angular_size)

        # x varies fastest within each y row
        dy, dx = np.meshgrid(self._linear_offsets, self._linear_offsets, indexing="ij")
        self._xy_offsets = np.column_stack([dx.ravel(), dy.ravel()])

        self._scans: List[Scan] = []
        self._grid: Optional[NDTGrid] = None

    @property
    def grid(self) -> Optional[NDTGrid]:
        """The current NDT grid, or None before any scan was added."""
        return self._grid

    @property
    def is_mapped(self) -> bool:
        return self._grid is not None

    @property
    def num_scans(self) -> int:
        return len(self._scans)

    def add_scans(self, scans: Iterable[Scan]) -> None:
        """
        Fold scans (each carrying its best-known pose) into the NDT map.

        The grid is rebuilt from every scan added since the last `reset`, with
        an extent covering all their points plus the linear search window,
        and finalized before returning.
        """
        self._scans.extend(scans)
        self._grid = NDTGrid.from_scans(
            self._scans,
            self.resolution,
            padding=self.linear_size + self.resolution,
            range_max=self.range_max,
        )

    def reset(self) -> None:
        """Discard the NDT map and all scans folded into it."""
        self._scans = []
        self._grid = None

    def set_range_max(self, range_max: float) -> None:
        """
        Update the maximum usable range.

        Applies to future scoring and to the next rebuild of the map; the
        current grid content is left untouched.
        """
        if not (np.isfinite(range_max) and range_max > 0):
            raise ValueError(f"range_max must be a positive finite number, got {range_max}")
        self.range_max = float(range_max)

    def _usable_points(self, points: np.ndarray) -> np.ndarray:
        points = as_points(points)
        if points.shape[0] == 0:
            return points
        return points[np.hypot(points[:, 0], points[:, 1]) <= self.range_max]

    @staticmethod
    def _subsample(points: np.ndarray, scan_points_to_use: Optional[int]) -> np.ndarray:
        if scan_points_to_use is None:
            return points
        if int(scan_points_to_use) != scan_points_to_use or scan_points_to_use < 1:
            raise ValueError(
                f"scan_points_to_use must be a positive integer, got {scan_points_to_use}"
            )
        n = points.shape[0]
        if n <= scan_points_to_use:
            return points
        step = int(math.ceil(n / scan_points_to_use))
        return points[::step]

    def score_points(self, points: PointCloud2D, pose: PoseLike) -> float:
        """
        Additive likelihood of sensor-frame points placed at `pose`.

        Points beyond range_max are ignored. Returns 0 before any scan was
        added.
        """
        points = self._usable_points(points)
        if self._grid is None or points.shape[0] == 0:
            return 0.0
        return self._grid.likelihood(se2_apply(pose, points))

    def score_scan(self, scan: Scan, pose: Optional[PoseLike] = None) -> float:
        """Additive likelihood of `scan` at `pose` (default: the scan's own pose)."""
        if pose is None:
            pose = scan.pose
        return self.score_points(scan.points, pose)

    def match_scan(
        self,
        scan: Scan,
        pose: Optional[PoseLike] = None,
        scan_points_to_use: Optional[int] = None,
    ) -> MatchResult:
        """
        Find the pose within the search window that best aligns `scan` to the map.

        Args:
            scan: Scan to match (sensor-frame points).
            pose: Initial guess; defaults to the scan's own pose.
            scan_points_to_use: Upper bound on the number of scan points used,
                                taken with a uniform stride. None uses all.

        Returns:
            MatchResult with the refined pose, its score and a 3x3 covariance.
            An empty scan, an unmapped matcher or a scan entirely outside the
            map give score 0 and the initial guess unchanged.
        """
        initial = _as_pose2d(scan.pose if pose is None else pose)
        points = self._subsample(self._usable_points(scan.points), scan_points_to_use)

        if self._grid is None or points.shape[0] == 0:
            return MatchResult(initial, 0.0, self._window_covariance())

        scores = self._search(points, initial)

        best = int(np.argmax(scores))
        best_score = float(scores.flat[best])
        if best_score <= 0.0:
            return MatchResult(initial, 0.0, self._window_covariance())

        i_theta, i_xy = np.unravel_index(best, scores.shape)
        dx, dy = self._xy_offsets[i_xy]
        best_pose = Pose2d(
            x=initial.x + dx,
            y=initial.y + dy,
            theta=wrap_angle(initial.theta + self._angular_offsets[i_theta]),
        )
        return MatchResult(best_pose, best_score, self._estimate_covariance(scores))

    def _search(self, points: np.ndarray, initial: Pose2d) -> np.ndarray:
        """Score every candidate; returns shape (n_theta, n_y * n_x)."""
        n_points = points.shape[0]
        n_xy = self._xy_offsets.shape[0]
        translations = np.array([initial.x, initial.y]) + self._xy_offsets

        scores = np.empty((self._angular_offsets.size, n_xy), dtype=np.float64)
        for i, dtheta in enumerate(self._angular_offsets):
            theta = wrap_angle(initial.theta + dtheta)
            c = np.cos(theta)
            s = np.sin(theta)
            rotated = points @ np.array([[c, -s], [s, c]]).T
            world = rotated[np.newaxis, :, :] + translations[:, np.newaxis, :]
            likelihoods = self._grid.point_likelihoods(world.reshape(-1, 2))
            scores[i] = likelihoods.reshape(n_xy, n_points).sum(axis=1)
        return scores

    def _quantization_variance(self) -> np.ndarray:
        return np.array(
            [self.linear_res**2, self.linear_res**2, self.angular_res**2]
        ) / 12.0

    def _window_covariance(self) -> np.ndarray:
        """Covariance of a uniform distribution over the search window."""
        lin = float(np.mean(self._linear_offsets**2))
        ang = float(np.mean(self._angular_offsets**2))
        return np.diag(np.array([lin, lin, ang]) + self._quantization_variance())

    def _estimate_covariance(self, scores: np.ndarray) -> np.ndarray:
        """Weighted second moments of candidate offsets around the optimum."""
        weights = np.exp(scores - scores.max())
        total = float(weights.sum())

        n_theta, n_xy = scores.shape
        offsets = np.empty((n_theta, n_xy, 3), dtype=np.float64)
        offsets[:, :, 0:2] = self._xy_offsets[np.newaxis, :, :]
        offsets[:, :, 2] = self._angular_offsets[:, np.newaxis]
        offsets = offsets.reshape(-1, 3)
        weights = weights.reshape(-1)

        mean = weights @ offsets / total
        centered = offsets - mean
        cov = (centered * weights[:, np.newaxis]).T @ centered / total
        cov = 0.5 * (cov + cov.T)
        cov[np.diag_indices(3)] += self._quantization_variance()
        return cov

    def __repr__(self) -> str:
        return (
            f"ScanMatcherNDT(resolution={self.resolution}, "
            f"linear={self.linear_res}/{self.linear_size}, "
            f"angular={self.angular_res}/{self.angular_size}, "
            f"range_max={self.range_max}, scans={len(self._scans)})"
        )
