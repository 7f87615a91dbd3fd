"""NDT grid: a bounded, resolution-quantized array of Gaussian cells.

The grid is the probabilistic map used for scan matching. Scans are pushed in
with their best-known poses, every cell is finalized once with `compute()`,
and candidate alignments are then scored by evaluating the cell Gaussians at
transformed scan points. Lookup is a direct floor-division index, so scoring
is O(1) per point with no nearest-neighbour search.

Likelihood output domain:
    - [0, 1] for a point inside a usable cell (1.0 exactly at the cell mean)
    - 0 for points outside the grid extent or in empty/degenerate cells
    - the SUM of the above over a point set, so well-covered scans score higher

Author: Navigation Engineer
Date: 2024
"""

import math
import warnings
from typing import Iterable, List, Optional, Tuple

import numpy as np

from .cell import Cell
from .se2 import PoseLike, se2_apply
from .types import PointCloud2D, Scan, as_points


class NDTGrid:
    """
    Rectangular grid of NDT cells covering a fixed world-space extent.

    Cell (ix, iy) covers
    [origin_x + ix*resolution, origin_x + (ix+1)*resolution) x
    [origin_y + iy*resolution, origin_y + (iy+1)*resolution).

    Attributes:
        resolution: Cell edge length in meters.
        size_x, size_y: Extent of the grid in meters.
        origin_x, origin_y: World coordinates of the lower-left corner.
        nx, ny: Number of cells along x and y.

    Example:
        >>> grid = NDTGrid(1.0, 10.0, 10.0, -5.0, -5.0)
        >>> scan = Scan(0, Pose2d.identity(), [[3.5, 3.5], [3.45, 3.4], [3.55, 3.6]])
        >>> grid.add_scan(scan)
        3
        >>> grid.compute()
        >>> grid.likelihood([[3.5, 3.5]])
        1.0
    """

    def __init__(
        self,
        resolution: float,
        size_x: float,
        size_y: float,
        origin_x: float = 0.0,
        origin_y: float = 0.0,
    ) -> None:
        if not resolution > 0:
            raise ValueError(f"resolution must be positive, got {resolution}")
        if not size_x > 0 or not size_y > 0:
            raise ValueError(f"size must be positive, got ({size_x}, {size_y})")
        if not (np.isfinite(origin_x) and np.isfinite(origin_y)):
            raise ValueError(f"origin must be finite, got ({origin_x}, {origin_y})")

        self.resolution = float(resolution)
        self.size_x = float(size_x)
        self.size_y = float(size_y)
        self.origin_x = float(origin_x)
        self.origin_y = float(origin_y)
        self.nx = int(math.ceil(self.size_x / self.resolution))
        self.ny = int(math.ceil(self.size_y / self.resolution))

        # Row-major in x: flat index = ix * ny + iy
        self.cells: List[Cell] = [Cell() for _ in range(self.nx * self.ny)]
        self._computed = False

        # Packed per-cell parameters for vectorised scoring (filled by compute)
        self._mean = np.zeros((self.nx * self.ny, 2), dtype=np.float64)
        self._info = np.zeros((self.nx * self.ny, 3), dtype=np.float64)
        self._valid = np.zeros(self.nx * self.ny, dtype=bool)

    @classmethod
    def from_scans(
        cls,
        scans: Iterable[Scan],
        resolution: float,
        padding: float = 0.0,
        range_max: Optional[float] = None,
    ) -> "NDTGrid":
        """
        Build and finalize a grid whose extent covers every scan point.

        The extent is the bounding box of all map-frame points grown by
        `padding` and snapped outwards to multiples of `resolution`.

        Args:
            scans: Scans carrying their best-known poses.
            resolution: Cell edge length in meters.
            padding: Extra margin around the bounding box (meters).
            range_max: If given, sensor-frame points farther than this are
                       ignored.

        Returns:
            A computed NDTGrid. Without any usable point, a single-cell grid
            around the origin is returned (it scores 0 everywhere).
        """
        scans = list(scans)
        world = []
        for scan in scans:
            points = scan.points
            if range_max is not None:
                points = points[np.hypot(points[:, 0], points[:, 1]) <= range_max]
            if len(points) > 0:
                world.append(se2_apply(scan.pose, points))

        if not world:
            grid = cls(resolution, resolution, resolution, 0.0, 0.0)
            grid.compute()
            return grid

        all_points = np.vstack(world)
        lo = np.floor((all_points.min(axis=0) - padding) / resolution) * resolution
        hi = (np.floor((all_points.max(axis=0) + padding) / resolution) + 1) * resolution

        grid = cls(resolution, hi[0] - lo[0], hi[1] - lo[1], lo[0], lo[1])
        grid.add_points(all_points)
        grid.compute()
        return grid

    @property
    def computed(self) -> bool:
        """True when every cell is finalized and no point was added since."""
        return self._computed

    def _indices(self, points: PointCloud2D) -> Tuple[np.ndarray, np.ndarray]:
        """Flat cell index per point and a mask of points inside the extent."""
        x = points[:, 0]
        y = points[:, 1]
        inside = (
            (x >= self.origin_x)
            & (x < self.origin_x + self.size_x)
            & (y >= self.origin_y)
            & (y < self.origin_y + self.size_y)
        )
        # Non-finite and outside points map to cell 0 and are masked by `inside`
        x = np.where(inside, x, self.origin_x)
        y = np.where(inside, y, self.origin_y)
        ix = np.floor((x - self.origin_x) / self.resolution).astype(np.int64)
        iy = np.floor((y - self.origin_y) / self.resolution).astype(np.int64)
        # Guard rounding at the upper edge
        ix = np.clip(ix, 0, self.nx - 1)
        iy = np.clip(iy, 0, self.ny - 1)
        return ix * self.ny + iy, inside

    def cell_index(self, point) -> Optional[Tuple[int, int]]:
        """Return the (ix, iy) index of the cell covering `point`, or None."""
        flat, inside = self._indices(np.asarray(point, dtype=np.float64).reshape(1, 2))
        if not inside[0]:
            return None
        return int(flat[0] // self.ny), int(flat[0] % self.ny)

    def cell(self, ix: int, iy: int) -> Cell:
        """Return cell (ix, iy)."""
        if not (0 <= ix < self.nx and 0 <= iy < self.ny):
            raise IndexError(f"cell ({ix}, {iy}) outside {self.nx}x{self.ny} grid")
        return self.cells[ix * self.ny + iy]

    def add_points(self, points: PointCloud2D) -> int:
        """
        Add map-frame points to their covering cells.

        Points outside the extent are silently dropped.

        Returns:
            Number of points that landed inside the grid.
        """
        points = as_points(points)
        if points.shape[0] == 0:
            return 0

        flat, inside = self._indices(points)
        flat = flat[inside]
        points = points[inside]
        if flat.size == 0:
            return 0

        # Stable grouping keeps per-cell insertion order deterministic
        order = np.argsort(flat, kind="stable")
        flat = flat[order]
        points = points[order]
        keys, starts = np.unique(flat, return_index=True)
        ends = np.append(starts[1:], flat.size)
        for key, start, end in zip(keys, starts, ends):
            self.cells[key].add_points(points[start:end])

        self._computed = False
        return int(flat.size)

    def add_scan(self, scan: Scan, pose: Optional[PoseLike] = None) -> int:
        """
        Transform a scan into the map frame and accumulate its points.

        Args:
            scan: Scan with sensor-frame points.
            pose: Pose used for the transform (rotate by theta, then translate).
                  Defaults to the scan's own pose.

        Returns:
            Number of points that landed inside the grid.
        """
        if pose is None:
            pose = scan.pose
        if len(scan.points) == 0:
            return 0
        return self.add_points(se2_apply(pose, scan.points))

    def compute(self) -> None:
        """Finalize every cell and pack their parameters for scoring."""
        for k, cell in enumerate(self.cells):
            if cell.computed:
                continue
            cell.compute()
            self._valid[k] = cell.valid
            self._mean[k] = (cell.mean_x, cell.mean_y)
            self._info[k] = (cell.info_xx, cell.info_xy, cell.info_yy)
        self._computed = True

    def _check_computed(self) -> None:
        if not self._computed:
            warnings.warn(
                "NDTGrid queried before compute(); cells with new points score 0. "
                "Call compute() after the last add_scan().",
                RuntimeWarning,
                stacklevel=3,
            )

    def point_likelihoods(self, points: PointCloud2D) -> np.ndarray:
        """
        Per-point likelihoods for an (N, 2) array of map-frame points.

        Returns:
            Array of shape (N,) with values in [0, 1].
        """
        points = as_points(points)
        self._check_computed()
        out = np.zeros(points.shape[0], dtype=np.float64)
        if points.shape[0] == 0:
            return out

        flat, inside = self._indices(points)
        usable = inside & self._valid[flat]
        # Stale cells keep their previous packed values; mask them explicitly
        if not self._computed:
            stale = np.fromiter(
                (not self.cells[k].computed for k in flat), dtype=bool, count=flat.size
            )
            usable &= ~stale
        if not np.any(usable):
            return out

        k = flat[usable]
        d = points[usable] - self._mean[k]
        dx = d[:, 0]
        dy = d[:, 1]
        info = self._info[k]
        m = info[:, 0] * dx * dx + 2.0 * info[:, 1] * dx * dy + info[:, 2] * dy * dy
        out[usable] = np.exp(-0.5 * np.maximum(m, 0.0))
        return out

    def likelihood(self, points) -> float:
        """
        Likelihood of a single point, or the SUM over a set of points.

        Args:
            points: One point, shape (2,), or a point set, shape (N, 2).

        Returns:
            For one point, its cell score in [0, 1] (0 outside the grid or in a
            degenerate cell). For a point set, the sum of per-point scores.
        """
        arr = np.asarray(points, dtype=np.float64)
        if arr.shape == (2,):
            self._check_computed()
            index = self.cell_index(arr)
            if index is None:
                return 0.0
            return self.cell(*index).score(arr)
        return float(np.sum(self.point_likelihoods(arr)))

    def sample(self, resolution: float) -> np.ndarray:
        """
        Sample `likelihood` over a regular raster of the grid extent.

        Args:
            resolution: Raster spacing in meters.

        Returns:
            Array of shape (height, width); element [j, i] is the likelihood
            at (origin_x + i*resolution, origin_y + j*resolution).
        """
        if not resolution > 0:
            raise ValueError(f"resolution must be positive, got {resolution}")
        width = int(round(self.size_x / resolution))
        height = int(round(self.size_y / resolution))
        xs = self.origin_x + np.arange(width) * resolution
        ys = self.origin_y + np.arange(height) * resolution
        gx, gy = np.meshgrid(xs, ys)
        values = self.point_likelihoods(np.column_stack([gx.ravel(), gy.ravel()]))
        return values.reshape(height, width)

    def __repr__(self) -> str:
        return (
            f"NDTGrid(resolution={self.resolution}, size=({self.size_x}, {self.size_y}), "
            f"origin=({self.origin_x}, {self.origin_y}), cells={self.nx}x{self.ny})"
        )
