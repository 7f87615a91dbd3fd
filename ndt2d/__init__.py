"""2D Normal Distributions Transform (NDT) mapping and scan matching.

Space is partitioned into a grid of cells, each summarising the points that
fall inside it as a Gaussian (mean + covariance). A candidate pose for a new
scan is scored by evaluating those Gaussians at the transformed scan points,
and a correlative search over a pose neighborhood finds the best-aligning
pose together with a covariance estimate of the match.

Main components:
    - Cell: running point statistics and Gaussian scoring
    - NDTGrid: bounded grid of cells with additive likelihood queries
    - ScanMatcherNDT: correlative pose search and match covariance
    - PoseGraph: scan arena with odometry and loop-closure constraints
    - Mapper: odometry prediction + rolling-window matching + map rendering
    - MatcherConfig, MapperConfig: validated configuration

Example usage:
    >>> from ndt2d import NDTGrid, Pose2d, Scan
    >>> grid = NDTGrid(resolution=1.0, size_x=10.0, size_y=10.0,
    ...                origin_x=-5.0, origin_y=-5.0)
    >>> scan = Scan(0, Pose2d.identity(), [[3.5, 3.5], [3.45, 3.4], [3.55, 3.6]])
    >>> grid.add_scan(scan)
    3
    >>> grid.compute()
    >>> grid.likelihood([[3.5, 3.5]])
    1.0
"""

from .cell import DETERMINANT_FLOOR, MIN_POINTS, Cell
from .config import MapperConfig, MatcherConfig, load_config, save_config
from .graph import PoseGraph
from .grid import NDTGrid
from .laser import ranges_to_points
from .mapper import Mapper, OccupancyMap, render_occupancy
from .scan_matcher import ScanMatcherNDT
from .se2 import (
    se2_apply,
    se2_compose,
    se2_inverse,
    se2_relative,
    shortest_angular_distance,
    wrap_angle,
)
from .simulation import box_walls, simulate_ranges, simulate_scan
from .types import Constraint, MatchResult, PointCloud2D, Pose2d, Scan

__all__ = [
    # Core types
    "Pose2d",
    "Scan",
    "MatchResult",
    "Constraint",
    "PointCloud2D",
    # SE(2) operations
    "se2_compose",
    "se2_inverse",
    "se2_apply",
    "se2_relative",
    "wrap_angle",
    "shortest_angular_distance",
    # NDT model
    "Cell",
    "MIN_POINTS",
    "DETERMINANT_FLOOR",
    "NDTGrid",
    # Scan matching
    "ScanMatcherNDT",
    # Configuration
    "MatcherConfig",
    "MapperConfig",
    "load_config",
    "save_config",
    # Collaborators
    "PoseGraph",
    "Mapper",
    "OccupancyMap",
    "render_occupancy",
    "ranges_to_points",
    # Simulation
    "simulate_ranges",
    "simulate_scan",
    "box_walls",
]

__version__ = "0.1.0"
