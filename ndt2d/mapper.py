"""Incremental 2D NDT mapper: odometry prediction, scan matching, map rendering.

For every incoming scan the mapper
    1. skips it when the robot has not travelled far enough,
    2. predicts the corrected pose by applying the odometry delta,
    3. refines the prediction against a rolling NDT map of recent scans,
    4. stores the scan, its poses and an odometry edge in the pose graph.

Scan ingestion and map rendering may run on different threads. All shared
history is guarded by one lock; `build_map()` snapshots the history under the
lock, builds a fresh NDT grid and raster without holding it, and then swaps
the finished map in atomically together with the history revision it was
built from.

Author: Navigation Engineer
Date: 2024
"""

import logging
import math
import threading
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from .config import MapperConfig
from .graph import PoseGraph
from .grid import NDTGrid
from .scan_matcher import ScanMatcherNDT
from .se2 import se2_relative, shortest_angular_distance, wrap_angle
from .types import MatchResult, Pose2d, Scan, as_points

logger = logging.getLogger(__name__)

OCCUPIED = 100
FREE = 0


@dataclass(eq=False)
class OccupancyMap:
    """
    Rendered occupancy raster.

    Attributes:
        resolution: Cell size (meters).
        origin_x, origin_y: World coordinates of cell (0, 0).
        data: int8 array of shape (height, width); OCCUPIED or FREE.
        likelihood: Sampled NDT likelihood, same shape as `data`.
        revision: Number of scans the map was built from.
    """

    resolution: float
    origin_x: float
    origin_y: float
    data: np.ndarray
    likelihood: np.ndarray
    revision: int

    @property
    def width(self) -> int:
        return self.data.shape[1]

    @property
    def height(self) -> int:
        return self.data.shape[0]


def render_occupancy(
    grid: NDTGrid, resolution: float, occupied_threshold: float, revision: int = 0
) -> OccupancyMap:
    """Sample `grid` on a raster and mark cells at or above the threshold occupied."""
    likelihood = grid.sample(resolution)
    data = np.where(likelihood >= occupied_threshold, OCCUPIED, FREE).astype(np.int8)
    return OccupancyMap(
        resolution=resolution,
        origin_x=grid.origin_x,
        origin_y=grid.origin_y,
        data=data,
        likelihood=likelihood,
        revision=revision,
    )


class Mapper:
    """
    Builds a pose graph and an NDT map from odometry-stamped scans.

    Example:
        >>> mapper = Mapper(MapperConfig())
        >>> for odom_pose, points in stream:
        ...     mapper.add_scan(odom_pose, points)
        >>> occupancy = mapper.build_map()
    """

    def __init__(self, config: Optional[MapperConfig] = None) -> None:
        if config is None:
            config = MapperConfig()
        self.config = config
        self.graph = PoseGraph()
        self.odom_poses: List[Pose2d] = []
        self.match_results: List[Optional[MatchResult]] = []

        self._lock = threading.Lock()
        self._map: Optional[OccupancyMap] = None

    @property
    def num_scans(self) -> int:
        with self._lock:
            return len(self.graph)

    def corrected_poses(self) -> List[Pose2d]:
        with self._lock:
            return [scan.pose for scan in self.graph.scans]

    def _travelled_enough(self, odom_pose: Pose2d, last_odom: Pose2d) -> bool:
        dx = odom_pose.x - last_odom.x
        dy = odom_pose.y - last_odom.y
        dth = shortest_angular_distance(last_odom.theta, odom_pose.theta)
        min_dist = self.config.minimum_travel_distance
        return dx * dx + dy * dy >= min_dist * min_dist or (
            abs(dth) >= self.config.minimum_travel_rotation
        )

    @staticmethod
    def predict(odom_pose: Pose2d, last_odom: Pose2d, last_corrected: Pose2d) -> Pose2d:
        """
        Apply the odometry delta to the last corrected pose.

        The odometry and corrected frames may be rotated against each other,
        so the odometry-frame translation is rotated by the heading offset
        between the two frames before it is applied.
        """
        dx = odom_pose.x - last_odom.x
        dy = odom_pose.y - last_odom.y
        dth = shortest_angular_distance(last_odom.theta, odom_pose.theta)
        heading = shortest_angular_distance(last_odom.theta, last_corrected.theta)
        c = math.cos(heading)
        s = math.sin(heading)
        return Pose2d(
            x=last_corrected.x + dx * c - dy * s,
            y=last_corrected.y + dx * s + dy * c,
            theta=wrap_angle(last_corrected.theta + dth),
        )

    def add_scan(self, odom_pose, points) -> Optional[int]:
        """
        Process one scan taken at `odom_pose` (odometry frame).

        Args:
            odom_pose: Odometry pose of the sensor, Pose2d or [x, y, theta].
            points: Sensor-frame points, shape (N, 2).

        Returns:
            Arena index of the stored scan, or None when the scan was skipped
            because the robot did not move far enough.

        Notes:
            Meant to be called from a single ingestion thread; `build_map`
            and the read accessors may run concurrently on other threads.
        """
        if not isinstance(odom_pose, Pose2d):
            odom_pose = Pose2d.from_array(odom_pose)
        points = as_points(points)

        with self._lock:
            last_odom = self.odom_poses[-1] if self.odom_poses else None
            last_corrected = self.graph.scans[-1].pose if len(self.graph) else None
            start = max(0, len(self.graph) - self.config.rolling_depth)
            window = self.graph.scans[start:]

        if last_odom is None:
            # The first scan defines the map origin
            predicted = Pose2d.identity()
        else:
            if not self._travelled_enough(odom_pose, last_odom):
                return None
            predicted = self.predict(odom_pose, last_odom, last_corrected)
            logger.debug("Odom pose: %s", odom_pose)
            logger.debug("Predicted: %s", predicted)

        scan = Scan(id=len(window) + start, pose=predicted, points=points)
        result = None
        corrected = predicted
        if window:
            matcher = ScanMatcherNDT(self.config.matcher)
            matcher.add_scans(window)
            result = matcher.match_scan(
                scan, predicted, scan_points_to_use=self.config.scan_points_to_use
            )
            if result.score >= self.config.min_match_score:
                corrected = result.pose
            else:
                logger.warning(
                    "Match score %.3f below %.3f, keeping odometry prediction",
                    result.score,
                    self.config.min_match_score,
                )
            logger.debug("Corrected: %s (score %.3f)", corrected, result.score)

        logger.info("Adding scan to map")
        with self._lock:
            index = self.graph.add_scan(scan.with_pose(corrected))
            self.odom_poses.append(odom_pose)
            self.match_results.append(result)
            if index > 0:
                self.graph.add_odom_constraint(
                    index - 1, index, se2_relative(last_odom, odom_pose)
                )
        return index

    @property
    def map_update_available(self) -> bool:
        """True when scans were added after the latest rendered map."""
        with self._lock:
            latest = self._map.revision if self._map is not None else -1
            return len(self.graph) > 0 and latest != len(self.graph)

    def latest_map(self) -> Optional[OccupancyMap]:
        with self._lock:
            return self._map

    def build_map(self) -> Optional[OccupancyMap]:
        """
        Render an occupancy map from every stored scan.

        Returns:
            The new map, or None when no scan has been added yet.
        """
        with self._lock:
            scans = list(self.graph.scans)
        if not scans:
            return None

        grid = NDTGrid.from_scans(
            scans,
            self.config.matcher.resolution,
            padding=self.config.matcher.resolution,
            range_max=self.config.matcher.range_max,
        )
        occupancy = render_occupancy(
            grid,
            self.config.map_resolution,
            self.config.occupied_threshold,
            revision=len(scans),
        )
        with self._lock:
            # A map built from an older snapshot never replaces a newer one
            if self._map is None or self._map.revision <= occupancy.revision:
                self._map = occupancy
        logger.info(
            "Built %dx%d map from %d scans", occupancy.width, occupancy.height, len(scans)
        )
        return occupancy

    def map_to_odom(self) -> Optional[Pose2d]:
        """
        Transform from the map frame to the odometry frame.

        Derived from the latest corrected (map -> robot) and odometry
        (odom -> robot) poses: map_to_odom = map_to_robot ⊕ odom_to_robot⁻¹.
        """
        with self._lock:
            if not self.odom_poses:
                return None
            corrected = self.graph.scans[-1].pose
            odom = self.odom_poses[-1]
        return corrected.compose(odom.inverse())
