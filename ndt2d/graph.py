"""Pose graph container: scan arena plus sequential and loop-closure edges.

The graph is a passive store. Scans live in an arena and are addressed by
their stable integer index; constraints refer to scans by index only. No
optimisation is performed here.

Author: Navigation Engineer
Date: 2024
"""

from typing import Iterator, List, Optional

import numpy as np

from .se2 import se2_relative
from .types import LOOP, ODOM, Constraint, MatchResult, Scan


class PoseGraph:
    """
    Scan arena with odometry and loop-closure constraints.

    Attributes:
        scans: Scans in insertion order; a scan's index is its arena address.
        odom_constraints: Sequential (odometry-derived) edges.
        loop_constraints: Matcher-derived edges between non-adjacent scans.

    Example:
        >>> graph = PoseGraph()
        >>> a = graph.add_scan(scan_a)
        >>> b = graph.add_scan(scan_b)
        >>> graph.add_odom_constraint(a, b, [0.5, 0.0, 0.0])
    """

    def __init__(self) -> None:
        self.scans: List[Scan] = []
        self.odom_constraints: List[Constraint] = []
        self.loop_constraints: List[Constraint] = []

    def __len__(self) -> int:
        return len(self.scans)

    def __getitem__(self, index: int) -> Scan:
        return self.scans[index]

    def __iter__(self) -> Iterator[Scan]:
        return iter(self.scans)

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self.scans):
            raise IndexError(f"scan index {index} out of range [0, {len(self.scans)})")

    def add_scan(self, scan: Scan) -> int:
        """Append a scan to the arena and return its index."""
        self.scans.append(scan)
        return len(self.scans) - 1

    def update_scan(self, index: int, scan: Scan) -> None:
        """Replace the scan stored at `index` (e.g. with a corrected pose)."""
        self._check_index(index)
        self.scans[index] = scan

    def add_odom_constraint(
        self,
        begin: int,
        end: int,
        transform,
        covariance: Optional[np.ndarray] = None,
    ) -> Constraint:
        """Record a sequential edge carrying transform (dx, dy, dtheta)."""
        self._check_index(begin)
        self._check_index(end)
        constraint = Constraint(begin, end, transform, covariance, kind=ODOM)
        self.odom_constraints.append(constraint)
        return constraint

    def add_loop_constraint(
        self,
        begin: int,
        end: int,
        transform,
        covariance: np.ndarray,
    ) -> Constraint:
        """Record a loop-closure edge carrying transform (dx, dy, dtheta)."""
        self._check_index(begin)
        self._check_index(end)
        constraint = Constraint(begin, end, transform, covariance, kind=LOOP)
        self.loop_constraints.append(constraint)
        return constraint

    def constraint_from_match(self, begin: int, end: int, result: MatchResult) -> Constraint:
        """
        Record a loop closure from a match of scan `end` against scan `begin`.

        The transform is the matched pose of `end` expressed in the frame of
        the arena pose of `begin`; the covariance is the match covariance.
        """
        self._check_index(begin)
        transform = se2_relative(self.scans[begin].pose, result.pose)
        return self.add_loop_constraint(begin, end, transform, result.covariance)

    def poses(self) -> np.ndarray:
        """All scan poses as an array of shape (N, 3)."""
        if not self.scans:
            return np.empty((0, 3))
        return np.array([scan.pose.to_array() for scan in self.scans])
