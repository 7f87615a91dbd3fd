"""Type definitions and data structures for 2D NDT scan matching.

Key types:
    - Pose2d: SE(2) pose representation [x, y, theta]
    - Scan: identified scan of sensor-frame points with a capture pose
    - MatchResult: refined pose, score and covariance from a scan match
    - Constraint: relative-pose edge between two scans of a pose graph
    - PointCloud2D: type alias for (N, 2) point arrays

Author: Navigation Engineer
Date: 2024
"""

from dataclasses import dataclass, field
from typing import Optional

import numpy as np


# Type alias for clarity and documentation
PointCloud2D = np.ndarray  # Shape (N, 2), points in 2D space (meters)


def as_points(points, name: str = "points") -> np.ndarray:
    """Convert an array-like of 2D points to a float64 array of shape (N, 2).

    Raises:
        ValueError: If the input cannot be interpreted as (N, 2) points.
    """
    arr = np.asarray(points, dtype=np.float64)
    if arr.size == 0:
        return np.empty((0, 2), dtype=np.float64)
    if arr.ndim != 2 or arr.shape[1] != 2:
        raise ValueError(f"{name} must have shape (N, 2), got {arr.shape}")
    return arr


@dataclass
class Pose2d:
    """
    SE(2) pose: position (x, y) and heading theta.

    Attributes:
        x: Position along the x-axis (meters).
        y: Position along the y-axis (meters).
        theta: Heading (radians), counter-clockwise from the positive x-axis.

    Examples:
        >>> p = Pose2d(x=1.0, y=2.0, theta=np.pi / 2)
        >>> q = p.compose(Pose2d(1.0, 0.0, 0.0))
        >>> np.allclose(q.to_array(), [1.0, 3.0, np.pi / 2])
        True
    """

    x: float
    y: float
    theta: float

    def __post_init__(self) -> None:
        """Validate pose values after initialization."""
        if not np.isfinite(self.x):
            raise ValueError(f"x must be finite, got {self.x}")
        if not np.isfinite(self.y):
            raise ValueError(f"y must be finite, got {self.y}")
        if not np.isfinite(self.theta):
            raise ValueError(f"theta must be finite, got {self.theta}")

    def to_array(self) -> np.ndarray:
        """Convert pose to NumPy array [x, y, theta]."""
        return np.array([self.x, self.y, self.theta], dtype=np.float64)

    @classmethod
    def from_array(cls, arr) -> "Pose2d":
        """
        Create Pose2d from an array-like [x, y, theta].

        Raises:
            ValueError: If the array does not have exactly 3 elements.
        """
        arr = np.asarray(arr, dtype=np.float64)
        if arr.shape != (3,):
            raise ValueError(f"Array must have shape (3,), got {arr.shape}")
        return cls(x=float(arr[0]), y=float(arr[1]), theta=float(arr[2]))

    @classmethod
    def identity(cls) -> "Pose2d":
        """Pose at the origin with zero heading."""
        return cls(x=0.0, y=0.0, theta=0.0)

    def compose(self, other: "Pose2d") -> "Pose2d":
        """Return self ⊕ other (apply `other` in the frame of `self`)."""
        from .se2 import se2_compose

        return Pose2d.from_array(se2_compose(self, other))

    def inverse(self) -> "Pose2d":
        """Return the inverse transform, so that p ⊕ p⁻¹ = identity."""
        from .se2 import se2_inverse

        return Pose2d.from_array(se2_inverse(self))

    def relative_to(self, origin: "Pose2d") -> "Pose2d":
        """Return this pose expressed in the frame of `origin` (origin⁻¹ ⊕ self)."""
        from .se2 import se2_relative

        return Pose2d.from_array(se2_relative(origin, self))

    def __repr__(self) -> str:
        """Readable string representation."""
        return f"Pose2d(x={self.x:.4f}, y={self.y:.4f}, theta={self.theta:.4f})"


@dataclass(eq=False)
class Scan:
    """
    A laser scan: sensor-frame points plus the best-known capture pose.

    Scans are treated as immutable once built; use `with_pose` to obtain a
    copy carrying a refined pose.

    Attributes:
        id: Scan identifier (index in the scan arena).
        pose: Capture pose of the sensor in the map frame.
        points: Points in the sensor frame, shape (N, 2).
    """

    id: int
    pose: Pose2d
    points: np.ndarray = field(default_factory=lambda: np.empty((0, 2)))

    def __post_init__(self) -> None:
        points = as_points(self.points, name="scan points")
        if points.flags.writeable:
            points = points.copy()
            points.setflags(write=False)
        self.points = points

    def __len__(self) -> int:
        return self.points.shape[0]

    def with_pose(self, pose: Pose2d) -> "Scan":
        """Return a copy of this scan carrying `pose`."""
        return Scan(id=self.id, pose=pose, points=self.points)


@dataclass(eq=False)
class MatchResult:
    """
    Outcome of a correlative scan match.

    Attributes:
        pose: Best pose found (the initial guess when nothing matched).
        score: Additive NDT likelihood of the scan at `pose` (0 when no match).
        covariance: 3x3 covariance of (x, y, theta) at `pose`.
    """

    pose: Pose2d
    score: float
    covariance: np.ndarray


ODOM = "odom"
LOOP = "loop"


@dataclass(eq=False)
class Constraint:
    """
    Pose-graph edge between two scans.

    Attributes:
        begin: Arena index of the reference scan.
        end: Arena index of the constrained scan.
        transform: Relative pose (dx, dy, dtheta) of `end` in the frame of `begin`.
        covariance: Optional 3x3 covariance of the transform.
        kind: "odom" for sequential edges, "loop" for matcher-derived edges.
    """

    begin: int
    end: int
    transform: np.ndarray
    covariance: Optional[np.ndarray] = None
    kind: str = ODOM

    def __post_init__(self) -> None:
        self.transform = np.asarray(self.transform, dtype=np.float64)
        if self.transform.shape != (3,):
            raise ValueError(
                f"transform must have shape (3,), got {self.transform.shape}"
            )
        if self.covariance is not None:
            self.covariance = np.asarray(self.covariance, dtype=np.float64)
            if self.covariance.shape != (3, 3):
                raise ValueError(
                    f"covariance must have shape (3, 3), got {self.covariance.shape}"
                )
        if self.kind not in (ODOM, LOOP):
            raise ValueError(f"kind must be '{ODOM}' or '{LOOP}', got {self.kind!r}")
