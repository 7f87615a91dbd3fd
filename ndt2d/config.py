"""Configuration for the NDT scan matcher and the mapper.

Configurations are plain dataclasses validated in `__post_init__`, so an
invalid tunable fails at construction instead of silently producing a wrong
search window. They can be loaded from and saved to JSON files:

    {
        "map_resolution": 0.05,
        "rolling_depth": 10,
        "matcher": {"resolution": 0.25, "linear_size": 0.2}
    }

Author: Navigation Engineer
Date: 2024
"""

import json
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Union

import numpy as np


def _check_positive(name: str, value: float) -> None:
    if not (np.isfinite(value) and value > 0):
        raise ValueError(f"{name} must be a positive finite number, got {value}")


def _reject_unknown(cls, data: Dict[str, Any]) -> None:
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown {cls.__name__} keys: {', '.join(unknown)}")


@dataclass
class MatcherConfig:
    """
    Tunables of the correlative NDT scan matcher.

    Attributes:
        resolution: NDT cell edge length (meters).
        angular_resolution: Step between candidate headings (radians).
        angular_size: Half-width of the heading search window (radians).
        linear_resolution: Step between candidate positions (meters).
        linear_size: Half-width of the x/y search window (meters).
        range_max: Maximum usable sensor range (meters); farther points are
                   ignored when building the map and when scoring.

    Notes:
        The search evaluates (2*linear_size/linear_resolution + 1)^2 *
        (2*angular_size/angular_resolution + 1) candidate poses per match.
        See `num_candidates`.
    """

    resolution: float = 0.25
    angular_resolution: float = 0.02
    angular_size: float = 0.2
    linear_resolution: float = 0.02
    linear_size: float = 0.2
    range_max: float = 30.0

    def __post_init__(self) -> None:
        for f in fields(self):
            _check_positive(f.name, getattr(self, f.name))
        if self.angular_resolution >= self.angular_size:
            raise ValueError(
                f"angular_resolution ({self.angular_resolution}) must be smaller "
                f"than angular_size ({self.angular_size})"
            )
        if self.linear_resolution >= self.linear_size:
            raise ValueError(
                f"linear_resolution ({self.linear_resolution}) must be smaller "
                f"than linear_size ({self.linear_size})"
            )

    @property
    def num_candidates(self) -> int:
        """Number of candidate poses evaluated by one search."""
        n_lin = 2 * int(np.floor(self.linear_size / self.linear_resolution + 1e-9)) + 1
        n_ang = 2 * int(np.floor(self.angular_size / self.angular_resolution + 1e-9)) + 1
        return n_lin * n_lin * n_ang

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MatcherConfig":
        _reject_unknown(cls, data)
        return cls(**{k: float(v) for k, v in data.items()})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MapperConfig:
    """
    Tunables of the incremental mapper.

    Attributes:
        map_resolution: Cell size of rendered occupancy maps (meters).
        minimum_travel_distance: Odometry distance below which a scan is
                                 skipped, unless the rotation is large enough.
        minimum_travel_rotation: Odometry rotation (radians) below which a
                                 scan is skipped, unless the distance is large
                                 enough.
        rolling_depth: Number of most recent scans matched against.
        scan_points_to_use: Upper bound on scan points used by the search.
        min_match_score: Matches scoring below this keep the predicted pose.
        occupied_threshold: Likelihood at or above which a map cell is
                            rendered as occupied.
        matcher: Scan matcher tunables.
    """

    map_resolution: float = 0.05
    minimum_travel_distance: float = 0.1
    minimum_travel_rotation: float = 1.0
    rolling_depth: int = 10
    scan_points_to_use: int = 200
    min_match_score: float = 1.0
    occupied_threshold: float = 0.1
    matcher: MatcherConfig = field(default_factory=MatcherConfig)

    def __post_init__(self) -> None:
        _check_positive("map_resolution", self.map_resolution)
        if self.minimum_travel_distance < 0:
            raise ValueError(
                f"minimum_travel_distance must be >= 0, got {self.minimum_travel_distance}"
            )
        if self.minimum_travel_rotation < 0:
            raise ValueError(
                f"minimum_travel_rotation must be >= 0, got {self.minimum_travel_rotation}"
            )
        if int(self.rolling_depth) != self.rolling_depth or self.rolling_depth < 1:
            raise ValueError(f"rolling_depth must be a positive integer, got {self.rolling_depth}")
        if (
            int(self.scan_points_to_use) != self.scan_points_to_use
            or self.scan_points_to_use < 1
        ):
            raise ValueError(
                f"scan_points_to_use must be a positive integer, got {self.scan_points_to_use}"
            )
        if self.min_match_score < 0:
            raise ValueError(f"min_match_score must be >= 0, got {self.min_match_score}")
        if not (0.0 < self.occupied_threshold <= 1.0):
            raise ValueError(
                f"occupied_threshold must be in (0, 1], got {self.occupied_threshold}"
            )
        if isinstance(self.matcher, dict):
            self.matcher = MatcherConfig.from_dict(self.matcher)
        self.rolling_depth = int(self.rolling_depth)
        self.scan_points_to_use = int(self.scan_points_to_use)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MapperConfig":
        _reject_unknown(cls, data)
        data = dict(data)
        if "matcher" in data:
            data["matcher"] = MatcherConfig.from_dict(data["matcher"])
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def load_config(path: Union[str, Path]) -> MapperConfig:
    """
    Load a MapperConfig from a JSON file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file holds unknown keys or invalid values.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with open(path) as f:
        return MapperConfig.from_dict(json.load(f))


def save_config(config: MapperConfig, path: Union[str, Path]) -> None:
    """Write a MapperConfig to a JSON file."""
    with open(Path(path), "w") as f:
        json.dump(config.to_dict(), f, indent=2)
