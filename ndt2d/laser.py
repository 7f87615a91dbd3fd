"""Conversion of polar laser readings into sensor-frame Cartesian points.

Author: Navigation Engineer
Date: 2024
"""

import numpy as np


def ranges_to_points(
    ranges,
    angle_min: float,
    angle_increment: float,
    range_min: float = 0.0,
    range_max: float = np.inf,
) -> np.ndarray:
    """
    Project a polar laser scan into sensor-frame points.

    Reading i lies at angle `angle_min + i * angle_increment`. NaN and
    infinite readings, and readings outside [range_min, range_max], are
    dropped.

    Args:
        ranges: Range readings (meters), shape (N,).
        angle_min: Angle of the first reading (radians).
        angle_increment: Angular step between readings (radians).
        range_min: Minimum valid range (meters).
        range_max: Maximum valid range (meters).

    Returns:
        Points of shape (M, 2) with M <= N, in reading order.

    Examples:
        >>> ranges_to_points([1.0, np.nan, 2.0], 0.0, np.pi / 2).round(6)
        array([[ 1.,  0.],
               [-2.,  0.]])
    """
    ranges = np.asarray(ranges, dtype=np.float64)
    if ranges.ndim != 1:
        raise ValueError(f"ranges must be one-dimensional, got shape {ranges.shape}")
    if range_min < 0 or range_max < range_min:
        raise ValueError(f"invalid range limits [{range_min}, {range_max}]")

    angles = angle_min + np.arange(ranges.size) * angle_increment
    with np.errstate(invalid="ignore"):
        keep = np.isfinite(ranges) & (ranges >= range_min) & (ranges <= range_max)

    r = ranges[keep]
    a = angles[keep]
    return np.column_stack([r * np.cos(a), r * np.sin(a)]).reshape(-1, 2)
