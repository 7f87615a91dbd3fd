"""Runnable demonstrations of the ndt2d mapping pipeline.

Examples:
    - example_ndt_mapping.py: Odometry-driven NDT mapping in a simulated room

Dependencies:
    - ndt2d: NDT grid, scan matcher, mapper
    - matplotlib: Visualization
    - tqdm: Progress reporting

Author: Navigation Engineer
Date: 2024
"""

__all__ = []
