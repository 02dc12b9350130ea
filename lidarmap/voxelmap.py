"""Voxel grid that keeps a bounded number of well-spread points per cell."""

from __future__ import annotations

import numpy as np


def _homogeneous(points) -> np.ndarray:
    arr = np.asarray(points, dtype=float)
    if arr.size == 0:
        return np.empty((0, 4))
    arr = arr.reshape(len(arr), -1)
    if arr.shape[1] == 3:
        return np.hstack([arr, np.ones((len(arr), 1))])
    if arr.shape[1] != 4:
        raise ValueError(f"points must be (N, 3) or (N, 4), got shape {arr.shape}")
    return arr


class VoxelMap:
    """Points bucketed into cubic cells of side ``resolution``.

    A cell accepts at most ``max_num_points_in_cell`` points, and a point closer
    than ``min_dist_in_cell`` to a point already in its cell is dropped.
    """

    def __init__(
        self,
        resolution: float,
        max_num_points_in_cell: int = 10,
        min_dist_in_cell: float = 0.1,
    ) -> None:
        if resolution <= 0.0:
            raise ValueError(f"resolution must be positive, got {resolution}")
        if max_num_points_in_cell < 1:
            raise ValueError("a cell must be able to hold at least one point")
        self.resolution = float(resolution)
        self.max_num_points_in_cell = int(max_num_points_in_cell)
        self.min_dist_in_cell = float(min_dist_in_cell)
        self._voxels: dict[tuple[int, int, int], list[np.ndarray]] = {}

    def insert(self, points) -> None:
        """Insert ``(N, 3)`` or ``(N, 4)`` points."""
        pts = _homogeneous(points)
        if len(pts) == 0:
            return
        min_sq_dist = self.min_dist_in_cell**2
        coords = np.floor(pts[:, :3] / self.resolution).astype(np.int64)
        for coord, point in zip(coords, pts):
            cell = self._voxels.setdefault((int(coord[0]), int(coord[1]), int(coord[2])), [])
            if len(cell) >= self.max_num_points_in_cell:
                continue
            if any(float(np.sum((other[:3] - point[:3]) ** 2)) < min_sq_dist for other in cell):
                continue
            cell.append(point.copy())

    def num_voxels(self) -> int:
        """Number of occupied cells."""
        return len(self._voxels)

    def voxel_data(self) -> np.ndarray:
        """All stored points as ``(N, 4)``, cell by cell in order of creation."""
        stored = [point for cell in self._voxels.values() for point in cell]
        if not stored:
            return np.empty((0, 4))
        return np.array(stored)

    def clear(self) -> None:
        """Remove every cell."""
        self._voxels.clear()