"""Per-point covariance and normal estimation from neighbour sets."""

from __future__ import annotations

import enum

import numpy as np


class RegularizationMethod(enum.Enum):
    """How a raw covariance is reshaped before use."""

    NONE = enum.auto()
    PLANE = enum.auto()
    NORMALIZED_MIN_EIG = enum.auto()
    FROBENIUS = enum.auto()


_PLANE_EIGENVALUES = np.array([1e-3, 1.0, 1.0])
_MIN_EIGENVALUE = 1e-3
_FROBENIUS_LAMBDA = 1e-3


def _homogeneous(points) -> np.ndarray:
    arr = np.asarray(points, dtype=float)
    arr = arr.reshape(len(arr), -1)
    if arr.shape[1] == 3:
        return np.hstack([arr, np.ones((len(arr), 1))])
    if arr.shape[1] != 4:
        raise ValueError(f"points must be (N, 3) or (N, 4), got shape {arr.shape}")
    return arr


class CloudCovarianceEstimation:
    """Estimates regularised covariances (and normals) of points from their neighbours.

    ``neighbors`` holds, for each point, the same number of neighbour indices,
    either flat or as an ``(N, k)`` array.
    """

    def __init__(
        self,
        num_threads: int = 1,
        regularization_method: RegularizationMethod = RegularizationMethod.PLANE,
    ) -> None:
        self.num_threads = num_threads
        self.regularization_method = regularization_method

    @staticmethod
    def _prepare(points, neighbors, k_neighbors: int | None) -> tuple[np.ndarray, np.ndarray, int]:
        pts = _homogeneous(points)
        indices = np.asarray(neighbors, dtype=np.intp).ravel()
        num_points = len(pts)
        if indices.size % num_points:
            raise ValueError("number of neighbours is not a multiple of the number of points")
        k_correspondences = indices.size // num_points
        k = k_correspondences if k_neighbors is None else int(k_neighbors)
        if k < 1 or k > k_correspondences:
            raise ValueError(f"k_neighbors must be in [1, {k_correspondences}], got {k}")
        return pts, indices.reshape(num_points, k_correspondences)[:, :k], k

    @staticmethod
    def _scatter(pts: np.ndarray, idx: np.ndarray, k: int) -> np.ndarray:
        gathered = pts[idx]
        sum_points = gathered.sum(axis=1)
        sum_cross = np.einsum("nki,nkj->nij", gathered, gathered)
        mean = sum_points / k
        return sum_cross - np.einsum("ni,nj->nij", mean, sum_points)

    def _regularize_batch(self, covs: np.ndarray) -> np.ndarray:
        method = self.regularization_method
        if method is RegularizationMethod.NONE:
            return covs.copy()

        block = covs[:, :3, :3]
        if method is RegularizationMethod.FROBENIUS:
            c = block + _FROBENIUS_LAMBDA * np.eye(3)
            c_inv = np.linalg.inv(c)
            norms = np.linalg.norm(c_inv, axis=(1, 2))
            reg = np.linalg.inv(c_inv / norms[:, None, None])
        else:
            eigenvalues, eigenvectors = np.linalg.eigh(block)
            if method is RegularizationMethod.PLANE:
                values = np.broadcast_to(_PLANE_EIGENVALUES, eigenvalues.shape)
            else:
                values = np.maximum(eigenvalues / eigenvalues[:, 2:3], _MIN_EIGENVALUE)
            reg = (eigenvectors * values[:, None, :]) @ eigenvectors.transpose(0, 2, 1)

        out = np.zeros_like(covs)
        out[:, :3, :3] = reg
        return out

    def regularize(self, cov) -> np.ndarray:
        """Regularise one 4x4 covariance according to the configured method."""
        arr = np.asarray(cov, dtype=float)
        if arr.shape != (4, 4):
            raise ValueError(f"expected a 4x4 covariance, got shape {arr.shape}")
        return self._regularize_batch(arr[None])[0]

    def estimate(self, points, neighbors, k_neighbors: int | None = None) -> np.ndarray:
        """Regularised ``(N, 4, 4)`` covariances using the first ``k_neighbors`` neighbours."""
        if len(points) == 0:
            return np.empty((0, 4, 4))
        pts, idx, k = self._prepare(points, neighbors, k_neighbors)
        if k < 2:
            raise ValueError("at least 2 neighbours are needed for a sample covariance")
        covs = self._regularize_batch(self._scatter(pts, idx, k) / (k - 1))
        covs[:, 3, 3] = 0.0
        return covs

    def estimate_with_normals(
        self, points, neighbors, k_neighbors: int | None = None
    ) -> tuple[np.ndarray, np.ndarray]:
        """``(normals, covs)``; normals point away from the points' direction from the origin."""
        if len(points) == 0:
            return np.empty((0, 4)), np.empty((0, 4, 4))
        pts, idx, k = self._prepare(points, neighbors, k_neighbors)
        raw = self._scatter(pts, idx, k) / k
        covs = self._regularize_batch(raw)
        covs[:, 3, 3] = 0.0

        _, eigenvectors = np.linalg.eigh(raw[:, :3, :3])
        normals = np.zeros((len(pts), 4))
        normals[:, :3] = eigenvectors[:, :, 0]
        facing = np.einsum("ni,ni->n", pts, normals) > 0.0
        normals[facing] = -normals[facing]
        return normals, covs