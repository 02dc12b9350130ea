"""Generalized-ICP alignment of a source point cloud onto a target point cloud."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from scipy.spatial import cKDTree

from lidarmap.covariance import CloudCovarianceEstimation
from lidarmap.geometry import se3_expmap

_NUM_NEIGHBORS = 10
_LAMBDA_INITIAL = 1e-5
_LAMBDA_MAX = 1e10
_CONVERGENCE_STEP = 1e-6


@dataclass(frozen=True, eq=False)
class RegistrationResult:
    """Outcome of an alignment.

    ``error`` is the sum of the Mahalanobis costs of the matched points at the
    final pose; ``inlier_fraction`` is the share of source points that found a
    target point within the correspondence distance.
    """

    T_target_source: np.ndarray
    error: float
    inlier_fraction: float
    num_iterations: int


def _homogeneous(points) -> np.ndarray:
    if points is None:
        return np.empty((0, 4))
    arr = np.asarray(points, dtype=float)
    if arr.size == 0:
        return np.empty((0, 4))
    arr = arr.reshape(len(arr), -1)
    if arr.shape[1] == 3:
        return np.hstack([arr, np.ones((len(arr), 1))])
    if arr.shape[1] != 4:
        raise ValueError(f"points must be (N, 3) or (N, 4), got shape {arr.shape}")
    return arr


def _covariances(points: np.ndarray, tree: cKDTree) -> np.ndarray:
    k = min(_NUM_NEIGHBORS, len(points))
    _, neighbors = tree.query(points[:, :3], k=k)
    covs = CloudCovarianceEstimation().estimate(points, np.asarray(neighbors).reshape(len(points), k))
    return covs[:, :3, :3]


def _skew_batch(v: np.ndarray) -> np.ndarray:
    out = np.zeros((len(v), 3, 3))
    out[:, 0, 1] = -v[:, 2]
    out[:, 0, 2] = v[:, 1]
    out[:, 1, 0] = v[:, 2]
    out[:, 1, 2] = -v[:, 0]
    out[:, 2, 0] = -v[:, 1]
    out[:, 2, 1] = v[:, 0]
    return out


class _GicpProblem:
    def __init__(self, target: np.ndarray, source: np.ndarray, max_distance: float) -> None:
        self.target = target
        self.source = source
        self.max_distance = max_distance
        self.tree = cKDTree(target[:, :3])
        self.target_covs = _covariances(target, self.tree)
        self.source_covs = _covariances(source, cKDTree(source[:, :3]))

    def linearize(self, T: np.ndarray) -> tuple[float, np.ndarray, np.ndarray, int]:
        R = T[:3, :3]
        transformed = self.source[:, :3] @ R.T + T[:3, 3]
        dist, idx = self.tree.query(transformed, distance_upper_bound=self.max_distance)
        inliers = np.isfinite(dist)
        num_inliers = int(inliers.sum())
        if num_inliers == 0:
            return 0.0, np.zeros((6, 6)), np.zeros(6), 0

        matched = idx[inliers]
        residuals = self.target[matched, :3] - transformed[inliers]
        combined = self.target_covs[matched] + R @ self.source_covs[inliers] @ R.T
        information = np.linalg.inv(combined)

        jacobians = np.zeros((num_inliers, 3, 6))
        jacobians[:, :, :3] = R @ _skew_batch(self.source[inliers, :3])
        jacobians[:, :, 3:] = -R

        error = 0.5 * float(np.einsum("ni,nij,nj->", residuals, information, residuals))
        H = np.einsum("nki,nkl,nlj->ij", jacobians, information, jacobians)
        b = np.einsum("nki,nkl,nl->i", jacobians, information, residuals)
        return error, H, b, num_inliers


def gicp_align(
    target_points,
    source_points,
    init_T_target_source=None,
    max_correspondence_distance: float = 1.0,
    max_iterations: int = 10,
) -> RegistrationResult:
    """Estimate the pose of the source cloud in the target frame by Levenberg-Marquardt GICP."""
    target = _homogeneous(target_points)
    source = _homogeneous(source_points)
    if len(target) < 2 or len(source) < 2:
        raise ValueError("both clouds need at least two points")
    if max_correspondence_distance <= 0.0:
        raise ValueError(f"correspondence distance must be positive, got {max_correspondence_distance}")
    if max_iterations < 0:
        raise ValueError(f"max_iterations must not be negative, got {max_iterations}")

    T = np.eye(4) if init_T_target_source is None else np.array(init_T_target_source, dtype=float).reshape(4, 4)
    problem = _GicpProblem(target, source, float(max_correspondence_distance))

    error, H, b, num_inliers = problem.linearize(T)
    lam = _LAMBDA_INITIAL
    iterations = 0

    for _ in range(max_iterations):
        if error <= 0.0:
            break
        iterations += 1
        accepted = False
        dx = np.zeros(6)
        while lam < _LAMBDA_MAX:
            dx = np.linalg.solve(H + lam * np.eye(6), -b)
            candidate = T @ se3_expmap(dx)
            new_error, new_H, new_b, new_inliers = problem.linearize(candidate)
            if new_inliers > 0 and new_error < error:
                T, error, H, b, num_inliers = candidate, new_error, new_H, new_b, new_inliers
                lam = max(lam / 10.0, 1e-12)
                accepted = True
                break
            lam *= 10.0
        if not accepted or np.linalg.norm(dx) < _CONVERGENCE_STEP:
            break

    return RegistrationResult(
        T_target_source=T,
        error=error,
        inlier_fraction=num_inliers / len(source),
        num_iterations=iterations,
    )