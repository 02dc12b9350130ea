"""Rigid-body geometry helpers built on 4x4 homogeneous matrices.

Quaternions are handled as ``(x, y, z, w)`` arrays throughout.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

import numpy as np

_EPS = np.finfo(float).eps


def _hat(omega: np.ndarray) -> np.ndarray:
    x, y, z = omega
    return np.array([[0.0, -z, y], [z, 0.0, -x], [-y, x, 0.0]])


def _as_pose(pose) -> np.ndarray:
    arr = np.asarray(pose, dtype=float)
    if arr.shape != (4, 4):
        raise ValueError(f"expected a 4x4 pose matrix, got shape {arr.shape}")
    return arr


def isometry(rotation=None, translation=None) -> np.ndarray:
    """Build a 4x4 isometry from a 3x3 rotation and a translation."""
    pose = np.eye(4)
    if rotation is not None:
        pose[:3, :3] = np.asarray(rotation, dtype=float)
    if translation is not None:
        pose[:3, 3] = np.asarray(translation, dtype=float)
    return pose


def invert_isometry(pose) -> np.ndarray:
    """Inverse of a rigid transform."""
    pose = _as_pose(pose)
    rotation = pose[:3, :3]
    inverse = np.eye(4)
    inverse[:3, :3] = rotation.T
    inverse[:3, 3] = -rotation.T @ pose[:3, 3]
    return inverse


def quaternion_to_matrix(quat) -> np.ndarray:
    """Rotation matrix of a (normalised) ``(x, y, z, w)`` quaternion."""
    q = np.asarray(quat, dtype=float)
    if q.shape != (4,):
        raise ValueError("a quaternion needs exactly 4 values")
    norm = np.linalg.norm(q)
    if norm < _EPS:
        raise ValueError("cannot normalise a zero quaternion")
    x, y, z, w = q / norm
    return np.array(
        [
            [1 - 2 * (y * y + z * z), 2 * (x * y - z * w), 2 * (x * z + y * w)],
            [2 * (x * y + z * w), 1 - 2 * (x * x + z * z), 2 * (y * z - x * w)],
            [2 * (x * z - y * w), 2 * (y * z + x * w), 1 - 2 * (x * x + y * y)],
        ]
    )


def matrix_to_quaternion(rotation) -> np.ndarray:
    """``(x, y, z, w)`` quaternion of a 3x3 rotation matrix."""
    m = np.asarray(rotation, dtype=float)[:3, :3]
    q = np.zeros(4)
    trace = m[0, 0] + m[1, 1] + m[2, 2]
    if trace > 0.0:
        t = np.sqrt(trace + 1.0)
        q[3] = 0.5 * t
        t = 0.5 / t
        q[0] = (m[2, 1] - m[1, 2]) * t
        q[1] = (m[0, 2] - m[2, 0]) * t
        q[2] = (m[1, 0] - m[0, 1]) * t
    else:
        i = 0
        if m[1, 1] > m[0, 0]:
            i = 1
        if m[2, 2] > m[i, i]:
            i = 2
        j = (i + 1) % 3
        k = (j + 1) % 3
        t = np.sqrt(m[i, i] - m[j, j] - m[k, k] + 1.0)
        q[i] = 0.5 * t
        t = 0.5 / t
        q[3] = (m[k, j] - m[j, k]) * t
        q[j] = (m[j, i] + m[i, j]) * t
        q[k] = (m[k, i] + m[i, k]) * t
    return q


def quaternion_slerp(quat0, quat1, t: float) -> np.ndarray:
    """Spherical interpolation along the shorter arc between two quaternions."""
    q0 = np.asarray(quat0, dtype=float)
    q1 = np.asarray(quat1, dtype=float)
    d = float(q0 @ q1)
    abs_d = abs(d)
    if abs_d >= 1.0 - _EPS:
        scale0 = 1.0 - t
        scale1 = t
    else:
        theta = np.arccos(abs_d)
        sin_theta = np.sin(theta)
        scale0 = np.sin((1.0 - t) * theta) / sin_theta
        scale1 = np.sin(t * theta) / sin_theta
    if d < 0.0:
        scale1 = -scale1
    return scale0 * q0 + scale1 * q1


def pose_from_vector(values: Sequence[float]) -> np.ndarray:
    """Pose from ``[x, y, z, qx, qy, qz, qw]``."""
    vec = np.asarray(values, dtype=float).ravel()
    if vec.size != 7:
        raise ValueError(f"a pose needs 7 values, got {vec.size}")
    return isometry(quaternion_to_matrix(vec[3:7]), vec[:3])


def pose_to_vector(pose) -> list[float]:
    """``[x, y, z, qx, qy, qz, qw]`` of a pose."""
    pose = _as_pose(pose)
    quat = matrix_to_quaternion(pose[:3, :3])
    return [float(v) for v in (*pose[:3, 3], *quat)]


def poses_from_vector(values: Sequence[float]) -> list[np.ndarray]:
    """Poses from a flat list holding 7 values per pose."""
    vec = np.asarray(values, dtype=float).ravel()
    if vec.size % 7:
        raise ValueError(f"pose list length must be a multiple of 7, got {vec.size}")
    return [pose_from_vector(chunk) for chunk in vec.reshape(-1, 7)]


def poses_to_vector(poses: Iterable) -> list[float]:
    """Flatten poses into a list with 7 values per pose."""
    return [value for pose in poses for value in pose_to_vector(pose)]


def _so3_coefficients(theta2: float) -> tuple[float, float, float]:
    """Coefficients (sin t / t, (1-cos t)/t^2, (t-sin t)/t^3)."""
    if theta2 < 1e-10:
        return 1.0 - theta2 / 6.0, 0.5 - theta2 / 24.0, 1.0 / 6.0 - theta2 / 120.0
    theta = np.sqrt(theta2)
    return (
        np.sin(theta) / theta,
        (1.0 - np.cos(theta)) / theta2,
        (theta - np.sin(theta)) / (theta2 * theta),
    )


def so3_expmap(omega) -> np.ndarray:
    """Rotation matrix for a rotation vector."""
    w = np.asarray(omega, dtype=float)
    W = _hat(w)
    a, b, _ = _so3_coefficients(float(w @ w))
    return np.eye(3) + a * W + b * (W @ W)


def se3_expmap(xi) -> np.ndarray:
    """Pose for a twist ``[wx, wy, wz, vx, vy, vz]`` (rotation first)."""
    vec = np.asarray(xi, dtype=float)
    if vec.shape != (6,):
        raise ValueError("a twist needs exactly 6 values")
    w, v = vec[:3], vec[3:]
    W = _hat(w)
    a, b, c = _so3_coefficients(float(w @ w))
    rotation = np.eye(3) + a * W + b * (W @ W)
    V = np.eye(3) + b * W + c * (W @ W)
    return isometry(rotation, V @ v)


def se3_logmap(pose) -> np.ndarray:
    """Twist ``[wx, wy, wz, vx, vy, vz]`` of a pose; inverse of :func:`se3_expmap`."""
    pose = _as_pose(pose)
    q = matrix_to_quaternion(pose[:3, :3])
    if q[3] < 0.0:
        q = -q
    vec_norm = float(np.linalg.norm(q[:3]))
    theta = 2.0 * np.arctan2(vec_norm, q[3])
    omega = q[:3] * (theta / vec_norm) if vec_norm > 1e-12 else 2.0 * q[:3]

    W = _hat(omega)
    theta2 = float(omega @ omega)
    if theta2 < 1e-10:
        coeff = 1.0 / 12.0 + theta2 / 720.0
    else:
        a, b, _ = _so3_coefficients(theta2)
        coeff = (1.0 - a / (2.0 * b)) / theta2
    V_inv = np.eye(3) - 0.5 * W + coeff * (W @ W)
    return np.concatenate([omega, V_inv @ pose[:3, 3]])


def rotation_angle(rotation) -> float:
    """Angle in ``[0, pi]`` of a rotation matrix."""
    q = matrix_to_quaternion(rotation)
    return float(2.0 * np.arctan2(np.linalg.norm(q[:3]), abs(q[3])))


def transform_points(pose, points) -> np.ndarray:
    """Apply a pose to ``(N, 3)`` points or ``(N, 4)`` homogeneous points."""
    pose = _as_pose(pose)
    arr = np.asarray(points, dtype=float)
    if arr.size == 0:
        return arr.reshape(0, arr.shape[-1] if arr.ndim == 2 else 4)
    if arr.ndim != 2 or arr.shape[1] not in (3, 4):
        raise ValueError(f"points must be (N, 3) or (N, 4), got shape {arr.shape}")
    if arr.shape[1] == 4:
        return arr @ pose.T
    return arr @ pose[:3, :3].T + pose[:3, 3]


def random_sampling(points, rate: float, rng=None) -> np.ndarray:
    """Keep a random subset of about ``rate`` of the points, in their original order."""
    arr = np.asarray(points)
    if rate >= 0.99:
        return arr
    generator = np.random.default_rng(rng)
    num_samples = max(0, int(len(arr) * rate))
    indices = np.sort(generator.choice(len(arr), size=num_samples, replace=False))
    return arr[indices]