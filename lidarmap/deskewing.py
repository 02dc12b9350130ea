"""Removal of motion distortion from a scan taken while the sensor moves."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from lidarmap.geometry import (
    invert_isometry,
    isometry,
    matrix_to_quaternion,
    quaternion_slerp,
    quaternion_to_matrix,
    se3_expmap,
)

_TIME_EPS = 1e-4  # 0.1 ms: points closer in time share one transform


def _homogeneous(points, count: int) -> np.ndarray:
    arr = np.asarray(points, dtype=float)
    arr = arr.reshape(len(arr), -1) if arr.size else np.empty((0, 4))
    if arr.shape[1] == 3:
        arr = np.hstack([arr, np.ones((len(arr), 1))])
    elif arr.shape[1] != 4:
        raise ValueError(f"points must be (N, 3) or (N, 4), got shape {arr.shape}")
    if len(arr) != count:
        raise ValueError(f"{len(arr)} points but {count} times")
    return arr


def _time_table(times: np.ndarray) -> tuple[list[float], np.ndarray]:
    table: list[float] = []
    indices = np.empty(len(times), dtype=np.intp)
    for i, t in enumerate(times):
        if not table or t - table[-1] > _TIME_EPS:
            table.append(float(t))
        indices[i] = len(table) - 1
    return table, indices


def _apply(transforms: Sequence[np.ndarray], indices: np.ndarray, points: np.ndarray) -> np.ndarray:
    stacked = np.stack(transforms)
    return np.einsum("nij,nj->ni", stacked[indices], points)


def deskew_constant_velocity(T_imu_lidar, linear_vel, angular_vel, times, points) -> np.ndarray:
    """Deskew points assuming constant IMU-frame velocity during the scan.

    ``times`` are per-point times relative to the scan start; returns ``(N, 4)`` points.
    """
    times = np.asarray(times, dtype=float).ravel()
    if times.size == 0:
        return np.empty((0, 4))
    pts = _homogeneous(points, len(times))

    T_imu_lidar = np.asarray(T_imu_lidar, dtype=float)
    T_lidar_imu = invert_isometry(T_imu_lidar)
    vel = np.concatenate([np.asarray(angular_vel, dtype=float), np.asarray(linear_vel, dtype=float)])

    table, indices = _time_table(times)
    transforms = [
        T_lidar_imu @ invert_isometry(se3_expmap(dt * vel)) @ T_imu_lidar for dt in table
    ]
    return _apply(transforms, indices, pts)


def _interpolation_ratio(time: float, t0: float, t1: float) -> float:
    span = t1 - t0
    if span == 0.0:
        return 1.0 if time >= t0 else 0.0
    return float(np.clip((time - t0) / span, 0.0, 1.0))


def deskew_imu_poses(T_imu_lidar, imu_times, imu_poses, stamp, times, points) -> np.ndarray:
    """Deskew points using world-frame IMU poses, interpolated at each point time.

    ``stamp`` is the absolute scan start; ``times`` are relative to it.
    """
    if len(imu_poses) == 0:
        return deskew_constant_velocity(T_imu_lidar, np.zeros(3), np.zeros(3), times, points)

    times = np.asarray(times, dtype=float).ravel()
    if times.size == 0:
        return np.empty((0, 4))
    pts = _homogeneous(points, len(times))

    imu_times = np.asarray(imu_times, dtype=float).ravel()
    poses = [np.asarray(pose, dtype=float) for pose in imu_poses]
    if len(imu_times) != len(poses):
        raise ValueError("imu_times and imu_poses differ in length")
    quats = [matrix_to_quaternion(pose[:3, :3]) for pose in poses]

    T_imu_lidar = np.asarray(T_imu_lidar, dtype=float)
    T_lidar_imu = invert_isometry(T_imu_lidar)

    table, indices = _time_table(times)
    last_index = len(imu_times) - 1
    cursor = 0
    T_imu0_world: np.ndarray | None = None
    transforms = []

    for relative in table:
        time = stamp + relative
        while cursor < last_index and imu_times[cursor + 1] < time:
            cursor += 1

        if T_imu0_world is None:
            T_imu0_world = invert_isometry(poses[cursor])

        if cursor >= last_index:
            T_world_imu1 = poses[cursor]
        else:
            p = _interpolation_ratio(time, imu_times[cursor], imu_times[cursor + 1])
            translation = (1.0 - p) * poses[cursor][:3, 3] + p * poses[cursor + 1][:3, 3]
            rotation = quaternion_to_matrix(quaternion_slerp(quats[cursor], quats[cursor + 1], p))
            T_world_imu1 = isometry(rotation, translation)

        transforms.append(T_lidar_imu @ T_imu0_world @ T_world_imu1 @ T_imu_lidar)

    return _apply(transforms, indices, pts)