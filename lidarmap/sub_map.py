"""Estimation frames and submaps, with their text/binary storage format."""

from __future__ import annotations

import copy
import enum
from collections import deque
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import numpy as np

_POINTS_FILE = "points_compact.bin"


class FrameID(enum.IntEnum):
    """Coordinate frame in which an estimation frame's state is expressed."""

    LIDAR = 0
    IMU = 1
    WORLD = 2


@dataclass(eq=False)
class EstimationFrame:
    """State of the sensor at one scan, with the scan's points."""

    id: int = -1
    stamp: float = 0.0
    T_lidar_imu: np.ndarray = field(default_factory=lambda: np.eye(4))
    T_world_lidar: np.ndarray = field(default_factory=lambda: np.eye(4))
    T_world_imu: np.ndarray = field(default_factory=lambda: np.eye(4))
    v_world_imu: np.ndarray = field(default_factory=lambda: np.zeros(3))
    imu_bias: np.ndarray = field(default_factory=lambda: np.zeros(6))
    frame_id: FrameID = FrameID.LIDAR
    frame: np.ndarray | None = None
    raw_frame: Any = None
    imu_rate_trajectory: np.ndarray = field(default_factory=lambda: np.empty((8, 0)))
    voxelmaps: list = field(default_factory=list)

    def T_world_sensor(self) -> np.ndarray:
        """Pose of the frame in which the state is estimated."""
        if self.frame_id is FrameID.LIDAR:
            return self.T_world_lidar
        if self.frame_id is FrameID.IMU:
            return self.T_world_imu
        return np.eye(4)

    def set_T_world_sensor(self, frame_id: FrameID, pose) -> None:
        """Set the pose of ``frame_id`` and keep the other sensor pose consistent."""
        pose = np.asarray(pose, dtype=float)
        if frame_id is FrameID.LIDAR:
            self.T_world_lidar = pose.copy()
            self.T_world_imu = pose @ self.T_lidar_imu
        elif frame_id is FrameID.IMU:
            self.T_world_imu = pose.copy()
            self.T_world_lidar = pose @ np.linalg.inv(self.T_lidar_imu)
        else:
            raise ValueError("the world frame cannot be used to set a sensor pose")

    def clone(self) -> "EstimationFrame":
        """A deep copy."""
        return copy.deepcopy(self)

    def clone_wo_points(self) -> "EstimationFrame":
        """A copy of the state without point data."""
        return replace(
            self,
            T_lidar_imu=self.T_lidar_imu.copy(),
            T_world_lidar=self.T_world_lidar.copy(),
            T_world_imu=self.T_world_imu.copy(),
            v_world_imu=self.v_world_imu.copy(),
            imu_bias=self.imu_bias.copy(),
            frame=None,
            raw_frame=None,
            imu_rate_trajectory=self.imu_rate_trajectory.copy(),
            voxelmaps=[],
        )


def _matrix_text(matrix) -> str:
    arr = np.atleast_2d(np.asarray(matrix, dtype=float))
    return "\n".join(" ".join(format(v, ".17g") for v in row) for row in arr)


class _Tokens:
    def __init__(self, text: str, source: str) -> None:
        self._tokens = deque(text.split())
        self._source = source

    def peek(self) -> str | None:
        return self._tokens[0] if self._tokens else None

    def take(self) -> str:
        if not self._tokens:
            raise ValueError(f"{self._source} ends unexpectedly")
        return self._tokens.popleft()

    def label(self, expected: str) -> None:
        token = self.take()
        if token != expected:
            raise ValueError(f"{self._source}: expected {expected!r}, got {token!r}")

    def integer(self) -> int:
        return int(self.take())

    def number(self) -> float:
        return float(self.take())

    def matrix(self, rows: int, cols: int) -> np.ndarray:
        values = [self.number() for _ in range(rows * cols)]
        return np.array(values).reshape(rows, cols)


@dataclass(eq=False)
class SubMap:
    """A local map built from several optimised frames around an origin frame."""

    id: int = 0
    T_world_origin: np.ndarray = field(default_factory=lambda: np.eye(4))
    T_origin_endpoint_L: np.ndarray = field(default_factory=lambda: np.eye(4))
    T_origin_endpoint_R: np.ndarray = field(default_factory=lambda: np.eye(4))
    frame: np.ndarray | None = None
    frames: list[EstimationFrame] = field(default_factory=list)
    odom_frames: list[EstimationFrame] = field(default_factory=list)
    voxelmaps: list = field(default_factory=list)

    def drop_frame_points(self) -> None:
        """Replace every frame with a copy that holds no points."""
        self.frames = [frame.clone_wo_points() for frame in self.frames]
        self.odom_frames = [frame.clone_wo_points() for frame in self.odom_frames]

    def origin_frame(self) -> EstimationFrame:
        """The odometry frame at the middle of the submap."""
        if not self.odom_frames:
            raise IndexError("submap has no odometry frames")
        return self.odom_frames[len(self.odom_frames) // 2]

    def save(self, path) -> None:
        """Write ``data.txt``, ``imu_rate.txt`` and the merged points under ``path``."""
        directory = Path(path)
        directory.mkdir(parents=True, exist_ok=True)

        lines = [
            f"id: {self.id}",
            "T_world_origin:",
            _matrix_text(self.T_world_origin),
            "T_origin_endpoint_L:",
            _matrix_text(self.T_origin_endpoint_L),
            "T_origin_endpoint_R:",
            _matrix_text(self.T_origin_endpoint_R),
        ]
        if self.frames:
            last = self.frames[-1]
            lines += [
                "T_lidar_imu:",
                _matrix_text(last.T_lidar_imu),
                "imu_bias: " + _matrix_text(np.ravel(last.imu_bias)),
                f"frame_id: {int(last.frame_id)}",
            ]
        lines.append(f"num_frames: {len(self.frames)}")

        for i, (frame, odom_frame) in enumerate(zip(self.frames, self.odom_frames, strict=True)):
            lines += [
                f"frame_{i}",
                f"id: {frame.id}",
                f"stamp: {frame.stamp:.9f}",
                "T_odom_lidar:",
                _matrix_text(odom_frame.T_world_lidar),
                "T_world_lidar:",
                _matrix_text(frame.T_world_lidar),
                "v_world_imu: " + _matrix_text(np.ravel(frame.v_world_imu)),
            ]
        (directory / "data.txt").write_text("\n".join(lines) + "\n", encoding="utf-8")

        imu_lines = []
        for frame in self.frames:
            trajectory = np.asarray(frame.imu_rate_trajectory, dtype=float)
            if trajectory.size == 0:
                continue
            for column in trajectory.T:
                imu_lines.append(f"{column[0]:.9f} " + " ".join(f"{v:.6f}" for v in column[1:8]))
        text = "".join(line + "\n" for line in imu_lines)
        (directory / "imu_rate.txt").write_text(text, encoding="utf-8")

        if self.frame is not None:
            points = np.asarray(self.frame, dtype=float)
            xyz = points.reshape(len(points), -1)[:, :3] if points.size else np.empty((0, 3))
            xyz.astype("<f4").tofile(directory / _POINTS_FILE)

    @classmethod
    def load(cls, path) -> "SubMap":
        """Read a submap written by :meth:`save`; points are restored as ``(N, 4)``."""
        directory = Path(path)
        data_path = directory / "data.txt"
        if not data_path.is_file():
            raise FileNotFoundError(f"failed to open {data_path}")
        tokens = _Tokens(data_path.read_text(encoding="utf-8"), str(data_path))

        submap = cls()
        tokens.label("id:")
        submap.id = tokens.integer()
        tokens.label("T_world_origin:")
        submap.T_world_origin = tokens.matrix(4, 4)
        tokens.label("T_origin_endpoint_L:")
        submap.T_origin_endpoint_L = tokens.matrix(4, 4)
        tokens.label("T_origin_endpoint_R:")
        submap.T_origin_endpoint_R = tokens.matrix(4, 4)

        T_lidar_imu = np.eye(4)
        imu_bias = np.zeros(6)
        frame_id = FrameID.LIDAR
        if tokens.peek() == "T_lidar_imu:":
            tokens.label("T_lidar_imu:")
            T_lidar_imu = tokens.matrix(4, 4)
            tokens.label("imu_bias:")
            imu_bias = tokens.matrix(6, 1).ravel()
            tokens.label("frame_id:")
            frame_id = FrameID(tokens.integer())

        tokens.label("num_frames:")
        num_frames = tokens.integer()

        for _ in range(num_frames):
            header = tokens.take()
            if not header.startswith("frame_"):
                raise ValueError(f"{data_path}: expected a frame header, got {header!r}")
            tokens.label("id:")
            frame_index = tokens.integer()
            tokens.label("stamp:")
            stamp = tokens.number()
            tokens.label("T_odom_lidar:")
            T_odom_lidar = tokens.matrix(4, 4)
            tokens.label("T_world_lidar:")
            T_world_lidar = tokens.matrix(4, 4)
            tokens.label("v_world_imu:")
            v_world_imu = tokens.matrix(3, 1).ravel()

            frame = EstimationFrame(
                id=frame_index,
                stamp=stamp,
                T_lidar_imu=T_lidar_imu.copy(),
                T_world_lidar=T_world_lidar,
                T_world_imu=T_world_lidar @ T_lidar_imu,
                v_world_imu=v_world_imu,
                imu_bias=imu_bias.copy(),
                frame_id=frame_id,
            )
            odom_frame = frame.clone()
            odom_frame.T_world_lidar = T_odom_lidar
            odom_frame.T_world_imu = T_odom_lidar @ T_lidar_imu

            submap.frames.append(frame)
            submap.odom_frames.append(odom_frame)

        points_path = directory / _POINTS_FILE
        if points_path.is_file():
            xyz = np.fromfile(points_path, dtype="<f4").astype(float).reshape(-1, 3)
            submap.frame = np.hstack([xyz, np.ones((len(xyz), 1))])
        return submap