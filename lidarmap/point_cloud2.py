"""Conversion between packed point cloud messages and raw point frames."""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field

import numpy as np

from lidarmap.log import get_default_logger
from lidarmap.raw_points import RawPoints


class PointFieldType(enum.IntEnum):
    """Data types a point field may carry."""

    INT8 = 1
    UINT8 = 2
    INT16 = 3
    UINT16 = 4
    INT32 = 5
    UINT32 = 6
    FLOAT32 = 7
    FLOAT64 = 8


_DTYPES = {
    PointFieldType.INT8: "i1",
    PointFieldType.UINT8: "u1",
    PointFieldType.INT16: "i2",
    PointFieldType.UINT16: "u2",
    PointFieldType.INT32: "i4",
    PointFieldType.UINT32: "u4",
    PointFieldType.FLOAT32: "f4",
    PointFieldType.FLOAT64: "f8",
}


@dataclass
class PointField:
    name: str
    offset: int
    datatype: int
    count: int = 1


@dataclass
class PointCloud2:
    """A point cloud packed into bytes, one record of ``point_step`` bytes per point."""

    frame_id: str = ""
    sec: int = 0
    nanosec: int = 0
    height: int = 1
    width: int = 0
    fields: list[PointField] = field(default_factory=list)
    is_bigendian: bool = False
    point_step: int = 0
    row_step: int = 0
    data: bytes = b""

    @property
    def stamp(self) -> float:
        return to_sec(self.sec, self.nanosec)


def to_sec(sec: int, nanosec: int) -> float:
    """Seconds of a (sec, nanosec) time stamp."""
    return sec + nanosec / 1e9


def from_sec(time: float) -> tuple[int, int]:
    """(sec, nanosec) of a time in seconds."""
    sec = math.floor(time)
    return sec, int((time - sec) * 1e9)


class _Reader:
    def __init__(self, msg: PointCloud2, num_points: int) -> None:
        self.buffer = bytes(msg.data)
        self.step = msg.point_step
        self.order = ">" if msg.is_bigendian else "<"
        self.num_points = num_points

    def read(self, offset: int, datatype: int) -> np.ndarray:
        dtype = np.dtype(_DTYPES[PointFieldType(datatype)]).newbyteorder(self.order)
        if self.num_points == 0:
            return np.empty(0)
        needed = self.step * (self.num_points - 1) + offset + dtype.itemsize
        if needed > len(self.buffer):
            raise ValueError("point cloud data is shorter than its layout requires")
        column = np.ndarray(
            (self.num_points,), dtype=dtype, buffer=self.buffer, offset=offset, strides=(self.step,)
        )
        return column.astype(float)


def extract_raw_points(msg: PointCloud2, intensity_channel: str = "intensity") -> RawPoints:
    """Unpack coordinates, per-point times, intensities and colours of a message.

    Raises ValueError when the coordinates are missing or of an unsupported type,
    or when the time or intensity field has an unsupported type.
    """
    logger = get_default_logger()
    num_points = msg.width * msg.height

    roles = {
        "x": "x",
        "y": "y",
        "z": "z",
        "t": "time",
        "time": "time",
        "time_stamp": "time",
        "timestamp": "time",
    }
    roles[intensity_channel] = "intensity"
    roles["rgba"] = "color"

    layout: dict[str, tuple[int, int]] = {}
    for point_field in msg.fields:
        role = roles.get(point_field.name)
        if role is not None:
            layout[role] = (int(point_field.datatype), int(point_field.offset))

    if not all(axis in layout for axis in ("x", "y", "z")):
        raise ValueError("missing point coordinate fields")

    x_type = layout["x"][0]
    if x_type not in (PointFieldType.FLOAT32, PointFieldType.FLOAT64) or x_type != layout["y"][0]:
        raise ValueError("unsupported points type")

    reader = _Reader(msg, num_points)
    coords = [reader.read(layout[axis][1], x_type) for axis in ("x", "y", "z")]
    points = np.column_stack([*coords, np.ones(num_points)]) if num_points else np.empty((0, 4))

    times = np.empty(0)
    if "time" in layout:
        time_type, time_offset = layout["time"]
        if time_type == PointFieldType.UINT32:
            times = reader.read(time_offset, time_type) / 1e9
        elif time_type in (PointFieldType.FLOAT32, PointFieldType.FLOAT64):
            times = reader.read(time_offset, time_type)
        else:
            raise ValueError(f"unsupported time type {time_type}")

    intensities = np.empty(0)
    if "intensity" in layout:
        intensity_type, intensity_offset = layout["intensity"]
        supported = (
            PointFieldType.UINT8,
            PointFieldType.UINT16,
            PointFieldType.UINT32,
            PointFieldType.FLOAT32,
            PointFieldType.FLOAT64,
        )
        if intensity_type not in supported:
            raise ValueError(f"unsupported intensity type {intensity_type}")
        intensities = reader.read(intensity_offset, intensity_type)

    colors = np.empty((0, 4))
    if "color" in layout:
        color_type, color_offset = layout["color"]
        if color_type != PointFieldType.UINT32:
            logger.warning("unsupported color type %s", color_type)
        elif num_points:
            channels = [reader.read(color_offset + k, PointFieldType.UINT8) for k in range(4)]
            colors = np.column_stack(channels) / 255.0

    return RawPoints(
        stamp=to_sec(msg.sec, msg.nanosec),
        times=times,
        intensities=intensities,
        points=points,
        colors=colors,
    )


def frame_to_pointcloud2(frame_id: str, stamp: float, points, times=None) -> PointCloud2:
    """Pack points (and optional per-point times) into float32 x, y, z[, t] records."""
    coords = np.asarray(points, dtype=float)
    coords = coords.reshape(-1, coords.shape[-1]) if coords.size else np.empty((0, 3))
    num_points = len(coords)
    num_fields = 4 if times is not None else 3

    fields = [
        PointField(name=name, offset=4 * i, datatype=PointFieldType.FLOAT32, count=1)
        for i, name in enumerate(["x", "y", "z", "t"][:num_fields])
    ]

    packed = np.zeros((num_points, num_fields), dtype="<f4")
    if num_points:
        packed[:, :3] = coords[:, :3]
    if times is not None:
        time_values = np.asarray(times, dtype=float).ravel()
        if len(time_values) != num_points:
            raise ValueError("times and points differ in length")
        packed[:, 3] = time_values

    sec, nanosec = from_sec(stamp)
    point_step = 4 * num_fields
    return PointCloud2(
        frame_id=frame_id,
        sec=sec,
        nanosec=nanosec,
        height=1,
        width=num_points,
        fields=fields,
        is_bigendian=False,
        point_step=point_step,
        row_step=point_step * num_points,
        data=packed.tobytes(),
    )