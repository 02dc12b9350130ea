import struct

import numpy as np
import pytest

from lidarmap.point_cloud2 import (
    PointCloud2,
    PointField,
    PointFieldType,
    extract_raw_points,
    frame_to_pointcloud2,
    from_sec,
    to_sec,
)


def _message(fields, fmt, rows, point_step):
    data = b"".join(struct.pack(fmt, *row) for row in rows)
    return PointCloud2(
        frame_id="lidar",
        sec=10,
        nanosec=0,
        height=1,
        width=len(rows),
        fields=fields,
        point_step=point_step,
        row_step=point_step * len(rows),
        data=data,
    )


def test_from_sec_splits_seconds():
    assert from_sec(1.5) == (1, 500000000)


def test_sec_round_trip():
    for time in (0.0, 12.25, 1700000000.123456):
        sec, nanosec = from_sec(time)
        assert 0 <= nanosec < 1_000_000_000
        assert to_sec(sec, nanosec) == pytest.approx(time, abs=1e-6)


def test_frame_round_trip_with_times():
    points = np.array([[1.5, -2.25, 3.0], [0.5, 0.25, -1.0]])
    times = np.array([0.0, 0.125])
    msg = frame_to_pointcloud2("map", 42.5, points, times)
    assert msg.point_step == 16
    assert msg.width == 2
    assert [f.name for f in msg.fields] == ["x", "y", "z", "t"]
    raw = extract_raw_points(msg)
    assert len(raw) == 2
    np.testing.assert_allclose(raw.points[:, :3], points)
    np.testing.assert_allclose(raw.points[:, 3], [1.0, 1.0])
    np.testing.assert_allclose(raw.times, times)
    assert raw.stamp == pytest.approx(42.5)


def test_frame_without_times():
    points = np.array([[1.0, 2.0, 3.0, 1.0]])
    msg = frame_to_pointcloud2("map", 1.0, points)
    assert len(msg.fields) == 3
    assert msg.row_step == msg.point_step * msg.width
    raw = extract_raw_points(msg)
    assert raw.times.size == 0
    np.testing.assert_allclose(raw.points, points)


def test_frame_times_length_mismatch():
    with pytest.raises(ValueError):
        frame_to_pointcloud2("map", 1.0, np.zeros((2, 3)), [0.0])


def test_float64_non_contiguous_fields():
    fields = [
        PointField("x", 0, PointFieldType.FLOAT64),
        PointField("z", 8, PointFieldType.FLOAT64),
        PointField("y", 16, PointFieldType.FLOAT64),
    ]
    msg = _message(fields, "<ddd", [(1.0, 3.0, 2.0), (-4.0, 6.0, 5.0)], 24)
    raw = extract_raw_points(msg)
    np.testing.assert_allclose(raw.points[:, :3], [[1.0, 2.0, 3.0], [-4.0, 5.0, 6.0]])


def test_uint32_times_and_uint16_intensity():
    fields = [
        PointField("x", 0, PointFieldType.FLOAT32),
        PointField("y", 4, PointFieldType.FLOAT32),
        PointField("z", 8, PointFieldType.FLOAT32),
        PointField("timestamp", 12, PointFieldType.UINT32),
        PointField("intensity", 16, PointFieldType.UINT16),
    ]
    msg = _message(fields, "<fffIHxx", [(1.0, 2.0, 3.0, 250000000, 300)], 20)
    raw = extract_raw_points(msg)
    np.testing.assert_allclose(raw.times, [0.25])
    np.testing.assert_allclose(raw.intensities, [300.0])


def test_custom_intensity_channel():
    fields = [
        PointField("x", 0, PointFieldType.FLOAT32),
        PointField("y", 4, PointFieldType.FLOAT32),
        PointField("z", 8, PointFieldType.FLOAT32),
        PointField("reflectivity", 12, PointFieldType.UINT8),
    ]
    msg = _message(fields, "<fffBxxx", [(0.0, 0.0, 0.0, 17)], 16)
    assert extract_raw_points(msg).intensities.size == 0
    raw = extract_raw_points(msg, intensity_channel="reflectivity")
    np.testing.assert_allclose(raw.intensities, [17.0])


def test_rgba_colors():
    fields = [
        PointField("x", 0, PointFieldType.FLOAT32),
        PointField("y", 4, PointFieldType.FLOAT32),
        PointField("z", 8, PointFieldType.FLOAT32),
        PointField("rgba", 12, PointFieldType.UINT32),
    ]
    msg = _message(fields, "<fff4B", [(0.0, 0.0, 0.0, 255, 0, 51, 255)], 16)
    raw = extract_raw_points(msg)
    assert raw.colors.shape == (1, 4)
    np.testing.assert_allclose(raw.colors[0], np.array([255, 0, 51, 255]) / 255.0)


def test_unsupported_color_type_is_skipped():
    fields = [
        PointField("x", 0, PointFieldType.FLOAT32),
        PointField("y", 4, PointFieldType.FLOAT32),
        PointField("z", 8, PointFieldType.FLOAT32),
        PointField("rgba", 12, PointFieldType.FLOAT32),
    ]
    msg = _message(fields, "<ffff", [(1.0, 2.0, 3.0, 0.5)], 16)
    raw = extract_raw_points(msg)
    assert raw.colors.shape == (0, 4)
    np.testing.assert_allclose(raw.points[0, :3], [1.0, 2.0, 3.0])


def test_missing_coordinates_raise():
    fields = [PointField("x", 0, PointFieldType.FLOAT32), PointField("y", 4, PointFieldType.FLOAT32)]
    msg = _message(fields, "<ff", [(1.0, 2.0)], 8)
    with pytest.raises(ValueError):
        extract_raw_points(msg)


def test_integer_coordinates_raise():
    fields = [
        PointField("x", 0, PointFieldType.INT32),
        PointField("y", 4, PointFieldType.INT32),
        PointField("z", 8, PointFieldType.INT32),
    ]
    msg = _message(fields, "<iii", [(1, 2, 3)], 12)
    with pytest.raises(ValueError):
        extract_raw_points(msg)


def test_unsupported_time_type_raises():
    fields = [
        PointField("x", 0, PointFieldType.FLOAT32),
        PointField("y", 4, PointFieldType.FLOAT32),
        PointField("z", 8, PointFieldType.FLOAT32),
        PointField("t", 12, PointFieldType.INT16),
    ]
    msg = _message(fields, "<fffhxx", [(1.0, 2.0, 3.0, 4)], 16)
    with pytest.raises(ValueError):
        extract_raw_points(msg)


def test_unsupported_intensity_type_raises():
    fields = [
        PointField("x", 0, PointFieldType.FLOAT32),
        PointField("y", 4, PointFieldType.FLOAT32),
        PointField("z", 8, PointFieldType.FLOAT32),
        PointField("intensity", 12, PointFieldType.INT8),
    ]
    msg = _message(fields, "<fffbxxx", [(1.0, 2.0, 3.0, 4)], 16)
    with pytest.raises(ValueError):
        extract_raw_points(msg)


def test_short_data_raises():
    msg = frame_to_pointcloud2("map", 0.0, np.ones((3, 3)))
    msg.data = msg.data[:-4]
    with pytest.raises(ValueError):
        extract_raw_points(msg)