# lidarmap

Building blocks for LiDAR mapping in Python, built on NumPy and SciPy.
Poses are 4x4 homogeneous NumPy arrays; quaternions are `(x, y, z, w)` arrays;
point clouds are `(N, 3)` or `(N, 4)` arrays.

## Modules

- `lidarmap.geometry` – `isometry`, `invert_isometry`, quaternion conversion
  (`quaternion_to_matrix`, `matrix_to_quaternion`) and `quaternion_slerp`,
  7-value pose vectors (`pose_from_vector`, `pose_to_vector`,
  `poses_from_vector`, `poses_to_vector`), `so3_expmap`, `se3_expmap` /
  `se3_logmap` (twists ordered rotation first), `rotation_angle`,
  `transform_points` and `random_sampling`.
- `lidarmap.callback_slot` – `CallbackSlot`: register callbacks with `add`
  (returns an id), unregister with `remove`, call them all with `call` or by
  calling the slot; it is truthy while at least one callback is registered.
- `lidarmap.interpolation_helper` – `InterpolationHelper` keeps time-ordered
  values and `find(stamp)` returns an `InterpolationResult` (`SUCCESS`,
  `FAILURE`, `WAITING`) with an `InterpolationMatch` holding the bracketing
  values; `SearchMode.LINEAR` or `SearchMode.BINARY`. Adding an out-of-order
  value raises `ValueError`.
- `lidarmap.raw_points` – `RawPoints`, one scan: `stamp`, per-point relative
  `times`, `intensities`, `points` and `colors`.
- `lidarmap.point_cloud2` – `PointCloud2`, `PointField` and `PointFieldType`
  for packed binary point clouds; `extract_raw_points` decodes x/y/z, a time
  field (`t`, `time`, `time_stamp` or `timestamp`; `UINT32` values are taken as
  nanoseconds), an intensity channel and `rgba` colours into `RawPoints`, and
  raises `ValueError` on missing coordinates or unsupported types;
  `frame_to_pointcloud2` packs points (and optional times) as float32 records.
  `to_sec` / `from_sec` convert time stamps.
- `lidarmap.covariance` – `CloudCovarianceEstimation` computes per-point
  covariances (`estimate`) or normals and covariances (`estimate_with_normals`)
  from neighbour indices, regularised by a `RegularizationMethod`
  (`NONE`, `PLANE`, `NORMALIZED_MIN_EIG`, `FROBENIUS`).
- `lidarmap.deskewing` – `deskew_constant_velocity` and `deskew_imu_poses`
  remove motion distortion from a scan, using a constant IMU velocity or
  interpolated IMU-rate world poses.
- `lidarmap.voxelmap` – `VoxelMap`, a voxel grid that keeps at most
  `max_num_points_in_cell` points per cell, each at least `min_dist_in_cell`
  apart.
- `lidarmap.sub_map` – `FrameID`, `EstimationFrame` and `SubMap`;
  `SubMap.save(path)` writes `data.txt`, `imu_rate.txt` and
  `points_compact.bin`, and `SubMap.load(path)` reads them back
  (`FileNotFoundError` if `data.txt` is missing).
- `lidarmap.pose_graph` – `BetweenFactor` (isotropic sigma, optional Huber
  width) and `PoseGraph`, optimised by Levenberg-Marquardt with the first
  inserted pose held fixed.
- `lidarmap.registration` – `gicp_align` aligns a source cloud to a target
  cloud and returns a `RegistrationResult` with the pose, error, inlier
  fraction and iteration count.
- `lidarmap.log` – `create_module_logger`, `get_default_logger`,
  `set_default_logger` and an in-memory `RingBufferHandler`
  (`get_ringbuffer_handler`).

## Install

```
pip install .
```

Tests:

```
pip install ".[test]"
pytest
```

## Examples

```python
import numpy as np
from lidarmap.geometry import isometry, transform_points, invert_isometry
from lidarmap.interpolation_helper import InterpolationHelper, InterpolationResult

pose = isometry(np.eye(3), [1.0, 0.0, 0.0])
points = np.array([[0.0, 0.0, 0.0, 1.0]])
print(transform_points(pose, points))   # [[1. 0. 0. 1.]]
print(invert_isometry(pose)[:3, 3])    # [-1.  0.  0.]

helper = InterpolationHelper()
helper.add(0.0, "a")
helper.add(1.0, "b")
result, match = helper.find(0.5)
assert result is InterpolationResult.SUCCESS
print(match.left, match.right)          # (0.0, 'a') (1.0, 'b')
```

A two-pose graph:

```python
import numpy as np
from lidarmap.geometry import isometry
from lidarmap.pose_graph import BetweenFactor, PoseGraph

graph = PoseGraph()
graph.update(
    [BetweenFactor(0, 1, isometry(translation=[1.0, 0.0, 0.0]), sigma=0.1)],
    {0: np.eye(4), 1: isometry(translation=[0.9, 0.0, 0.0])},
)
print(graph.estimate(1)[:3, 3])         # close to [1. 0. 0.]
```

## What this package does not do

It provides the pieces, not a running mapping system. There is no command-line
tool, no reading of configuration files, no IMU preintegration, no pipeline
that turns odometry frames into submaps or feeds submaps into a global map,
no background threads, and no loop-closure search driver; `PoseGraph` and
`gicp_align` are the parts such a driver would be built from. Point clouds
are decoded from `PointCloud2` objects in memory; nothing here subscribes to a
sensor or reads recorded logs.