[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "lidarmap"
version = "0.1.0"
description = "LiDAR mapping building blocks: rigid-body geometry, point cloud decoding, covariance estimation, deskewing, voxel maps, submap storage, pose-graph optimisation and GICP"
requires-python = ">=3.10"
keywords = ["lidar", "slam", "mapping", "point-cloud", "pose-graph", "gicp", "deskewing"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering",
]
dependencies = [
    "numpy",
    "scipy",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["lidarmap"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 120
target-version = "py310"

[tool.mypy]
python_version = "3.10"
ignore_missing_imports = true
