"""LiDAR mapping building blocks: geometry, point cloud decoding, covariances, deskewing, voxel maps, submaps, pose graphs and GICP."""

__version__ = "0.1.0"