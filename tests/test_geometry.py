import numpy as np
import pytest

from lidarmap import geometry


def _random_pose(seed):
    rng = np.random.default_rng(seed)
    omega = rng.normal(size=3)
    omega *= 2.5 / np.linalg.norm(omega) * rng.uniform(0.1, 1.0)
    return geometry.isometry(geometry.so3_expmap(omega), rng.normal(size=3))


def test_identity_vector_gives_identity_pose():
    pose = geometry.pose_from_vector([0, 0, 0, 0, 0, 0, 1])
    np.testing.assert_allclose(pose, np.eye(4))


@pytest.mark.parametrize("seed", range(5))
def test_pose_vector_round_trip(seed):
    pose = _random_pose(seed)
    back = geometry.pose_from_vector(geometry.pose_to_vector(pose))
    np.testing.assert_allclose(back, pose, atol=1e-10)


def test_pose_from_vector_normalises_quaternion():
    pose = geometry.pose_from_vector([1, 2, 3, 0, 0, 0, 5])
    np.testing.assert_allclose(pose[:3, :3], np.eye(3))
    np.testing.assert_allclose(pose[:3, 3], [1, 2, 3])


def test_pose_from_vector_wrong_length():
    with pytest.raises(ValueError):
        geometry.pose_from_vector([0, 0, 0, 1])


def test_poses_round_trip_and_length_check():
    poses = [_random_pose(s) for s in range(3)]
    flat = geometry.poses_to_vector(poses)
    assert len(flat) == 21
    for a, b in zip(geometry.poses_from_vector(flat), poses):
        np.testing.assert_allclose(a, b, atol=1e-10)
    with pytest.raises(ValueError):
        geometry.poses_from_vector(flat[:-1])


@pytest.mark.parametrize("seed", range(5))
def test_quaternion_round_trip(seed):
    rng = np.random.default_rng(seed)
    q = rng.normal(size=4)
    q /= np.linalg.norm(q)
    back = geometry.matrix_to_quaternion(geometry.quaternion_to_matrix(q))
    assert np.allclose(back, q, atol=1e-10) or np.allclose(back, -q, atol=1e-10)


def test_zero_quaternion_rejected():
    with pytest.raises(ValueError):
        geometry.quaternion_to_matrix([0, 0, 0, 0])


@pytest.mark.parametrize("seed", range(4))
def test_invert_isometry(seed):
    pose = _random_pose(seed)
    np.testing.assert_allclose(pose @ geometry.invert_isometry(pose), np.eye(4), atol=1e-12)


@pytest.mark.parametrize("seed", range(4))
def test_so3_expmap_is_rotation_with_matching_angle(seed):
    rng = np.random.default_rng(seed)
    omega = rng.normal(size=3)
    omega *= rng.uniform(0.0, 3.0) / np.linalg.norm(omega)
    rotation = geometry.so3_expmap(omega)
    np.testing.assert_allclose(rotation @ rotation.T, np.eye(3), atol=1e-12)
    assert np.linalg.det(rotation) == pytest.approx(1.0)
    assert geometry.rotation_angle(rotation) == pytest.approx(np.linalg.norm(omega))


@pytest.mark.parametrize("seed", range(5))
def test_se3_log_exp_round_trip(seed):
    rng = np.random.default_rng(seed)
    xi = rng.normal(size=6)
    xi[:3] *= 2.0 / np.linalg.norm(xi[:3])
    np.testing.assert_allclose(geometry.se3_logmap(geometry.se3_expmap(xi)), xi, atol=1e-9)


def test_se3_expmap_without_rotation_is_translation():
    pose = geometry.se3_expmap(np.array([0, 0, 0, 1.0, -2.0, 3.0]))
    np.testing.assert_allclose(pose[:3, :3], np.eye(3))
    np.testing.assert_allclose(pose[:3, 3], [1.0, -2.0, 3.0])


def test_se3_expmap_small_angle_continuity():
    xi_small = np.array([1e-7, -2e-7, 3e-7, 0.5, 0.1, -0.2])
    pose = geometry.se3_expmap(xi_small)
    np.testing.assert_allclose(geometry.se3_logmap(pose), xi_small, atol=1e-12)


def test_slerp_endpoints_and_midpoint():
    q0 = geometry.matrix_to_quaternion(np.eye(3))
    q1 = geometry.matrix_to_quaternion(geometry.so3_expmap([0, 0, 1.2]))
    np.testing.assert_allclose(geometry.quaternion_slerp(q0, q1, 0.0), q0, atol=1e-12)
    np.testing.assert_allclose(geometry.quaternion_slerp(q0, q1, 1.0), q1, atol=1e-12)
    mid = geometry.quaternion_slerp(q0, q1, 0.5)
    assert np.linalg.norm(mid) == pytest.approx(1.0)
    angle = geometry.rotation_angle(geometry.quaternion_to_matrix(mid))
    assert angle == pytest.approx(0.6)


def test_slerp_takes_shorter_arc():
    q0 = geometry.matrix_to_quaternion(np.eye(3))
    q1 = -geometry.matrix_to_quaternion(geometry.so3_expmap([0.4, 0, 0]))
    mid = geometry.quaternion_slerp(q0, q1, 0.5)
    assert geometry.rotation_angle(geometry.quaternion_to_matrix(mid)) == pytest.approx(0.2)


def test_transform_points_homogeneous_and_plain_agree():
    pose = _random_pose(7)
    pts3 = np.random.default_rng(1).normal(size=(10, 3))
    pts4 = np.hstack([pts3, np.ones((10, 1))])
    out3 = geometry.transform_points(pose, pts3)
    out4 = geometry.transform_points(pose, pts4)
    np.testing.assert_allclose(out4[:, :3], out3)
    np.testing.assert_allclose(out4[:, 3], 1.0)
    back = geometry.transform_points(geometry.invert_isometry(pose), out3)
    np.testing.assert_allclose(back, pts3, atol=1e-12)


def test_transform_points_bad_shape():
    with pytest.raises(ValueError):
        geometry.transform_points(np.eye(4), np.zeros((3, 5)))


def test_random_sampling():
    points = np.arange(100, dtype=float).reshape(100, 1)
    assert geometry.random_sampling(points, 1.0) is points
    sampled = geometry.random_sampling(points, 0.5, np.random.default_rng(0))
    assert len(sampled) == 50
    values = sampled.ravel()
    assert np.all(np.diff(values) > 0)
    assert set(values) <= set(points.ravel())
    assert len(geometry.random_sampling(points, 0.0, 3)) == 0