import numpy as np
import pytest

from vio_init.math_utils import (
    create_tangent_basis,
    quat_to_rot,
    rot_to_quat,
    so3_exp,
    so3_log,
)


def _assert_tangent_basis(v, basis, tol=1e-7):
    n = v / np.linalg.norm(v)
    assert basis.shape == (3, 2)
    b1, b2 = basis[:, 0], basis[:, 1]
    assert abs(np.linalg.norm(b1) - 1.0) < tol
    assert abs(np.linalg.norm(b2) - 1.0) < tol
    assert abs(np.dot(b1, b2)) < tol
    assert abs(np.dot(b1, n)) < tol
    assert abs(np.dot(b2, n)) < tol


def test_tangent_basis_random_vectors_orthonormal():
    rng = np.random.default_rng(42)
    for _ in range(20):
        v = rng.normal(size=3) * rng.uniform(0.1, 20.0)
        _assert_tangent_basis(v, create_tangent_basis(v))


def test_tangent_basis_axis_aligned_vectors():
    for axis in range(3):
        for sign in (1.0, -1.0):
            v = np.zeros(3)
            v[axis] = sign * 9.81
            _assert_tangent_basis(v, create_tangent_basis(v))


def test_tangent_basis_is_right_handed():
    v = np.array([0.3, -1.2, 4.0])
    basis = create_tangent_basis(v)
    # b1 x b2 points along v
    assert np.dot(np.cross(basis[:, 0], basis[:, 1]), v) > 0.0


def test_tangent_basis_rejects_zero_vector():
    with pytest.raises(ValueError):
        create_tangent_basis(np.zeros(3))
    with pytest.raises(ValueError):
        create_tangent_basis(np.array([np.nan, 0.0, 1.0]))


def test_so3_exp_log_consistency():
    theta = np.array([0.2, -0.4, 0.1])
    R = so3_exp(theta)
    assert np.allclose(R.T @ R, np.eye(3), atol=1e-12)
    assert np.allclose(so3_log(R), theta, atol=1e-12)


def test_quaternion_round_trip_keeps_positive_scalar():
    R = so3_exp(np.array([0.0, 0.0, 3.0]))
    q = rot_to_quat(R)
    assert q[0] >= 0.0
    assert np.allclose(quat_to_rot(q), R, atol=1e-12)
