import math

import numpy as np
import pytest

from vruco.math3d.quaternion import (
    axis_angle_to_q,
    q_average,
    q_normalize,
    q_to_rotmat,
    rotmat_to_q,
)


def test_q_normalize_zero_returns_identity():
    q = q_normalize(np.zeros(4, dtype=np.float64))
    np.testing.assert_allclose(q, np.array([1.0, 0.0, 0.0, 0.0], dtype=np.float64))


def test_yaw_90_rotates_forward_to_right():
    q = axis_angle_to_q(np.array([0.0, 1.0, 0.0]), math.radians(90.0))
    v = q_to_rotmat(q) @ np.array([0.0, 0.0, 1.0], dtype=np.float64)
    np.testing.assert_allclose(v, np.array([1.0, 0.0, 0.0], dtype=np.float64), atol=1e-6)


def test_rotmat_identity_to_quaternion():
    q = rotmat_to_q(np.eye(3, dtype=np.float64))
    np.testing.assert_allclose(q, np.array([1.0, 0.0, 0.0, 0.0], dtype=np.float64), atol=1e-8)


def test_rotmat_quaternion_roundtrip_for_half_turn():
    R = np.diag([1.0, -1.0, -1.0])
    q = rotmat_to_q(R)
    np.testing.assert_allclose(q_to_rotmat(q), R, atol=1e-12)


def test_q_average_handles_sign_flipped_samples():
    q = axis_angle_to_q(np.array([0.0, 0.0, 1.0]), 0.3)
    samples = [q, -q, axis_angle_to_q(np.array([0.0, 0.0, 1.0]), 0.32)]
    avg = q_average(samples)
    ref = axis_angle_to_q(np.array([0.0, 0.0, 1.0]), 0.3066666666)
    assert abs(float(np.dot(avg, ref))) == pytest.approx(1.0, abs=1e-6)


def test_q_average_rejects_empty_input():
    with pytest.raises(ValueError):
        q_average([])
