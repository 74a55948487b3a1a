from __future__ import annotations

import math

import pytest

from vivestream import math as vsm

from conftest import rotate_vector


def _approx(a, b, abs_tol=1e-9) -> bool:
    return all(math.isclose(x, y, abs_tol=abs_tol) for x, y in zip(a, b))


def _axis_angle(axis, angle):
    s = math.sin(angle / 2.0)
    return (axis[0] * s, axis[1] * s, axis[2] * s, math.cos(angle / 2.0))


def test_identity_is_neutral_for_multiply() -> None:
    q = vsm.quat_normalize((0.1, -0.4, 0.3, 0.8))
    assert _approx(vsm.quat_multiply(vsm.IDENTITY, q), q)
    assert _approx(vsm.quat_multiply(q, vsm.IDENTITY), q)


def test_conjugate_is_inverse_of_unit_quaternion() -> None:
    q = vsm.quat_normalize((0.2, 0.5, -0.1, 0.7))
    assert _approx(vsm.quat_multiply(q, vsm.quat_conjugate(q)), vsm.IDENTITY)
    assert _approx(vsm.quat_multiply(vsm.quat_conjugate(q), q), vsm.IDENTITY)


def test_multiply_composes_rotations() -> None:
    qz90 = _axis_angle((0.0, 0.0, 1.0), math.pi / 2)
    q180 = vsm.quat_multiply(qz90, qz90)
    assert _approx(q180, (0.0, 0.0, 1.0, 0.0))


def test_sandwich_rotates_about_z() -> None:
    qz90 = _axis_angle((0.0, 0.0, 1.0), math.pi / 2)
    assert _approx(vsm.quat_sandwich(qz90, (1.0, 0.0, 0.0)), (0.0, 1.0, 0.0))


@pytest.mark.parametrize(
    "q",
    [
        (0.0, 0.0, 0.0, 1.0),
        _axis_angle((1.0, 0.0, 0.0), 0.7),
        _axis_angle((0.0, 1.0, 0.0), -2.1),
        vsm.quat_normalize((0.3, -0.2, 0.9, 0.1)),
    ],
)
def test_sandwich_matches_rotate_vector(q) -> None:
    v = (0.3, -1.2, 2.5)
    assert _approx(vsm.quat_sandwich(q, v), rotate_vector(v, q))


def test_normalize_zero_quaternion_is_identity() -> None:
    assert vsm.quat_normalize((0.0, 0.0, 0.0, 0.0)) == vsm.IDENTITY


def test_matrix_to_position() -> None:
    m = ((1, 0, 0, 0.5), (0, 1, 0, -1.5), (0, 0, 1, 2.0))
    assert vsm.matrix_to_position(m) == (0.5, -1.5, 2.0)


def _quat_to_matrix(q):
    x, y, z, w = q
    return (
        (1 - 2 * (y * y + z * z), 2 * (x * y - z * w), 2 * (x * z + y * w), 0.0),
        (2 * (x * y + z * w), 1 - 2 * (x * x + z * z), 2 * (y * z - x * w), 0.0),
        (2 * (x * z - y * w), 2 * (y * z + x * w), 1 - 2 * (x * x + y * y), 0.0),
    )


@pytest.mark.parametrize(
    "q",
    [
        (0.0, 0.0, 0.0, 1.0),
        _axis_angle((0.0, 1.0, 0.0), math.pi / 3),
        # Near 180 degrees about each axis exercises every branch
        _axis_angle((1.0, 0.0, 0.0), math.pi - 1e-3),
        _axis_angle((0.0, 1.0, 0.0), math.pi - 1e-3),
        _axis_angle((0.0, 0.0, 1.0), math.pi - 1e-3),
    ],
)
def test_matrix_to_quat_recovers_rotation(q) -> None:
    result = vsm.matrix_to_quat(_quat_to_matrix(q))
    # q and -q describe the same rotation
    if result[3] * q[3] < 0 or (q[3] == 0 and result[0] * q[0] < 0):
        result = tuple(-c for c in result)
    assert _approx(result, q, abs_tol=1e-6)


def test_quat_to_euler_yaw() -> None:
    qz = _axis_angle((0.0, 0.0, 1.0), 0.5)
    roll, pitch, yaw = vsm.quat_to_euler_xyz(qz)
    assert math.isclose(roll, 0.0, abs_tol=1e-9)
    assert math.isclose(pitch, 0.0, abs_tol=1e-9)
    assert math.isclose(yaw, 0.5, abs_tol=1e-9)


def test_distance() -> None:
    assert vsm.distance((0.0, 0.0, 0.0), (3.0, 4.0, 0.0)) == 5.0
