"""Quaternion and rotation math utilities for vivestream.

All quaternions use (x, y, z, w) convention (scalar-last).
Pose matrices are 3x4 row-major (rotation | translation), as reported by OpenVR.
"""

from __future__ import annotations
import math
from typing import Sequence, Tuple

Quat = Tuple[float, float, float, float]
Vec3 = Tuple[float, float, float]

IDENTITY: Quat = (0.0, 0.0, 0.0, 1.0)


def quat_normalize(q: Quat) -> Quat:
    """Normalize a quaternion to unit length."""
    x, y, z, w = q
    n = math.sqrt(x * x + y * y + z * z + w * w)
    if n <= 0.0:
        return IDENTITY
    return (x / n, y / n, z / n, w / n)


def quat_conjugate(q: Quat) -> Quat:
    """Return the conjugate (inverse for unit quaternions)."""
    x, y, z, w = q
    return (-x, -y, -z, w)


def quat_multiply(a: Quat, b: Quat) -> Quat:
    """Multiply two quaternions: result = a * b."""
    ax, ay, az, aw = a
    bx, by, bz, bw = b
    return (
        aw * bx + ax * bw + ay * bz - az * by,
        aw * by - ax * bz + ay * bw + az * bx,
        aw * bz + ax * by - ay * bx + az * bw,
        aw * bw - ax * bx - ay * by - az * bz,
    )


def quat_sandwich(q: Quat, v: Vec3) -> Vec3:
    """Rotate v by the explicit product q * (v, 0) * conj(q)."""
    pure = (v[0], v[1], v[2], 0.0)
    x, y, z, _ = quat_multiply(quat_multiply(q, pure), quat_conjugate(q))
    return (x, y, z)


def matrix_to_position(m: Sequence[Sequence[float]]) -> Vec3:
    """Translation column of a 3x4 pose matrix."""
    return (float(m[0][3]), float(m[1][3]), float(m[2][3]))


def matrix_to_quat(m: Sequence[Sequence[float]]) -> Quat:
    """Convert the rotation block of a 3x4 pose matrix to a unit quaternion.

    Uses the branch on the largest diagonal term so the result stays
    well-conditioned for rotations near 180 degrees.
    """
    m00, m01, m02 = float(m[0][0]), float(m[0][1]), float(m[0][2])
    m10, m11, m12 = float(m[1][0]), float(m[1][1]), float(m[1][2])
    m20, m21, m22 = float(m[2][0]), float(m[2][1]), float(m[2][2])

    trace = m00 + m11 + m22
    if trace > 0.0:
        s = 0.5 / math.sqrt(trace + 1.0)
        w = 0.25 / s
        x = (m21 - m12) * s
        y = (m02 - m20) * s
        z = (m10 - m01) * s
    elif m00 > m11 and m00 > m22:
        s = 2.0 * math.sqrt(1.0 + m00 - m11 - m22)
        w = (m21 - m12) / s
        x = 0.25 * s
        y = (m01 + m10) / s
        z = (m02 + m20) / s
    elif m11 > m22:
        s = 2.0 * math.sqrt(1.0 + m11 - m00 - m22)
        w = (m02 - m20) / s
        x = (m01 + m10) / s
        y = 0.25 * s
        z = (m12 + m21) / s
    else:
        s = 2.0 * math.sqrt(1.0 + m22 - m00 - m11)
        w = (m10 - m01) / s
        x = (m02 + m20) / s
        y = (m12 + m21) / s
        z = 0.25 * s
    return quat_normalize((x, y, z, w))


def quat_to_euler_xyz(q: Quat) -> Vec3:
    """Convert quaternion to intrinsic XYZ Euler angles (radians)."""
    x, y, z, w = q
    sinr_cosp = 2 * (w * x + y * z)
    cosr_cosp = 1 - 2 * (x * x + y * y)
    roll = math.atan2(sinr_cosp, cosr_cosp)

    sinp = 2 * (w * y - z * x)
    if abs(sinp) >= 1:
        pitch = math.copysign(math.pi / 2, sinp)
    else:
        pitch = math.asin(sinp)

    siny_cosp = 2 * (w * z + x * y)
    cosy_cosp = 1 - 2 * (y * y + z * z)
    yaw = math.atan2(siny_cosp, cosy_cosp)
    return (roll, pitch, yaw)


def distance(a: Vec3, b: Vec3) -> float:
    """Euclidean distance between two points."""
    dx = a[0] - b[0]
    dy = a[1] - b[1]
    dz = a[2] - b[2]
    return math.sqrt(dx * dx + dy * dy + dz * dz)
