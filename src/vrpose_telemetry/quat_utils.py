"""
Quaternion utility functions for pose conversion and reconstruction.

All quaternions are numpy arrays in (x, y, z, w) format, matching the wire
order. The coordinate system is Y-up.
"""

import numpy as np

_IDENTITY = np.array([0.0, 0.0, 0.0, 1.0])


def quat_normalize(q):
    """
    Normalize quaternion (x, y, z, w format).

    Args:
        q: Quaternion (x, y, z, w)

    Returns:
        Normalized quaternion, identity for a degenerate input
    """
    q = np.asarray(q, dtype=float)
    norm = np.sqrt(np.dot(q, q))
    if norm < 1e-8:
        return _IDENTITY.copy()
    return q / norm


def quat_mul(q1, q2):
    """
    Multiply two quaternions (x, y, z, w format).

    Args:
        q1: First quaternion
        q2: Second quaternion

    Returns:
        Product quaternion q1 * q2
    """
    x1, y1, z1, w1 = q1[0], q1[1], q1[2], q1[3]
    x2, y2, z2, w2 = q2[0], q2[1], q2[2], q2[3]
    return np.array([
        w1*x2 + x1*w2 + y1*z2 - z1*y2,
        w1*y2 - x1*z2 + y1*w2 + z1*x2,
        w1*z2 + x1*y2 - y1*x2 + z1*w2,
        w1*w2 - x1*x2 - y1*y2 - z1*z2,
    ])


def quat_inverse(q):
    """Inverse of a unit quaternion (its conjugate)."""
    return np.array([-q[0], -q[1], -q[2], q[3]], dtype=float)


def rotate_vec_by_quat(v, q):
    """
    Rotate vector v by quaternion q (x, y, z, w format).

    Args:
        v: 3D vector
        q: Unit quaternion

    Returns:
        Rotated 3D vector
    """
    x, y, z, w = q[0], q[1], q[2], q[3]
    # t = 2 * cross(q_xyz, v)
    tx = 2.0 * (y * v[2] - z * v[1])
    ty = 2.0 * (z * v[0] - x * v[2])
    tz = 2.0 * (x * v[1] - y * v[0])
    # result = v + w * t + cross(q_xyz, t)
    return np.array([
        v[0] + w * tx + (y * tz - z * ty),
        v[1] + w * ty + (z * tx - x * tz),
        v[2] + w * tz + (x * ty - y * tx),
    ])


def lerp(a, b, t):
    """Linear interpolation between two vectors."""
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    return a + (b - a) * t


def slerp(q1, q2, t):
    """
    Spherical linear interpolation along the shortest arc.

    Args:
        q1: Start quaternion
        q2: End quaternion
        t: Interpolation factor, clamped to [0, 1]

    Returns:
        Normalized interpolated quaternion
    """
    t = float(np.clip(t, 0.0, 1.0))
    q1 = quat_normalize(q1)
    q2 = quat_normalize(q2)
    dot = float(np.dot(q1, q2))
    if dot < 0.0:
        q2 = -q2
        dot = -dot
    if dot > 0.9995:
        return quat_normalize(q1 + (q2 - q1) * t)

    theta_0 = np.arccos(dot)
    theta = theta_0 * t
    sin_theta_0 = np.sin(theta_0)
    s1 = np.sin(theta_0 - theta) / sin_theta_0
    s2 = np.sin(theta) / sin_theta_0
    return quat_normalize(s1 * q1 + s2 * q2)


def quat_angle(q1, q2) -> float:
    """Angle in radians between two orientations."""
    dot = abs(float(np.dot(quat_normalize(q1), quat_normalize(q2))))
    return 2.0 * float(np.arccos(min(1.0, dot)))


def yaw_from_quat(q) -> float:
    """
    Rotation about the Y (up) axis in radians.

    Matches the Y angle of a Z-X-Y Euler decomposition, so pitch and roll are
    discarded rather than folded into the yaw.
    """
    x, y, z, w = quat_normalize(q)
    return float(np.arctan2(2.0 * (x * z + w * y), 1.0 - 2.0 * (x * x + y * y)))


def quat_from_yaw(yaw: float):
    """Quaternion rotating by `yaw` radians about the Y axis."""
    half = 0.5 * yaw
    return np.array([0.0, np.sin(half), 0.0, np.cos(half)])


def yaw_only(q):
    """Strip pitch and roll from a rotation, keeping only its yaw."""
    return quat_from_yaw(yaw_from_quat(q))
