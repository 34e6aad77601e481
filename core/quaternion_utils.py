"""
Quaternion utility functions for rotation normalization
Provides quaternion operations: normalization, multiplication, conversion to and
from rotation matrices, Euler angles and look directions.

All quaternions are in [w, x, y, z] format.
"""
import numpy as np

IDENTITY_QUATERNION = np.array([1.0, 0.0, 0.0, 0.0])

WORLD_UP = np.array([0.0, 1.0, 0.0])


def quaternion_normalize(q: np.ndarray) -> np.ndarray:
    """Normalize quaternion(s) to unit norm.

    Supports input shapes (4,) or (N,4). Zero-norm quaternions carry no
    orientation and are replaced by the identity quaternion [1, 0, 0, 0].
    """
    q = np.asarray(q, dtype=float)

    if q.ndim == 1:
        if q.shape != (4,):
            raise ValueError("Quaternion must have shape (4,)")
        norm = np.linalg.norm(q)
        if norm == 0.0 or not np.isfinite(norm):
            return IDENTITY_QUATERNION.copy()
        return q / norm

    elif q.ndim == 2:
        if q.shape[1] != 4:
            raise ValueError("Quaternion array must have shape (N,4)")
        norms = np.linalg.norm(q, axis=1)
        bad = (norms == 0.0) | ~np.isfinite(norms)
        safe_norms = np.where(bad, 1.0, norms)
        qn = (q.T / safe_norms).T
        qn[bad] = IDENTITY_QUATERNION
        return qn

    else:
        raise ValueError("Input quaternion must have shape (4,) or (N,4)")


def quaternion_multiply(q1: np.ndarray, q2: np.ndarray) -> np.ndarray:
    """Multiply two quaternions (q1 * q2), applying q2 first and then q1."""
    w1, x1, y1, z1 = np.asarray(q1, dtype=float)
    w2, x2, y2, z2 = np.asarray(q2, dtype=float)

    w = w1 * w2 - x1 * x2 - y1 * y2 - z1 * z2
    x = w1 * x2 + x1 * w2 + y1 * z2 - z1 * y2
    y = w1 * y2 - x1 * z2 + y1 * w2 + z1 * x2
    z = w1 * z2 + x1 * y2 - y1 * x2 + z1 * w2

    return np.array([w, x, y, z])


def axis_angle_to_quaternion(axis: np.ndarray, angle_rad: float) -> np.ndarray:
    """Quaternion for a rotation of `angle_rad` about a unit `axis`."""
    half = 0.5 * angle_rad
    x, y, z = np.asarray(axis, dtype=float) * np.sin(half)
    return np.array([np.cos(half), x, y, z])


def quaternion_to_rotation_matrix(q: np.ndarray) -> np.ndarray:
    """Convert a unit quaternion to a 3x3 rotation matrix (R @ v rotates v)."""
    w, x, y, z = quaternion_normalize(q)
    return np.array([
        [1 - 2*(y*y + z*z),     2*(x*y - w*z),     2*(x*z + w*y)],
        [    2*(x*y + w*z), 1 - 2*(x*x + z*z),     2*(y*z - w*x)],
        [    2*(x*z - w*y),     2*(y*z + w*x), 1 - 2*(x*x + y*y)]
    ])


def rotation_matrix_to_quaternion(R: np.ndarray) -> np.ndarray:
    """Convert a 3x3 rotation matrix to a unit quaternion [w, x, y, z]."""
    R = np.asarray(R, dtype=float)
    trace = np.trace(R)
    if trace > 0:
        s = 0.5 / np.sqrt(trace + 1.0)
        w = 0.25 / s
        x = (R[2, 1] - R[1, 2]) * s
        y = (R[0, 2] - R[2, 0]) * s
        z = (R[1, 0] - R[0, 1]) * s
    elif R[0, 0] > R[1, 1] and R[0, 0] > R[2, 2]:
        s = 2.0 * np.sqrt(1.0 + R[0, 0] - R[1, 1] - R[2, 2])
        w = (R[2, 1] - R[1, 2]) / s
        x = 0.25 * s
        y = (R[0, 1] + R[1, 0]) / s
        z = (R[0, 2] + R[2, 0]) / s
    elif R[1, 1] > R[2, 2]:
        s = 2.0 * np.sqrt(1.0 + R[1, 1] - R[0, 0] - R[2, 2])
        w = (R[0, 2] - R[2, 0]) / s
        x = (R[0, 1] + R[1, 0]) / s
        y = 0.25 * s
        z = (R[1, 2] + R[2, 1]) / s
    else:
        s = 2.0 * np.sqrt(1.0 + R[2, 2] - R[0, 0] - R[1, 1])
        w = (R[1, 0] - R[0, 1]) / s
        x = (R[0, 2] + R[2, 0]) / s
        y = (R[1, 2] + R[2, 1]) / s
        z = 0.25 * s
    q = np.array([w, x, y, z])
    return q / np.linalg.norm(q)


def euler_to_quaternion(angles_deg: np.ndarray) -> np.ndarray:
    """Convert Euler angles [x, y, z] in degrees to a quaternion.

    The rotations are applied about the z axis first, then x, then y, which is
    the convention of the playback engine's Euler angles.
    """
    ax, ay, az = np.radians(np.asarray(angles_deg, dtype=float))
    qx = axis_angle_to_quaternion(np.array([1.0, 0.0, 0.0]), ax)
    qy = axis_angle_to_quaternion(np.array([0.0, 1.0, 0.0]), ay)
    qz = axis_angle_to_quaternion(np.array([0.0, 0.0, 1.0]), az)
    return quaternion_normalize(quaternion_multiply(qy, quaternion_multiply(qx, qz)))


def look_rotation(direction: np.ndarray, up: np.ndarray = WORLD_UP) -> np.ndarray:
    """Quaternion rotating the forward axis (0, 0, 1) onto `direction`.

    The rotated up axis stays as close to `up` as possible. A zero direction
    yields the identity quaternion.
    """
    forward = np.asarray(direction, dtype=float)
    norm = np.linalg.norm(forward)
    if norm == 0.0 or not np.isfinite(norm):
        return IDENTITY_QUATERNION.copy()
    forward = forward / norm

    right = np.cross(up, forward)
    right_norm = np.linalg.norm(right)
    if right_norm < 1e-9:
        # looking straight along up: any right vector orthogonal to forward works
        right = np.array([1.0, 0.0, 0.0])
    else:
        right = right / right_norm
    new_up = np.cross(forward, right)

    R = np.column_stack((right, new_up, forward))
    return rotation_matrix_to_quaternion(R)
