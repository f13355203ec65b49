"""Frame-rate independent smoothing filters."""

import numpy as np

from .quat_utils import slerp

# Rotation converges in roughly a third of the position smoothing time
ROTATION_CATCH_UP = 3.0


def smooth_damp(current, target, velocity, smooth_time: float, dt: float):
    """
    Critically damped spring toward `target`.

    Args:
        current: Current value (vector)
        target: Desired value (vector)
        velocity: Filter velocity carried between calls
        smooth_time: Approximate time to reach the target, in seconds
        dt: Elapsed time since the previous call, in seconds

    Returns:
        (new_value, new_velocity). A non-positive smooth_time snaps to the
        target with zero velocity.
    """
    current = np.asarray(current, dtype=float)
    target = np.asarray(target, dtype=float)
    velocity = np.asarray(velocity, dtype=float)

    if smooth_time <= 0.0:
        return target.copy(), np.zeros_like(target)
    if dt <= 0.0:
        return current.copy(), velocity.copy()

    omega = 2.0 / smooth_time
    x = omega * dt
    decay = 1.0 / (1.0 + x + 0.48 * x * x + 0.235 * x * x * x)

    change = current - target
    temp = (velocity + omega * change) * dt
    new_velocity = (velocity - omega * temp) * decay
    output = target + (change + temp) * decay

    # Prevent overshooting
    if np.dot(target - current, output - target) > 0.0:
        output = target.copy()
        new_velocity = np.zeros_like(target)

    return output, new_velocity


def rotation_step(smooth_time: float, dt: float) -> float:
    """Slerp factor for one tick of rotation smoothing."""
    if smooth_time <= 0.0:
        return 1.0
    return float(np.clip(dt / smooth_time * ROTATION_CATCH_UP, 0.0, 1.0))


def smooth_rotation(current, target, smooth_time: float, dt: float):
    """Advance `current` toward `target` by one rotation smoothing step."""
    return slerp(current, target, rotation_step(smooth_time, dt))
