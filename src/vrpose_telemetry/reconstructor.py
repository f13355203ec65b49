"""
Receive-side pose reconstruction.

Turns decoded network poses into a smoothly moving local transform. The host
drives it with tick(dt) from whatever loop it has; the filter math does not
depend on any render loop.
"""

import logging
import threading
from enum import Enum

import numpy as np

from . import pose_codec
from .errors import DecodeError
from .quat_utils import lerp, quat_normalize, slerp, yaw_only
from .smoothing import smooth_damp, smooth_rotation
from .types import LocalTransform, Pose, Quaternion, Vector3

logger = logging.getLogger(__name__)


class ReconstructorState(Enum):
    """Lifecycle of a reconstructor."""

    IDLE = "idle"  # no pose received yet
    TRACKING = "tracking"


def target_from_pose(pose: Pose) -> tuple[np.ndarray, np.ndarray]:
    """
    Map a received head pose to the local target transform.

    The sender's X axis is mirrored and height is dropped; only yaw of the
    head rotation is kept. This matches the sender's coordinate convention and
    is applied as-is.
    """
    head = pose.head_position
    position = np.array([-head.x, 0.0, head.z])
    rotation = yaw_only(pose.head_rotation.to_array())
    return position, rotation


class PoseReconstructor:
    """
    Blends a rest pose with the latest network pose and smooths the result.

    Each tick the blended target lerp/slerp(default, latest, blend_ratio) is
    followed by a critically damped position filter and a faster rotation
    slerp. Changing blend_ratio moves the target, not the filter state, so the
    motion stays continuous.

    Example usage:
        reconstructor = PoseReconstructor(smoothing_time=0.1, blend_ratio=1.0)
        reconstructor.handle_message(body)       # receive thread
        transform = reconstructor.tick(dt)       # host loop
    """

    def __init__(
        self,
        default_position: Vector3 = Vector3(),
        default_rotation: Quaternion = Quaternion(),
        smoothing_time: float = 0.1,
        blend_ratio: float = 0.0,
    ):
        """
        Args:
            default_position: Rest position of the proxy
            default_rotation: Rest rotation of the proxy
            smoothing_time: Position smoothing time constant in seconds
            blend_ratio: 0 keeps the rest pose, 1 follows the network fully
        """
        self._lock = threading.Lock()
        self._state = ReconstructorState.IDLE
        self._smoothing_time = max(0.0, float(smoothing_time))
        self._blend_ratio = 0.0
        self.blend_ratio = blend_ratio

        self._default_position = np.zeros(3)
        self._default_rotation = np.array([0.0, 0.0, 0.0, 1.0])
        self._current_position = np.zeros(3)
        self._current_rotation = np.array([0.0, 0.0, 0.0, 1.0])
        self._velocity = np.zeros(3)
        self.capture_default(default_position, default_rotation, reset_current=True)

        self._latest_pose: Pose | None = None
        self._target_position = self._default_position.copy()
        self._target_rotation = self._default_rotation.copy()

        self._stats = {"poses_received": 0, "decode_errors": 0, "ticks": 0}

    @property
    def state(self) -> ReconstructorState:
        return self._state

    @property
    def blend_ratio(self) -> float:
        return self._blend_ratio

    @blend_ratio.setter
    def blend_ratio(self, value: float) -> None:
        self._blend_ratio = float(np.clip(value, 0.0, 1.0))

    @property
    def smoothing_time(self) -> float:
        return self._smoothing_time

    @smoothing_time.setter
    def smoothing_time(self, value: float) -> None:
        self._smoothing_time = max(0.0, float(value))

    @property
    def latest_received_pose(self) -> Pose | None:
        """Raw pose from the last successful decode."""
        return self._latest_pose

    @property
    def default_transform(self) -> LocalTransform:
        with self._lock:
            return LocalTransform(
                Vector3.from_array(self._default_position),
                Quaternion.from_array(self._default_rotation),
            )

    @property
    def target_transform(self) -> LocalTransform:
        """Local transform derived from the latest received pose."""
        with self._lock:
            return LocalTransform(
                Vector3.from_array(self._target_position),
                Quaternion.from_array(self._target_rotation),
            )

    @property
    def current_transform(self) -> LocalTransform:
        """Transform applied on the last tick."""
        with self._lock:
            return self._current_locked()

    def _current_locked(self) -> LocalTransform:
        return LocalTransform(
            Vector3.from_array(self._current_position),
            Quaternion.from_array(self._current_rotation),
        )

    def capture_default(
        self,
        position: Vector3,
        rotation: Quaternion,
        reset_current: bool = False,
    ) -> None:
        """
        Set the rest pose.

        Args:
            position: Rest position
            rotation: Rest rotation
            reset_current: Also move the applied transform there immediately
        """
        with self._lock:
            self._default_position = np.array(position, dtype=float)
            self._default_rotation = quat_normalize(np.array(rotation, dtype=float))
            if reset_current:
                self._current_position = self._default_position.copy()
                self._current_rotation = self._default_rotation.copy()
                self._velocity = np.zeros(3)

    def on_decoded_pose(self, pose: Pose) -> None:
        """Store the latest network pose; the first one starts tracking."""
        position, rotation = target_from_pose(pose)
        with self._lock:
            self._latest_pose = pose
            self._target_position = position
            self._target_rotation = rotation
            self._stats["poses_received"] += 1
            if self._state is ReconstructorState.IDLE:
                self._state = ReconstructorState.TRACKING
                logger.info("First pose received; tracking started")

    def ingest_message(self, message: str) -> Pose | None:
        """Decode a wire message and ingest it. Returns None if it was dropped."""
        try:
            pose = pose_codec.decode(message)
        except DecodeError as e:
            with self._lock:
                self._stats["decode_errors"] += 1
            logger.warning(f"Transform parse error: {e}")
            return None
        self.on_decoded_pose(pose)
        return pose

    def handle_message(self, message: str) -> bool:
        """
        Decode a wire message and ingest it.

        Returns:
            False if the message was malformed and dropped.
        """
        return self.ingest_message(message) is not None

    def tick(self, dt: float) -> LocalTransform:
        """
        Advance smoothing by `dt` seconds of monotonic time.

        Returns:
            The applied transform. Unchanged while idle.
        """
        with self._lock:
            if self._state is ReconstructorState.IDLE:
                return self._current_locked()

            ratio = self._blend_ratio
            blended_position = lerp(self._default_position, self._target_position, ratio)
            blended_rotation = slerp(self._default_rotation, self._target_rotation, ratio)

            self._current_position, self._velocity = smooth_damp(
                self._current_position,
                blended_position,
                self._velocity,
                self._smoothing_time,
                dt,
            )
            self._current_rotation = smooth_rotation(
                self._current_rotation, blended_rotation, self._smoothing_time, dt
            )
            self._stats["ticks"] += 1
            return self._current_locked()

    def get_stats(self) -> dict[str, int]:
        with self._lock:
            return self._stats.copy()
