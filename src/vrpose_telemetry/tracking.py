"""
Send-side pose sources and reference-frame conversion.

Tracking devices report world-space poses. Before sending, poses can be
expressed relative to a reference frame (e.g. the play-space anchor), with
positions scaled by a fixed factor.
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import numpy as np

from .config import TelemetryConfig
from .quat_utils import quat_from_yaw, quat_inverse, quat_mul, quat_normalize, rotate_vec_by_quat
from .types import Pose, Quaternion, Vector3

logger = logging.getLogger(__name__)

DEFAULT_POSITION_SCALE = 2.0


@dataclass(frozen=True)
class ReferenceFrame:
    """World-space origin and orientation that poses are expressed against."""

    position: Vector3 = field(default_factory=Vector3)
    rotation: Quaternion = field(default_factory=Quaternion)

    def to_local_point(self, point: Vector3, scale: float = 1.0) -> Vector3:
        """World point -> frame-local point, multiplied by `scale`."""
        offset = point.to_array() - self.position.to_array()
        local = rotate_vec_by_quat(offset, quat_inverse(quat_normalize(self.rotation.to_array())))
        return Vector3.from_array(local * scale)

    def to_local_rotation(self, rotation: Quaternion) -> Quaternion:
        """World rotation -> frame-local rotation."""
        inverse = quat_inverse(quat_normalize(self.rotation.to_array()))
        return Quaternion.from_array(quat_mul(inverse, rotation.to_array()))


def to_local_pose(
    pose: Pose, frame: ReferenceFrame | None, scale: float = DEFAULT_POSITION_SCALE
) -> Pose:
    """
    Express a world-space pose relative to `frame`.

    Returns the pose unchanged when no frame is set.
    """
    if frame is None:
        return pose
    return Pose(
        head_position=frame.to_local_point(pose.head_position, scale),
        left_hand_position=frame.to_local_point(pose.left_hand_position, scale),
        right_hand_position=frame.to_local_point(pose.right_hand_position, scale),
        head_rotation=frame.to_local_rotation(pose.head_rotation),
        left_hand_rotation=frame.to_local_rotation(pose.left_hand_rotation),
        right_hand_rotation=frame.to_local_rotation(pose.right_hand_rotation),
    )


class PoseSource(ABC):
    """Anything that can produce the current world-space pose."""

    @abstractmethod
    def get_pose(self, elapsed_time: float) -> Pose:
        """Pose at `elapsed_time` seconds since start."""


class FramedPoseSource(PoseSource):
    """Wraps a source and converts its poses into a reference frame."""

    def __init__(
        self,
        source: PoseSource,
        frame: ReferenceFrame | None = None,
        scale: float = DEFAULT_POSITION_SCALE,
    ):
        self.source = source
        self.frame = frame
        self.scale = scale

    def set_reference_frame(self, frame: ReferenceFrame | None) -> None:
        self.frame = frame
        logger.info(f"Reference frame set to {frame}")

    def get_pose(self, elapsed_time: float) -> Pose:
        return to_local_pose(self.source.get_pose(elapsed_time), self.frame, self.scale)


class SimulatedPoseSource(PoseSource):
    """
    Synthetic participant for driving a sender without tracking hardware.

    Patterns:
        circle: walk a circle while facing the direction of travel
        figure8: walk a figure eight
        still: stand at the origin and look around
    """

    PATTERNS = ("circle", "figure8", "still")

    def __init__(
        self,
        pattern: str = "circle",
        radius: float = 1.5,
        speed: float = 0.5,
        head_height: float = 1.6,
        hand_swing: float = 0.2,
    ):
        if pattern not in self.PATTERNS:
            raise ValueError(f"Unknown pattern {pattern!r}; choose from {self.PATTERNS}")
        self.pattern = pattern
        self.radius = radius
        self.speed = speed
        self.head_height = head_height
        self.hand_swing = hand_swing

    def _head_xz_and_yaw(self, t: float) -> tuple[float, float, float]:
        angle = t * self.speed
        if self.pattern == "circle":
            x = self.radius * math.cos(angle)
            z = self.radius * math.sin(angle)
            yaw = -angle
        elif self.pattern == "figure8":
            x = self.radius * math.sin(angle)
            z = self.radius * math.sin(angle) * math.cos(angle)
            dx = math.cos(angle)
            dz = math.cos(2 * angle)
            yaw = math.atan2(dx, dz)
        else:
            x = z = 0.0
            yaw = 0.6 * math.sin(angle)
        return x, z, yaw

    def get_pose(self, elapsed_time: float) -> Pose:
        x, z, yaw = self._head_xz_and_yaw(elapsed_time)
        facing = quat_from_yaw(yaw)
        swing = self.hand_swing * math.sin(elapsed_time * 3.0)

        def hand(side: float) -> Vector3:
            local = np.array([0.25 * side, -0.5, 0.2 + swing * side])
            world = rotate_vec_by_quat(local, facing)
            return Vector3(x + world[0], self.head_height + world[1], z + world[2])

        rotation = Quaternion.from_array(facing)
        return Pose(
            head_position=Vector3(x, self.head_height, z),
            left_hand_position=hand(-1.0),
            right_hand_position=hand(1.0),
            head_rotation=rotation,
            left_hand_rotation=rotation,
            right_hand_rotation=rotation,
        )


class RelativePoseStream:
    """
    Secondary pose stream expressed relative to its own reference frame.

    Sends on its own topic, either on demand via send() or automatically on
    tick() at `interval` when auto_send is enabled. Uses the session's bound
    transport.
    """

    def __init__(
        self,
        session,
        source: PoseSource,
        frame: ReferenceFrame,
        topic: str = "/emergency/transform",
        interval: float = 0.1,
        scale: float = DEFAULT_POSITION_SCALE,
        auto_send: bool = False,
    ):
        self.session = session
        self.source = source
        self.frame = frame
        self.topic = topic
        self.interval = interval
        self.scale = scale
        self.auto_send = auto_send
        self._last_send_time: float | None = None

    @classmethod
    def from_config(
        cls,
        session,
        source: PoseSource,
        frame: ReferenceFrame,
        config: TelemetryConfig,
        auto_send: bool = False,
    ) -> "RelativePoseStream":
        """Build a stream using the relative topic, interval and scale settings."""
        return cls(
            session,
            source,
            frame,
            topic=config.relative_pose_topic,
            interval=config.relative_send_interval,
            scale=config.position_scale,
            auto_send=auto_send,
        )

    def enable_auto_send(self) -> None:
        self.auto_send = True

    def disable_auto_send(self) -> None:
        self.auto_send = False

    def set_auto_send_enabled(self, enabled: bool) -> None:
        self.auto_send = bool(enabled)

    def send(self, elapsed_time: float) -> bool:
        """Send the current pose relative to the frame immediately."""
        pose = to_local_pose(self.source.get_pose(elapsed_time), self.frame, self.scale)
        return self.session.send_pose(pose, self.topic)

    def tick(self, now: float, elapsed_time: float) -> bool:
        """Send if auto_send is on and the interval elapsed."""
        if not self.auto_send:
            return False
        if self._last_send_time is not None and now - self._last_send_time < self.interval:
            return False
        self._last_send_time = now
        return self.send(elapsed_time)
