"""
Value types for pose telemetry.

Quaternions are stored in (x, y, z, w) order, which is also the order used on
the wire.
"""

from dataclasses import dataclass, field
from typing import NamedTuple

import numpy as np


class Vector3(NamedTuple):
    """3D position."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def to_array(self) -> np.ndarray:
        return np.array(self, dtype=float)

    @classmethod
    def from_array(cls, values) -> "Vector3":
        return cls(float(values[0]), float(values[1]), float(values[2]))


class Quaternion(NamedTuple):
    """Orientation as a unit quaternion (x, y, z, w)."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    w: float = 1.0

    def to_array(self) -> np.ndarray:
        return np.array(self, dtype=float)

    @classmethod
    def from_array(cls, values) -> "Quaternion":
        return cls(
            float(values[0]), float(values[1]), float(values[2]), float(values[3])
        )


IDENTITY = Quaternion()


@dataclass(frozen=True)
class Pose:
    """Snapshot of head, left hand and right hand positions and orientations."""

    head_position: Vector3 = field(default_factory=Vector3)
    left_hand_position: Vector3 = field(default_factory=Vector3)
    right_hand_position: Vector3 = field(default_factory=Vector3)
    head_rotation: Quaternion = field(default_factory=Quaternion)
    left_hand_rotation: Quaternion = field(default_factory=Quaternion)
    right_hand_rotation: Quaternion = field(default_factory=Quaternion)

    @property
    def positions(self) -> tuple[Vector3, Vector3, Vector3]:
        """Positions in wire order: head, left hand, right hand."""
        return (self.head_position, self.left_hand_position, self.right_hand_position)

    @property
    def rotations(self) -> tuple[Quaternion, Quaternion, Quaternion]:
        """Rotations in wire order: head, left hand, right hand."""
        return (self.head_rotation, self.left_hand_rotation, self.right_hand_rotation)


@dataclass(frozen=True)
class SessionConfig:
    """Effective send target. Always fully populated."""

    target_address: str
    send_port: int
    send_interval: float  # seconds


@dataclass(frozen=True)
class LocalTransform:
    """Position and rotation of the reconstructed proxy."""

    position: Vector3 = field(default_factory=Vector3)
    rotation: Quaternion = field(default_factory=Quaternion)
