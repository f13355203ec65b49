"""
Text codec for the pose wire format.

Layout (positions block, then rotations block):

    hx#hy#hz@lx#ly#lz@rx#ry#rz%hqx#hqy#hqz#hqw@lqx#...@rqx#...

Every number carries exactly four fractional digits.
"""

import logging
import math
from typing import List

from .errors import DecodeError
from .types import Pose, Quaternion, Vector3

logger = logging.getLogger(__name__)

COMPONENT_DELIMITER = "#"
POINT_DELIMITER = "@"
BLOCK_DELIMITER = "%"
DECIMALS = 4

_POINT_COUNT = 3


def _format_components(values) -> str:
    return COMPONENT_DELIMITER.join(f"{v:.{DECIMALS}f}" for v in values)


def encode(pose: Pose) -> str:
    """Serialize a pose to the wire text format."""
    position = POINT_DELIMITER.join(_format_components(p) for p in pose.positions)
    rotation = POINT_DELIMITER.join(_format_components(q) for q in pose.rotations)
    return f"{position}{BLOCK_DELIMITER}{rotation}"


def _parse_point(token: str, arity: int, what: str) -> List[float]:
    parts = token.split(COMPONENT_DELIMITER)
    if len(parts) < arity:
        raise DecodeError(f"{what}: expected {arity} components, got {len(parts)}")
    values = []
    for part in parts[:arity]:
        try:
            value = float(part)
        except ValueError:
            raise DecodeError(f"{what}: non-numeric component {part!r}") from None
        if not math.isfinite(value):
            raise DecodeError(f"{what}: non-finite component {part!r}")
        values.append(value)
    return values


def _parse_block(block: str, arity: int, kind: str) -> List[List[float] | None]:
    tokens = block.split(POINT_DELIMITER)
    points: List[List[float] | None] = [_parse_point(tokens[0], arity, f"{kind}[0]")]
    for index in range(1, _POINT_COUNT):
        if index >= len(tokens):
            points.append(None)
            continue
        # Hand points are optional for consumers of the head
        try:
            points.append(_parse_point(tokens[index], arity, f"{kind}[{index}]"))
        except DecodeError as e:
            logger.debug(f"Hand point replaced by default: {e}")
            points.append(None)
    return points


def decode(message: str) -> Pose:
    """
    Parse a wire message into a Pose.

    Only the head point is mandatory. Missing hand points decode as zero
    position and identity rotation, and so do malformed or non-finite ones.

    Raises:
        DecodeError: If the message does not match the format.
    """
    if not isinstance(message, str) or not message:
        raise DecodeError("empty message")

    blocks = message.split(BLOCK_DELIMITER)
    if len(blocks) < 2:
        raise DecodeError(f"expected position and rotation blocks, got {len(blocks)}")

    positions = _parse_block(blocks[0], 3, "position")
    rotations = _parse_block(blocks[1], 4, "rotation")

    pos = [Vector3(*p) if p is not None else Vector3() for p in positions]
    rot = [Quaternion(*q) if q is not None else Quaternion() for q in rotations]
    return Pose(
        head_position=pos[0],
        left_hand_position=pos[1],
        right_hand_position=pos[2],
        head_rotation=rot[0],
        left_hand_rotation=rot[1],
        right_hand_rotation=rot[2],
    )
