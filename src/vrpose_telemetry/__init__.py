"""
vrpose-telemetry

Streams a VR participant's head and hand pose over UDP/OSC and reconstructs a
smoothly moving proxy of that participant on the receiving side.

Main Classes:
    TelemetrySession: Send side, owns the transport and the send cadence
    ConfigResolver: Resolves the send target from the external config file
    PoseReceiver: Receive side OSC listener
    PoseReconstructor: Blends and smooths received poses

Examples:
    # Run via CLI (after installation)
    vrpose-telemetry send --pattern circle
    vrpose-telemetry receive --blend-ratio 1.0

    # Use programmatically
    from vrpose_telemetry import TelemetrySession, load_default_config
    session = TelemetrySession.from_config(load_default_config())
    session.init()
    session.tick(time.monotonic(), pose)
"""

from . import pose_codec
from .config import TelemetryConfig, load_default_config
from .config_resolver import ConfigResolver
from .errors import (
    ConfigIOError,
    ConfigParseError,
    DecodeError,
    TelemetryError,
    TransportBindError,
)
from .receiver import PoseReceiver
from .reconstructor import PoseReconstructor, ReconstructorState
from .session import TelemetrySession
from .tracking import ReferenceFrame, RelativePoseStream, SimulatedPoseSource
from .types import LocalTransform, Pose, Quaternion, SessionConfig, Vector3

__all__ = [
    # Send side
    "TelemetrySession",
    "ConfigResolver",
    "RelativePoseStream",
    "ReferenceFrame",
    "SimulatedPoseSource",
    # Receive side
    "PoseReceiver",
    "PoseReconstructor",
    "ReconstructorState",
    # Codec
    "pose_codec",
    # Config
    "TelemetryConfig",
    "load_default_config",
    # Data types
    "Pose",
    "Vector3",
    "Quaternion",
    "LocalTransform",
    "SessionConfig",
    # Errors
    "TelemetryError",
    "ConfigIOError",
    "ConfigParseError",
    "DecodeError",
    "TransportBindError",
]

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("vrpose-telemetry")
except PackageNotFoundError:
    __version__ = "unknown"
