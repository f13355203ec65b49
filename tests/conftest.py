"""Shared fixtures for vrpose-telemetry tests."""

from __future__ import annotations

import threading

import pytest

from vrpose_telemetry.errors import TransportBindError
from vrpose_telemetry.types import Pose, Quaternion, SessionConfig, Vector3


class FakeTransport:
    """In-memory stand-in for OscTransport."""

    def __init__(self, registry: "TransportRegistry", address: str, port: int, broadcast: bool = False):
        self.registry = registry
        self.address = address
        self.port = port
        self.broadcast = broadcast
        self.sent: list[tuple[str, str]] = []
        self.closed = False

    def send(self, topic: str, payload: str) -> None:
        if self.closed:
            raise OSError("send on closed transport")
        if self.registry.fail_sends:
            raise OSError("network unreachable")
        self.sent.append((topic, payload))

    def close(self) -> None:
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class TransportRegistry:
    """Transport factory that records every transport it creates."""

    def __init__(self):
        self.created: list[FakeTransport] = []
        self.fail_addresses: set[str] = set()
        self.fail_sends = False
        self._lock = threading.Lock()

    def __call__(self, address: str, port: int, broadcast: bool = False) -> FakeTransport:
        if address in self.fail_addresses:
            raise TransportBindError(address, port, "unreachable")
        transport = FakeTransport(self, address, port, broadcast)
        with self._lock:
            self.created.append(transport)
        return transport

    @property
    def unicast(self) -> list[FakeTransport]:
        return [t for t in self.created if not t.broadcast]

    @property
    def broadcasts(self) -> list[FakeTransport]:
        return [t for t in self.created if t.broadcast]

    def live_unicast(self) -> list[FakeTransport]:
        return [t for t in self.unicast if not t.closed]


@pytest.fixture
def transports() -> TransportRegistry:
    return TransportRegistry()


@pytest.fixture
def session_config() -> SessionConfig:
    return SessionConfig(target_address="10.0.0.5", send_port=17200, send_interval=0.033)


@pytest.fixture
def sample_pose() -> Pose:
    return Pose(
        head_position=Vector3(0.1234, 1.6, -0.5),
        left_hand_position=Vector3(-0.3, 1.1, 0.2),
        right_hand_position=Vector3(0.3, 1.05, 0.25),
        head_rotation=Quaternion(0.0, 0.3826834, 0.0, 0.9238795),
        left_hand_rotation=Quaternion(0.1, 0.2, 0.3, 0.9273618),
        right_hand_rotation=Quaternion(0.0, 0.0, 0.0, 1.0),
    )
