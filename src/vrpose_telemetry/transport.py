"""
UDP transport carrying OSC messages.

Each OscTransport owns one datagram socket connected to one endpoint. Sends
are fire-and-forget; there is no acknowledgement.
"""

import logging
import socket

from pythonosc.osc_message_builder import BuildError, OscMessageBuilder

from .errors import TransportBindError
from .network_utils import BROADCAST_ADDRESS, is_ipv4

logger = logging.getLogger(__name__)


def build_osc_message(topic: str, payload: str) -> bytes:
    """Encode a single-string OSC message."""
    builder = OscMessageBuilder(address=topic)
    builder.add_arg(payload, OscMessageBuilder.ARG_TYPE_STRING)
    try:
        return builder.build().dgram
    except BuildError as e:
        raise ValueError(f"Cannot build OSC message for {topic!r}: {e}") from e


class OscTransport:
    """
    Outbound OSC-over-UDP endpoint.

    Example usage:
        transport = OscTransport("192.168.0.10", 17200)
        transport.send("/pose/transform", body)
        transport.close()
    """

    def __init__(self, address: str, port: int, broadcast: bool = False):
        """
        Create the socket and connect it to the endpoint.

        Args:
            address: Target IPv4 address
            port: Target UDP port
            broadcast: Enable SO_BROADCAST for limited-broadcast targets

        Raises:
            TransportBindError: If the address or port is invalid, or the OS
                refuses the socket (e.g. network unreachable).
        """
        self.address = address
        self.port = port
        self.broadcast = broadcast
        self._sock: socket.socket | None = None

        if not is_ipv4(address):
            raise TransportBindError(address, port, "not an IPv4 address")
        if not isinstance(port, int) or not 1 <= port <= 65535:
            raise TransportBindError(address, port, "port out of range")

        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            if broadcast:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            sock.connect((address, port))
        except OSError as e:
            sock.close()
            raise TransportBindError(address, port, str(e)) from e
        self._sock = sock

    @property
    def closed(self) -> bool:
        return self._sock is None

    def send(self, topic: str, payload: str) -> None:
        """
        Send one OSC message.

        Raises:
            OSError: If the socket is closed or the OS rejects the datagram.
        """
        if self._sock is None:
            raise OSError(f"Transport to {self.address}:{self.port} is closed")
        self._sock.send(build_osc_message(topic, payload))

    def close(self) -> None:
        """Release the socket. Safe to call more than once."""
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    def __enter__(self) -> "OscTransport":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"OscTransport({self.address}:{self.port}, {state})"


def broadcast_once(
    topic: str,
    payload: str,
    port: int,
    address: str = BROADCAST_ADDRESS,
    transport_factory=OscTransport,
) -> bool:
    """
    Send one message on a transient broadcast transport.

    Returns:
        True if the datagram was handed to the OS, False otherwise.
    """
    try:
        with transport_factory(address, port, broadcast=True) as transport:
            transport.send(topic, payload)
    except PermissionError:
        # Broadcast not permitted in sandboxed environments
        logger.debug(f"Broadcast {topic} to port {port} not permitted")
        return False
    except (TransportBindError, OSError, ValueError) as e:
        logger.warning(f"Broadcast {topic} to port {port} failed: {e}")
        return False
    logger.debug(f"Broadcast: {topic} {payload!r} -> {address}:{port}")
    return True
