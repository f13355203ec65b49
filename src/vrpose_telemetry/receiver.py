"""
PoseReceiver - OSC listener feeding the pose reconstructor.

Listens for pose messages on a UDP port, decodes them and hands them to a
PoseReconstructor. Self-announce broadcasts (/setAddress/<tag>) from senders
are surfaced through the on_sender_announced event.
"""

import logging
import threading

from pythonosc.dispatcher import Dispatcher
from pythonosc.osc_server import BlockingOSCUDPServer

from .events import EventHandler
from .reconstructor import PoseReconstructor

logger = logging.getLogger(__name__)

ANNOUNCE_PREFIX = "/setAddress/"


class PoseReceiver:
    """
    Manages OSC reception in a background thread.

    Example usage:
        reconstructor = PoseReconstructor(blend_ratio=1.0)
        receiver = PoseReceiver(reconstructor, port=20001)
        receiver.start()

        while running:
            transform = reconstructor.tick(dt)

        receiver.stop()
    """

    def __init__(
        self,
        reconstructor: PoseReconstructor,
        port: int = 20001,
        host: str = "0.0.0.0",
        pose_topic: str = "/pose/transform",
    ):
        """
        Args:
            reconstructor: Destination for decoded poses
            port: UDP port to listen on (0 picks a free port)
            host: Interface to bind
            pose_topic: OSC address carrying pose messages
        """
        self.reconstructor = reconstructor
        self.host = host
        self.pose_topic = pose_topic
        self._requested_port = port
        self._server: BlockingOSCUDPServer | None = None
        self._thread: threading.Thread | None = None
        self._running = False
        self._lock = threading.Lock()

        self.on_pose_received = EventHandler("pose_received")
        self.on_sender_announced = EventHandler("sender_announced")

        self.dispatcher = Dispatcher()
        self.dispatcher.map(pose_topic, self._handle_pose)
        self.dispatcher.set_default_handler(self._handle_other)

        self._senders: dict[str, str] = {}
        self._stats = {
            "messages_received": 0,
            "poses_decoded": 0,
            "decode_errors": 0,
            "announcements": 0,
            "ignored": 0,
            "listener_errors": 0,
        }

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def port(self) -> int:
        """Bound port once started, otherwise the requested port."""
        if self._server is not None:
            return self._server.server_address[1]
        return self._requested_port

    @property
    def senders(self) -> dict[str, str]:
        """Announced senders: device tag -> address."""
        with self._lock:
            return dict(self._senders)

    def start(self) -> "PoseReceiver":
        """Bind the UDP socket and start the receive thread."""
        if self._running:
            return self

        try:
            self._server = BlockingOSCUDPServer((self.host, self._requested_port), self.dispatcher)
        except OSError as e:
            logger.error(f"Failed to bind pose receiver on {self.host}:{self._requested_port}: {e}")
            raise

        self._running = True
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            kwargs={"poll_interval": 0.1},
            name="PoseReceiverThread",
            daemon=True,
        )
        self._thread.start()
        logger.info(f"Pose receiver listening on {self.host}:{self.port} ({self.pose_topic})")
        return self

    def stop(self) -> None:
        """Stop the receive thread and close the socket."""
        if not self._running:
            return
        self._running = False

        if self._server is not None:
            self._server.shutdown()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=1.0)
        if self._server is not None:
            self._server.server_close()
            self._server = None
        self._thread = None
        logger.info(f"Pose receiver stopped. Stats: {self.get_stats()}")

    def __enter__(self) -> "PoseReceiver":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def _increment_stat(self, name: str) -> None:
        with self._lock:
            self._stats[name] += 1

    def _handle_pose(self, address: str, *args) -> None:
        self._increment_stat("messages_received")
        if not args or not isinstance(args[0], str):
            self._increment_stat("decode_errors")
            logger.warning(f"{address}: expected one string argument, got {args!r}")
            return

        pose = self.reconstructor.ingest_message(args[0])
        if pose is None:
            self._increment_stat("decode_errors")
            return

        self._increment_stat("poses_decoded")
        if self.on_pose_received.invoke(pose):
            self._increment_stat("listener_errors")

    def _handle_other(self, address: str, *args) -> None:
        self._increment_stat("messages_received")
        if address.startswith(ANNOUNCE_PREFIX) and args:
            tag = address[len(ANNOUNCE_PREFIX):]
            sender = str(args[0])
            with self._lock:
                self._senders[tag] = sender
                self._stats["announcements"] += 1
            logger.info(f"Sender announced: {tag} at {sender}")
            if self.on_sender_announced.invoke(tag, sender):
                self._increment_stat("listener_errors")
            return

        self._increment_stat("ignored")
        logger.debug(f"Ignoring message on {address}")

    def get_stats(self) -> dict[str, int]:
        """Diagnostic counters."""
        with self._lock:
            return self._stats.copy()
