"""
Telemetry session: outbound transport ownership, send cadence and reconnects.

A session is an explicitly constructed object with a single owner: create it
at startup, call init(), drive tick() from the host loop and close() it at
shutdown. Host environment callbacks (suspend/resume, focus) are forwarded to
on_application_pause() / on_application_focus().
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import replace
from typing import Any

from . import pose_codec
from .config import TelemetryConfig
from .config_resolver import ConfigResolver
from .errors import TelemetryError, TransportBindError
from .network_utils import get_device_path
from .transport import OscTransport, broadcast_once
from .types import Pose, SessionConfig

logger = logging.getLogger(__name__)

TransportFactory = Callable[..., Any]


class TelemetrySession:
    """
    Owns exactly one outbound transport bound to the current target.

    Transport replacement (dispose old, create new) happens under one lock, so
    tick() sees either the previous usable transport or the new one. When
    binding fails the session has no transport and tick() is a no-op until
    the next successful init() or reconnect().

    Example usage:
        defaults = load_default_config()
        session = TelemetrySession.from_config(defaults)
        session.init()

        while running:
            session.tick(time.monotonic(), source.get_pose())

        session.close()
    """

    SETTLE_DELAY = 0.5  # seconds for the network interface to come back
    DEFAULT_POSE_TOPIC = "/pose/transform"
    DEFAULT_DEVICE_TAG = "vrpose"

    def __init__(
        self,
        resolve: Callable[[], SessionConfig],
        pose_topic: str = DEFAULT_POSE_TOPIC,
        device_tag: str = DEFAULT_DEVICE_TAG,
        settle_delay: float = SETTLE_DELAY,
        transport_factory: TransportFactory | None = None,
        device_path_provider: Callable[[], str | None] | None = None,
    ):
        """
        Args:
            resolve: Returns the effective SessionConfig (re-run on reconnect)
            pose_topic: OSC address for periodic pose messages
            device_tag: Name used in the /setAddress/<tag> announcement
            settle_delay: Wait before re-initialising after a reconnect signal
            transport_factory: Callable(address, port, broadcast=False);
                defaults to OscTransport
            device_path_provider: Returns this device's "/a.b.c.d" path;
                defaults to get_device_path
        """
        self._resolve = resolve
        self._pose_topic = pose_topic
        self._device_tag = device_tag
        self._settle_delay = settle_delay
        self._transport_factory = transport_factory or OscTransport
        self._device_path_provider = device_path_provider or get_device_path

        self._lock = threading.RLock()
        self._transport = None
        self._config: SessionConfig | None = None
        self._current_target: str | None = None
        self._last_send_time: float | None = None
        self._send_enabled = True
        self._send_failing = False
        self._device_path: str | None = None
        self._closed = False

        # Reconnect supersession
        self._reconnect_generation = 0
        self._reconnect_cancel: threading.Event | None = None
        self._reconnect_thread: threading.Thread | None = None

        self._stats_lock = threading.Lock()
        self._stats = {
            "inits": 0,
            "poses_sent": 0,
            "send_errors": 0,
            "signals_sent": 0,
            "reconnects": 0,
        }

    @classmethod
    def from_config(
        cls, config: TelemetryConfig, resolver: ConfigResolver | None = None, **kwargs
    ) -> "TelemetrySession":
        """Build a session from application settings."""
        resolver = resolver or ConfigResolver(config)
        kwargs.setdefault("pose_topic", config.pose_topic)
        kwargs.setdefault("device_tag", config.device_tag)
        kwargs.setdefault("settle_delay", config.settle_delay)
        return cls(resolver.resolve, **kwargs)

    # Properties
    @property
    def config(self) -> SessionConfig | None:
        """Config the current transport was bound with."""
        return self._config

    @property
    def current_target(self) -> str | None:
        """Address of the live transport, None when unbound."""
        return self._current_target

    @property
    def has_transport(self) -> bool:
        return self._transport is not None

    @property
    def device_path(self) -> str | None:
        """Path-style identity announced at init, e.g. "/192.168.0.5"."""
        return self._device_path

    @property
    def pose_topic(self) -> str:
        return self._pose_topic

    @property
    def send_enabled(self) -> bool:
        return self._send_enabled

    @property
    def last_send_time(self) -> float | None:
        return self._last_send_time

    @property
    def reconnect_pending(self) -> bool:
        thread = self._reconnect_thread
        return thread is not None and thread.is_alive()

    # Send control
    def enable_send(self) -> None:
        self._send_enabled = True

    def disable_send(self) -> None:
        self._send_enabled = False

    def set_send_enabled(self, enabled: bool) -> None:
        self._send_enabled = bool(enabled)

    def _increment_stat(self, name: str, amount: int = 1) -> None:
        with self._stats_lock:
            self._stats[name] += amount

    # Transport lifecycle
    def _replace_transport(self, address: str, port: int) -> None:
        """Dispose the current transport, then bind a new one. Caller holds the lock."""
        old = self._transport
        self._transport = None
        self._current_target = None
        if old is not None:
            old.close()

        self._transport = self._transport_factory(address, port)
        self._current_target = address

    def _bind(self, config: SessionConfig) -> None:
        with self._lock:
            if self._closed:
                raise TelemetryError("Session is closed")
            self._config = config
            self._device_path = self._device_path_provider()
            try:
                self._replace_transport(config.target_address, config.send_port)
            except TransportBindError:
                logger.error(
                    f"Failed to bind {config.target_address}:{config.send_port}; "
                    "sending paused until the next init/reconnect"
                )
                raise
            self._last_send_time = None
            self._send_failing = False
        self._increment_stat("inits")
        logger.info(
            f"Initialized telemetry to {config.target_address}:{config.send_port} "
            f"(interval {config.send_interval:.3f}s)"
        )

    def _announce(self, port: int) -> bool:
        """Broadcast this device's address so listeners can register the sender."""
        payload = (self._device_path or "").lstrip("/") or "unknown"
        topic = f"/setAddress/{self._device_tag}"
        return broadcast_once(
            topic, payload, port, transport_factory=self._transport_factory
        )

    def init(self, config: SessionConfig | None = None) -> SessionConfig:
        """
        Bind a fresh transport and announce this device.

        Args:
            config: Config to use; resolved when omitted

        Returns:
            The config the session was bound with.

        Raises:
            TransportBindError: If the target cannot be bound.
        """
        if config is None:
            config = self._resolve()
        self._bind(config)
        self._announce(config.send_port)
        return config

    def set_target(self, address: str) -> None:
        """
        Point the session at a new address on the same port.

        No-op when the address is unchanged.

        Raises:
            TelemetryError: If the session was never initialised.
            TransportBindError: If the new target cannot be bound.
        """
        with self._lock:
            if address == self._current_target:
                return
            if self._config is None:
                raise TelemetryError("set_target() called before init()")

            logger.info(f"SetTarget: {address}")
            self._replace_transport(address, self._config.send_port)
            self._config = replace(self._config, target_address=address)

    # Sending
    def _send_locked(self, topic: str, pose: Pose) -> bool:
        transport = self._transport
        if transport is None:
            return False
        try:
            transport.send(topic, pose_codec.encode(pose))
        except OSError as e:
            self._increment_stat("send_errors")
            if not self._send_failing:
                logger.warning(f"Send to {self._current_target} failed: {e}")
            self._send_failing = True
            return False
        if self._send_failing:
            logger.info(f"Send to {self._current_target} recovered")
            self._send_failing = False
        return True

    def tick(self, now: float, pose: Pose) -> bool:
        """
        Send `pose` if sending is enabled and the interval has elapsed.

        Args:
            now: Monotonic time in seconds
            pose: Pose to send

        Returns:
            True if a message was sent this tick.
        """
        if not self._send_enabled:
            return False

        with self._lock:
            config = self._config
            if self._transport is None or config is None:
                return False
            if (
                self._last_send_time is not None
                and now - self._last_send_time < config.send_interval
            ):
                return False

            self._last_send_time = now
            sent = self._send_locked(self._pose_topic, pose)

        if sent:
            self._increment_stat("poses_sent")
        return sent

    def send_pose(self, pose: Pose, topic: str) -> bool:
        """Send `pose` on `topic` immediately, outside the periodic cadence."""
        with self._lock:
            sent = self._send_locked(topic, pose)
        if sent:
            self._increment_stat("poses_sent")
        return sent

    def broadcast_signal(self, topic: str, payload: str, port: int) -> bool:
        """
        One-shot broadcast on a transient transport.

        Never touches the periodic transport, so it can run concurrently with
        tick().
        """
        sent = broadcast_once(
            topic, payload, port, transport_factory=self._transport_factory
        )
        if sent:
            self._increment_stat("signals_sent")
            logger.info(f"Broadcast: {topic} {payload}")
        return sent

    # Reconnect
    def reconnect(self) -> threading.Thread | None:
        """
        Re-resolve config and re-initialise after the settle delay.

        A newer call cancels any pending one, so only the latest reconnect runs
        init(). The previous transport keeps serving ticks until it is replaced.

        Returns:
            The worker thread, or None if the session is closed.
        """
        with self._lock:
            if self._closed:
                return None
            self._reconnect_generation += 1
            generation = self._reconnect_generation
            if self._reconnect_cancel is not None:
                self._reconnect_cancel.set()
            cancel = threading.Event()
            self._reconnect_cancel = cancel
            thread = threading.Thread(
                target=self._delayed_init,
                args=(generation, cancel),
                name=f"ReconnectThread-{generation}",
                daemon=True,
            )
            self._reconnect_thread = thread

        self._increment_stat("reconnects")
        logger.info("Reconnect requested; reinitializing network after settle delay")
        thread.start()
        return thread

    def _delayed_init(self, generation: int, cancel: threading.Event) -> None:
        if cancel.wait(self._settle_delay):
            logger.debug(f"Reconnect #{generation} superseded")
            return

        # Resolving reads the config file; keep it outside the transport lock
        config = self._resolve()

        with self._lock:
            if self._closed or generation != self._reconnect_generation:
                logger.debug(f"Reconnect #{generation} superseded")
                return
            self._reconnect_cancel = None
            try:
                self._bind(config)
            except TelemetryError as e:
                logger.error(f"Reconnect failed: {e}")
                return

        self._announce(config.send_port)
        logger.info("Network reinitialized successfully")

    def wait_for_reconnect(self, timeout: float | None = None) -> bool:
        """Block until the latest reconnect finishes. Returns False on timeout."""
        thread = self._reconnect_thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    # Host lifecycle
    def on_application_pause(self, paused: bool) -> None:
        """Host suspend/resume callback; resuming triggers a reconnect."""
        if not paused:
            logger.info("Application resumed from pause - reinitializing network...")
            self.reconnect()

    def on_application_focus(self, has_focus: bool) -> None:
        """Host focus callback; regaining focus triggers a reconnect."""
        if has_focus:
            logger.info("Application gained focus - reinitializing network...")
            self.reconnect()

    # Teardown
    def close(self) -> None:
        """Cancel pending reconnects and dispose the transport."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if self._reconnect_cancel is not None:
                self._reconnect_cancel.set()
                self._reconnect_cancel = None
            transport = self._transport
            self._transport = None
            self._current_target = None
            if transport is not None:
                transport.close()
        logger.info(f"Telemetry session closed. Stats: {self.get_stats()}")

    def __enter__(self) -> "TelemetrySession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def get_stats(self) -> dict[str, int]:
        """Diagnostic counters."""
        with self._stats_lock:
            return self._stats.copy()
