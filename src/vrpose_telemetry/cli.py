"""
Command-line interface for vrpose-telemetry.

Sub-commands:
    send         stream a simulated participant to the resolved target
    receive      listen for poses and log the reconstructed transform
    signal       send one registered trigger broadcast
    init-config  write the external config template
"""

import argparse
import sys
import time
import tomllib
from functools import lru_cache
from pathlib import Path

from loguru import logger

from .config import (
    ConfigurationError,
    DefaultConfigError,
    TelemetryConfig,
    create_config_from_args,
)
from .config_resolver import ConfigResolver, default_search_paths, write_template
from .errors import ConfigIOError, TransportBindError
from .logging_utils import configure_logging, shutdown_logging
from .receiver import PoseReceiver
from .reconstructor import PoseReconstructor
from .session import TelemetrySession
from .signals import SIGNALS, get_signal
from .tracking import ReferenceFrame, RelativePoseStream, SimulatedPoseSource

STATUS_LOG_INTERVAL = 1.0
STATS_LOG_INTERVAL = 10.0
RECEIVE_TICK = 1.0 / 60.0


@lru_cache(maxsize=1)
def get_version() -> str:
    """Installed distribution version, or "unknown" when running from source."""
    import importlib.metadata as im

    try:
        return im.version("vrpose-telemetry")
    except im.PackageNotFoundError:
        return "unknown"


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", type=Path, help="User TOML settings file")
    parser.add_argument("--log-dir", type=Path, help="Enable JSON file logging here")
    parser.add_argument(
        "--log-level",
        dest="log_level_console",
        choices=["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"],
        help="Console log level (default: INFO)",
    )
    parser.add_argument(
        "--log-json",
        dest="log_json_console",
        action="store_true",
        help="Emit console logs as JSON",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vrpose-telemetry",
        description="VR head/hand pose telemetry over UDP/OSC",
    )
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"%(prog)s {get_version()}",
        help="Show version and exit",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    send = subparsers.add_parser("send", help="Stream a simulated pose")
    _add_common_arguments(send)
    send.add_argument("--target-ip", help="Default target address")
    send.add_argument("--send-port", type=int, help="Default target port")
    send.add_argument(
        "--no-external-config",
        action="store_true",
        help="Ignore the external network_config.txt",
    )
    send.add_argument(
        "--pattern",
        choices=SimulatedPoseSource.PATTERNS,
        default="circle",
        help="Simulated movement (default: circle)",
    )
    send.add_argument(
        "--duration", type=float, default=None, help="Stop after N seconds"
    )
    send.add_argument(
        "--relative",
        action="store_true",
        help="Also stream the pose relative to the origin on the relative topic",
    )

    receive = subparsers.add_parser("receive", help="Receive and reconstruct poses")
    _add_common_arguments(receive)
    receive.add_argument("--port", dest="receive_port", type=int, help="UDP port")
    receive.add_argument("--host", default="0.0.0.0", help="Interface to bind")
    receive.add_argument("--blend-ratio", type=float, help="0=rest pose, 1=network pose")
    receive.add_argument("--smoothing-time", type=float, help="Seconds")
    receive.add_argument(
        "--duration", type=float, default=None, help="Stop after N seconds"
    )

    signal = subparsers.add_parser("signal", help="Send a trigger broadcast")
    _add_common_arguments(signal)
    signal.add_argument("name", choices=sorted(SIGNALS), help="Registered signal")

    init_config = subparsers.add_parser(
        "init-config", help="Write the external config template"
    )
    _add_common_arguments(init_config)
    init_config.add_argument(
        "path", nargs="?", type=Path, help="Destination (default: primary search path)"
    )
    init_config.add_argument(
        "--force", action="store_true", help="Overwrite an existing file"
    )

    return parser


def _expired(start: float, duration: float | None) -> bool:
    return duration is not None and time.monotonic() - start >= duration


def run_send(config: TelemetryConfig, args: argparse.Namespace) -> int:
    resolver = ConfigResolver(config)
    session = TelemetrySession.from_config(config, resolver=resolver)
    source = SimulatedPoseSource(pattern=args.pattern)
    relative = None
    if args.relative:
        relative = RelativePoseStream.from_config(
            session, source, ReferenceFrame(), config, auto_send=True
        )

    try:
        session_config = session.init()
    except TransportBindError as e:
        logger.error(str(e))
        session.close()
        return 1

    logger.info("=" * 60)
    logger.info(f"  Target: {session_config.target_address}:{session_config.send_port}")
    logger.info(f"  Interval: {session_config.send_interval:.3f}s")
    logger.info(f"  Topic: {config.pose_topic}")
    if relative is not None:
        logger.info(
            f"  Relative topic: {relative.topic} every {relative.interval:.3f}s "
            f"(scale {relative.scale})"
        )
    if resolver.last_source:
        logger.info(f"  Config file: {resolver.last_source}")
    logger.info(f"  Device: {session.device_path or 'unknown'}")
    logger.info("=" * 60)

    start = time.monotonic()
    last_status = start
    try:
        with session:
            while not _expired(start, args.duration):
                now = time.monotonic()
                session.tick(now, source.get_pose(now - start))
                if relative is not None:
                    relative.tick(now, now - start)
                if now - last_status >= STATS_LOG_INTERVAL:
                    logger.info(f"Stats: {session.get_stats()}")
                    last_status = now
                time.sleep(min(session_config.send_interval / 4, 0.01))
    except KeyboardInterrupt:
        logger.info("Received interrupt signal (Ctrl+C)...")
    return 0


def run_receive(config: TelemetryConfig, args: argparse.Namespace) -> int:
    reconstructor = PoseReconstructor(
        smoothing_time=config.smoothing_time, blend_ratio=config.blend_ratio
    )
    receiver = PoseReceiver(
        reconstructor,
        port=config.receive_port,
        host=args.host,
        pose_topic=config.pose_topic,
    )
    try:
        receiver.start()
    except OSError:
        return 1

    start = last_tick = last_status = time.monotonic()
    try:
        while not _expired(start, args.duration):
            time.sleep(RECEIVE_TICK)
            now = time.monotonic()
            transform = reconstructor.tick(now - last_tick)
            last_tick = now
            if now - last_status >= STATUS_LOG_INTERVAL:
                p, q = transform.position, transform.rotation
                logger.info(
                    f"[{reconstructor.state.value}] pos=({p.x:.3f}, {p.y:.3f}, {p.z:.3f}) "
                    f"rot=({q.x:.3f}, {q.y:.3f}, {q.z:.3f}, {q.w:.3f})"
                )
                last_status = now
    except KeyboardInterrupt:
        logger.info("Received interrupt signal (Ctrl+C)...")
    finally:
        receiver.stop()
    return 0


def run_signal(config: TelemetryConfig, args: argparse.Namespace) -> int:
    signal = get_signal(args.name)
    session = TelemetrySession.from_config(config)
    sent = session.broadcast_signal(signal.topic, signal.payload, signal.port)
    session.close()
    return 0 if sent else 1


def run_init_config(config: TelemetryConfig, args: argparse.Namespace) -> int:
    path = args.path or default_search_paths(config.config_filename)[0]
    if path.exists() and not args.force:
        logger.error(f"{path} already exists (use --force to overwrite)")
        return 1
    try:
        write_template(path, config.target_ip)
    except ConfigIOError as e:
        logger.error(str(e))
        return 1
    print(path)
    return 0


COMMANDS = {
    "send": run_send,
    "receive": run_receive,
    "signal": run_signal,
    "init-config": run_init_config,
}


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config, overrides = create_config_from_args(args)
    except (DefaultConfigError, ConfigurationError, FileNotFoundError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    except tomllib.TOMLDecodeError as e:
        print(f"ERROR: Invalid TOML in {args.config}: {e}", file=sys.stderr)
        return 1

    configure_logging(
        log_dir=config.log_dir,
        console_level=config.log_level_console,
        console_json=config.log_json_console,
        rotation=config.log_rotation,
        retention=config.log_retention,
    )
    for override in overrides:
        logger.info(
            f"Config override: {override.key} = {override.new_value!r} "
            f"(default {override.default_value!r})"
        )

    try:
        return COMMANDS[args.command](config, args)
    finally:
        shutdown_logging()


def cli_main() -> None:
    """Console script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        sys.exit(0)
