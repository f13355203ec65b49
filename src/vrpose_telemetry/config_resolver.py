"""Resolution of the session target from the external text config file.

The file is plain UTF-8 text, one directive per line::

    # comment
    192.168.0.20            <- bare IPv4 literal, first one wins
    target_ip=192.168.0.30  <- key/value beats any bare literal
    send_port=17200
    send_interval=0.033     <- seconds; "33ms" and "0.033s" also accepted

Resolution never fails: missing files, unreadable files and bad lines all fall
back to the defaults field by field.
"""

from __future__ import annotations

import logging
import math
import os
import sys
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from .config import TelemetryConfig
from .errors import ConfigIOError, ConfigParseError
from .network_utils import is_ipv4
from .types import SessionConfig

logger = logging.getLogger(__name__)

DATA_DIR_ENV = "VRPOSE_TELEMETRY_DATA_DIR"

_TARGET_KEYS = ("target_ip", "targetip")
_PORT_KEYS = ("send_port", "sendport")
_INTERVAL_KEYS = ("send_interval", "sendinterval")

TEMPLATE_HEADER = """\
# vrpose-telemetry network config
#
# Put the receiver's IPv4 address on its own line, or use key=value lines:
#   target_ip=192.168.0.10
#   send_port=17200
#   send_interval=0.033
#
# Lines starting with '#' are ignored.
"""


@dataclass
class ParsedFile:
    """Values found in a config file. None means "not set by the file"."""

    target_address: str | None = None
    send_port: int | None = None
    send_interval: float | None = None
    skipped_lines: int = 0


def is_constrained_platform() -> bool:
    """True on Android-like hosts where the application root is read-only."""
    return (
        sys.platform == "android"
        or "ANDROID_ROOT" in os.environ
        or "ANDROID_DATA" in os.environ
    )


def user_data_dir() -> Path:
    """Per-user writable directory for the config file."""
    override = os.environ.get(DATA_DIR_ENV)
    if override:
        return Path(override)
    return Path.home() / ".vrpose-telemetry"


def app_root_dir() -> Path:
    """Directory the application runs from."""
    return Path.cwd()


def default_search_paths(filename: str) -> list[Path]:
    """Ordered candidate paths; the first entry is where a template is written."""
    data_path = user_data_dir() / filename
    app_path = app_root_dir() / filename
    if is_constrained_platform():
        return [data_path, app_path]
    return [app_path, data_path]


def render_template(example_address: str) -> str:
    """Contents of a freshly created config file."""
    return f"{TEMPLATE_HEADER}{example_address}\n"


def write_template(path: Path, example_address: str) -> None:
    """Create a commented template config at `path`.

    Raises:
        ConfigIOError: If the file cannot be written.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(render_template(example_address), encoding="utf-8")
    except OSError as e:
        raise ConfigIOError(path, f"cannot write template: {e}") from e
    logger.info(f"Created config template at {path}")


def read_config_text(path: Path) -> str:
    """Read the config file.

    Raises:
        ConfigIOError: If the file exists but cannot be read or decoded.
    """
    try:
        return path.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigIOError(path, f"cannot read: {e}") from e


def parse_port(value: str) -> int:
    """Parse a port number in 1-65535."""
    port = int(value.strip())
    if not 1 <= port <= 65535:
        raise ValueError(f"port out of range: {port}")
    return port


def parse_interval(value: str) -> float:
    """Parse a positive interval in seconds, with optional "s"/"ms" suffix."""
    text = value.strip().lower()
    scale = 1.0
    if text.endswith("ms"):
        text, scale = text[:-2], 0.001
    elif text.endswith("s"):
        text = text[:-1]
    interval = float(text.strip()) * scale
    if not math.isfinite(interval) or interval <= 0:
        raise ValueError(f"interval must be positive: {value!r}")
    return interval


def parse_config_line(
    line_no: int, raw: str
) -> tuple[str, str | int | float] | None:
    """Interpret one line.

    Returns:
        None for blank and comment lines, otherwise ``(kind, value)`` where
        kind is ``"target_kv"``, ``"target_bare"``, ``"send_port"`` or
        ``"send_interval"``.

    Raises:
        ConfigParseError: If the line cannot be applied.
    """
    line = raw.strip()
    if not line or line.startswith("#"):
        return None

    if "=" not in line:
        if is_ipv4(line):
            return "target_bare", line
        raise ConfigParseError(line_no, raw, "not a key=value pair or IPv4 address")

    key, _, value = line.partition("=")
    key = key.strip().lower()
    value = value.strip()

    if key in _TARGET_KEYS:
        if not is_ipv4(value):
            raise ConfigParseError(line_no, raw, "invalid IPv4 address")
        return "target_kv", value
    if key in _PORT_KEYS:
        try:
            return "send_port", parse_port(value)
        except ValueError as e:
            raise ConfigParseError(line_no, raw, str(e)) from e
    if key in _INTERVAL_KEYS:
        try:
            return "send_interval", parse_interval(value)
        except ValueError as e:
            raise ConfigParseError(line_no, raw, str(e)) from e

    raise ConfigParseError(line_no, raw, f"unknown key {key!r}")


def parse_config_text(text: str) -> ParsedFile:
    """Parse a whole file, skipping lines that do not apply."""
    parsed = ParsedFile()
    kv_target: str | None = None
    bare_target: str | None = None

    for line_no, raw in enumerate(text.splitlines(), start=1):
        try:
            entry = parse_config_line(line_no, raw)
        except ConfigParseError as e:
            parsed.skipped_lines += 1
            logger.debug(f"Skipping config line: {e}")
            continue
        if entry is None:
            continue

        kind, value = entry
        if kind == "target_kv":
            kv_target = value
        elif kind == "target_bare":
            if bare_target is None:
                bare_target = value
        elif kind == "send_port":
            parsed.send_port = value
        elif kind == "send_interval":
            parsed.send_interval = value

    parsed.target_address = kv_target if kv_target is not None else bare_target
    return parsed


class ConfigResolver:
    """Produces the effective SessionConfig from defaults and the external file.

    Example usage:
        resolver = ConfigResolver(load_default_config())
        session_config = resolver.resolve()
    """

    def __init__(
        self,
        defaults: TelemetryConfig,
        search_paths: Sequence[Path] | None = None,
        create_template: bool = True,
    ):
        self._defaults = defaults
        self._search_paths = (
            [Path(p) for p in search_paths]
            if search_paths is not None
            else default_search_paths(defaults.config_filename)
        )
        self._create_template = create_template
        self.last_source: Path | None = None

    @property
    def search_paths(self) -> list[Path]:
        """Candidate config paths in lookup order."""
        return list(self._search_paths)

    def default_session_config(self) -> SessionConfig:
        return SessionConfig(
            target_address=self._defaults.target_ip,
            send_port=self._defaults.send_port,
            send_interval=float(self._defaults.send_interval),
        )

    def find_config_file(self) -> Path | None:
        """First existing candidate, or None."""
        for path in self._search_paths:
            if path.is_file():
                return path
        return None

    def resolve(self) -> SessionConfig:
        """Merge defaults with the external file. Never raises."""
        base = self.default_session_config()
        self.last_source = None

        if not self._defaults.use_external_config or not self._search_paths:
            return base

        path = self.find_config_file()
        if path is None:
            if self._create_template:
                try:
                    write_template(self._search_paths[0], base.target_address)
                except ConfigIOError as e:
                    logger.warning(f"Config template not written: {e}")
            return base

        try:
            text = read_config_text(path)
        except ConfigIOError as e:
            logger.warning(f"Ignoring config file: {e}")
            return base

        parsed = parse_config_text(text)
        if parsed.skipped_lines:
            logger.info(f"{path}: skipped {parsed.skipped_lines} invalid line(s)")

        self.last_source = path
        resolved = SessionConfig(
            target_address=parsed.target_address or base.target_address,
            send_port=parsed.send_port if parsed.send_port is not None else base.send_port,
            send_interval=(
                parsed.send_interval
                if parsed.send_interval is not None
                else base.send_interval
            ),
        )
        logger.info(
            f"Resolved session config from {path}: {resolved.target_address}:"
            f"{resolved.send_port} every {resolved.send_interval:.3f}s"
        )
        return resolved
