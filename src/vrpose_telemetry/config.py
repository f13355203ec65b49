"""Application settings for vrpose-telemetry.

This module provides TOML-based settings with CLI override capability. The
runtime session target is resolved separately from the external text file by
:mod:`vrpose_telemetry.config_resolver`.

Configuration priority: CLI args > user config > default config
"""

from __future__ import annotations

import argparse
import importlib.resources
import logging
import math
import tomllib
from dataclasses import dataclass, fields
from dataclasses import replace as dataclass_replace
from pathlib import Path
from typing import Any, NamedTuple

from .network_utils import is_ipv4

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised when configuration validation fails.

    Attributes:
        errors: List of validation error messages.
    """

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__(f"Configuration validation failed: {'; '.join(errors)}")


class DefaultConfigError(Exception):
    """Raised when the bundled default configuration cannot be loaded."""

    def __init__(self, message: str) -> None:
        super().__init__(f"Failed to load default configuration: {message}")


class ConfigOverride(NamedTuple):
    """A setting whose value differs from the bundled default."""

    key: str
    default_value: Any
    new_value: Any


@dataclass(frozen=True)
class TelemetryConfig:
    """All application settings. Defaults come from default.toml."""

    # Session target defaults
    target_ip: str
    send_port: int
    send_interval: float

    # Receive side
    receive_port: int

    # External text config
    use_external_config: bool
    config_filename: str

    # Identity and topics
    device_tag: str
    pose_topic: str
    relative_pose_topic: str
    relative_send_interval: float
    position_scale: float

    # Reconnect
    settle_delay: float

    # Reconstruction
    smoothing_time: float
    blend_ratio: float

    # Logging
    log_dir: str | None
    log_level_console: str
    log_json_console: bool
    log_rotation: str | None
    log_retention: str | None


_VALID_KEYS: set[str] = {f.name for f in fields(TelemetryConfig)}
_OPTIONAL_STRING_KEYS = ("log_dir", "log_rotation", "log_retention")


def load_default_toml_data() -> dict[str, Any]:
    """Load default.toml from the package.

    Raises:
        DefaultConfigError: If default.toml cannot be found or parsed.
    """
    try:
        files = importlib.resources.files("vrpose_telemetry")
        content = files.joinpath("default.toml").read_bytes()
        return tomllib.loads(content.decode("utf-8"))
    except FileNotFoundError as e:
        raise DefaultConfigError(f"default.toml not found in package: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise DefaultConfigError(f"Invalid TOML syntax in default.toml: {e}") from e
    except Exception as e:
        raise DefaultConfigError(f"Failed to read default.toml: {e}") from e


def load_config_from_toml(path: Path) -> dict[str, Any]:
    """Load a user TOML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        tomllib.TOMLDecodeError: If the TOML syntax is invalid.
    """
    with open(path, "rb") as f:
        return tomllib.load(f)


def process_toml_config(toml_data: dict[str, Any]) -> dict[str, Any]:
    """Keep known keys, turning empty optional strings into None."""
    result: dict[str, Any] = {}
    for key, value in toml_data.items():
        if key not in _VALID_KEYS:
            continue
        if key in _OPTIONAL_STRING_KEYS and value == "":
            value = None
        result[key] = value
    return result


def get_unknown_keys(toml_data: dict[str, Any]) -> list[str]:
    """Keys in `toml_data` that are not settings (likely typos)."""
    return [key for key in toml_data if key not in _VALID_KEYS]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_config(config: TelemetryConfig) -> list[str]:
    """Validate setting values.

    Returns:
        List of error messages. Empty list if configuration is valid.
    """
    errors: list[str] = []

    if not isinstance(config.target_ip, str) or not is_ipv4(config.target_ip):
        errors.append(f"target_ip must be an IPv4 address, got {config.target_ip!r}")

    # receive_port 0 lets the OS pick a free port
    for field_name, lowest in (("send_port", 1), ("receive_port", 0)):
        port = getattr(config, field_name)
        if not isinstance(port, int) or isinstance(port, bool) or not lowest <= port <= 65535:
            errors.append(f"{field_name} must be between {lowest} and 65535, got {port!r}")

    for field_name in ("send_interval", "relative_send_interval", "position_scale"):
        value = getattr(config, field_name)
        if not _is_number(value) or not math.isfinite(value) or value <= 0:
            errors.append(f"{field_name} must be positive, got {value!r}")

    for field_name in ("settle_delay", "smoothing_time"):
        value = getattr(config, field_name)
        if not _is_number(value) or not math.isfinite(value) or value < 0:
            errors.append(f"{field_name} must be zero or positive, got {value!r}")

    if not _is_number(config.blend_ratio) or not 0.0 <= config.blend_ratio <= 1.0:
        errors.append(f"blend_ratio must be between 0 and 1, got {config.blend_ratio!r}")

    for field_name in ("use_external_config", "log_json_console"):
        if not isinstance(getattr(config, field_name), bool):
            errors.append(f"{field_name} must be true or false")

    for field_name in ("pose_topic", "relative_pose_topic"):
        topic = getattr(config, field_name)
        if not isinstance(topic, str) or not topic.startswith("/"):
            errors.append(f"{field_name} must start with '/', got {topic!r}")

    if not isinstance(config.device_tag, str) or not config.device_tag or "/" in config.device_tag:
        errors.append(f"device_tag must be a non-empty name, got {config.device_tag!r}")

    if not isinstance(config.config_filename, str) or not config.config_filename:
        errors.append("config_filename must be a non-empty string")

    for field_name in ("log_dir", "log_rotation", "log_retention"):
        value = getattr(config, field_name)
        if value is not None and not isinstance(value, (str, int)):
            errors.append(f"{field_name} must be a string, got {value!r}")

    valid_log_levels = ["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    level = config.log_level_console
    if not isinstance(level, str) or level.upper() not in valid_log_levels:
        errors.append(
            f"log_level_console must be one of {valid_log_levels}, got {level!r}"
        )

    return errors


def load_default_config() -> TelemetryConfig:
    """Load the default configuration from the bundled default.toml.

    Raises:
        DefaultConfigError: If default.toml cannot be loaded or is incomplete.
    """
    try:
        config_data = process_toml_config(load_default_toml_data())

        config_fields = {f.name for f in fields(TelemetryConfig)}
        missing = config_fields - set(config_data.keys())
        if missing:
            raise DefaultConfigError(
                f"Missing required fields in default.toml: {', '.join(sorted(missing))}"
            )

        return TelemetryConfig(**config_data)
    except DefaultConfigError:
        raise
    except TypeError as e:
        raise DefaultConfigError(f"Invalid field types in default.toml: {e}") from e


def merge_cli_args(config: TelemetryConfig, args: argparse.Namespace) -> TelemetryConfig:
    """Merge CLI arguments into config (CLI takes precedence).

    Only explicitly provided arguments override config values.
    """
    updates: dict[str, Any] = {}

    for key in (
        "target_ip",
        "send_port",
        "receive_port",
        "smoothing_time",
        "blend_ratio",
        "log_level_console",
    ):
        value = getattr(args, key, None)
        if value is not None:
            updates[key] = value

    if getattr(args, "log_dir", None) is not None:
        updates["log_dir"] = str(args.log_dir)
    if getattr(args, "log_json_console", False):
        updates["log_json_console"] = True
    if getattr(args, "no_external_config", False):
        updates["use_external_config"] = False

    if not updates:
        return config

    return dataclass_replace(config, **updates)


def create_config_from_args(
    args: argparse.Namespace,
) -> tuple[TelemetryConfig, list[ConfigOverride]]:
    """Build the settings from the default, user and CLI layers.

    Returns:
        Tuple of (TelemetryConfig, overrides from the user config file).

    Raises:
        DefaultConfigError: If default.toml cannot be loaded.
        FileNotFoundError: If the user config file does not exist.
        tomllib.TOMLDecodeError: If the user config has invalid TOML syntax.
        ConfigurationError: If validation fails.
    """
    config = load_default_config()
    overrides: list[ConfigOverride] = []

    if getattr(args, "config", None) is not None:
        user_config_path = Path(args.config)
        toml_data = load_config_from_toml(user_config_path)

        unknown = get_unknown_keys(toml_data)
        if unknown:
            logger.warning(
                f"Unknown keys in {user_config_path}: {', '.join(sorted(unknown))}"
            )

        config_data = process_toml_config(toml_data)
        if config_data:
            for key, new_value in config_data.items():
                default_value = getattr(config, key)
                if default_value != new_value:
                    overrides.append(ConfigOverride(key, default_value, new_value))
            config = dataclass_replace(config, **config_data)

    config = merge_cli_args(config, args)

    errors = validate_config(config)
    if errors:
        raise ConfigurationError(errors)

    return config, overrides
