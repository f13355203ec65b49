# logging_utils.py
import logging
import sys
from pathlib import Path
from typing import Any

from loguru import logger

DEFAULT_LOG_FILENAME = "vrpose-telemetry.log"
DEFAULT_ROTATION = "10 MB"
DEFAULT_RETENTION = 20  # newest files kept

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan> | {message}"
)


class InterceptHandler(logging.Handler):
    """Redirect stdlib logging to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except (ValueError, TypeError):
            level = record.levelno

        frame = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back  # type: ignore[assignment]
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def _coerce_retention(retention: str | int | None) -> str | int:
    """Numeric strings mean a file count; anything else is a loguru rule."""
    if retention is None:
        return DEFAULT_RETENTION
    if isinstance(retention, str) and retention.strip().isdigit():
        return int(retention.strip())
    return retention


def configure_logging(
    log_dir: Path | str | None = None,
    console_level: str = "INFO",
    console_json: bool = False,
    rotation: str | None = None,
    retention: str | int | None = None,
) -> None:
    """
    Initialize console logging and an optional rotated JSON file sink.

    Args:
        log_dir: Directory for `vrpose-telemetry.log`; enables the file sink when set.
        console_level: Console level string (e.g., INFO/DEBUG).
        console_json: Emit console as JSON when True; otherwise colored text.
        rotation: loguru rotation rule (e.g. '10 MB', '1 day'); default 10 MB.
        retention: loguru retention rule or number of files kept; default 20 files.
    """
    logger.remove()

    console_kwargs: dict[str, Any] = {
        "level": console_level.upper(),
        "serialize": console_json,
        "enqueue": True,
        "backtrace": False,
        "diagnose": False,
    }
    if not console_json:
        console_kwargs["format"] = CONSOLE_FORMAT

    logger.add(sys.stderr, **console_kwargs)

    if log_dir is not None:
        log_dir_path = Path(log_dir)
        try:
            log_dir_path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.error(f"Failed to create log directory {log_dir_path}: {exc}")
        else:
            log_file = log_dir_path / DEFAULT_LOG_FILENAME
            logger.add(
                log_file,
                level="DEBUG",
                serialize=True,
                rotation=rotation or DEFAULT_ROTATION,
                retention=_coerce_retention(retention),
                enqueue=True,
                backtrace=False,
                diagnose=False,
            )
            logger.info(f"File logging enabled at {log_file}")

    logging.basicConfig(handlers=[InterceptHandler()], level=logging.NOTSET, force=True)
    logging.captureWarnings(True)


def shutdown_logging() -> None:
    """Flush enqueued records; call before process exit."""
    logger.complete()
