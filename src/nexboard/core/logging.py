"""Loguru sinks for the NexBoard service."""

import sys
from pathlib import Path

from loguru import logger

from nexboard.config.settings import Settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)

# Connect, disconnect, eviction and drop lines from the hub and endpoint.
STREAM_LOGGER = "nexboard.streaming"


def stream_log_path(settings: Settings) -> Path:
    """Stream activity log, kept beside the main log file."""
    return Path(settings.log_path).with_name("stream.log")


def configure_logging(settings: Settings) -> None:
    """Replace loguru's default sink with console, app-file and stream-file sinks."""

    logger.remove()
    level = settings.log_level.upper()

    logger.add(
        sink=sys.stdout,
        level=level,
        format=LOG_FORMAT,
        backtrace=True,
        diagnose=False,
        enqueue=True,
        colorize=True,
    )

    log_path = Path(settings.log_path)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    logger.add(log_path, level=level, format=LOG_FORMAT, rotation="1 day", retention="7 days", enqueue=True)

    logger.add(
        stream_log_path(settings),
        level=level,
        format=LOG_FORMAT,
        filter=STREAM_LOGGER,
        rotation="10 MB",
        retention=5,
        enqueue=True,
    )
