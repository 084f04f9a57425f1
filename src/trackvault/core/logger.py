"""Logging configuration and setup."""

import sys

from loguru import logger

from trackvault.core.config import settings


def setup_logging(level: str | None = None) -> None:
    """Configures Loguru logging for console and file output.

    Removes the default handler, sets up a colorized console output to stderr
    and a rotated/compressed log file in the data directory. The file handler
    is enqueued so scanner worker threads never block on disk writes.

    Args:
        level: Overrides settings.LOG_LEVEL when given (e.g. from the CLI).
    """
    level = level or settings.LOG_LEVEL
    logger.remove()  # Remove default handler

    # Console Handler (Stderr)
    logger.add(
        sys.stderr,
        level=level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{thread.name}</cyan> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    )

    # File Handler (Rotated & Compressed)
    log_file = settings.DATA_DIR / "logs" / "trackvault.log"
    log_file.parent.mkdir(parents=True, exist_ok=True)
    logger.add(
        str(log_file),
        rotation=settings.LOG_ROTATION,
        retention=settings.LOG_RETENTION,
        compression="zip",
        level=level,
        enqueue=True,
        backtrace=True,
        diagnose=False,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {thread.name} | {name}:{function}:{line} - {message}",
    )

    logger.info(f"Logging initialized. Data Dir: {settings.DATA_DIR}")
