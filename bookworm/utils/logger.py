"""Loguru sinks for the bookworm CLI.

Everything goes to stderr so `bookworm query` can keep stdout for the JSON
response. The optional file sink keeps a rotating history of ingestion and
query runs.
"""
from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

from bookworm.config import LoggingSettings

CONSOLE_FORMAT = (
    "<dim>{time:HH:mm:ss}</dim> "
    "<level>{level: <7}</level> "
    "<cyan>{name}</cyan> | <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {process} | {name}:{function}:{line} | {message}"


def setup_logger(settings: LoggingSettings, verbose: bool = False) -> None:
    """Replace loguru's default handler with bookworm's sinks.

    `verbose` forces DEBUG on the console; the file sink keeps the configured level.
    """
    logger.remove()
    console_level = "DEBUG" if verbose else settings.level
    logger.add(sys.stderr, level=console_level, format=CONSOLE_FORMAT, colorize=True)

    if settings.file:
        Path(settings.file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            settings.file,
            level=settings.level,
            format=FILE_FORMAT,
            rotation=settings.rotation,
            retention=settings.retention,
            compression="zip",
            enqueue=True,
        )

    logger.debug(f"[Logger] console={console_level} file={settings.file or '-'}")
