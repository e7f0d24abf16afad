"""Logging configuration for mikrobot using loguru.

Call `setup_logging()` once at startup. Provides:
- Console output on stderr with configurable verbosity
- Rotating file log at ~/.mikrobot/logs/mikrobot.log
"""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

_CONSOLE_FORMAT = "<level>{level:<8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - {message}"
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {name}:{function}:{line} - {message}"


def setup_logging(
    verbose: bool = False,
    quiet: bool = False,
    log_dir: Path | None = None,
) -> None:
    """Configure loguru sinks for console and file output.

    Args:
        verbose: Show DEBUG-level messages on console.
        quiet: Suppress console output below WARNING.
        log_dir: Directory for log files. Defaults to ~/.mikrobot/logs.
    """
    logger.remove()

    if quiet:
        level = "WARNING"
    elif verbose:
        level = "DEBUG"
    else:
        level = "INFO"

    logger.add(sys.stderr, level=level, format=_CONSOLE_FORMAT, colorize=True)

    log_path = log_dir or (Path.home() / ".mikrobot" / "logs")
    try:
        log_path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.warning("File logging disabled, cannot create {}: {}", log_path, exc)
        return

    logger.add(
        log_path / "mikrobot.log",
        level="DEBUG",
        format=_FILE_FORMAT,
        rotation="10 MB",
        retention=5,
        encoding="utf-8",
        enqueue=True,
    )
