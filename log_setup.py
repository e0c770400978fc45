"""
Central logging configuration. The web remote serves the same file at /log.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path


def setup_logging(
    level: str = "INFO",
    log_file: str | Path = "runtime.log",
    max_bytes: int = 2 * 1024 * 1024,
    backup_count: int = 3,
    console_output: bool = False,
) -> None:
    """
    Configure the root logger with a rotating file handler.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path of the log file, created with its parent directory
        max_bytes: Size at which the file is rotated
        backup_count: Number of rotated files kept
        console_output: Also log to stderr (handy when not on the LCD)
    """
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    file_handler = RotatingFileHandler(
        log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    root.addHandler(file_handler)

    if console_output:
        console = logging.StreamHandler(sys.stderr)
        console.setLevel(getattr(logging, level.upper(), logging.INFO))
        console.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
        root.addHandler(console)

    root.info("Logging initialized: %s (level=%s)", log_path, level)
