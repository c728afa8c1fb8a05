"""
Centralized logging configuration for Beacon.

Every detection run is a short-lived process, so the optional log file
doubles as the run transcript.
"""

import logging
import logging.handlers
import sys
from typing import TextIO


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    stream: TextIO | None = None,
    max_bytes: int = 5 * 1024 * 1024,  # 5MB default
    backup_count: int = 3
) -> None:
    """
    Configure logging for Beacon.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to a transcript file (console only if not provided)
        stream: Console stream (default: stdout)
        max_bytes: Maximum bytes per log file before rotation (default: 5MB)
        backup_count: Number of backup files to keep (default: 3)
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    root_logger = logging.getLogger("beacon")
    root_logger.setLevel(log_level)

    # Handlers from a previous setup_logging call (e.g. before the config
    # was loaded) are replaced, not stacked.
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(stream or sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    root_logger.propagate = False

    if log_file:
        try:
            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8"
            )
        except OSError as e:
            root_logger.warning("Cannot open log file %s, logging to console only: %s", log_file, e)
            return
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a specific module.

    Args:
        name: Module name (typically __name__)

    Returns:
        Logger instance
    """
    # Strip 'beacon.' prefix if present for cleaner names
    if name.startswith("beacon."):
        name = name[7:]

    return logging.getLogger(f"beacon.{name}")
