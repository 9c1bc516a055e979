"""Console and run-log handlers for the ``mpm_engine`` logger tree.

Grid allocation, body seeding, frame dumps and periodic solver statistics
are all logged below ``mpm_engine``; the CLI calls :func:`setup_logging`
once before a run.
"""
import logging
import sys
from pathlib import Path
from typing import Optional, Union

PACKAGE_LOGGER = "mpm_engine"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%H:%M:%S"


def _handler(handler: logging.Handler, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def setup_logging(level: int = logging.INFO, log_file: Optional[Union[str, Path]] = None) -> None:
    """
    Route simulation logs to stdout and, optionally, a per-run log file.

    Calling it again replaces the handlers from the previous call, so a
    scene rerun in the same process does not print every record twice.

    Args:
        level: Threshold for the package logger and its handlers.
        log_file: Run log, truncated on each call.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)
    for old in list(logger.handlers):
        old.close()
    logger.handlers.clear()

    logger.addHandler(_handler(logging.StreamHandler(sys.stdout), level))
    if log_file:
        logger.addHandler(_handler(logging.FileHandler(log_file, mode="w", encoding="utf-8"), level))

    logger.info("Simulation logging at %s%s", logging.getLevelName(level), f", run log {log_file}" if log_file else "")
