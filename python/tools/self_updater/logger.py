#!/usr/bin/env python3
"""
Logging configuration for the self updater.
"""

import sys
from pathlib import Path
from typing import Optional, Union

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"


def setup_logging(
    log_level: str = "INFO", log_file: Optional[Union[str, Path]] = None
) -> None:
    """
    Set up logging configuration using loguru.

    Args:
        log_level: The logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path of a rotating log file
    """
    logger.remove()

    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=log_level, colorize=True)

    if log_file is not None:
        logger.add(
            str(log_file),
            rotation="10 MB",
            retention="1 week",
            level=log_level,
            format=FILE_FORMAT,
        )

    logger.debug("Logging initialized")


def level_for_verbosity(verbose: int) -> str:
    """Map a repeated -v count to a loguru level."""
    if verbose > 1:
        return "DEBUG"
    if verbose == 1:
        return "INFO"
    return "WARNING"


__all__ = ["logger", "setup_logging", "level_for_verbosity"]
