"""Diagnostic logging.

stdout carries protocol frames only, so every log record goes to stderr.
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

LOGGER_NAME = "mcp_sse_proxy"

LOG_FORMAT = "%(asctime)s %(levelname)-5s [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str | int = logging.INFO, stream: TextIO | None = None) -> logging.Logger:
    """Configure the proxy's loggers to write to stderr.

    Args:
        level: Log level name or number
        stream: Destination stream (default: sys.stderr)

    Returns:
        Root logger for the proxy
    """
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: {level}")
        level = resolved

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    # Clear existing handlers so repeated setup does not duplicate output
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)

    # Keep records away from any root handler that might point at stdout
    logger.propagate = False

    return logger
