"""Logging configuration using loguru."""
from __future__ import annotations

from typing import Optional

from loguru import logger


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    logger.remove()
    logger.add(lambda msg: print(msg, end=""), level=level)
    if log_file:
        logger.add(log_file, level=level, rotation="5 MB", retention="7 days", enqueue=True, backtrace=False, diagnose=False)
