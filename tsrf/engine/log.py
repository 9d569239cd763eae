"""Logging configuration using loguru.

Intercepts stdlib logging so that watchfiles, asyncio, etc. all flow
through loguru with a unified format.
"""

from __future__ import annotations

import logging
import sys

from loguru import logger


class _InterceptHandler(logging.Handler):
    """Bridge stdlib logging records into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        # Map stdlib level name -> loguru level
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk the call stack so loguru reports the real call-site
        frame = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str = "INFO") -> None:
    """Configure loguru as the sole logging sink.

    Call this once at process startup, before the watcher starts.  Debug
    records carry the call-site so ``--verbose`` traces can be followed
    through the router and decoder.
    """
    level = level.upper()

    logger.remove()
    if level == "DEBUG":
        fmt = (
            "<green>{time:HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        )
    else:
        fmt = "<green>{time:HH:mm:ss}</green> <level>{message}</level>"
    logger.add(sys.stderr, level=level, format=fmt)

    # Intercept all stdlib logging
    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)

    # watchfiles reports every raw batch at INFO
    logging.getLogger("watchfiles").setLevel(logging.WARNING)

    logger.debug("Logging initialised (level={})", level)
