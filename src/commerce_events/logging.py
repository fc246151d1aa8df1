"""Loguru setup for processes that publish or consume events.

Dispatches run on ``event-dispatch-*`` worker threads, so the default format
includes the thread name next to the level.
"""

import logging
import sys
from collections.abc import Iterable

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{thread.name}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

# Client libraries whose stdlib loggers follow the configured level
CLIENT_LOGGERS = ("redis", "concurrent.futures", "asyncio")


class InterceptHandler(logging.Handler):
    """Forward stdlib ``logging`` records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip logging's own frames so loguru reports the real caller
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(log_level: str, client_loggers: Iterable[str] = CLIENT_LOGGERS) -> None:
    """Install a stderr sink and route stdlib loggers through loguru.

    Args:
        log_level: Loguru level name, usually ``Settings.log_level``
        client_loggers: stdlib loggers set to the same level (TRACE maps to DEBUG)
    """
    log_level = log_level.upper()

    logger.remove()
    logger.add(sys.stderr, level=log_level, format=LOG_FORMAT, colorize=True)

    intercept = InterceptHandler()
    logging.basicConfig(handlers=[intercept], level=0, force=True)
    for name in list(logging.Logger.manager.loggerDict):
        existing = logging.getLogger(name)
        existing.handlers = [intercept]
        existing.propagate = False

    stdlib_level = "DEBUG" if log_level == "TRACE" else log_level
    for name in client_loggers:
        logging.getLogger(name).setLevel(stdlib_level)

    logger.info(f"Event subsystem logging configured at {log_level}")
