"""
Logging setup.

All modules log through loguru via ``get_logger(__name__)``. Standard library
logging (asyncio's own warnings) is routed into the same sink.
"""

import logging
import sys

from loguru import logger as _logger

from revlink.models.enums import LogLevel

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> - <level>{message}</level>"
)


class InterceptHandler(logging.Handler):
    """Forward stdlib log records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = _logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find the caller outside the logging module
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        _logger.bind(name=record.name).opt(
            depth=depth, exception=record.exc_info
        ).log(level, record.getMessage())


def _loguru_level(level: LogLevel) -> str:
    match level:
        case LogLevel.FULL:
            return "TRACE"
        case LogLevel.DEBUG:
            return "DEBUG"
        case LogLevel.INFO:
            return "INFO"
        case LogLevel.WARNING:
            return "WARNING"
    return "INFO"


def configure_logging(level: LogLevel = LogLevel.INFO) -> None:
    """
    Replace loguru's default sink with a stdout sink at ``level``.

    Must be called before the event loop starts so asyncio's stdlib
    records are intercepted too.
    """
    full = level == LogLevel.FULL

    _logger.remove()
    _logger.configure(extra={"name": "revlink"})
    _logger.add(
        sys.stdout,
        level=_loguru_level(level),
        format=LOG_FORMAT,
        backtrace=full,
        diagnose=full,
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)


def get_logger(name: str):
    """Get a logger bound to a module name."""
    return _logger.bind(name=name)
