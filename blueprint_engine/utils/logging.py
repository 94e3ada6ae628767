"""
Blueprint Engine Logging
loguru sink setup plus a thin wrapper that attaches request context as extra fields.
"""
import sys
from typing import Any, Dict, Optional

from loguru import logger

from blueprint_engine.config import config

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <7} | {name}:{function} | {message} | {extra}"


def configure_logging(level: Optional[str] = None):
    """Replace loguru's default handler with a single stdout sink."""
    logger.remove()
    logger.add(sys.stdout, format=LOG_FORMAT, level=(level or config.LOG_LEVEL).upper())


class StructuredLogger:
    """Logs a message with an optional dict of context fields bound to the record."""

    def __init__(self, level: Optional[str] = None):
        configure_logging(level)

    def _emit(self, level: str, message: str, extra: Optional[Dict[str, Any]]):
        # depth=2 reports the caller of info()/debug(), not this wrapper
        bound = logger.bind(**extra) if extra else logger
        bound.opt(depth=2).log(level, message)

    def debug(self, message: str, extra: Optional[Dict[str, Any]] = None):
        self._emit("DEBUG", message, extra)

    def info(self, message: str, extra: Optional[Dict[str, Any]] = None):
        self._emit("INFO", message, extra)

    def warning(self, message: str, extra: Optional[Dict[str, Any]] = None):
        self._emit("WARNING", message, extra)

    def error(self, message: str, extra: Optional[Dict[str, Any]] = None):
        self._emit("ERROR", message, extra)


_logger: Optional[StructuredLogger] = None


def get_logger() -> StructuredLogger:
    """Return the process-wide logger, configuring loguru on first use."""
    global _logger
    if _logger is None:
        _logger = StructuredLogger()
    return _logger
