"""Capture the engine log sink and send it to a leveled logger.

Usage:
    from terranova.log import Middleware, StandardLogger

    platform.set_log_level("debug")  # the sink drops DEBUG and TRACE lines by default
    middleware = Middleware(StandardLogger(level="debug"))
    try:
        platform.apply()
    finally:
        middleware.close()
"""

from terranova.log.logger import Logger, LoggingAdapter, StandardLogger
from terranova.log.middleware import LogEntry, Middleware, parse_entry, split_records

__all__ = [
    "Logger",
    "LoggingAdapter",
    "StandardLogger",
    "LogEntry",
    "Middleware",
    "parse_entry",
    "split_records",
]
