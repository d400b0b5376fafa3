"""Engine log sink and logging utilities for Terranova.

The execution engine, providers and provisioners write their diagnostic
lines to one process-wide text stream, the same way a program shares a
single global logger. In Terranova that stream is a StreamHandler attached
to the ``terranova.engine`` logger, formatted as::

    2019/10/20 20:43:00 [DEBUG] this is a debugging message

The sink filters at INFO until ``set_log_level()`` lowers it.

The handler's stream can be swapped at runtime with ``set_output()``; the
log middleware (``terranova.log.Middleware``) uses it to hijack the stream
and re-dispatch every line to a leveled logger.

This module also provides:
- The custom TRACE level
- Level-name conversion helpers
- Performance timing with a context manager
"""

import logging
import sys
import threading
import time
from contextlib import contextmanager
from typing import Any, Generator, TextIO

# Custom TRACE level (more detailed than DEBUG)
TRACE = 5
logging.addLevelName(TRACE, "TRACE")

ENGINE_LOGGER_NAME = "terranova.engine"

# Sink format: TIMESTAMP [LABEL] MESSAGE
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y/%m/%d %H:%M:%S"

# Labels understood by the log middleware, lowest to highest
VALID_LEVELS = ("TRACE", "DEBUG", "INFO", "WARN", "ERROR")
DEFAULT_LEVEL = logging.INFO

# Python level names that the sink renders differently
LEVEL_LABELS = {
    logging.WARNING: "WARN",
    logging.CRITICAL: "ERROR",
}

_sink_lock = threading.RLock()
_sink_handler: logging.StreamHandler | None = None


def get_level_from_name(level_name: str) -> int:
    """Convert level name to logging level.

    Args:
        level_name: Level name (trace, debug, info, warn, warning, error, critical)

    Returns:
        Logging level constant

    Raises:
        ValueError: If level name is invalid
    """
    level_map = {
        "trace": TRACE,
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "warn": logging.WARNING,
        "warning": logging.WARNING,
        "error": logging.ERROR,
        "critical": logging.CRITICAL,
    }
    level_lower = level_name.lower()
    if level_lower not in level_map:
        valid = ", ".join(level_map.keys())
        raise ValueError(f"Invalid log level: {level_name}. Valid levels: {valid}")
    return level_map[level_lower]


def get_label(level: int) -> str:
    """Get the sink label for a logging level (WARNING is rendered as WARN)."""
    return LEVEL_LABELS.get(level, logging.getLevelName(level))


class EngineFormatter(logging.Formatter):
    """Formatter producing ``YYYY/MM/DD HH:MM:SS [LABEL] message`` lines."""

    def __init__(self) -> None:
        super().__init__(LOG_FORMAT, DATE_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        label = LEVEL_LABELS.get(record.levelno)
        if label is None:
            return super().format(record)

        original = record.levelname
        record.levelname = label
        try:
            return super().format(record)
        finally:
            record.levelname = original


def _sink() -> logging.StreamHandler:
    """Get the engine sink handler, attaching it on first use."""
    global _sink_handler
    with _sink_lock:
        if _sink_handler is None:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(EngineFormatter())

            engine_logger = logging.getLogger(ENGINE_LOGGER_NAME)
            engine_logger.addHandler(handler)
            engine_logger.propagate = False
            if engine_logger.level == logging.NOTSET:
                engine_logger.setLevel(DEFAULT_LEVEL)

            _sink_handler = handler
        return _sink_handler


def get_engine_logger(name: str | None = None) -> logging.Logger:
    """Get the logger that writes to the engine sink.

    Args:
        name: Optional child name (e.g. "providers.null")

    Returns:
        The engine logger or one of its children
    """
    _sink()
    if name:
        return logging.getLogger(f"{ENGINE_LOGGER_NAME}.{name}")
    return logging.getLogger(ENGINE_LOGGER_NAME)


def get_output() -> TextIO:
    """Get the stream the engine sink currently writes to."""
    with _sink_lock:
        return _sink().stream


def set_output(stream: TextIO) -> TextIO:
    """Replace the stream the engine sink writes to.

    Args:
        stream: Any object with ``write()`` and ``flush()``

    Returns:
        The stream that was active before the call
    """
    with _sink_lock:
        handler = _sink()
        previous = handler.stream
        if stream is not previous:
            handler.setStream(stream)
        return previous


def set_log_level(level: int | str) -> int:
    """Filter the engine sink by level.

    Args:
        level: Logging level constant or level name

    Returns:
        The level that was applied
    """
    if isinstance(level, str):
        level = get_level_from_name(level)
    _sink()
    logging.getLogger(ENGINE_LOGGER_NAME).setLevel(level)
    return level


@contextmanager
def log_performance(
    logger: logging.Logger,
    operation: str,
    level: int = logging.INFO,
    threshold: float | None = None,
    **context: Any,
) -> Generator[None, None, None]:
    """Context manager for performance logging.

    Times an operation and logs the duration.

    Args:
        logger: Logger instance to use
        operation: Description of the operation being timed
        level: Log level to use
        threshold: Only log if duration exceeds this threshold (seconds)
        **context: Additional context to include in logs

    Example:
        >>> logger = logging.getLogger(__name__)
        >>> with log_performance(logger, "Refresh", destroy=False):
        ...     ctx.refresh()
        INFO: Refresh completed in 0.100s (destroy=False)
    """
    start_time = time.perf_counter()
    context_str = ", ".join(f"{k}={v}" for k, v in context.items())

    try:
        yield
    finally:
        duration = time.perf_counter() - start_time

        # Only log if threshold not set or exceeded
        if threshold is None or duration >= threshold:
            full_message = f"{operation} completed in {duration:.3f}s"
            if context:
                full_message += f" ({context_str})"
            logger.log(level, full_message)
