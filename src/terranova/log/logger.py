"""Leveled logger contract consumed by the log middleware.

Any logger handed to the middleware implements five operations: one plain
(unleveled) operation and one per severity. Each accepts a %-style format
string and positional arguments, like the stdlib logging methods.
"""

import logging
import sys
from abc import ABC, abstractmethod
from typing import Any, TextIO

from terranova.logging import DEFAULT_LEVEL, ENGINE_LOGGER_NAME, get_label, get_level_from_name


class Logger(ABC):
    """Interface of a leveled logger."""

    @abstractmethod
    def print(self, msg: str, *args: Any) -> None:
        """Log a message with no severity."""

    @abstractmethod
    def debug(self, msg: str, *args: Any) -> None:
        """Log a debug message."""

    @abstractmethod
    def info(self, msg: str, *args: Any) -> None:
        """Log an informational message."""

    @abstractmethod
    def warning(self, msg: str, *args: Any) -> None:
        """Log a warning."""

    @abstractmethod
    def error(self, msg: str, *args: Any) -> None:
        """Log an error."""


class _ConsoleFormatter(logging.Formatter):
    """Formats ``<prefix><LABEL> message``; plain records have no label."""

    def __init__(self, prefix: str = "") -> None:
        super().__init__()
        self.prefix = prefix

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if getattr(record, "plain", False):
            return f"{self.prefix}{message}"
        return f"{self.prefix}{get_label(record.levelno):<5} {message}"


class StandardLogger(Logger):
    """Default logger writing to a text stream (stdout unless given).

    Leveled messages below ``level`` are dropped. Plain messages are always
    written.

    Example:
        >>> log = StandardLogger(prefix="terranova: ", level="debug")
        >>> log.info("applying %d resources", 3)
        terranova: INFO  applying 3 resources
    """

    def __init__(
        self,
        stream: TextIO | None = None,
        prefix: str = "",
        level: int | str = DEFAULT_LEVEL,
    ) -> None:
        # Not registered with logging.getLogger() so each instance keeps its own
        # handler. The logger stays at NOTSET; the handler filter applies the level.
        self._logger = logging.Logger("terranova.console")
        self._level = DEFAULT_LEVEL
        self._handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
        self._handler.setFormatter(_ConsoleFormatter(prefix))
        self._handler.addFilter(self._accepts)
        self._logger.addHandler(self._handler)
        self.set_level(level)

    @property
    def level(self) -> int:
        return self._level

    def _accepts(self, record: logging.LogRecord) -> bool:
        return getattr(record, "plain", False) or record.levelno >= self._level

    def set_level(self, level: int | str) -> None:
        """Change the minimum level of leveled messages."""
        if isinstance(level, str):
            level = get_level_from_name(level)
        self._level = level

    def print(self, msg: str, *args: Any) -> None:
        record = self._logger.makeRecord(
            self._logger.name, logging.INFO, "", 0, msg, args, None, extra={"plain": True}
        )
        self._logger.handle(record)

    def debug(self, msg: str, *args: Any) -> None:
        self._logger.debug(msg, *args)

    def info(self, msg: str, *args: Any) -> None:
        self._logger.info(msg, *args)

    def warning(self, msg: str, *args: Any) -> None:
        self._logger.warning(msg, *args)

    def error(self, msg: str, *args: Any) -> None:
        self._logger.error(msg, *args)


class LoggingAdapter(Logger):
    """Forward the five operations to a stdlib ``logging.Logger``.

    Args:
        logger: Target logger; must not be the engine logger or one of its
            children, which would feed intercepted lines back into the sink
        plain_level: Level used for plain messages
    """

    def __init__(self, logger: logging.Logger, plain_level: int = logging.INFO) -> None:
        if logger.name == ENGINE_LOGGER_NAME or logger.name.startswith(ENGINE_LOGGER_NAME + "."):
            raise ValueError(f"Cannot forward engine log lines to {logger.name!r}")
        self.logger = logger
        self.plain_level = plain_level

    def print(self, msg: str, *args: Any) -> None:
        self.logger.log(self.plain_level, msg, *args)

    def debug(self, msg: str, *args: Any) -> None:
        self.logger.debug(msg, *args)

    def info(self, msg: str, *args: Any) -> None:
        self.logger.info(msg, *args)

    def warning(self, msg: str, *args: Any) -> None:
        self.logger.warning(msg, *args)

    def error(self, msg: str, *args: Any) -> None:
        self.logger.error(msg, *args)
