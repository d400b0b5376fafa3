"""Log middleware capturing the engine log sink.

The execution engine writes unstructured lines to a single process-wide
stream (see ``terranova.logging``). The Middleware installs itself as that
stream, parses every write and sends it to a leveled Logger:

    2019/10/20 20:43:00 [DEBUG] this is a debugging message
    -> logger.debug("this is a debugging message")

Lines with an unknown label, lines with a timestamp but no label and text
that matches nothing are all still delivered through ``Logger.print``;
nothing written to the sink is dropped while the middleware is installed.

Only the first record of each write is parsed, and a labeled message runs
to the end of the buffer. Pass ``split_lines=True`` to dispatch every
timestamped line of a buffer as its own record instead.
"""

import logging
import re
import threading
from dataclasses import dataclass
from typing import TextIO

from terranova.logging import set_output
from terranova.log.logger import Logger, StandardLogger

logger = logging.getLogger(__name__)

TIMESTAMP_PATTERN = r"\d{4}/\d{2}/\d{2}\s+\d{2}:\d{2}:\d{2}"

# Timestamp, label and message; the message may span several lines
LABELED_RE = re.compile(TIMESTAMP_PATTERN + r"\s+\[(\w+)\]\s+((?s:.+))")

# Timestamp and message, no label
DATED_RE = re.compile(TIMESTAMP_PATTERN + r"\s+(.+)")

# Start of every line that begins with a timestamp
RECORD_START_RE = re.compile(r"^(?=" + TIMESTAMP_PATTERN + r")", re.MULTILINE)

UNKNOWN_LABEL_FORMAT = "[%s] (Unknown Log Label) %s"
TRACE_FORMAT = "[LEVEL 2] %s"
FALLBACK_FORMAT = ">> %s"

# Installed middlewares, oldest first
_installed: list["Middleware"] = []
_installed_lock = threading.Lock()


@dataclass(frozen=True)
class LogEntry:
    """One parsed write to the engine sink.

    Attributes:
        message: Message body without the trailing newline
        label: Severity label (e.g. "ERROR"), None when the line has no label
        well_formed: False when the text matched no known line format
    """

    message: str
    label: str | None = None
    well_formed: bool = True


def parse_entry(text: str) -> LogEntry:
    """Parse the first record of a buffer written to the sink."""
    match = LABELED_RE.search(text)
    if match:
        return LogEntry(message=match.group(2).rstrip("\n"), label=match.group(1))

    match = DATED_RE.search(text)
    if match:
        return LogEntry(message=match.group(1).rstrip("\n"))

    return LogEntry(message=text.rstrip("\n"), well_formed=False)


def split_records(text: str) -> list[str]:
    """Split a buffer at every line that starts with a timestamp."""
    return [chunk for chunk in RECORD_START_RE.split(text) if chunk.strip()]


class Middleware:
    """Writable stream that replaces the engine log sink.

    Creating a Middleware installs it immediately; ``close()`` restores the
    stream that was active before. It can also be used as a context manager:

        platform.set_log_level("debug")
        with Middleware(StandardLogger(level="debug")):
            platform.apply()

    The engine sink filters at INFO by default; DEBUG and TRACE lines only
    reach the middleware once the sink level is lowered.

    Args:
        log: Logger receiving the parsed records (StandardLogger on stdout if None)
        split_lines: Dispatch every timestamped line of a write separately
    """

    def __init__(self, log: Logger | None = None, split_lines: bool = False) -> None:
        if log is None:
            log = StandardLogger()

        self._log: Logger | None = log
        self._lock = threading.Lock()
        self._previous: TextIO | None = None
        self.split_lines = split_lines
        self.installed = False
        self._install()

    def _install(self) -> None:
        with _installed_lock:
            if _installed:
                logger.warning(
                    "A log middleware is already installed; nesting another one, "
                    "close them in reverse order"
                )
            _installed.append(self)
            self._previous = set_output(self)
        self.installed = True

    def __enter__(self) -> "Middleware":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def log(self) -> Logger | None:
        """The logger receiving records, None once closed."""
        return self._log

    def set_logger(self, log: Logger) -> None:
        """Replace the logger receiving records."""
        with self._lock:
            self._log = log

    def close(self) -> None:
        """Restore the previous sink stream and detach the logger.

        Calling close() more than once has no effect.
        """
        with self._lock:
            if not self.installed:
                return
            self.installed = False
            self._log = None

        with _installed_lock:
            previous, self._previous = self._previous, None
            index = _installed.index(self) if self in _installed else -1
            if index >= 0:
                del _installed[index]

            # A newer middleware captured this one as its previous stream
            if 0 <= index < len(_installed):
                logger.warning("Closing a log middleware that is not the most recently installed one")
                _installed[index]._previous = previous
                return

            set_output(previous)

    def write(self, data: str | bytes) -> int:
        """Parse a write to the sink and dispatch it to the logger.

        Always reports the whole buffer as written and never raises.
        """
        size = len(data)
        if isinstance(data, (bytes, bytearray)):
            data = data.decode("utf-8", errors="replace")
        if not data:
            return size

        with self._lock:
            log = self._log
            if log is None:
                return size

            chunks = split_records(data) if self.split_lines else [data]
            for chunk in chunks:
                try:
                    self._dispatch(log, parse_entry(chunk))
                except Exception:
                    logger.warning("Log middleware failed to dispatch a record", exc_info=True)

        return size

    def flush(self) -> None:
        pass

    def writable(self) -> bool:
        return True

    def _dispatch(self, log: Logger, entry: LogEntry) -> None:
        if not entry.well_formed:
            log.print(FALLBACK_FORMAT, entry.message)
            return

        if entry.label is None:
            log.print("%s", entry.message)
            return

        label = entry.label
        if label == "ERROR":
            log.error("%s", entry.message)
        elif label == "WARN":
            log.warning("%s", entry.message)
        elif label == "INFO":
            log.info("%s", entry.message)
        elif label == "DEBUG":
            log.debug("%s", entry.message)
        elif label == "TRACE":
            log.debug(TRACE_FORMAT, entry.message)
        else:
            log.print(UNKNOWN_LABEL_FORMAT, label, entry.message)
