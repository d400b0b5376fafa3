"""Tests for the engine log sink and logging utilities."""

import logging
import re
import time
from io import StringIO

import pytest

from terranova.logging import (
    ENGINE_LOGGER_NAME,
    TRACE,
    EngineFormatter,
    get_engine_logger,
    get_label,
    get_level_from_name,
    get_output,
    log_performance,
    set_log_level,
    set_output,
)

LINE_RE = re.compile(r"^\d{4}/\d{2}/\d{2} \d{2}:\d{2}:\d{2} \[(\w+)\] (.*)\n$")


class TestLevels:
    """Tests for level helpers."""

    def test_trace_level_name(self):
        """Test that TRACE is registered below DEBUG."""
        assert TRACE < logging.DEBUG
        assert logging.getLevelName(TRACE) == "TRACE"

    @pytest.mark.parametrize(
        "name,level",
        [
            ("trace", TRACE),
            ("DEBUG", logging.DEBUG),
            ("Info", logging.INFO),
            ("warn", logging.WARNING),
            ("WARNING", logging.WARNING),
            ("error", logging.ERROR),
        ],
    )
    def test_get_level_from_name(self, name, level):
        """Test level name conversion."""
        assert get_level_from_name(name) == level

    def test_get_level_from_name_invalid(self):
        """Test that an unknown level name raises."""
        with pytest.raises(ValueError, match="Invalid log level: LOUD"):
            get_level_from_name("LOUD")

    def test_get_label(self):
        """Test the labels written to the sink."""
        assert get_label(logging.WARNING) == "WARN"
        assert get_label(logging.CRITICAL) == "ERROR"
        assert get_label(logging.ERROR) == "ERROR"
        assert get_label(TRACE) == "TRACE"


class TestEngineFormatter:
    """Tests for EngineFormatter."""

    def _record(self, level, msg, args=()):
        return logging.LogRecord("terranova.engine", level, __file__, 1, msg, args, None)

    def test_format(self):
        """Test the timestamp and label layout."""
        line = EngineFormatter().format(self._record(logging.INFO, "refreshing %s", ("null_resource.a",)))
        assert re.match(r"^\d{4}/\d{2}/\d{2} \d{2}:\d{2}:\d{2} \[INFO\] refreshing null_resource.a$", line)

    def test_warning_rendered_as_warn(self):
        """Test that WARNING is written with the WARN label."""
        record = self._record(logging.WARNING, "slow")
        line = EngineFormatter().format(record)
        assert "[WARN] slow" in line
        assert record.levelname == "WARNING"


class TestEngineSink:
    """Tests for the process-wide engine sink."""

    def test_set_output_returns_previous(self):
        """Test swapping the sink stream."""
        original = get_output()
        first = StringIO()
        second = StringIO()

        assert set_output(first) is original
        assert set_output(second) is first
        assert get_output() is second
        assert set_output(original) is second

    def test_engine_logger_writes_to_sink(self):
        """Test the line format written by the engine logger."""
        stream = StringIO()
        set_output(stream)

        get_engine_logger().warning("provider %s is slow", "null")

        match = LINE_RE.match(stream.getvalue())
        assert match is not None
        assert match.group(1) == "WARN"
        assert match.group(2) == "provider null is slow"

    def test_child_logger_writes_to_sink(self):
        """Test that child loggers share the sink."""
        stream = StringIO()
        set_output(stream)

        child = get_engine_logger("providers.null")
        assert child.name == f"{ENGINE_LOGGER_NAME}.providers.null"
        child.error("boom")

        assert stream.getvalue().endswith("[ERROR] boom\n")

    def test_sink_does_not_propagate(self):
        """Test that engine lines stay out of the root logger."""

        class Collector(logging.Handler):
            def __init__(self):
                super().__init__(logging.DEBUG)
                self.records = []

            def emit(self, record):
                self.records.append(record)

        collector = Collector()
        root = logging.getLogger()
        root.addHandler(collector)
        try:
            set_output(StringIO())
            get_engine_logger().error("engine only")
        finally:
            root.removeHandler(collector)

        assert get_engine_logger().propagate is False
        assert collector.records == []

    def test_set_log_level(self):
        """Test filtering the sink by level."""
        stream = StringIO()
        set_output(stream)

        assert set_log_level("error") == logging.ERROR
        get_engine_logger().info("hidden")
        get_engine_logger().error("shown")

        assert "hidden" not in stream.getvalue()
        assert "shown" in stream.getvalue()

    def test_set_log_level_trace(self):
        """Test that TRACE lines are written once enabled."""
        stream = StringIO()
        set_output(stream)

        set_log_level(TRACE)
        get_engine_logger().log(TRACE, "walking")

        assert "[TRACE] walking" in stream.getvalue()


class TestLogPerformance:
    """Tests for log_performance context manager."""

    def test_log_performance_basic(self, caplog):
        """Test basic performance logging."""
        logger = logging.getLogger("test.perf")
        logger.setLevel(logging.INFO)

        with log_performance(logger, "Test operation"):
            time.sleep(0.01)

        assert "Test operation completed" in caplog.text
        assert "0." in caplog.text  # Contains duration

    def test_log_performance_with_context(self, caplog):
        """Test performance logging with context."""
        logger = logging.getLogger("test.perf.context")
        logger.setLevel(logging.INFO)

        with log_performance(logger, "Apply", destroy=True):
            time.sleep(0.01)

        assert "Apply completed" in caplog.text
        assert "destroy=True" in caplog.text

    def test_log_performance_threshold(self, caplog):
        """Test performance logging with threshold."""
        logger = logging.getLogger("test.perf.threshold")
        logger.setLevel(logging.INFO)

        with log_performance(logger, "Fast operation", threshold=1.0):
            time.sleep(0.01)

        assert "Fast operation" not in caplog.text

        with log_performance(logger, "Slow operation", threshold=0.001):
            time.sleep(0.01)

        assert "Slow operation completed" in caplog.text

    def test_log_performance_exception(self, caplog):
        """Test performance logging with exception."""
        logger = logging.getLogger("test.perf.exception")
        logger.setLevel(logging.INFO)

        with pytest.raises(ValueError):
            with log_performance(logger, "Failing operation"):
                raise ValueError("test error")

        assert "Failing operation completed" in caplog.text
