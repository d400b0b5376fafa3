"""Shared fixtures for Terranova tests."""

import logging
from typing import Any

import pytest

from terranova.diagnostics import Diagnostics
from terranova.engine import Context, ContextOpts, Engine, Plan
from terranova.log import Logger
from terranova.log import middleware
from terranova.logging import ENGINE_LOGGER_NAME, get_output, set_output
from terranova.states import State


class RecordingLogger(Logger):
    """Logger that records (operation, formatted message) pairs."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    def _record(self, operation: str, msg: str, args: tuple[Any, ...]) -> None:
        self.calls.append((operation, msg % args if args else msg))

    def print(self, msg: str, *args: Any) -> None:
        self._record("print", msg, args)

    def debug(self, msg: str, *args: Any) -> None:
        self._record("debug", msg, args)

    def info(self, msg: str, *args: Any) -> None:
        self._record("info", msg, args)

    def warning(self, msg: str, *args: Any) -> None:
        self._record("warning", msg, args)

    def error(self, msg: str, *args: Any) -> None:
        self._record("error", msg, args)

    def messages(self, operation: str) -> list[str]:
        return [message for op, message in self.calls if op == operation]


class FakeContext(Context):
    """Context returning whatever its engine was told to return."""

    def __init__(self, engine: "FakeEngine", opts: ContextOpts) -> None:
        self.engine = engine
        self.opts = opts
        self._state = opts.state

    @property
    def state(self) -> State:
        return self._state

    def validate(self) -> Diagnostics:
        self.engine.calls.append("validate")
        return self.engine.validate_diags

    def refresh(self) -> tuple[State, Diagnostics]:
        self.engine.calls.append("refresh")
        return self._state, self.engine.refresh_diags

    def plan(self) -> tuple[Plan, Diagnostics]:
        self.engine.calls.append("plan")
        return Plan(prior_state=self._state, destroy=self.opts.destroy), self.engine.plan_diags

    def apply(self) -> tuple[State, Diagnostics]:
        self.engine.calls.append("apply")
        return self.engine.apply_state, self.engine.apply_diags


class FakeEngine(Engine):
    """Engine whose stage results are set by the test."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.opts: ContextOpts | None = None
        self.return_context = True
        self.context_diags = Diagnostics()
        self.validate_diags = Diagnostics()
        self.refresh_diags = Diagnostics()
        self.plan_diags = Diagnostics()
        self.apply_diags = Diagnostics()
        self.apply_state = State()

    def new_context(self, opts: ContextOpts) -> tuple[Context | None, Diagnostics]:
        self.calls.append("new_context")
        self.opts = opts
        if not self.return_context:
            return None, self.context_diags
        return FakeContext(self, opts), self.context_diags


@pytest.fixture
def recording_logger() -> RecordingLogger:
    return RecordingLogger()


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture(autouse=True)
def restore_engine_sink():
    """Restore the engine sink stream and level after each test."""
    output = get_output()
    engine_logger = logging.getLogger(ENGINE_LOGGER_NAME)
    level = engine_logger.level
    yield
    set_output(output)
    engine_logger.setLevel(level)
    middleware._installed.clear()
