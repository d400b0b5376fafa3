"""Tests for the Platform."""

import io
import logging
from dataclasses import dataclass

import pytest

from terranova import Platform, PlatformConfig
from terranova.exceptions import BindingError, ConfigurationError, EngineError, StateFileError
from terranova.hooks import LogHook
from terranova.logging import ENGINE_LOGGER_NAME, TRACE
from terranova.platform import CODE_SEPARATOR, load_code_files
from terranova.providers import NullProvider
from terranova.states import ResourceInstance, State

CODE = """
variable:
  version:
    default: "1"
resource:
  null_resource:
    web:
      triggers:
        version: ${var.version}
output:
  web_id:
    value: ${null_resource.web.id}
"""


@dataclass
class Versions:
    version: str


def sample_state():
    state = State(outputs={"web_id": "1"})
    state.set_resource(ResourceInstance("null_resource", "web", "null", {"id": "1", "triggers": {}}))
    return state


class TestPlatformSetup:
    """Tests for building a Platform."""

    def test_defaults(self):
        """Test the default registries."""
        platform = Platform()

        assert platform.code == ""
        assert list(platform.providers) == ["null"]
        assert isinstance(platform.providers["null"](), NullProvider)
        assert platform.provisioners == {}
        assert [type(h) for h in platform.hooks] == [LogHook]
        assert platform.state.empty()
        assert platform.error is None

    def test_add_code(self):
        """Test that fragments are joined as separate documents."""
        platform = Platform("variable:\n  a: {}").add_code("variable:\n  b: {}")
        assert platform.code == "variable:\n  a: {}" + CODE_SEPARATOR + "variable:\n  b: {}"

    def test_add_code_files(self, tmp_path):
        """Test appending files."""
        first = tmp_path / "a.tf.yaml"
        second = tmp_path / "b.tf.yaml"
        first.write_text("variable:\n  a: {}\n")
        second.write_text("variable:\n  b: {}\n")

        assert load_code_files(first, second) == first.read_text() + CODE_SEPARATOR + second.read_text()

        platform = Platform().add_code_files(first, second)
        assert "variable:\n  b: {}" in platform.code
        assert platform.error is None

    def test_add_code_files_missing(self, tmp_path):
        """Test that an unreadable file is recorded and adds nothing."""
        platform = Platform("x: 1").add_code_files(tmp_path / "missing.tf.yaml")

        assert isinstance(platform.error, FileNotFoundError)
        assert platform.code == "x: 1"

    def test_add_provider_instance_or_factory(self):
        """Test registering providers and provisioners."""
        provider = NullProvider()
        platform = Platform().add_provider("other", provider).add_provider("third", NullProvider)

        assert platform.providers["other"]() is provider
        assert isinstance(platform.providers["third"](), NullProvider)

    def test_bind_vars(self):
        """Test binding variables from a dataclass."""
        platform = Platform().bind_vars(Versions(version="2"))
        assert platform.vars["version"].to_python() == "2"

    def test_bind_vars_error_keeps_previous(self):
        """Test that a failed binding keeps the previous variables."""
        platform = Platform().bind_vars({"version": "2"}).bind_vars(["not", "a", "record"])

        assert isinstance(platform.error, BindingError)
        assert platform.vars["version"].to_python() == "2"

    @pytest.mark.parametrize(
        "name,level",
        [
            ("debug", logging.DEBUG),
            ("TRACE", TRACE),
            ("warning", logging.WARNING),
            ("Warn", logging.WARNING),
            ("nonsense", logging.INFO),
        ],
    )
    def test_set_log_level(self, name, level):
        """Test level names, including the fallback to INFO."""
        Platform().set_log_level(name)
        assert logging.getLogger(ENGINE_LOGGER_NAME).level == level

    def test_log_level_from_settings(self):
        """Test that the configured level is applied on creation."""
        Platform(settings=PlatformConfig(log_level="error"))
        assert logging.getLogger(ENGINE_LOGGER_NAME).level == logging.ERROR


class TestPlatformState:
    """Tests for reading and writing state."""

    def test_stream_round_trip(self):
        """Test writing and reading a state stream."""
        platform = Platform()
        platform.state = sample_state()
        stream = io.StringIO()
        platform.write_state(stream)

        stream.seek(0)
        restored = Platform().read_state(stream)
        assert restored.state == platform.state

    def test_metadata_kept(self, tmp_path):
        """Test that lineage and serial survive a read and write."""
        path = tmp_path / "in.tfstate"
        path.write_text('{"version": 4, "serial": 9, "lineage": "abc", "outputs": {}, "resources": []}')

        platform = Platform().read_state_from_file(path)
        platform.write_state_to_file(tmp_path / "out.tfstate")

        written = (tmp_path / "out.tfstate").read_text()
        assert '"serial": 9' in written
        assert '"lineage": "abc"' in written

    def test_read_invalid_state(self):
        """Test that a malformed state raises and keeps the current state."""
        platform = Platform()
        platform.state = sample_state()

        with pytest.raises(StateFileError):
            platform.read_state(io.BytesIO(b'{"version": 1}'))
        assert platform.state.resource("null_resource.web") is not None


class TestPlatformWithFakeEngine:
    """Tests for plan and apply stage handling."""

    def test_plan_leaves_state(self, fake_engine):
        """Test that plan runs refresh and plan only."""
        platform = Platform(CODE, engine=fake_engine)
        state = platform.state

        plan = platform.plan(destroy=True)

        assert plan.destroy is True
        assert fake_engine.calls == ["new_context", "validate", "refresh", "plan"]
        assert platform.state is state

    @pytest.mark.parametrize("stage", ["refresh", "plan"])
    def test_stage_errors(self, fake_engine, stage):
        """Test that a failing stage stops apply and names the stage."""
        getattr(fake_engine, f"{stage}_diags").error("provider crashed")
        platform = Platform(CODE, engine=fake_engine)

        with pytest.raises(EngineError) as exc_info:
            platform.apply()

        assert exc_info.value.stage == stage
        assert "apply" not in fake_engine.calls

    def test_partial_apply_state_kept(self, fake_engine):
        """Test that the state returned by a failed apply replaces the Platform state."""
        fake_engine.apply_state = sample_state()
        fake_engine.apply_diags.error("Failed to create resource", subject="null_resource.db")
        platform = Platform(CODE, engine=fake_engine)

        with pytest.raises(EngineError) as exc_info:
            platform.apply()

        assert exc_info.value.stage == "apply"
        assert platform.state is fake_engine.apply_state

    def test_apply(self, fake_engine):
        """Test a successful apply."""
        fake_engine.apply_state = sample_state()
        platform = Platform(CODE, engine=fake_engine)

        platform.apply()

        assert fake_engine.calls == ["new_context", "validate", "refresh", "plan", "apply"]
        assert platform.state is fake_engine.apply_state


class TestPlatformEndToEnd:
    """Tests with the local engine."""

    def test_lifecycle(self, tmp_path):
        """Test apply, an empty plan, a change, state files and destroy."""
        path = tmp_path / "web.tfstate"
        platform = Platform(CODE)

        assert platform.plan().summary() == "Plan: 1 to add, 0 to change, 0 to destroy."
        assert platform.state.empty()

        platform.apply()
        web_id = platform.state.resource("null_resource.web").attributes["id"]
        assert platform.state.outputs == {"web_id": web_id}
        platform.write_state_to_file(path)

        restored = Platform(CODE).read_state_from_file(path)
        assert restored.plan().is_empty()

        restored.bind_vars({"version": "2"})
        assert restored.plan().summary() == "Plan: 0 to add, 1 to change, 0 to destroy."
        restored.apply()
        assert restored.state.resource("null_resource.web").attributes["id"] != web_id

        restored.apply(destroy=True)
        assert restored.state.empty()

    def test_undeclared_variable(self):
        """Test the error for a variable the code does not declare."""
        from terranova.exceptions import UndeclaredVariableError

        platform = Platform(CODE).bind_vars({"zone": "a"})
        with pytest.raises(UndeclaredVariableError):
            platform.apply()
        assert platform.state.empty()

    def test_unquoted_null_resource_type(self):
        """Test that a resource type read as None is a configuration error."""
        with pytest.raises(ConfigurationError) as exc_info:
            Platform("resource:\n  null:\n    web: {}\n").plan()
        assert "Resource type must be a string" in str(exc_info.value)

    def test_validation_error(self):
        """Test that validation errors reach the caller."""
        platform = Platform("resource:\n  null_resource:\n    web:\n      size: 1\n")

        with pytest.raises(EngineError) as exc_info:
            platform.apply()
        assert exc_info.value.stage == "validate"
        assert "Unsupported argument 'size'" in str(exc_info.value)
