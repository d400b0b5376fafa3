"""Platform: programmatic control of a managed infrastructure.

A Platform holds everything needed to manage one infrastructure: the
description text, provider and provisioner registries, bound variables and
the current resource state. Plan and apply build a fresh execution context
each time and drive it through refresh, plan and apply.

Example:
    platform = Platform(CODE).bind_vars({"count": 2})
    platform.read_state_from_file("infra.tfstate")
    platform.apply()
    platform.write_state_to_file("infra.tfstate")

A Platform is not safe for concurrent plan/apply calls: building a context
reads the state that a successful apply replaces. Serialize access to a
Platform shared between threads.
"""

import logging
from pathlib import Path
from typing import IO, Any

from terranova import statefile
from terranova.config import PlatformConfig
from terranova.context import build_context, raise_for_errors
from terranova.engine import Engine, Plan
from terranova.engine.local import LocalEngine
from terranova.exceptions import BindingError
from terranova.hooks import Hook, LogHook
from terranova.logging import VALID_LEVELS, log_performance, set_log_level
from terranova.providers import (
    NullProvider,
    Provider,
    ProviderFactory,
    Provisioner,
    ProvisionerFactory,
    provider_factory,
    provisioner_factory,
)
from terranova.states import State
from terranova.values import Value
from terranova.variables import bind_variables

logger = logging.getLogger(__name__)

# Joins description fragments; each fragment stays its own YAML document
CODE_SEPARATOR = "\n---\n"


def load_code_files(*paths: str | Path) -> str:
    """Read description files and join them into one text.

    Raises:
        OSError: If a file cannot be read
    """
    return CODE_SEPARATOR.join(Path(path).read_text() for path in paths)


class Platform:
    """A managed infrastructure.

    Attributes:
        code: Description text
        providers: Provider factories keyed by name ("null" is registered by default)
        provisioners: Provisioner factories keyed by name
        hooks: Engine hooks (a LogHook by default)
        vars: Bound variables
        state: Current resource state
        error: Last error recorded by a fluent method (bind_vars, add_code_files)
        engine: Execution engine (LocalEngine by default)
        settings: Library settings
    """

    def __init__(
        self,
        code: str = "",
        engine: Engine | None = None,
        settings: PlatformConfig | None = None,
    ) -> None:
        self.code = code
        self.providers: dict[str, ProviderFactory] = {}
        self.provisioners: dict[str, ProvisionerFactory] = {}
        self.hooks: list[Hook] = [LogHook()]
        self.vars: dict[str, Value] = {}
        self.state = State()
        self.error: Exception | None = None
        self.engine = engine if engine is not None else LocalEngine()
        self.settings = settings if settings is not None else PlatformConfig.from_env()

        # State file metadata written back by write_state()
        self._lineage = ""
        self._serial = 0

        self._add_default_providers()

        if self.settings.log_level:
            self.set_log_level(self.settings.log_level)

    def _add_default_providers(self) -> None:
        self.add_provider("null", NullProvider())

    def _set_last_error(self, error: Exception) -> None:
        self.error = error
        logger.warning(f"Last error: {error}")

    def add_code(self, code: str) -> "Platform":
        """Append description text."""
        self.code += CODE_SEPARATOR + code
        return self

    def add_code_files(self, *paths: str | Path) -> "Platform":
        """Append the content of description files.

        A file that cannot be read is recorded in ``error`` and no text is added.
        """
        try:
            code = load_code_files(*paths)
        except OSError as e:
            self._set_last_error(e)
            return self
        return self.add_code(code)

    def add_provider(self, name: str, provider: Provider | ProviderFactory) -> "Platform":
        """Register a provider instance or factory under a name."""
        if isinstance(provider, Provider):
            provider = provider_factory(provider)
        self.providers[name] = provider
        return self

    def add_provisioner(self, name: str, provisioner: Provisioner | ProvisionerFactory) -> "Platform":
        """Register a provisioner instance or factory under a name."""
        if isinstance(provisioner, Provisioner):
            provisioner = provisioner_factory(provisioner)
        self.provisioners[name] = provisioner
        return self

    def add_hook(self, hook: Hook) -> "Platform":
        """Register an engine hook."""
        self.hooks.append(hook)
        return self

    def bind_vars(self, variables: Any) -> "Platform":
        """Bind variables from a mapping or dataclass instance.

        On failure the error is recorded in ``error`` and the previously
        bound variables are kept.
        """
        try:
            bound = bind_variables(variables)
        except BindingError as e:
            self._set_last_error(e)
            return self
        self.vars = bound
        return self

    def set_log_level(self, level: str) -> "Platform":
        """Filter the engine log sink; unknown level names fall back to INFO."""
        name = level.upper()
        if name == "WARNING":
            name = "WARN"
        if name not in VALID_LEVELS:
            logger.warning(f"Invalid log level {level!r}, using INFO")
            name = "INFO"
        set_log_level(name)
        return self

    def write_state(self, stream: IO[Any]) -> "Platform":
        """Write the current state to a text or binary stream."""
        statefile.write(self._state_file(), stream)
        return self

    def read_state(self, stream: IO[Any]) -> "Platform":
        """Replace the current state with one read from a stream."""
        self._load_state_file(statefile.read(stream))
        return self

    def write_state_to_file(self, path: str | Path) -> "Platform":
        """Write the current state to a file."""
        statefile.write_file(self._state_file(), path)
        return self

    def read_state_from_file(self, path: str | Path) -> "Platform":
        """Replace the current state with one read from a file."""
        self._load_state_file(statefile.read_file(path))
        return self

    def _state_file(self) -> statefile.StateFile:
        return statefile.StateFile(state=self.state, lineage=self._lineage, serial=self._serial)

    def _load_state_file(self, state_file: statefile.StateFile) -> None:
        self.state = state_file.state
        self._lineage = state_file.lineage
        self._serial = state_file.serial

    def plan(self, destroy: bool = False) -> Plan:
        """Compute the changes needed to reach the described infrastructure.

        The state of the Platform is not changed.

        Raises:
            ConfigurationError: If the description is empty or invalid
            UndeclaredVariableError: If a bound variable is not declared
            EngineError: If any engine stage fails
        """
        ctx = build_context(self, destroy)

        with log_performance(logger, "Refresh", level=logging.DEBUG):
            _, diags = ctx.refresh()
        raise_for_errors("refresh", diags)

        with log_performance(logger, "Plan", level=logging.DEBUG, destroy=destroy):
            plan, diags = ctx.plan()
        raise_for_errors("plan", diags)

        logger.info(plan.summary())
        return plan

    def apply(self, destroy: bool = False) -> None:
        """Bring the infrastructure to the described state, or destroy it.

        The state returned by the engine replaces the Platform state even
        when apply fails, so resources changed before the failure are kept.

        Raises:
            ConfigurationError: If the description is empty or invalid
            UndeclaredVariableError: If a bound variable is not declared
            EngineError: If any engine stage fails
        """
        ctx = build_context(self, destroy)

        with log_performance(logger, "Refresh", level=logging.DEBUG):
            _, diags = ctx.refresh()
        raise_for_errors("refresh", diags)

        with log_performance(logger, "Plan", level=logging.DEBUG, destroy=destroy):
            plan, diags = ctx.plan()
        raise_for_errors("plan", diags)
        logger.info(plan.summary())

        with log_performance(logger, "Apply", level=logging.DEBUG, destroy=destroy):
            state, diags = ctx.apply()
        self.state = state
        raise_for_errors("apply", diags)
