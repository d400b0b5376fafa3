"""Execution engine contract.

The orchestration layer never plans or applies anything itself. It builds
a ContextOpts, asks an Engine for a Context, and drives the Context through
validate, refresh, plan and apply. Each operation returns its result with
a Diagnostics list; errors are reported there, not raised.

Engines must not mutate the State passed in ContextOpts; refresh and apply
return new State objects.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from terranova.configs import Config
from terranova.diagnostics import Diagnostics
from terranova.hooks import Hook
from terranova.providers import ProviderResolver, ProvisionerFactory
from terranova.states import State
from terranova.variables import InputValue


class Action(Enum):
    """Planned change to a resource."""

    NOOP = "no-op"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class ResourceChange:
    """Planned change to one resource.

    Attributes:
        address: Resource address ("type.name")
        action: What apply will do
        before: Attributes in the refreshed state (None when creating)
        after: Evaluated arguments (None when deleting)
    """

    address: str
    action: Action
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None


@dataclass
class Plan:
    """Changes proposed by the engine, not yet applied.

    Attributes:
        changes: Resource changes in the order apply will perform them
        prior_state: Refreshed state the plan was made against
        destroy: Whether this is a destroy plan
    """

    changes: list[ResourceChange] = field(default_factory=list)
    prior_state: State = field(default_factory=State)
    destroy: bool = False

    def pending(self) -> list[ResourceChange]:
        """Get the changes that are not no-ops."""
        return [c for c in self.changes if c.action is not Action.NOOP]

    def is_empty(self) -> bool:
        """Check if applying the plan would change nothing."""
        return not self.pending()

    def summary(self) -> str:
        """Format a one-line summary of the plan."""
        counts = {action: 0 for action in (Action.CREATE, Action.UPDATE, Action.DELETE)}
        for change in self.pending():
            counts[change.action] += 1
        return (
            f"Plan: {counts[Action.CREATE]} to add, "
            f"{counts[Action.UPDATE]} to change, "
            f"{counts[Action.DELETE]} to destroy."
        )


@dataclass
class ContextOpts:
    """Everything an engine needs for one orchestration cycle.

    Attributes:
        config: Loaded and validated description
        destroy: Plan the destruction of every managed resource
        state: Current resource state
        variables: Caller-supplied variable values keyed by name
        providers: Resolver for provider names
        provisioners: Provisioner factories keyed by name
        hooks: Hooks called while working on resources
    """

    config: Config
    destroy: bool = False
    state: State = field(default_factory=State)
    variables: dict[str, InputValue] = field(default_factory=dict)
    providers: ProviderResolver = field(default_factory=lambda: ProviderResolver({}))
    provisioners: dict[str, ProvisionerFactory] = field(default_factory=dict)
    hooks: list[Hook] = field(default_factory=list)


class Context(ABC):
    """One orchestration cycle bound to a config, variables and a state."""

    @property
    @abstractmethod
    def state(self) -> State:
        """The latest state known to the context."""

    @abstractmethod
    def validate(self) -> Diagnostics:
        """Check the config, variables and providers without side effects."""

    @abstractmethod
    def refresh(self) -> tuple[State, Diagnostics]:
        """Update the state from the real resources."""

    @abstractmethod
    def plan(self) -> tuple[Plan, Diagnostics]:
        """Compute the changes needed to reach the described state."""

    @abstractmethod
    def apply(self) -> tuple[State, Diagnostics]:
        """Perform the planned changes.

        The returned state reflects every change that completed, even when
        the diagnostics report a later failure.
        """


class Engine(ABC):
    """Factory of execution contexts."""

    @abstractmethod
    def new_context(self, opts: ContextOpts) -> tuple[Context | None, Diagnostics]:
        """Create a context, or report why it cannot be created."""


__all__ = [
    "Action",
    "ResourceChange",
    "Plan",
    "ContextOpts",
    "Context",
    "Engine",
]
