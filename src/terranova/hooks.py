"""Hooks called by the engine while it works on resources.

Every method returns a HookAction; returning HALT stops the operation in
progress. The base Hook does nothing and continues.
"""

from enum import Enum
from typing import TYPE_CHECKING, Any

from terranova.logging import get_engine_logger
from terranova.states import State

if TYPE_CHECKING:
    from terranova.engine import Action


class HookAction(Enum):
    """What the engine does after calling a hook."""

    CONTINUE = "continue"
    HALT = "halt"


class Hook:
    """No-op base hook; override the methods of interest."""

    def pre_refresh(self, address: str, prior: dict[str, Any]) -> HookAction:
        return HookAction.CONTINUE

    def post_refresh(self, address: str, prior: dict[str, Any], new: dict[str, Any] | None) -> HookAction:
        return HookAction.CONTINUE

    def pre_diff(self, address: str, prior: dict[str, Any] | None, proposed: dict[str, Any] | None) -> HookAction:
        return HookAction.CONTINUE

    def post_diff(self, address: str, action: "Action") -> HookAction:
        return HookAction.CONTINUE

    def pre_apply(self, address: str, action: "Action") -> HookAction:
        return HookAction.CONTINUE

    def post_apply(self, address: str, new: dict[str, Any] | None, error: Exception | None) -> HookAction:
        return HookAction.CONTINUE

    def pre_provision_step(self, address: str, type_name: str) -> HookAction:
        return HookAction.CONTINUE

    def post_provision_step(self, address: str, type_name: str, error: Exception | None) -> HookAction:
        return HookAction.CONTINUE

    def provision_output(self, address: str, type_name: str, line: str) -> None:
        pass

    def post_state_update(self, state: State) -> HookAction:
        return HookAction.CONTINUE


class LogHook(Hook):
    """Write provisioner output to the engine log sink at INFO."""

    def provision_output(self, address: str, type_name: str, line: str) -> None:
        get_engine_logger().info("%s: %s", type_name, line)
