"""Local in-process execution engine.

LocalEngine is the default engine of a Platform. It is deliberately small:

- Resources are created and updated in declaration order and destroyed in
  reverse order; there is no dependency graph.
- A resource needs an update when one of its evaluated arguments differs
  from the stored attribute of the same name.
- Resource arguments may reference ``${var.NAME}``; outputs may also
  reference ``${TYPE.NAME.ATTR}`` of managed resources.
- Provisioners run right after a resource is created.

Engine activity is written to the engine log sink (``terranova.logging``).
"""

import re
from typing import Any, Callable

from terranova.configs import Config, Resource
from terranova.diagnostics import Diagnostics
from terranova.engine import Action, Context, ContextOpts, Engine, Plan, ResourceChange
from terranova.exceptions import BindingError
from terranova.hooks import HookAction
from terranova.logging import TRACE, get_engine_logger
from terranova.providers import Provider, Provisioner
from terranova.states import ResourceInstance, State
from terranova.values import to_value
from terranova.variables import InputValue

log = get_engine_logger("local")

REFERENCE_RE = re.compile(r"\$\{\s*([^}]+?)\s*\}")


class EvaluationError(Exception):
    """A ${...} reference cannot be resolved."""


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def evaluate(value: Any, lookup: Callable[[str], Any]) -> Any:
    """Resolve ${...} references in a value.

    A string that is exactly one reference takes the referenced value as
    is; references embedded in longer strings are interpolated as text.
    """
    if isinstance(value, dict):
        return {key: evaluate(item, lookup) for key, item in value.items()}
    if isinstance(value, list):
        return [evaluate(item, lookup) for item in value]
    if isinstance(value, str):
        whole = REFERENCE_RE.fullmatch(value)
        if whole:
            return lookup(whole.group(1))
        return REFERENCE_RE.sub(lambda m: _to_text(lookup(m.group(1))), value)
    return value


def references(value: Any) -> list[str]:
    """List the ${...} references found in a value."""
    if isinstance(value, dict):
        return [ref for item in value.values() for ref in references(item)]
    if isinstance(value, list):
        return [ref for item in value for ref in references(item)]
    if isinstance(value, str):
        return REFERENCE_RE.findall(value)
    return []


def resolve_variables(
    config: Config,
    inputs: dict[str, InputValue],
) -> tuple[dict[str, Any], Diagnostics]:
    """Combine caller values and defaults for every declared variable."""
    diags = Diagnostics()
    values: dict[str, Any] = {}
    for name, variable in config.module.variables.items():
        subject = f"var.{name}"
        if name in inputs:
            try:
                values[name] = to_value(inputs[name].value, variable.type).to_python()
            except BindingError as e:
                diags.error("Invalid value for variable", str(e), subject=subject)
        elif variable.has_default:
            values[name] = variable.default
        else:
            diags.error("No value for required variable", subject=subject)
    return values, diags


class LocalContext(Context):
    """Context of the local engine."""

    def __init__(
        self,
        opts: ContextOpts,
        providers: dict[str, Provider],
        provisioners: dict[str, Provisioner],
    ):
        self._config = opts.config
        self._module = opts.config.module
        self._destroy = opts.destroy
        self._hooks = list(opts.hooks)
        self._providers = providers
        self._provisioners = provisioners
        self._state = opts.state.deep_copy()
        self._variables, self._variable_diags = resolve_variables(opts.config, opts.variables)
        self._plan: Plan | None = None

    @property
    def state(self) -> State:
        return self._state

    def _run_hooks(self, method: str, *args: Any) -> bool:
        """Call a hook method on every hook; True if any asked to halt."""
        halted = False
        for hook in self._hooks:
            if getattr(hook, method)(*args) is HookAction.HALT:
                halted = True
        return halted

    def _lookup_variable(self, ref: str) -> Any:
        parts = ref.split(".")
        if len(parts) == 2 and parts[0] == "var":
            name = parts[1]
            if name not in self._module.variables:
                raise EvaluationError(f"Reference to undeclared input variable {name!r}")
            if name not in self._variables:
                raise EvaluationError(f"No value for variable {name!r}")
            return self._variables[name]
        raise EvaluationError(f"Unsupported reference {ref!r}; only var.NAME is allowed here")

    def _lookup(self, state: State) -> Callable[[str], Any]:
        def lookup(ref: str) -> Any:
            parts = ref.split(".")
            if parts[0] == "var":
                return self._lookup_variable(ref)
            if len(parts) != 3:
                raise EvaluationError(f"Unsupported reference {ref!r}")
            address, attribute = ".".join(parts[:2]), parts[2]
            instance = state.resource(address)
            if instance is None:
                raise EvaluationError(f"Reference to unknown resource {address!r}")
            if attribute not in instance.attributes:
                raise EvaluationError(f"Resource {address!r} has no attribute {attribute!r}")
            return instance.attributes[attribute]

        return lookup

    def _evaluate_resource(self, resource: Resource) -> dict[str, Any]:
        return evaluate(resource.config, self._lookup_variable)

    def validate(self) -> Diagnostics:
        diags = Diagnostics(self._variable_diags)
        if self._config.children:
            names = ", ".join(f"module.{name}" for name in self._config.children)
            diags.error("Child modules are not supported by the local engine", subject=names)
        if diags.has_errors():
            return diags

        for resource in self._module.resources.values():
            provider = self._providers[resource.provider]
            if resource.type not in provider.resource_types():
                diags.error(
                    f"Invalid resource type {resource.type!r}",
                    f"Provider {resource.provider!r} does not support this resource type",
                    subject=resource.address,
                )
                continue
            try:
                config = self._evaluate_resource(resource)
            except EvaluationError as e:
                diags.error(str(e), subject=resource.address)
                continue
            diags.extend(provider.validate_resource(resource.type, config))
            for provisioner in resource.provisioners:
                diags.extend(self._provisioners[provisioner.name].validate(provisioner.config))

        for output in self._module.outputs.values():
            for ref in references(output.value):
                parts = ref.split(".")
                if parts[0] == "var" and len(parts) == 2:
                    if parts[1] not in self._module.variables:
                        diags.error(f"Reference to undeclared input variable {parts[1]!r}", subject=f"output.{output.name}")
                elif len(parts) == 3:
                    if ".".join(parts[:2]) not in self._module.resources:
                        diags.error(f"Reference to undeclared resource {'.'.join(parts[:2])!r}", subject=f"output.{output.name}")
                else:
                    diags.error(f"Unsupported reference {ref!r}", subject=f"output.{output.name}")

        log.debug(f"Validated {len(self._module.resources)} resource(s)")
        return diags

    def refresh(self) -> tuple[State, Diagnostics]:
        diags = Diagnostics()
        state = self._state.deep_copy()

        for address, instance in self._state.resources.items():
            if self._run_hooks("pre_refresh", address, instance.attributes):
                diags.error("Refresh halted by hook", subject=address)
                break

            provider = self._providers[instance.provider]
            try:
                attributes = provider.read_resource(instance.type, dict(instance.attributes))
            except Exception as e:
                diags.error("Failed to refresh resource", str(e), subject=address)
                continue

            if attributes is None:
                log.info(f"{address}: resource no longer exists")
                state.remove_resource(address)
            else:
                log.log(TRACE, f"{address}: refreshed")
                state.set_resource(
                    ResourceInstance(instance.type, instance.name, instance.provider, attributes)
                )
            self._run_hooks("post_refresh", address, instance.attributes, attributes)

        self._state = state
        return state, diags

    def plan(self) -> tuple[Plan, Diagnostics]:
        diags = Diagnostics()
        prior = self._state
        changes: list[ResourceChange] = []

        if self._destroy:
            for address, instance in reversed(list(prior.resources.items())):
                changes.append(ResourceChange(address, Action.DELETE, before=dict(instance.attributes)))
        else:
            for resource in self._module.resources.values():
                try:
                    after = self._evaluate_resource(resource)
                except EvaluationError as e:
                    diags.error(str(e), subject=resource.address)
                    continue

                instance = prior.resource(resource.address)
                before = dict(instance.attributes) if instance else None
                if self._run_hooks("pre_diff", resource.address, before, after):
                    diags.error("Plan halted by hook", subject=resource.address)
                    break

                if before is None:
                    action = Action.CREATE
                elif any(before.get(key) != value for key, value in after.items()):
                    action = Action.UPDATE
                else:
                    action = Action.NOOP
                changes.append(ResourceChange(resource.address, action, before=before, after=after))
                self._run_hooks("post_diff", resource.address, action)

            for address, instance in reversed(list(prior.resources.items())):
                if address not in self._module.resources:
                    changes.append(ResourceChange(address, Action.DELETE, before=dict(instance.attributes)))

        plan = Plan(changes=changes, prior_state=prior.deep_copy(), destroy=self._destroy)
        self._plan = None if diags.has_errors() else plan
        log.info(plan.summary())
        return plan, diags

    def apply(self) -> tuple[State, Diagnostics]:
        if self._plan is None:
            _, diags = self.plan()
            if diags.has_errors():
                return self._state, diags
        plan = self._plan

        diags = Diagnostics()
        state = self._state.deep_copy()

        for change in plan.pending():
            resource = self._module.resources.get(change.address)
            instance = state.resource(change.address)
            if resource is not None:
                type_name, name, provider_name = resource.type, resource.name, resource.provider
            else:
                type_name, name, provider_name = instance.type, instance.name, instance.provider

            if self._run_hooks("pre_apply", change.address, change.action):
                diags.error("Apply halted by hook", subject=change.address)
                break

            log.debug(f"{change.address}: {change.action.value}")
            provider = self._providers[provider_name]
            new: dict[str, Any] | None = None
            error: Exception | None = None
            try:
                new = provider.apply_resource_change(
                    type_name,
                    dict(instance.attributes) if instance else None,
                    change.after,
                )
            except Exception as e:
                error = e

            if error is None:
                if new is None:
                    state.remove_resource(change.address)
                else:
                    state.set_resource(ResourceInstance(type_name, name, provider_name, new))
                    if change.action is Action.CREATE and resource is not None:
                        error = self._provision(resource, new)

            self._run_hooks("post_apply", change.address, new, error)
            if error is not None:
                log.error(f"{change.address}: {change.action.value} failed: {error}")
                diags.error(f"Failed to {change.action.value} resource", str(error), subject=change.address)
                break

            log.info(f"{change.address}: {change.action.value} complete")
            self._run_hooks("post_state_update", state)

        state.outputs = {} if self._destroy else self._evaluate_outputs(state, diags, report=not diags.has_errors())
        self._state = state
        self._plan = None
        return state, diags

    def _provision(self, resource: Resource, attributes: dict[str, Any]) -> Exception | None:
        for provisioner_config in resource.provisioners:
            name = provisioner_config.name
            if self._run_hooks("pre_provision_step", resource.address, name):
                return RuntimeError("Provisioning halted by hook")

            def output(line: str) -> None:
                for hook in self._hooks:
                    hook.provision_output(resource.address, name, line)

            try:
                config = evaluate(provisioner_config.config, self._lookup_variable)
                self._provisioners[name].provision(dict(attributes), config, output)
            except Exception as e:
                self._run_hooks("post_provision_step", resource.address, name, e)
                return e
            self._run_hooks("post_provision_step", resource.address, name, None)
        return None

    def _evaluate_outputs(self, state: State, diags: Diagnostics, report: bool) -> dict[str, Any]:
        outputs: dict[str, Any] = {}
        lookup = self._lookup(state)
        for output in self._module.outputs.values():
            try:
                outputs[output.name] = evaluate(output.value, lookup)
            except EvaluationError as e:
                if report:
                    diags.error(str(e), subject=f"output.{output.name}")
        return outputs


class LocalEngine(Engine):
    """Engine running providers in-process, one resource at a time."""

    def new_context(self, opts: ContextOpts) -> tuple[Context | None, Diagnostics]:
        diags = Diagnostics()
        module = opts.config.module

        names = {resource.provider for resource in module.resources.values()}
        names.update(instance.provider for instance in opts.state.resources.values())
        providers, provider_diags = opts.providers.resolve(sorted(names))
        diags.extend(provider_diags)

        for name, provider in providers.items():
            diags.extend(provider.configure(dict(module.providers.get(name, {}))))

        provisioners: dict[str, Provisioner] = {}
        for resource in module.resources.values():
            for provisioner_config in resource.provisioners:
                name = provisioner_config.name
                if name in provisioners:
                    continue
                factory = opts.provisioners.get(name)
                if factory is None:
                    diags.error(f"Provisioner {name!r} is not available", subject=resource.address)
                    continue
                try:
                    provisioners[name] = factory()
                except Exception as e:
                    diags.error(f"Failed to instantiate provisioner {name!r}", str(e), subject=resource.address)

        if diags.has_errors():
            return None, diags

        log.debug(f"New context with {len(providers)} provider(s), destroy={opts.destroy}")
        return LocalContext(opts, providers, provisioners), diags
