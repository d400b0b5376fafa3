"""Resource providers and provisioners.

A provider manages the lifecycle of one family of resource types; a
provisioner runs actions against a resource right after it is created.
Both are registered on a Platform by name and handed to the engine as
factories: zero-argument callables returning a ready instance (or raising).

Built-in:
    null: the "null_resource" type, which stores its ``triggers`` and an id
          and is replaced whenever the triggers change.
"""

import logging
import random
from abc import ABC, abstractmethod
from typing import Any, Callable, Mapping

from terranova.diagnostics import Diagnostics

logger = logging.getLogger(__name__)


class Provider(ABC):
    """A resource provider."""

    @abstractmethod
    def resource_types(self) -> set[str]:
        """Resource types this provider manages."""

    def configure(self, config: dict[str, Any]) -> Diagnostics:
        """Configure the provider from its ``provider`` block."""
        return Diagnostics()

    def validate_resource(self, type_name: str, config: dict[str, Any]) -> Diagnostics:
        """Check the arguments of a resource."""
        return Diagnostics()

    def read_resource(self, type_name: str, attributes: dict[str, Any]) -> dict[str, Any] | None:
        """Refresh a resource; return None if it no longer exists."""
        return dict(attributes)

    @abstractmethod
    def apply_resource_change(
        self,
        type_name: str,
        prior: dict[str, Any] | None,
        planned: dict[str, Any] | None,
    ) -> dict[str, Any] | None:
        """Create (prior is None), update, or delete (planned is None) a resource.

        Returns:
            The new attributes, or None when the resource was deleted
        """


class Provisioner(ABC):
    """A resource provisioner."""

    def validate(self, config: dict[str, Any]) -> Diagnostics:
        """Check the provisioner arguments."""
        return Diagnostics()

    @abstractmethod
    def provision(
        self,
        attributes: dict[str, Any],
        config: dict[str, Any],
        output: Callable[[str], None],
    ) -> None:
        """Run the provisioner against a created resource.

        Args:
            attributes: Attributes of the created resource
            config: Evaluated provisioner arguments
            output: Callback receiving each line of output

        Raises:
            Exception: Any error fails the resource
        """


ProviderFactory = Callable[[], Provider]
ProvisionerFactory = Callable[[], Provisioner]


def provider_factory(provider: Provider) -> ProviderFactory:
    """Wrap a provider instance in a factory returning it."""

    def factory() -> Provider:
        return provider

    return factory


def provisioner_factory(provisioner: Provisioner) -> ProvisionerFactory:
    """Wrap a provisioner instance in a factory returning it."""

    def factory() -> Provisioner:
        return provisioner

    return factory


class ProviderResolver:
    """Resolve provider names to instances from a fixed set of factories."""

    def __init__(self, factories: Mapping[str, ProviderFactory]):
        self._factories = dict(factories)

    def names(self) -> list[str]:
        return list(self._factories)

    def resolve(self, names: list[str]) -> tuple[dict[str, Provider], Diagnostics]:
        """Instantiate the named providers.

        Returns:
            Instances keyed by name, and an error diagnostic for every name
            that is unknown or whose factory failed
        """
        diags = Diagnostics()
        providers: dict[str, Provider] = {}
        for name in names:
            factory = self._factories.get(name)
            if factory is None:
                diags.error(f"Provider {name!r} is not available", subject=f"provider.{name}")
                continue
            try:
                providers[name] = factory()
            except Exception as e:
                diags.error(f"Failed to instantiate provider {name!r}", str(e), subject=f"provider.{name}")
        return providers, diags


def resolver_fixed(factories: Mapping[str, ProviderFactory]) -> ProviderResolver:
    """Build a resolver over a fixed name -> factory mapping."""
    return ProviderResolver(factories)


class NullProvider(Provider):
    """Provider of ``null_resource``, a resource that does nothing."""

    def resource_types(self) -> set[str]:
        return {"null_resource"}

    def validate_resource(self, type_name: str, config: dict[str, Any]) -> Diagnostics:
        diags = Diagnostics()
        for arg in config:
            if arg != "triggers":
                diags.error(f"Unsupported argument {arg!r}", subject=type_name)
        if not isinstance(config.get("triggers", {}), dict):
            diags.error("Argument 'triggers' must be a mapping", subject=type_name)
        return diags

    def apply_resource_change(
        self,
        type_name: str,
        prior: dict[str, Any] | None,
        planned: dict[str, Any] | None,
    ) -> dict[str, Any] | None:
        if planned is None:
            return None

        triggers = planned.get("triggers", {})
        if prior is not None and prior.get("triggers", {}) == triggers:
            return dict(prior)

        resource_id = str(random.getrandbits(63))
        logger.debug(f"Replacing {type_name} with id {resource_id}")
        return {"id": resource_id, "triggers": triggers}
