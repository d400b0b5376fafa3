"""Resource state snapshot.

A State records every resource instance the engine manages plus the root
outputs. The orchestration layer treats it as opaque: it hands the current
State to the engine and replaces it with the one the engine returns.
Engines must never mutate a State they were given; they work on a copy.
"""

import copy
from dataclasses import dataclass, field
from typing import Any


@dataclass
class ResourceInstance:
    """State of one managed resource instance.

    Attributes:
        type: Resource type (e.g., "null_resource")
        name: Resource name within the description
        provider: Name of the provider managing the resource
        attributes: Attributes recorded after the last apply or refresh
        mode: Resource mode, always "managed" for now
    """

    type: str
    name: str
    provider: str
    attributes: dict[str, Any] = field(default_factory=dict)
    mode: str = "managed"

    @property
    def address(self) -> str:
        return f"{self.type}.{self.name}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "mode": self.mode,
            "type": self.type,
            "name": self.name,
            "provider": self.provider,
            "instances": [{"attributes": self.attributes}],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ResourceInstance":
        """Create from dictionary."""
        instances = data.get("instances") or [{}]
        return cls(
            type=data["type"],
            name=data["name"],
            provider=data["provider"],
            attributes=dict(instances[0].get("attributes", {})),
            mode=data.get("mode", "managed"),
        )


@dataclass
class State:
    """Snapshot of all managed resources.

    Attributes:
        resources: Resource instances keyed by address ("type.name")
        outputs: Root output values
    """

    resources: dict[str, ResourceInstance] = field(default_factory=dict)
    outputs: dict[str, Any] = field(default_factory=dict)

    def empty(self) -> bool:
        """Check if the state has no resources and no outputs."""
        return not self.resources and not self.outputs

    def resource(self, address: str) -> ResourceInstance | None:
        """Get a resource instance by address."""
        return self.resources.get(address)

    def set_resource(self, instance: ResourceInstance) -> None:
        """Add or replace a resource instance."""
        self.resources[instance.address] = instance

    def remove_resource(self, address: str) -> None:
        """Remove a resource instance, if present."""
        self.resources.pop(address, None)

    def deep_copy(self) -> "State":
        """Get an independent copy of the state."""
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "outputs": {name: {"value": value} for name, value in self.outputs.items()},
            "resources": [instance.to_dict() for instance in self.resources.values()],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "State":
        """Create from dictionary."""
        state = cls(
            outputs={name: output["value"] for name, output in data.get("outputs", {}).items()},
        )
        for resource_data in data.get("resources", []):
            state.set_resource(ResourceInstance.from_dict(resource_data))
        return state
