"""Infrastructure description loader.

A description is a directory of ``*.tf.yaml`` / ``*.tf.yml`` / ``*.tf.json``
files. Each file holds one or more YAML documents (JSON is valid YAML)
using the block structure of the engine's JSON syntax:

    variable:
      region:
        type: string
        default: us-east-1

    resource:
      null_resource:
        web:
          triggers:
            region: ${var.region}

    output:
      web_id:
        value: ${null_resource.web.id}

All documents of all files are merged block by block into one Module.
Problems are reported as diagnostics rather than raised, so one load
reports every problem it finds.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from terranova.diagnostics import Diagnostics
from terranova.exceptions import BindingError
from terranova.values import DYNAMIC, Type, parse_type, to_value

logger = logging.getLogger(__name__)

DESCRIPTION_SUFFIXES = (".tf.yaml", ".tf.yml", ".tf.json")

# Top-level blocks; "terraform" settings are accepted and ignored
BLOCK_TYPES = ("variable", "resource", "output", "provider", "module", "terraform")

VARIABLE_ARGUMENTS = {"default", "type", "description"}
OUTPUT_ARGUMENTS = {"value", "description"}


@dataclass
class Variable:
    """A declared input variable.

    Attributes:
        name: Variable name
        type: Type constraint (DYNAMIC accepts anything)
        default: Default value, used when has_default is True
        has_default: Whether the declaration provides a default
        description: Optional description
    """

    name: str
    type: Type = DYNAMIC
    default: Any = None
    has_default: bool = False
    description: str = ""

    @property
    def required(self) -> bool:
        return not self.has_default


@dataclass
class ProvisionerConfig:
    """A provisioner attached to a resource."""

    name: str
    config: dict[str, Any] = field(default_factory=dict)


@dataclass
class Resource:
    """A declared managed resource.

    Attributes:
        type: Resource type (e.g., "null_resource")
        name: Resource name
        config: Arguments, possibly with ${...} references
        provisioners: Provisioners run after the resource is created
    """

    type: str
    name: str
    config: dict[str, Any] = field(default_factory=dict)
    provisioners: list[ProvisionerConfig] = field(default_factory=list)

    @property
    def address(self) -> str:
        return f"{self.type}.{self.name}"

    @property
    def provider(self) -> str:
        """Provider name, the resource type prefix before the first underscore."""
        return self.type.split("_", 1)[0]


@dataclass
class Output:
    """A declared root output."""

    name: str
    value: Any = None
    description: str = ""


@dataclass
class ModuleCall:
    """A call to a child module."""

    name: str
    source: str = ""
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass
class Module:
    """All declarations of one module directory."""

    variables: dict[str, Variable] = field(default_factory=dict)
    resources: dict[str, Resource] = field(default_factory=dict)
    outputs: dict[str, Output] = field(default_factory=dict)
    providers: dict[str, dict[str, Any]] = field(default_factory=dict)
    module_calls: dict[str, ModuleCall] = field(default_factory=dict)


@dataclass
class Config:
    """A loaded module tree.

    Attributes:
        module: Root module
        children: Installed child modules keyed by call name
    """

    module: Module
    children: dict[str, "Config"] = field(default_factory=dict)


def _mark(path: Path, error: yaml.YAMLError) -> str:
    mark = getattr(error, "problem_mark", None)
    if mark is None:
        return path.name
    return f"{path.name}:{mark.line + 1}"


def _non_string_key(value: Any, path: str = "") -> str | None:
    """Find the first mapping key that is not a string, as a path; None if all are."""
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                return f"{path}.{key!r}" if path else repr(key)
            found = _non_string_key(item, f"{path}.{key}" if path else key)
            if found is not None:
                return found
    elif isinstance(value, list):
        for index, item in enumerate(value):
            found = _non_string_key(item, f"{path}[{index}]")
            if found is not None:
                return found
    return None


class Loader:
    """Load descriptions from disk.

    Args:
        modules_dir: Directory where child modules are installed. A child
            module called ``net`` is expected in ``modules_dir/net``.

    Example:
        >>> loader = Loader(modules_dir="/tmp/work/modules")
        >>> config, diags = loader.load_config("/tmp/work")
        >>> if diags.has_errors():
        ...     print(diags.format_errors())
    """

    def __init__(self, modules_dir: Path | str):
        self.modules_dir = Path(modules_dir)

    def load_config(self, root_dir: Path | str) -> tuple[Config | None, Diagnostics]:
        """Load the module in root_dir and its installed children.

        Returns:
            The Config (None if there were errors) and all diagnostics
        """
        root = Path(root_dir)
        diags = Diagnostics()
        config = self._load_tree(root, "", diags)
        if diags.has_errors():
            return None, diags
        return config, diags

    def _load_tree(self, path: Path, key: str, diags: Diagnostics) -> Config:
        module = self.load_module(path, diags)
        config = Config(module=module)

        for call in module.module_calls.values():
            child_key = f"{key}.{call.name}" if key else call.name
            child_dir = self.modules_dir / child_key
            if not child_dir.is_dir():
                diags.error(
                    "Module not installed",
                    f"This module is not yet installed; install it into {child_dir}",
                    subject=f"module.{call.name}",
                )
                continue
            config.children[call.name] = self._load_tree(child_dir, child_key, diags)

        return config

    def load_module(self, path: Path, diags: Diagnostics) -> Module:
        """Load every description file of one directory into a Module."""
        module = Module()
        files = sorted(p for p in path.iterdir() if p.is_file() and p.name.endswith(DESCRIPTION_SUFFIXES))
        if not files:
            diags.error("No configuration files", subject=path.name)
            return module

        for file_path in files:
            logger.debug(f"Loading description file {file_path}")
            self._load_file(file_path, module, diags)
        return module

    def _load_file(self, path: Path, module: Module, diags: Diagnostics) -> None:
        try:
            documents = list(yaml.safe_load_all(path.read_text()))
        except yaml.YAMLError as e:
            diags.error("Invalid YAML", str(e), subject=_mark(path, e))
            return

        for index, document in enumerate(documents):
            if document is None:
                continue
            subject = f"{path.name}#{index}"
            if not isinstance(document, dict):
                diags.error("Document must be a mapping of blocks", subject=subject)
                continue

            for block_type, body in document.items():
                if block_type not in BLOCK_TYPES:
                    diags.error(f"Unsupported block type {block_type!r}", subject=subject)
                    continue
                if block_type == "terraform":
                    continue
                if not isinstance(body, dict):
                    diags.error(f"Block {block_type!r} must be a mapping", subject=subject)
                    continue
                handler = getattr(self, f"_decode_{block_type}")
                handler(body, module, diags)

    def _decode_variable(self, body: dict[str, Any], module: Module, diags: Diagnostics) -> None:
        for name, args in body.items():
            subject = f"var.{name}"
            args = args or {}
            if not isinstance(args, dict):
                diags.error("Variable block must be a mapping", subject=subject)
                continue
            if name in module.variables:
                diags.error("Duplicate variable declaration", subject=subject)
                continue
            for arg in args:
                if arg not in VARIABLE_ARGUMENTS:
                    diags.error(f"Unsupported argument {arg!r}", subject=subject)

            variable = Variable(
                name=name,
                has_default="default" in args,
                default=args.get("default"),
                description=args.get("description", ""),
            )
            if "type" in args:
                try:
                    variable.type = parse_type(str(args["type"]))
                except ValueError as e:
                    diags.error("Invalid type constraint", str(e), subject=subject)
                    continue
            if variable.has_default and variable.default is not None:
                try:
                    to_value(variable.default, variable.type)
                except BindingError as e:
                    diags.error("Invalid default value for variable", str(e), subject=subject)
                    continue
            module.variables[name] = variable

    def _decode_resource(self, body: dict[str, Any], module: Module, diags: Diagnostics) -> None:
        for resource_type, resources in body.items():
            if not isinstance(resource_type, str):
                diags.error("Resource type must be a string", f"quote the type: {resource_type!r}", subject="resource")
                continue
            if not isinstance(resources, dict):
                diags.error("Resource type block must be a mapping", subject=str(resource_type))
                continue
            for name, args in resources.items():
                if not isinstance(name, str):
                    diags.error("Resource name must be a string", f"quote the name: {name!r}", subject=resource_type)
                    continue
                address = f"{resource_type}.{name}"
                if args is not None and not isinstance(args, dict):
                    diags.error("Resource block must be a mapping", subject=address)
                    continue
                args = dict(args or {})
                if address in module.resources:
                    diags.error("Duplicate resource declaration", subject=address)
                    continue
                bad_key = _non_string_key(args)
                if bad_key is not None:
                    diags.error("Argument names must be strings", f"found {bad_key}", subject=address)
                    continue
                provisioners = self._decode_provisioners(args.pop("provisioner", None), address, diags)
                module.resources[address] = Resource(
                    type=resource_type,
                    name=name,
                    config=args,
                    provisioners=provisioners,
                )

    def _decode_provisioners(self, raw: Any, address: str, diags: Diagnostics) -> list[ProvisionerConfig]:
        if raw is None:
            return []
        if isinstance(raw, dict):
            raw = [{name: config} for name, config in raw.items()]
        if not isinstance(raw, list):
            diags.error("Provisioner block must be a list", subject=address)
            return []

        provisioners = []
        for item in raw:
            if not isinstance(item, dict) or len(item) != 1:
                diags.error("Each provisioner must be a single-key mapping", subject=address)
                continue
            ((name, config),) = item.items()
            if config is not None and not isinstance(config, dict):
                diags.error(f"Provisioner {name!r} must be a mapping", subject=address)
                continue
            provisioners.append(ProvisionerConfig(name=name, config=dict(config or {})))
        return provisioners

    def _decode_output(self, body: dict[str, Any], module: Module, diags: Diagnostics) -> None:
        for name, args in body.items():
            subject = f"output.{name}"
            if name in module.outputs:
                diags.error("Duplicate output declaration", subject=subject)
                continue
            if not isinstance(args, dict) or "value" not in args:
                diags.error("Missing required argument 'value'", subject=subject)
                continue
            for arg in args:
                if arg not in OUTPUT_ARGUMENTS:
                    diags.error(f"Unsupported argument {arg!r}", subject=subject)
            bad_key = _non_string_key(args["value"])
            if bad_key is not None:
                diags.error("Output keys must be strings", f"found {bad_key}", subject=subject)
                continue
            module.outputs[name] = Output(
                name=name,
                value=args["value"],
                description=args.get("description", ""),
            )

    def _decode_provider(self, body: dict[str, Any], module: Module, diags: Diagnostics) -> None:
        for name, args in body.items():
            if not isinstance(name, str):
                # YAML reads an unquoted `null:` key as None
                diags.error("Provider name must be a string", f"quote the name: {name!r}", subject="provider")
                continue
            if args is not None and not isinstance(args, dict):
                diags.error("Provider block must be a mapping", subject=f"provider.{name}")
                continue
            if name in module.providers:
                diags.error("Duplicate provider configuration", subject=f"provider.{name}")
                continue
            bad_key = _non_string_key(args)
            if bad_key is not None:
                diags.error("Argument names must be strings", f"found {bad_key}", subject=f"provider.{name}")
                continue
            module.providers[name] = dict(args or {})

    def _decode_module(self, body: dict[str, Any], module: Module, diags: Diagnostics) -> None:
        for name, args in body.items():
            subject = f"module.{name}"
            if args is not None and not isinstance(args, dict):
                diags.error("Module block must be a mapping", subject=subject)
                continue
            args = dict(args or {})
            if name in module.module_calls:
                diags.error("Duplicate module call", subject=subject)
                continue
            if "source" not in args:
                diags.error("Missing required argument 'source'", subject=subject)
                continue
            source = str(args.pop("source"))
            module.module_calls[name] = ModuleCall(name=name, source=source, arguments=args)
