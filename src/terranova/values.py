"""Typed values understood by the execution engine.

Host programs hand variables over as plain Python data. The engine works
with typed values, so each piece of host data is given a type (inferred
from its shape, or declared in the description) and converted into a
Value of that type. Conversion is strict: a value of the wrong shape is a
BindingError naming the path of the offending element.

Type mapping used by ``implied_type``:

    str                  -> string
    int, float, Decimal  -> number
    bool                 -> bool
    None                 -> dynamic (null)
    dict, dataclass      -> object
    list                 -> list (tuple if elements differ)
    tuple                -> tuple
    set, frozenset       -> set
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass, fields, is_dataclass
from decimal import Decimal
from typing import Any

from terranova.exceptions import BindingError


class Type:
    """Base class of engine types."""

    def friendly_name(self) -> str:
        raise NotImplementedError


@dataclass(frozen=True)
class PrimitiveType(Type):
    name: str

    def friendly_name(self) -> str:
        return self.name


STRING = PrimitiveType("string")
NUMBER = PrimitiveType("number")
BOOL = PrimitiveType("bool")

# Placeholder for "any type"; also the type of a bare None
DYNAMIC = PrimitiveType("dynamic")


@dataclass(frozen=True)
class ListType(Type):
    element: Type

    def friendly_name(self) -> str:
        return f"list of {self.element.friendly_name()}"


@dataclass(frozen=True)
class SetType(Type):
    element: Type

    def friendly_name(self) -> str:
        return f"set of {self.element.friendly_name()}"


@dataclass(frozen=True)
class MapType(Type):
    element: Type

    def friendly_name(self) -> str:
        return f"map of {self.element.friendly_name()}"


@dataclass(frozen=True)
class ObjectType(Type):
    attributes: tuple[tuple[str, Type], ...] = ()

    @classmethod
    def of(cls, attribute_types: Mapping[str, Type]) -> "ObjectType":
        return cls(tuple(sorted(attribute_types.items())))

    @property
    def attribute_types(self) -> dict[str, Type]:
        return dict(self.attributes)

    def friendly_name(self) -> str:
        return "object"


@dataclass(frozen=True)
class TupleType(Type):
    elements: tuple[Type, ...] = ()

    def friendly_name(self) -> str:
        return "tuple"


@dataclass(frozen=True)
class Value:
    """A value with an engine type.

    Collections hold Values: lists, sets and tuples hold a list of Values,
    maps and objects a dict of attribute name to Value.

    Attributes:
        type: Engine type of the value
        raw: Python representation (None for a null value)
    """

    type: Type
    raw: Any = None

    @property
    def is_null(self) -> bool:
        return self.raw is None

    def as_value_map(self) -> dict[str, "Value"]:
        """Get the attributes of an object or map value.

        Raises:
            BindingError: If the value is not an object or a map
        """
        if not isinstance(self.type, (ObjectType, MapType)):
            raise BindingError(f"{self.type.friendly_name()} value has no attributes")
        return dict(self.raw or {})

    def to_python(self) -> Any:
        """Convert back to plain Python data."""
        if self.raw is None:
            return None
        if isinstance(self.type, (ObjectType, MapType)):
            return {k: v.to_python() for k, v in self.raw.items()}
        if isinstance(self.type, (ListType, SetType, TupleType)):
            return [v.to_python() for v in self.raw]
        return self.raw


def _attributes(obj: Any) -> dict[Any, Any] | None:
    """Get the attributes of a record-like object, None if it is not one."""
    if is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: getattr(obj, f.name) for f in fields(obj)}
    if isinstance(obj, tuple) and hasattr(obj, "_asdict"):
        return dict(obj._asdict())
    if isinstance(obj, Mapping):
        return dict(obj)
    return None


def _unify(types: list[Type]) -> Type | None:
    """Get the common type of collection elements, None if they differ.

    Null elements (DYNAMIC) fit any element type.
    """
    concrete = {t for t in types if t != DYNAMIC}
    if not concrete:
        return DYNAMIC
    if len(concrete) == 1:
        return concrete.pop()
    return None


def implied_type(obj: Any, path: str = "") -> Type:
    """Infer the engine type of a Python value.

    Args:
        obj: Host value
        path: Location of obj, used in error messages

    Returns:
        The inferred type

    Raises:
        BindingError: If the value has no engine representation
    """
    if obj is None:
        return DYNAMIC
    if isinstance(obj, Value):
        return obj.type
    if isinstance(obj, bool):
        return BOOL
    if isinstance(obj, (int, float, Decimal)):
        return NUMBER
    if isinstance(obj, str):
        return STRING

    attrs = _attributes(obj)
    if attrs is not None:
        types = {}
        for key, item in attrs.items():
            if not isinstance(key, str):
                raise BindingError(f"attribute names must be strings, not {type(key).__name__}", path)
            types[key] = implied_type(item, f"{path}.{key}")
        return ObjectType.of(types)

    if isinstance(obj, (set, frozenset)):
        element_types = [implied_type(item, f"{path}[*]") for item in obj]
        element = _unify(element_types)
        if element is None:
            raise BindingError("set elements must all have the same type", path)
        return SetType(element)

    if isinstance(obj, (list, tuple)):
        element_types = [implied_type(item, f"{path}[{i}]") for i, item in enumerate(obj)]
        if isinstance(obj, tuple):
            return TupleType(tuple(element_types))
        element = _unify(element_types)
        if element is None:
            return TupleType(tuple(element_types))
        return ListType(element)

    raise BindingError(f"cannot infer a type for {type(obj).__name__}", path)


def to_value(obj: Any, target: Type, path: str = "") -> Value:
    """Convert a Python value into a Value of the given type.

    Args:
        obj: Host value
        target: Engine type to convert to
        path: Location of obj, used in error messages

    Raises:
        BindingError: If obj does not have the shape of target
    """
    if isinstance(obj, Value):
        if obj.type == target or target == DYNAMIC:
            return obj
        obj = obj.to_python()

    if obj is None:
        return Value(target, None)

    if target == DYNAMIC:
        return to_value(obj, implied_type(obj, path), path)

    if target == STRING:
        if not isinstance(obj, str):
            raise BindingError("string required", path)
        return Value(STRING, obj)

    if target == NUMBER:
        if isinstance(obj, bool) or not isinstance(obj, (int, float, Decimal)):
            raise BindingError("number required", path)
        return Value(NUMBER, obj)

    if target == BOOL:
        if not isinstance(obj, bool):
            raise BindingError("bool required", path)
        return Value(BOOL, obj)

    if isinstance(target, ListType):
        if not isinstance(obj, (list, tuple)):
            raise BindingError("list required", path)
        return Value(target, [to_value(item, target.element, f"{path}[{i}]") for i, item in enumerate(obj)])

    if isinstance(target, SetType):
        if not isinstance(obj, (set, frozenset, list, tuple)):
            raise BindingError("set required", path)
        items: list[Value] = []
        for item in obj:
            converted = to_value(item, target.element, f"{path}[*]")
            if converted not in items:
                items.append(converted)
        return Value(target, items)

    if isinstance(target, TupleType):
        if not isinstance(obj, (list, tuple)):
            raise BindingError("tuple required", path)
        if len(obj) != len(target.elements):
            raise BindingError(f"tuple of {len(target.elements)} elements required", path)
        return Value(
            target,
            [to_value(item, t, f"{path}[{i}]") for i, (item, t) in enumerate(zip(obj, target.elements))],
        )

    attrs = _attributes(obj)

    if isinstance(target, MapType):
        if attrs is None:
            raise BindingError("map required", path)
        result = {}
        for key, item in attrs.items():
            if not isinstance(key, str):
                raise BindingError("map keys must be strings", path)
            result[key] = to_value(item, target.element, f"{path}.{key}")
        return Value(target, result)

    if isinstance(target, ObjectType):
        if attrs is None:
            raise BindingError("object required", path)
        expected = target.attribute_types
        for key in attrs:
            if key not in expected:
                raise BindingError(f"unsupported attribute {key!r}", path)
        result = {}
        for key, attr_type in expected.items():
            if key not in attrs:
                raise BindingError(f"attribute {key!r} is required", path)
            result[key] = to_value(attrs[key], attr_type, f"{path}.{key}")
        return Value(target, result)

    raise BindingError(f"unsupported type {target!r}", path)


_TYPE_EXPR_RE = re.compile(r"^\s*(\w+)\s*(?:\((.*)\))?\s*$")


def parse_type(expr: str) -> Type:
    """Parse a type constraint from a variable declaration.

    Supported: string, number, bool, any, list(T), set(T), map(T). A bare
    collection keyword means a collection of any type.

    Raises:
        ValueError: If the expression is not a supported type
    """
    match = _TYPE_EXPR_RE.match(expr)
    if not match:
        raise ValueError(f"Invalid type expression: {expr!r}")

    keyword, argument = match.group(1), match.group(2)
    primitives = {"string": STRING, "number": NUMBER, "bool": BOOL, "any": DYNAMIC}
    collections = {"list": ListType, "set": SetType, "map": MapType}

    if keyword in primitives and argument is None:
        return primitives[keyword]
    if keyword in collections:
        element = parse_type(argument) if argument else DYNAMIC
        return collections[keyword](element)
    raise ValueError(f"Invalid type expression: {expr!r}")
