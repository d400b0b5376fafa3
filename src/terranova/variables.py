"""Variable binding for Terranova.

Host programs bind variables as one record-like value (a dict or a
dataclass instance). Binding infers the type of that value, converts it
into engine values and returns a flat name -> Value mapping.

Whether the names are declared in the description is only known once the
description is loaded, so that check happens later, when the execution
context is built (see ``input_values``).
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from terranova.exceptions import BindingError, UndeclaredVariableError
from terranova.values import MapType, ObjectType, Value, implied_type, to_value

logger = logging.getLogger(__name__)


class ValueSource(Enum):
    """Where an input value came from."""

    CALLER = "caller"
    CONFIG = "config"


@dataclass(frozen=True)
class InputValue:
    """A variable value handed to the execution engine.

    Attributes:
        value: Typed value
        source: Where the value came from
    """

    value: Value
    source: ValueSource = ValueSource.CALLER


def bind_variables(host_value: Any) -> dict[str, Value]:
    """Convert a host value into a variable name -> Value mapping.

    Args:
        host_value: A mapping or dataclass instance of variable values

    Returns:
        Typed values keyed by variable name

    Raises:
        BindingError: If the type cannot be inferred, the value cannot be
            converted, or the value is not a record of variables

    Example:
        >>> bound = bind_variables({"region": "us-east-1", "count": 2})
        >>> bound["count"].to_python()
        2
    """
    value_type = implied_type(host_value)
    if not isinstance(value_type, (ObjectType, MapType)):
        raise BindingError(
            f"variables must be a mapping of names to values, not {value_type.friendly_name()}"
        )

    value = to_value(host_value, value_type)
    bound = value.as_value_map()
    logger.debug(f"Bound {len(bound)} variable(s): {', '.join(sorted(bound))}")
    return bound


def input_values(
    variables: Mapping[str, Value],
    declared: Mapping[str, Any],
) -> dict[str, InputValue]:
    """Check bound variables against the declared ones.

    Declared variables without a bound value are left to the engine
    (they may have defaults).

    Args:
        variables: Bound variables
        declared: Declared variables keyed by name

    Returns:
        Input values tagged as coming from the caller

    Raises:
        UndeclaredVariableError: For the first bound name that is not declared
    """
    inputs: dict[str, InputValue] = {}
    for name, value in variables.items():
        if name not in declared:
            raise UndeclaredVariableError(name)
        inputs[name] = InputValue(value=value, source=ValueSource.CALLER)
    return inputs
