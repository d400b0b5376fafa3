"""Terranova - drive an infrastructure execution engine from Python.

Build a description in memory, bind variables, then plan and apply it
without a command-line tool. The resulting resource state can be saved
and restored between runs.

Quick Start:
    from terranova import Platform
    from terranova.log import Middleware

    code = '''
    resource:
      null_resource:
        web:
          triggers:
            version: "1"
    '''

    with Middleware():
        platform = Platform(code)
        platform.apply()
        platform.write_state_to_file("web.tfstate")
"""

__version__ = "0.1.0"

from terranova.config import PlatformConfig
from terranova.exceptions import (
    BindingError,
    ConfigurationError,
    EngineError,
    StateFileError,
    TerranovaError,
    UndeclaredVariableError,
)
from terranova.platform import Platform
from terranova.states import ResourceInstance, State

__all__ = [
    "__version__",
    "Platform",
    "PlatformConfig",
    "State",
    "ResourceInstance",
    "TerranovaError",
    "BindingError",
    "ConfigurationError",
    "EngineError",
    "StateFileError",
    "UndeclaredVariableError",
]
