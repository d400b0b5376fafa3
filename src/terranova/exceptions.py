"""Exceptions raised by Terranova.

Every error the orchestration layer raises derives from TerranovaError.
Errors that originate in the description loader or the execution engine
carry the full list of diagnostics even though their message is a single
line per problem.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from terranova.diagnostics import Diagnostics


class TerranovaError(Exception):
    """Base class for all Terranova errors."""


class DiagnosticsError(TerranovaError):
    """An error built from one or more diagnostics.

    Attributes:
        diagnostics: Every diagnostic that contributed to the error
    """

    def __init__(self, message: str, diagnostics: "Diagnostics | None" = None):
        super().__init__(message)
        self.message = message
        self.diagnostics = diagnostics if diagnostics is not None else []

    def __str__(self) -> str:
        return self.message


class ConfigurationError(DiagnosticsError):
    """The infrastructure description is empty, unparseable or invalid."""


class EngineError(DiagnosticsError):
    """The execution engine reported errors.

    Attributes:
        stage: Pipeline stage that failed (context, validate, refresh, plan, apply)
    """

    def __init__(self, stage: str, message: str, diagnostics: "Diagnostics | None" = None):
        super().__init__(message, diagnostics)
        self.stage = stage

    def __str__(self) -> str:
        return f"{self.stage}: {self.message}"


class BindingError(TerranovaError):
    """A host value cannot be converted into engine values.

    Attributes:
        path: Location of the offending value (e.g. ".tags[0]"), empty for the root
    """

    def __init__(self, message: str, path: str = ""):
        super().__init__(message)
        self.message = message
        self.path = path

    def __str__(self) -> str:
        if self.path:
            return f"{self.path}: {self.message}"
        return self.message


class UndeclaredVariableError(TerranovaError):
    """A bound variable has no declaration in the loaded description."""

    def __init__(self, name: str):
        super().__init__(f"variable {name!r} is not declared in the code")
        self.name = name


class StateFileError(TerranovaError):
    """A state file is malformed or uses an unsupported format version."""
