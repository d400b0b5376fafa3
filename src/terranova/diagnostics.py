"""Diagnostics reported by the description loader and the execution engine.

Engine operations return a Diagnostics list next to their result instead of
raising, so warnings survive alongside a successful result. The orchestration
layer reduces a list with errors to a single exception with ``err()``.
"""

from dataclasses import dataclass
from enum import Enum

from terranova.exceptions import DiagnosticsError


class Severity(Enum):
    """Diagnostic severity."""

    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class Diagnostic:
    """A single problem report.

    Attributes:
        severity: ERROR or WARNING
        summary: Short description of the problem
        detail: Optional longer explanation
        subject: Optional location (file:line, resource address, variable name)
    """

    severity: Severity
    summary: str
    detail: str = ""
    subject: str | None = None

    def __str__(self) -> str:
        text = self.summary
        if self.subject:
            text = f"{self.subject}: {text}"
        if self.detail:
            text = f"{text}; {self.detail}"
        return text


class Diagnostics(list):
    """An ordered collection of Diagnostic objects."""

    def error(self, summary: str, detail: str = "", subject: str | None = None) -> "Diagnostics":
        """Append an error diagnostic."""
        self.append(Diagnostic(Severity.ERROR, summary, detail, subject))
        return self

    def warning(self, summary: str, detail: str = "", subject: str | None = None) -> "Diagnostics":
        """Append a warning diagnostic."""
        self.append(Diagnostic(Severity.WARNING, summary, detail, subject))
        return self

    def has_errors(self) -> bool:
        """Check if any diagnostic is an error."""
        return any(d.severity is Severity.ERROR for d in self)

    def errors(self) -> list[Diagnostic]:
        """Get the error diagnostics."""
        return [d for d in self if d.severity is Severity.ERROR]

    def warnings(self) -> list[Diagnostic]:
        """Get the warning diagnostics."""
        return [d for d in self if d.severity is Severity.WARNING]

    def format_errors(self) -> str:
        """Format the errors as one message.

        A single error is rendered on its own; several errors are listed one
        per line under a count.
        """
        errors = self.errors()
        if not errors:
            return ""
        if len(errors) == 1:
            return str(errors[0])
        lines = [f"{len(errors)} problems:"]
        lines.extend(f"- {d}" for d in errors)
        return "\n".join(lines)

    def err(self) -> DiagnosticsError | None:
        """Reduce the errors to a single exception, or None if there are none."""
        if not self.has_errors():
            return None
        return DiagnosticsError(self.format_errors(), Diagnostics(self))
