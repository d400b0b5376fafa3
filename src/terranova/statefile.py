"""Read and write state snapshots.

A state file is a JSON document wrapping the State with metadata:

    {
      "version": 4,
      "engine_version": "0.1.0",
      "serial": 0,
      "lineage": "",
      "outputs": {...},
      "resources": [...]
    }

``version`` is the format version; files of any other version are
rejected. ``serial`` and ``lineage`` are carried through a read/write
round trip unchanged.
"""

import io
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any

from terranova.exceptions import StateFileError
from terranova.states import State

logger = logging.getLogger(__name__)

STATE_VERSION = 4


def _engine_version() -> str:
    from terranova import __version__

    return __version__


@dataclass
class StateFile:
    """A State plus the metadata stored next to it.

    Attributes:
        state: The resource state
        lineage: Identifier shared by all snapshots of one infrastructure ("" if unset)
        serial: Counter of writes of this lineage (0 if unset)
        engine_version: Version of the library that wrote the file
    """

    state: State = field(default_factory=State)
    lineage: str = ""
    serial: int = 0
    engine_version: str = field(default_factory=_engine_version)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "version": STATE_VERSION,
            "engine_version": self.engine_version,
            "serial": self.serial,
            "lineage": self.lineage,
            **self.state.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StateFile":
        """Create from dictionary.

        Raises:
            StateFileError: If the format version is missing or unsupported
        """
        version = data.get("version")
        if version is None:
            raise StateFileError("State file has no format version")
        if version != STATE_VERSION:
            raise StateFileError(
                f"Unsupported state file format version {version}; expected {STATE_VERSION}"
            )
        return cls(
            state=State.from_dict(data),
            lineage=data.get("lineage", ""),
            serial=data.get("serial", 0),
            engine_version=data.get("engine_version", ""),
        )


def _check_encodable(value: Any, path: str) -> None:
    """Reject values that JSON would silently change on a round trip."""
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise StateFileError(f"Failed to encode state: key {key!r} at {path} is not a string")
            _check_encodable(item, f"{path}.{key}")
    elif isinstance(value, tuple):
        raise StateFileError(f"Failed to encode state: tuple at {path}; use a list")
    elif isinstance(value, list):
        for index, item in enumerate(value):
            _check_encodable(item, f"{path}[{index}]")


def encode(state_file: StateFile) -> str:
    """Encode a state file as JSON text.

    Mapping keys must be strings and sequences must be lists, so that
    decoding returns an equal state.

    Raises:
        StateFileError: If the state holds values that cannot be encoded
    """
    data = state_file.to_dict()
    _check_encodable(data, "$")
    try:
        return json.dumps(data, indent=2) + "\n"
    except (TypeError, ValueError) as e:
        raise StateFileError(f"Failed to encode state: {e}") from e


def decode(text: str | bytes) -> StateFile:
    """Decode a state file from JSON text.

    Raises:
        StateFileError: If the text is not a valid state file
    """
    try:
        data = json.loads(text)
    except ValueError as e:
        raise StateFileError(f"State file is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise StateFileError("State file must contain a JSON object")

    try:
        return StateFile.from_dict(data)
    except (KeyError, TypeError, AttributeError, IndexError) as e:
        raise StateFileError(f"Malformed state file: {e!r}") from e


def write(state_file: StateFile, stream: IO[Any]) -> None:
    """Write a state file to a text or binary stream."""
    text = encode(state_file)
    if isinstance(stream, io.TextIOBase):
        stream.write(text)
    else:
        stream.write(text.encode("utf-8"))


def read(stream: IO[Any]) -> StateFile:
    """Read a state file from a text or binary stream."""
    return decode(stream.read())


def write_file(state_file: StateFile, path: Path | str) -> None:
    """Write a state file to disk.

    The file is only opened once the state has been encoded, so an encoding
    error leaves an existing file untouched.
    """
    path = Path(path)
    text = encode(state_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w") as f:
        f.write(text)
    logger.info(f"State saved to {path}")


def read_file(path: Path | str) -> StateFile:
    """Read a state file from disk."""
    path = Path(path)
    with path.open("rb") as f:
        state_file = read(f)
    logger.info(f"Loaded state from {path}: {len(state_file.state.resources)} resource(s)")
    return state_file
