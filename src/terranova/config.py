"""Configuration of the Terranova library itself.

Settings can be given explicitly or read from the environment:

    TERRANOVA_TEMP_DIR  Directory where descriptions are materialized
    TERRANOVA_LOG       Engine log level (trace, debug, info, warn, error)
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping

from terranova.configs import DESCRIPTION_SUFFIXES

ENV_TEMP_DIR = "TERRANOVA_TEMP_DIR"
ENV_LOG_LEVEL = "TERRANOVA_LOG"


@dataclass
class PlatformConfig:
    """Settings of a Platform.

    Attributes:
        temp_prefix: Prefix of the temporary directory a description is written to
        main_file: File name the description is written to
        modules_dir_name: Name of the child-module directory inside the temporary directory
        temp_root: Parent of the temporary directories (None = system default)
        log_level: Engine log level applied when the Platform is created (None = unchanged)

    Example:
        >>> settings = PlatformConfig(temp_root="/var/tmp", log_level="debug")
        >>> settings.temp_root
        PosixPath('/var/tmp')
    """

    temp_prefix: str = ".terranova"
    main_file: str = "main.tf.yaml"
    modules_dir_name: str = "modules"
    temp_root: Path | None = None
    log_level: str | None = None

    def __post_init__(self) -> None:
        """Validate and normalize settings after initialization."""
        if isinstance(self.temp_root, str):
            self.temp_root = Path(self.temp_root)

        if not self.main_file.endswith(DESCRIPTION_SUFFIXES):
            valid = ", ".join(DESCRIPTION_SUFFIXES)
            raise ValueError(f"main_file must end with one of: {valid}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: Any) -> "PlatformConfig":
        """Create settings from environment variables.

        Args:
            environ: Environment to read (os.environ if None)
            **overrides: Settings taking precedence over the environment
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        if env.get(ENV_TEMP_DIR):
            values["temp_root"] = env[ENV_TEMP_DIR]
        if env.get(ENV_LOG_LEVEL):
            values["log_level"] = env[ENV_LOG_LEVEL]

        known = {f.name for f in fields(cls)}
        unknown = set(overrides) - known
        if unknown:
            raise TypeError(f"Unknown settings: {', '.join(sorted(unknown))}")
        values.update(overrides)
        return cls(**values)
