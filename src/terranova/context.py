"""Build execution contexts from a Platform.

Every plan or apply starts from a fresh context:

1. The description text is written to a new temporary directory.
2. The directory is loaded into a Config; the directory is removed
   whatever happens.
3. Bound variables are checked against the declared ones.
4. The engine creates a context from the config, the variables, the
   current state and the provider/provisioner registries.
5. The context is validated.

A context is only returned once every step has passed.
"""

import logging
import shutil
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

from terranova.config import PlatformConfig
from terranova.configs import Config, Loader
from terranova.diagnostics import Diagnostics
from terranova.engine import Context, ContextOpts
from terranova.exceptions import ConfigurationError, EngineError
from terranova.providers import resolver_fixed
from terranova.variables import input_values

if TYPE_CHECKING:
    from terranova.platform import Platform

logger = logging.getLogger(__name__)


def raise_for_errors(stage: str, diags: Diagnostics) -> None:
    """Log warnings and raise an EngineError if there are errors.

    Raises:
        EngineError: Carrying every diagnostic of the stage
    """
    for warning in diags.warnings():
        logger.warning(f"{stage}: {warning}")
    if diags.has_errors():
        raise EngineError(stage, diags.format_errors(), diags)


def load_description(code: str, settings: PlatformConfig | None = None) -> Config:
    """Load description text through a temporary directory.

    Args:
        code: Description text
        settings: Library settings (defaults if None)

    Returns:
        The loaded Config

    Raises:
        ConfigurationError: If the text is empty or cannot be loaded
    """
    if settings is None:
        settings = PlatformConfig()

    if not code.strip():
        raise ConfigurationError("no code to apply")

    work_dir = Path(tempfile.mkdtemp(prefix=settings.temp_prefix, dir=settings.temp_root))
    try:
        (work_dir / settings.main_file).write_text(code)

        loader = Loader(modules_dir=work_dir / settings.modules_dir_name)
        config, diags = loader.load_config(work_dir)
        if config is None:
            raise ConfigurationError(
                f"failed to load the configuration. {diags.format_errors()}", diags
            )
        for warning in diags.warnings():
            logger.warning(f"load: {warning}")
        return config
    finally:
        shutil.rmtree(work_dir, ignore_errors=True)


def build_context(platform: "Platform", destroy: bool = False) -> Context:
    """Build a validated execution context for a Platform.

    Args:
        platform: Platform providing the description, variables, state and registries
        destroy: Build a context that plans the destruction of every resource

    Raises:
        ConfigurationError: If the description is empty or invalid
        UndeclaredVariableError: If a bound variable is not declared
        EngineError: If the engine cannot create or validate the context
    """
    config = load_description(platform.code, platform.settings)
    variables = input_values(platform.vars, config.module.variables)

    opts = ContextOpts(
        config=config,
        destroy=destroy,
        state=platform.state,
        variables=variables,
        providers=resolver_fixed(platform.providers),
        provisioners=dict(platform.provisioners),
        hooks=list(platform.hooks),
    )

    ctx, diags = platform.engine.new_context(opts)
    raise_for_errors("context", diags)
    if ctx is None:
        raise EngineError("context", "the engine returned no context")

    raise_for_errors("validate", ctx.validate())
    logger.debug(f"Built context: {len(config.module.resources)} resource(s), destroy={destroy}")
    return ctx
