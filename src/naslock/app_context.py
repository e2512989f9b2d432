"""Application context shared across CLI commands."""

from dataclasses import dataclass
from pathlib import Path

import typer

from naslock.config import Config
from naslock.errors import ConfigError
from naslock.log import setup_logging
from naslock.output import Output


@dataclass(frozen=True, slots=True)
class GlobalOptions:
    """Options parsed by the top-level callback, before any config is read."""

    out: Output
    config_path: Path


@dataclass(frozen=True, slots=True)
class AppContext:
    """Shared application state passed through Typer context."""

    out: Output
    cfg: Config


def use_context(ctx: typer.Context) -> AppContext:
    """Extract application context from Typer context.

    The config file is loaded and logging started on first use, so ``--help``
    on a subcommand works without a config file.
    """
    if isinstance(ctx.obj, AppContext):
        return ctx.obj
    options: GlobalOptions = ctx.obj
    try:
        cfg = Config.load(options.config_path)
    except ConfigError as e:
        options.out.print_error_and_exit(e.code, str(e))
    setup_logging(cfg.log_path)
    ctx.obj = AppContext(out=options.out, cfg=cfg)
    return ctx.obj
