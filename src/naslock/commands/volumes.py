"""List configured volumes."""

import typer

from naslock.app_context import use_context


def volumes(ctx: typer.Context) -> None:
    """List configured volumes with their NAS and dataset."""
    app = use_context(ctx)
    app.out.print_volumes(app.cfg.volumes)
