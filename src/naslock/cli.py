"""CLI entry point for naslock."""

from pathlib import Path
from typing import Annotated

import typer
from mm_clikit import TyperPlus

from naslock.app_context import GlobalOptions
from naslock.commands.lock import lock
from naslock.commands.unlock import unlock
from naslock.commands.volumes import volumes
from naslock.config import default_config_path, expand_path
from naslock.output import Output

app = TyperPlus(package_name="naslock")


@app.callback()
def callback(
    ctx: typer.Context,
    *,
    config: Annotated[
        Path | None, typer.Option("--config", "-c", envvar="NASLOCK_CONFIG", help="Config file path.")
    ] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output results as JSON.")] = False,
) -> None:
    """Unlock TrueNAS datasets using secrets from KeePass."""
    config_path = expand_path(config) if config is not None else default_config_path()
    ctx.obj = GlobalOptions(out=Output(json_mode=json_output), config_path=config_path)


app.command()(unlock)
app.command()(lock)
app.command("volumes")(volumes)
