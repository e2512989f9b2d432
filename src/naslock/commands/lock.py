"""Lock a dataset."""

import typer

from naslock.app_context import use_context
from naslock.bridge import lock_volume
from naslock.errors import NaslockError
from naslock.secret import SecretValue
from naslock.store import SecretStore


def lock(ctx: typer.Context, volume: str = typer.Argument(help="Volume name from the config file")) -> None:
    """Lock a dataset and wait for the TrueNAS job to finish."""
    app = use_context(ctx)
    try:
        app.cfg.get_volume(volume)
        with SecretValue(typer.prompt("KeePass password", hide_input=True)) as master_password:
            store = SecretStore.open(app.cfg.keepass.path, app.cfg.keepass.key_file, master_password)
        outcome = lock_volume(app.cfg, store, volume, on_progress=app.out.print_progress)
    except NaslockError as e:
        app.out.print_error_and_exit(e.code, str(e))
    app.out.print_lock_outcome(outcome)
