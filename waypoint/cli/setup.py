"""
Setup & Initialization Commands
--------------------------------

Data directory initialization.

Commands:
    - init: Write the default config.yaml and create the journal store
"""
import click

from waypoint.core.config import SyncSettings
from waypoint.core.exceptions import WaypointError
from waypoint.core.logging_manager import handle_cli_error
from waypoint.sync.enums import StorageMode
from . import get_db, get_paths


@click.command()
@click.option("--base-url", default=None, help="Root URL of the remote API")
@click.option(
    "--storage-mode",
    type=click.Choice(StorageMode.choices()),
    default=None,
    help="Where journal data is mirrored",
)
@click.option("--force", is_flag=True, help="Overwrite an existing config.yaml")
@click.pass_context
def init(ctx, base_url, storage_mode, force):
    """Initialize the data directory (settings and database)."""
    try:
        paths = get_paths(ctx).ensure()
        click.echo(f"🚀 Initializing Waypoint in {paths.home}")

        if paths.config_path.exists() and not force:
            click.echo(f"⚙️  Keeping existing settings: {paths.config_path}")
        else:
            overrides = {}
            if base_url:
                overrides["base_url"] = base_url
            if storage_mode:
                overrides["storage_mode"] = storage_mode
            SyncSettings.from_dict(overrides).save_yaml(paths.config_path)
            click.echo(f"⚙️  Settings written: {paths.config_path}")

        click.echo("🗄️  Initializing database schema...")
        db = get_db(ctx)
        click.echo(f"✅ Database ready: {db.db_path}")

    except WaypointError as e:
        handle_cli_error(ctx, e, "init", additional_context={"force": force})
