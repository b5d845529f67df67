#!/usr/bin/env python3
"""
Waypoint Sync CLI
------------------

Command-line front end for the offline-first sync engine.

This module provides the main CLI group and the shared context setup
for all commands. Services are built lazily, once per invocation, and
closed when the command finishes.

Command Structure:
    - Setup (init)
    - Sync cycles (sync run, sync status)
    - Offline queue (queue list, queue retry, queue cancel, queue cleanup)
    - Conflicts (conflicts list, conflicts resolve, conflicts strategy)
    - Maintenance (health, migration status, migration upgrade)

Usage:
    # Get general help
    waypoint --help

    # Run one cycle against the configured backend
    WAYPOINT_TOKEN=... waypoint sync run

    # Use another data directory
    waypoint --home /tmp/journal queue list
"""
import logging

import click

from waypoint.core.logging_manager import WaypointLogger
from waypoint.core.paths import DataPaths
from waypoint.database.manager import JournalDB
from waypoint.sync.auth import StaticTokenProvider
from waypoint.sync.connectivity import NetworkStatus
from waypoint.sync.engine import SyncEngine, build_engine


@click.group()
@click.option(
    "--home",
    type=click.Path(file_okay=False),
    default=None,
    help="Data directory (default: $WAYPOINT_HOME or ~/.waypoint)",
)
@click.option(
    "--token",
    envvar="WAYPOINT_TOKEN",
    default=None,
    help="Bearer token for the remote backend",
)
@click.option(
    "--verbose",
    is_flag=True,
    help="Show detailed errors and tracebacks",
)
@click.pass_context
def cli(ctx, home, token, verbose):
    """Waypoint Journal Sync CLI"""

    # Suppress Alembic INFO logging by default
    logging.getLogger("alembic").setLevel(logging.WARNING)

    ctx.ensure_object(dict)
    ctx.obj["paths"] = DataPaths.at(home)
    ctx.obj["token"] = token
    ctx.obj["verbose"] = verbose


def get_paths(ctx) -> DataPaths:
    return ctx.obj["paths"]


def get_logger(ctx) -> WaypointLogger:
    """Get or create the CLI logger from context."""
    if ctx.obj.get("logger") is None:
        paths = get_paths(ctx).ensure()
        ctx.obj["logger"] = WaypointLogger(paths.log_dir, component_name="cli")
    return ctx.obj["logger"]


def get_db(ctx) -> JournalDB:
    """Get or create database instance from context."""
    if "engine" in ctx.obj:
        return ctx.obj["engine"].db
    if "db" not in ctx.obj:
        paths = get_paths(ctx).ensure()
        db = JournalDB(paths.db_path, logger=get_logger(ctx))
        ctx.obj["db"] = db
        ctx.call_on_close(db.dispose)
    return ctx.obj["db"]


def get_engine(ctx, offline: bool = False) -> SyncEngine:
    """
    Get or create the wired sync services from context.

    A remote backend placed in ctx.obj["backend"] by the caller is used
    instead of the HTTP one.
    """
    if "engine" not in ctx.obj:
        status_provider = NetworkStatus.offline if offline else None
        engine = build_engine(
            get_paths(ctx),
            auth_provider=StaticTokenProvider(ctx.obj.get("token")),
            backend=ctx.obj.get("backend"),
            status_provider=status_provider,
            logger=get_logger(ctx),
        )
        ctx.obj["engine"] = engine
        ctx.call_on_close(engine.close)
    return ctx.obj["engine"]


def format_timestamp(value) -> str:
    return value.isoformat(timespec="seconds") if value is not None else "never"


# Import and register command modules
# These imports must come after CLI group definition
from .setup import init  # noqa: E402
from .sync import sync  # noqa: E402
from .queue import queue  # noqa: E402
from .conflicts import conflicts  # noqa: E402
from .maintenance import health, migration  # noqa: E402

# Register top-level commands
cli.add_command(init)
cli.add_command(health)

# Register command groups
cli.add_command(sync)
cli.add_command(queue)
cli.add_command(conflicts)
cli.add_command(migration)


if __name__ == "__main__":
    cli(obj={})
