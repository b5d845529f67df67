"""
Maintenance Commands
---------------------

Database health and schema migrations.

Commands:
    - health: Run the consistency checks
    - migration status: Show the current Alembic revision
    - migration upgrade: Upgrade the schema
"""
import click

from waypoint.core.exceptions import DatabaseError
from waypoint.core.logging_manager import handle_cli_error
from . import get_db


@click.command()
@click.pass_context
def health(ctx):
    """Check the journal store for orphans and missing identities."""
    try:
        db = get_db(ctx)
        report = db.check_health()
        issues = report["issues"]
        metrics = report["metrics"]

        click.echo("\n🩺 Journal store")
        click.echo("-" * 40)
        click.echo("Status: " + report["status"].upper())

        if not issues:
            click.echo("\n✅ No issues found")
        else:
            click.echo(f"\n⚠️  {len(issues)} issue(s):")
            click.echo("\n".join(f"  • {issue}" for issue in issues))

        unsynced = {
            name: count
            for name, count in metrics["unsynced"].items()
            if count
        }
        if unsynced:
            click.echo("\n📤 Never pushed:")
            for name, count in unsynced.items():
                click.echo(f"  • {name}: {count}")

        missing = sum(metrics["missing_local_ids"].values())
        if missing:
            click.echo(f"\n💡 {missing} record(s) get a local id on their next sync")

    except DatabaseError as e:
        handle_cli_error(ctx, e, "health")


@click.group()
@click.pass_context
def migration(ctx: click.Context) -> None:
    """Alembic schema migrations of the journal store."""


@migration.command("status")
@click.pass_context
def migration_status(ctx):
    """Print the revision the store is stamped at."""
    try:
        history = get_db(ctx).get_migration_history()
        if "error" in history:
            click.echo(f"❌ Cannot read migration status: {history['error']}", err=True)
            ctx.exit(1)

        click.echo(f"Current revision: {history['current_revision'] or 'none'}")
        click.echo(f"Status: {history['status']}")

    except DatabaseError as e:
        handle_cli_error(ctx, e, "migration_status")


@migration.command("upgrade")
@click.option("--revision", default="head", show_default=True, help="Alembic revision to migrate to")
@click.pass_context
def migration_upgrade(ctx, revision):
    """Migrate the store forward."""
    try:
        click.echo(f"Migrating journal store to {revision}...")
        get_db(ctx).upgrade_database(revision)
        click.echo("✅ Database upgraded successfully")

    except DatabaseError as e:
        handle_cli_error(
            ctx, e, "migration_upgrade", additional_context={"revision": revision}
        )
