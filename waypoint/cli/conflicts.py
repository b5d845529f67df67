"""
Conflict Commands
------------------

Commands for conflicts parked under the manual strategy.

Commands:
    - list: Show pending conflicts
    - resolve: Keep the local or the remote version of an entity
    - strategy: Show or change the default resolution strategy

Usage:
    waypoint conflicts list
    waypoint conflicts resolve 42 --remote
    waypoint conflicts resolve 42 --local --type memory
    waypoint conflicts strategy manual
"""
import click

from waypoint.core.exceptions import WaypointError
from waypoint.core.logging_manager import handle_cli_error
from waypoint.database.models.enums import EntityType
from waypoint.sync.enums import ConflictStrategy
from . import format_timestamp, get_engine


@click.group()
@click.pass_context
def conflicts(ctx: click.Context) -> None:
    """Review and resolve sync conflicts."""
    pass


@conflicts.command("list")
@click.pass_context
def conflicts_list(ctx):
    """List conflicts awaiting a decision."""
    try:
        pending = get_engine(ctx).conflicts.pending_conflicts

        if not pending:
            click.echo("No pending conflicts")
            return

        click.echo(f"\n⚠️  Pending Conflicts ({len(pending)})")
        click.echo("=" * 70)
        for conflict in pending:
            click.echo(
                f"\n{conflict.entity_type.display_name} {conflict.entity_id} "
                f"({conflict.conflict_type.value})"
            )
            click.echo(f"  Local version:  {format_timestamp(conflict.local_version)}")
            click.echo(f"  Remote version: {format_timestamp(conflict.remote_version)}")
            if conflict.differing_fields:
                click.echo(f"  Differs in: {', '.join(conflict.differing_fields)}")
            click.echo(f"  Detected: {format_timestamp(conflict.detected_at)}")

    except WaypointError as e:
        handle_cli_error(ctx, e, "conflicts_list")


@conflicts.command("resolve")
@click.argument("entity_id")
@click.option(
    "--local/--remote",
    "use_local",
    required=True,
    help="Keep the local version or take the remote one",
)
@click.option(
    "--type",
    "entity_type",
    type=click.Choice(EntityType.choices()),
    default=None,
    help="Entity type, when the id is pending for several types",
)
@click.pass_context
def conflicts_resolve(ctx, entity_id, use_local, entity_type):
    """Resolve a pending conflict."""
    try:
        engine = get_engine(ctx)
        winner = engine.orchestrator.apply_manual_resolution(
            entity_id, use_local, EntityType(entity_type) if entity_type else None
        )

        if winner is None:
            click.echo(f"⚠️  No pending conflict for {entity_id}")
            return

        side = "local" if use_local else "remote"
        click.echo(
            f"✅ {winner.entity_type.display_name} {entity_id}: kept the {side} version"
        )
        if use_local:
            click.echo("💡 The local version is uploaded with the next cycle")

    except WaypointError as e:
        handle_cli_error(
            ctx,
            e,
            "conflicts_resolve",
            additional_context={"entity_id": entity_id, "use_local": use_local},
        )


@conflicts.command("strategy")
@click.argument(
    "name", required=False, type=click.Choice(ConflictStrategy.choices())
)
@click.pass_context
def conflicts_strategy(ctx, name):
    """Show or change the default conflict strategy."""
    try:
        resolver = get_engine(ctx).conflicts
        if name is None:
            click.echo(f"Conflict strategy: {resolver.strategy.display_name}")
            return

        strategy = resolver.set_strategy(ConflictStrategy(name))
        click.echo(f"✅ Conflict strategy set to: {strategy.display_name}")

    except WaypointError as e:
        handle_cli_error(ctx, e, "conflicts_strategy", additional_context={"name": name})
