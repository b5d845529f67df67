"""
Sync Cycle Commands
--------------------

Commands for running and inspecting sync cycles.

Commands:
    - run: Run one sync cycle
    - status: Show engine state, queue counts and last sync time

Usage:
    # Run a cycle with the token from the environment
    WAYPOINT_TOKEN=... waypoint sync run

    # Give failed queue tasks a fresh retry budget first
    waypoint sync run --retry-failed

    # Treat the network as unavailable (queue stays untouched)
    waypoint sync run --offline
"""
import click

from waypoint.core.exceptions import WaypointError
from waypoint.core.logging_manager import handle_cli_error
from waypoint.sync.enums import SyncOutcome
from waypoint.sync.results import StageStatus
from . import format_timestamp, get_engine


OUTCOME_ICONS = {
    SyncOutcome.FULLY_SYNCED: "✅",
    SyncOutcome.PARTIALLY_SYNCED: "⚠️ ",
    SyncOutcome.NOT_SYNCED: "⏸️ ",
    SyncOutcome.CANCELLED: "🛑",
    SyncOutcome.SKIPPED: "⏭️ ",
}

STAGE_ICONS = {
    StageStatus.COMPLETED: "✓",
    StageStatus.FAILED: "✗",
    StageStatus.SKIPPED: "-",
}


@click.group()
@click.pass_context
def sync(ctx: click.Context) -> None:
    """Run and inspect sync cycles."""
    pass


@sync.command("run")
@click.option("--offline", is_flag=True, help="Treat the network as unavailable")
@click.option(
    "--retry-failed", is_flag=True, help="Reset failed queue tasks before the cycle"
)
@click.pass_context
def sync_run(ctx, offline, retry_failed):
    """Run one sync cycle."""
    try:
        engine = get_engine(ctx, offline=offline)
        orchestrator = engine.orchestrator

        click.echo("🔄 Synchronizing journal...")
        if retry_failed:
            report = orchestrator.retry_cycle()
        else:
            report = orchestrator.synchronize()

        click.echo(f"\n{OUTCOME_ICONS[report.outcome]} {report.outcome.display_name}")
        click.echo("=" * 70)
        if report.reason:
            click.echo(f"Reason: {report.reason}")

        if report.stages:
            click.echo(f"Queued changes applied: {report.drained}")
            for entity_type, stage in report.stages.items():
                click.echo(
                    f"  {STAGE_ICONS[stage.status]} {entity_type.display_name:<18} "
                    f"fetched {stage.fetched:>4}  applied {stage.applied:>4}  "
                    f"created {stage.created:>4}  updated {stage.updated:>4}"
                )
                for failure in stage.record_failures:
                    ident = failure.local_id or failure.server_id
                    click.echo(f"      • {ident}: {failure.error}")

        if report.pending_tasks or report.failed_tasks:
            click.echo(
                f"\n📥 Queue: {report.pending_tasks} pending, "
                f"{report.failed_tasks} failed"
            )
        if report.conflicts:
            click.echo(f"⚠️  {report.conflicts} conflict(s) awaiting manual resolution")
            click.echo("💡 Review them with: waypoint conflicts list")
        if report.duration is not None:
            click.echo(f"\nDuration: {report.duration:.2f}s  Progress: {report.progress:.0%}")

        if report.error is not None:
            handle_cli_error(
                ctx,
                report.error,
                "sync_run",
                additional_context={"outcome": report.outcome.value},
            )

    except WaypointError as e:
        handle_cli_error(ctx, e, "sync_run", additional_context={"offline": offline})


@sync.command("status")
@click.pass_context
def sync_status(ctx):
    """Show sync status."""
    try:
        engine = get_engine(ctx)
        status = engine.orchestrator.status()

        click.echo("\n📊 Sync Status")
        click.echo("=" * 70)
        click.echo(f"Phase: {status['phase']}")
        click.echo(f"Last synced: {format_timestamp(status['last_synced_at'])}")
        if status["stale"]:
            click.echo("⚠️  No successful sync in the last 24 hours")
        click.echo(f"Conflict strategy: {status['conflict_strategy']}")
        click.echo(f"Pending conflicts: {status['pending_conflicts']}")

        click.echo("\nOffline queue:")
        for name, count in status["queue"].items():
            if count:
                click.echo(f"  {name}: {count}")
        if not any(status["queue"].values()):
            click.echo("  empty")

        limits = status["batch_limits"]
        click.echo(f"\nUpload batches ({status['network_quality']} network):")
        click.echo(
            f"  memories {limits['memories']}, media {limits['media_items']}, "
            f"gpx {limits['gpx_tracks']}, cap {limits['max_bytes'] // (1024 * 1024)} MiB"
        )

        settings = engine.settings
        click.echo(f"\nBackend: {settings.base_url} ({settings.storage_mode.value})")
        if not settings.enabled:
            click.echo("⏸️  Sync is disabled in settings")

    except WaypointError as e:
        handle_cli_error(ctx, e, "sync_status")
