"""
Offline Queue Commands
-----------------------

Commands for inspecting and repairing the offline mutation queue.

Commands:
    - list: Show tasks in dequeue order
    - retry: Give failed tasks a fresh retry budget
    - cancel: Cancel a waiting task
    - cleanup: Drop failed and cancelled tasks
"""
import click

from waypoint.core.exceptions import WaypointError
from waypoint.core.logging_manager import handle_cli_error
from waypoint.sync.enums import TaskStatus
from . import format_timestamp, get_engine


@click.group()
@click.pass_context
def queue(ctx: click.Context) -> None:
    """Inspect and repair the offline mutation queue."""
    pass


@queue.command("list")
@click.option(
    "--status",
    type=click.Choice(TaskStatus.choices()),
    default=None,
    help="Only show tasks with this status",
)
@click.pass_context
def queue_list(ctx, status):
    """List queued tasks (highest priority first)."""
    try:
        offline_queue = get_engine(ctx).queue
        tasks = offline_queue.tasks(TaskStatus(status) if status else None)

        if not tasks:
            click.echo("📭 Offline queue is empty")
            return

        click.echo(f"\n📥 Offline Queue ({len(tasks)} task(s))")
        click.echo("=" * 70)
        for task in tasks:
            click.echo(
                f"\n{task.id}  [{task.status.value}] {task.priority.value.upper()}"
            )
            click.echo(
                f"  {task.operation.value} {task.entity_type.display_name} "
                f"{task.entity_id}"
            )
            click.echo(f"  Queued: {format_timestamp(task.created_at)}")
            click.echo(f"  Attempts: {task.retry_count}/{task.max_retries}")
            if task.last_error:
                click.echo(f"  Last error: {task.last_error}")

    except WaypointError as e:
        handle_cli_error(ctx, e, "queue_list")


@queue.command("retry")
@click.argument("task_id", required=False)
@click.option("--all", "retry_all", is_flag=True, help="Retry every failed task")
@click.pass_context
def queue_retry(ctx, task_id, retry_all):
    """Reset a failed task (or all of them) to pending."""
    if not task_id and not retry_all:
        raise click.UsageError("Give a TASK_ID or --all")

    try:
        offline_queue = get_engine(ctx).queue
        if retry_all:
            count = offline_queue.retry_all_failed()
            click.echo(f"🔁 {count} failed task(s) will run with the next cycle")
        elif offline_queue.retry_task(task_id):
            click.echo(f"🔁 Task {task_id} will run with the next cycle")
        else:
            click.echo(f"⚠️  No failed task with id {task_id}")

    except WaypointError as e:
        handle_cli_error(ctx, e, "queue_retry", additional_context={"task_id": task_id})


@queue.command("cancel")
@click.argument("task_id")
@click.pass_context
def queue_cancel(ctx, task_id):
    """Cancel a pending or failed task."""
    try:
        if get_engine(ctx).queue.cancel_task(task_id):
            click.echo(f"🗑️  Task {task_id} cancelled")
        else:
            click.echo(f"⚠️  No waiting task with id {task_id}")

    except WaypointError as e:
        handle_cli_error(ctx, e, "queue_cancel", additional_context={"task_id": task_id})


@queue.command("cleanup")
@click.pass_context
def queue_cleanup(ctx):
    """Remove failed and cancelled tasks."""
    try:
        removed = get_engine(ctx).queue.cleanup()
        click.echo(f"🧹 Removed {removed} task(s)")

    except WaypointError as e:
        handle_cli_error(ctx, e, "queue_cleanup")
