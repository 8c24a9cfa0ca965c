"""Offline write queue CLI commands."""

from typing import List, Optional

import typer
from rich.console import Console

from .helpers import format_status, parse_memory_type

console = Console()

queue_app = typer.Typer(help="Inspect memories waiting to sync")


def _get_queue():
    from memfeed.config import load_config
    from memfeed.sync import LocalWriteQueue

    return LocalWriteQueue(load_config().get_queue_path())


@queue_app.command("list")
def queue_list(
    status: Optional[str] = typer.Option(None, "--status", "-s", help="Only show queued, syncing or failed"),
):
    """List queued memories."""
    from rich.table import Table

    from memfeed.models import OfflineSyncStatus

    queue = _get_queue()
    if status:
        try:
            memories = queue.by_status(OfflineSyncStatus(status.lower()))
        except ValueError:
            console.print(f"[red]Unknown status: {status}[/red]")
            raise typer.Exit(1)
    else:
        memories = queue.all()

    if not memories:
        console.print("[yellow]No queued memories[/yellow]")
        return

    table = Table(title=f"Queued Memories ({len(memories)} total)")
    table.add_column("Local ID", style="cyan", no_wrap=True)
    table.add_column("Type", style="green")
    table.add_column("Title")
    table.add_column("Status")
    table.add_column("Retries", justify="right")
    table.add_column("Created", style="dim")

    for memory in memories:
        record = memory.to_record()
        table.add_row(
            memory.local_id,
            memory.memory_type.value,
            record.display_title,
            format_status(memory.status),
            str(memory.retry_count) if memory.retry_count else "-",
            memory.created_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


@queue_app.command("add")
def queue_add(
    text: str = typer.Argument(help="Memory text"),
    memory_type: str = typer.Option("moment", "--type", "-t", help="moment, story or memento"),
    title: Optional[str] = typer.Option(None, "--title", help="Title (defaults to the start of the text)"),
    tag: Optional[List[str]] = typer.Option(None, "--tag", help="Tag (repeatable)"),
    photo: Optional[List[str]] = typer.Option(None, "--photo", help="Local photo path (repeatable)"),
):
    """Queue a memory written offline."""
    from datetime import datetime, timezone

    from memfeed.sync import QueuedMemory

    parsed = parse_memory_type(memory_type)
    if parsed is None:
        raise typer.BadParameter("A queued memory needs a concrete type")

    memory = QueuedMemory(
        memory_type=parsed,
        title=title,
        input_text=text,
        tags=tag or [],
        photo_paths=photo or [],
        captured_at=datetime.now(timezone.utc),
    )
    _get_queue().enqueue(memory)
    console.print(f"[green]✓ Queued {parsed.value}:[/green] {memory.local_id}")


@queue_app.command("remove")
def queue_remove(
    local_id: str = typer.Argument(help="Local id of the queued memory"),
):
    """Remove a memory from the queue without syncing it."""
    from memfeed.exceptions import NotFoundError

    try:
        _get_queue().remove(local_id)
    except NotFoundError:
        console.print(f"[yellow]Memory '{local_id}' not found in queue[/yellow]")
        raise typer.Exit(1)
    console.print(f"[green]✓ Removed:[/green] {local_id}")
