"""Shared helpers for memfeed CLI commands."""

from typing import Optional

import typer

from ..config import Config
from ..exceptions import user_message
from ..models import MemoryType, OfflineSyncStatus


def parse_memory_type(value: Optional[str]) -> Optional[MemoryType]:
    """Parse a ``--type`` option; ``all`` or nothing means no filter."""
    if value is None or value.strip().lower() == "all":
        return None
    try:
        return MemoryType.parse(value)
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e


def require_remote(config: Config, console) -> None:
    if not config.supabase_url or not config.supabase_key:
        console.print("[red]Supabase is not configured.[/red]")
        console.print("[dim]Run: memfeed config set supabase_url <url> && memfeed config set supabase_key <key>[/dim]")
        raise typer.Exit(1)


def fail(console, error: BaseException) -> None:
    """Print a friendly error (plus the technical detail, dimmed) and exit 1."""
    console.print(f"[red]{user_message(error)}[/red]")
    console.print(f"[dim]{error}[/dim]")
    raise typer.Exit(1)


STATUS_STYLES = {
    OfflineSyncStatus.SYNCED: "green",
    OfflineSyncStatus.QUEUED: "yellow",
    OfflineSyncStatus.SYNCING: "cyan",
    OfflineSyncStatus.FAILED: "red",
}


def format_status(status: OfflineSyncStatus) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status.value}[/{style}]"
