"""memfeed CLI application - main entry point."""

import asyncio
from typing import List, Optional

import typer
from rich.console import Console

from .config import config_app
from .helpers import fail, format_status, parse_memory_type, require_remote
from .queue import queue_app
from .recent import recent_app

app = typer.Typer(
    name="memfeed",
    help="Browse and search your memory feed from the terminal",
    no_args_is_help=True,
)

console = Console()

SNIPPET_PREVIEW_CHARS = 60


def _preview(text: Optional[str]) -> str:
    if not text:
        return ""
    text = " ".join(text.split())
    if len(text) <= SNIPPET_PREVIEW_CHARS:
        return text
    return f"{text[:SNIPPET_PREVIEW_CHARS]}…"


def _media_cell(record) -> str:
    if record.primary_media is None:
        return "-"
    if record.media_unavailable:
        return "[red]unavailable[/red]"
    return record.primary_media.kind.value


def _print_sections(records: List) -> None:
    from rich.table import Table

    from memfeed.feed import iter_sections

    for section in iter_sections(records):
        table = Table(title=section.label, title_justify="left", show_header=True, header_style="bold cyan")
        table.add_column("Date", style="dim", no_wrap=True)
        table.add_column("Type", style="green")
        table.add_column("Title")
        table.add_column("Snippet", style="dim")
        table.add_column("Media")
        table.add_column("Status")

        for record in section.records:
            table.add_row(
                record.effective_date.strftime("%Y-%m-%d"),
                record.memory_type.value,
                record.display_title,
                _preview(record.snippet_text),
                _media_cell(record),
                format_status(record.offline_sync_status),
            )
        console.print(table)


@app.command()
def feed(
    memory_type: Optional[str] = typer.Option(None, "--type", "-t", help="moment, story, memento or all"),
    pages: int = typer.Option(1, "--pages", "-p", min=1, help="Number of pages to load"),
    page_size: Optional[int] = typer.Option(None, "--page-size", help="Rows per page (default from config)"),
    offline: bool = typer.Option(False, "--offline", help="Only show memories queued on this device"),
):
    """Show the unified memory feed grouped by year, season and month."""
    from memfeed.config import load_config
    from memfeed.exceptions import MemfeedError
    from memfeed.sync import LocalWriteQueue

    config = load_config()
    filter_type = parse_memory_type(memory_type)
    queue = LocalWriteQueue(config.get_queue_path())

    if offline:
        records = [r for r in queue.records() if filter_type is None or r.memory_type == filter_type]
        records.sort(key=lambda r: r.sort_key(), reverse=True)
        if not records:
            console.print("[yellow]No queued memories[/yellow]")
            return
        _print_sections(records)
        return

    require_remote(config, console)

    async def _load():
        from memfeed.feed import FeedPager
        from memfeed.media import SignedUrlCache
        from memfeed.remote import SupabaseClient
        from memfeed.sync import OfflineSyncTracker

        async with SupabaseClient.from_config(config) as client:
            cache = SignedUrlCache(
                client,
                ttl_seconds=config.signed_url_ttl_seconds,
                detail_ttl_seconds=config.detail_signed_url_ttl_seconds,
                safety_margin=config.signed_url_safety_margin_seconds,
            )
            pager = FeedPager(
                client,
                OfflineSyncTracker(),
                url_cache=cache,
                queue=queue,
                page_size=page_size or config.page_size,
                photo_bucket=config.photo_bucket,
                video_bucket=config.video_bucket,
            )
            await pager.load_initial(filter_type)
            for _ in range(pages - 1):
                if not pager.has_more or pager.last_error is not None:
                    break
                await pager.load_more()
            return pager

    try:
        pager = asyncio.run(_load())
    except MemfeedError as e:
        fail(console, e)

    records = pager.records
    if records:
        _print_sections(records)
    elif pager.last_error is None:
        console.print("[yellow]No memories yet[/yellow]")

    if pager.last_error is not None:
        console.print(f"[red]{pager.error_message}[/red]")
        raise typer.Exit(1)
    if pager.has_more:
        console.print(f"[dim]More memories available (use --pages {pages + 1})[/dim]")


@app.command()
def years(
    memory_type: Optional[str] = typer.Option(None, "--type", "-t", help="moment, story, memento or all"),
):
    """List years that have memories, newest first."""
    from memfeed.config import load_config
    from memfeed.exceptions import MemfeedError
    from memfeed.remote import SupabaseClient

    config = load_config()
    filter_type = parse_memory_type(memory_type)
    require_remote(config, console)

    async def _fetch():
        async with SupabaseClient.from_config(config) as client:
            return await client.get_years(filter_type)

    try:
        found = asyncio.run(_fetch())
    except MemfeedError as e:
        fail(console, e)

    if not found:
        console.print("[yellow]No memories yet[/yellow]")
        return
    console.print(" ".join(str(year) for year in found))


@app.command()
def search(
    query: str = typer.Argument(help="Search text"),
    page: int = typer.Option(1, "--page", min=1, help="Page number"),
    page_size: Optional[int] = typer.Option(None, "--page-size", help="Results per page (max 50)"),
    memory_type: Optional[str] = typer.Option(None, "--type", "-t", help="moment, story, memento or all"),
):
    """Full-text search across your memories."""
    from rich.table import Table

    from memfeed.config import load_config
    from memfeed.exceptions import MemfeedError, ValidationError
    from memfeed.remote import SupabaseClient
    from memfeed.search import RecentSearches, SearchPager

    if not query.strip():
        fail(console, ValidationError("Search query cannot be empty"))

    config = load_config()
    filter_type = parse_memory_type(memory_type)
    require_remote(config, console)
    recent = RecentSearches(limit=config.recent_search_limit, path=config.get_recent_searches_path())

    async def _search():
        async with SupabaseClient.from_config(config) as client:
            pager = SearchPager(client, recent=recent, page_size=page_size or config.search_page_size)
            return await pager.search(query, page, memory_type=filter_type)

    try:
        results = asyncio.run(_search())
    except MemfeedError as e:
        fail(console, e)

    if not results.items:
        console.print(f"[yellow]No memories match '{query.strip()}'[/yellow]")
        return

    table = Table(title=f"Search Results for '{query.strip()}' (page {results.page})")
    table.add_column("Title", style="cyan")
    table.add_column("Type", style="green")
    table.add_column("Date", style="dim", no_wrap=True)
    table.add_column("Snippet", style="dim")

    for item in results.items:
        date = item.memory_date or item.created_at
        table.add_row(item.display_title, item.memory_type.value, date.strftime("%Y-%m-%d"), _preview(item.snippet_text))

    console.print(table)
    if results.has_more:
        console.print(f"[dim]More results: --page {results.page + 1}[/dim]")


app.add_typer(config_app, name="config")
app.add_typer(queue_app, name="queue")
app.add_typer(recent_app, name="recent")


def main():
    app()
