"""Recent searches CLI commands."""

import asyncio

import typer
from rich.console import Console

from .helpers import fail, require_remote

console = Console()

recent_app = typer.Typer(help="Manage recent searches")


def _get_recent():
    from memfeed.config import load_config
    from memfeed.search import RecentSearches

    config = load_config()
    return config, RecentSearches(limit=config.recent_search_limit, path=config.get_recent_searches_path())


@recent_app.command("list")
def recent_list(
    remote: bool = typer.Option(False, "--remote", help="Fetch the list from the server"),
):
    """Show recent searches, most recent first."""
    from memfeed.exceptions import MemfeedError
    from memfeed.remote import SupabaseClient
    from memfeed.search import SearchPager

    config, recent = _get_recent()
    items = recent.items()

    if remote:
        require_remote(config, console)

        async def _fetch():
            async with SupabaseClient.from_config(config) as client:
                return await SearchPager(client, recent=recent).recent_searches()

        try:
            items = asyncio.run(_fetch())
        except MemfeedError as e:
            fail(console, e)

    if not items:
        console.print("[yellow]No recent searches[/yellow]")
        return

    for i, item in enumerate(items, 1):
        console.print(f"{i}. [cyan]{item.query}[/cyan] [dim]{item.searched_at.strftime('%Y-%m-%d %H:%M')}[/dim]")


@recent_app.command("clear")
def recent_clear(
    remote: bool = typer.Option(False, "--remote", help="Also clear the server-side list"),
):
    """Clear recent searches."""
    from memfeed.exceptions import MemfeedError
    from memfeed.remote import SupabaseClient

    config, recent = _get_recent()
    recent.clear()

    if remote:
        require_remote(config, console)

        async def _clear():
            async with SupabaseClient.from_config(config) as client:
                await client.clear_recent_searches()

        try:
            asyncio.run(_clear())
        except MemfeedError as e:
            fail(console, e)

    console.print("[green]✓ Recent searches cleared[/green]")
