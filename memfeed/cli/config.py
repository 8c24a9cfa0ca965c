"""Configuration management CLI commands."""

import typer
from rich.console import Console

console = Console()

config_app = typer.Typer(help="Manage memfeed configuration")

SECRET_KEYS = {"supabase_key", "access_token"}


def _mask(value: str) -> str:
    if len(value) <= 8:
        return "****"
    return f"{value[:4]}…{value[-4:]}"


@config_app.command("show")
def config_show():
    """Show current configuration."""
    from memfeed.config import get_config_path, load_config

    config_path = get_config_path()
    config = load_config(config_path)

    console.print(f"[cyan]Configuration file:[/cyan] [dim]{config_path}[/dim]\n")

    if config.supabase_url:
        console.print(f"[bold]Supabase URL:[/bold] {config.supabase_url}")
    else:
        console.print("[yellow]No Supabase URL set[/yellow]")

    for key in ("supabase_key", "access_token"):
        value = getattr(config, key)
        console.print(f"[bold]{key}:[/bold] {_mask(value) if value else '[dim]not set[/dim]'}")

    console.print()
    console.print(f"[bold]Page size:[/bold] {config.page_size} (search: {config.search_page_size})")
    console.print(
        f"[bold]Signed URL TTL:[/bold] {config.signed_url_ttl_seconds}s "
        f"(detail: {config.detail_signed_url_ttl_seconds}s, margin: {config.signed_url_safety_margin_seconds}s)"
    )
    console.print(f"[bold]Buckets:[/bold] {config.photo_bucket}, {config.video_bucket}")
    console.print(f"[bold]Request timeout:[/bold] {config.request_timeout}s")
    console.print(f"[bold]Queue:[/bold] [dim]{config.get_queue_path()}[/dim]")
    console.print(f"[bold]Recent searches:[/bold] [dim]{config.get_recent_searches_path()}[/dim]")


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Setting name (e.g., 'supabase_url', 'page_size')"),
    value: str = typer.Argument(help="New value"),
):
    """Set a configuration value."""
    from memfeed.config import Config, get_config_path, update_config

    if key not in Config.model_fields:
        console.print(f"[red]Unknown setting: {key}[/red]")
        console.print(f"[dim]Available: {', '.join(sorted(Config.model_fields))}[/dim]")
        raise typer.Exit(1)

    try:
        update_config(None, lambda config: setattr(config, key, value))
    except ValueError as e:
        console.print(f"[red]Invalid value for {key}: {e}[/red]")
        raise typer.Exit(1)

    shown = _mask(value) if key in SECRET_KEYS else value
    console.print(f"[green]✓ {key} set to:[/green] {shown}")
    console.print(f"[dim]Saved to: {get_config_path()}[/dim]")


@config_app.command("path")
def config_path():
    """Print the configuration file path."""
    from memfeed.config import get_config_path

    console.print(str(get_config_path()))
