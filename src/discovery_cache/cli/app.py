"""Typer CLI root application."""

import asyncio

import typer

from discovery_cache.core.config import get_settings
from discovery_cache.core.logging import setup_logging

app = typer.Typer(name="discovery-cache", help="Event feed cache and spatial filter CLI")


@app.callback()
def _main_callback(
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit logs as JSON lines"),  # noqa: FBT001
) -> None:
    """Initialize logging for all CLI commands."""
    settings = get_settings()
    setup_logging(settings.log_level, log_dir=settings.log_dir, json_logs=json_logs)


@app.command()
def check() -> None:
    """Verify the remote store is reachable."""
    try:
        ok = asyncio.run(_check())
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e
    if not ok:
        typer.echo(typer.style("FAIL", fg=typer.colors.RED, bold=True) + "  remote store unreachable", err=True)
        raise typer.Exit(code=1)
    typer.echo(typer.style("PASS", fg=typer.colors.GREEN, bold=True) + "  remote store reachable")


async def _check() -> bool:
    from discovery_cache.services.data_service import open_data_service

    async with open_data_service(get_settings()) as service:
        return await service.check_connection()


def _register_subcommands() -> None:
    """Register all CLI subcommand groups."""
    from discovery_cache.cli.cache_cmd import cache_app
    from discovery_cache.cli.feed_cmd import feed_app
    from discovery_cache.cli.geocode_cmd import geocode_app

    app.add_typer(feed_app, name="feed", help="Event feed commands")
    app.add_typer(geocode_app, name="geocode", help="Geocoding commands")
    app.add_typer(cache_app, name="cache", help="Cache inspection and invalidation")


_register_subcommands()
