"""Cache CLI commands: inspect counters and invalidate persisted state."""

import asyncio

import typer

cache_app = typer.Typer()


@cache_app.command("stats")
def cache_stats(
    refresh: bool = typer.Option(False, "--refresh", help="Run a lightweight refresh after loading"),  # noqa: FBT001
) -> None:
    """Load the feed once and print cache diagnostics as JSON."""
    asyncio.run(_cache_stats(refresh))


@cache_app.command("clear")
def cache_clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),  # noqa: FBT001
) -> None:
    """Clear the geocode and distance caches and saved device preferences."""
    if not yes:
        typer.confirm("Clear all persisted caches and preferences?", abort=True)
    try:
        asyncio.run(_cache_clear())
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e
    typer.echo("Caches cleared.")


async def _cache_stats(refresh: bool) -> None:  # noqa: FBT001
    """Async implementation of cache stats."""
    from discovery_cache.core.config import get_settings
    from discovery_cache.lib.remote.base import TransientRemoteError
    from discovery_cache.services.data_service import open_data_service

    try:
        async with open_data_service(get_settings()) as service:
            await service.combined_load()
            if refresh:
                changed = await service.lightweight_refresh()
                typer.echo(f"Lightweight refresh: {'new events merged' if changed else 'no change'}", err=True)
            typer.echo(service.diagnostics().model_dump_json(indent=2))
    except (TransientRemoteError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e


async def _cache_clear() -> None:
    """Async implementation of cache clear."""
    from discovery_cache.core.config import get_settings
    from discovery_cache.services.data_service import open_data_service

    async with open_data_service(get_settings()) as service:
        await service.clear_all()
