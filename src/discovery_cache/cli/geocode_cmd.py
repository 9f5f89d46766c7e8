"""Geocoding CLI commands."""

import asyncio

import typer

geocode_app = typer.Typer()


@geocode_app.command("resolve")
def resolve_address(
    address: str = typer.Argument(..., help="Free-text address"),  # noqa: B008
) -> None:
    """Resolve an address through the persistent geocode cache."""
    try:
        found = asyncio.run(_resolve_address(address))
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e
    if not found:
        raise typer.Exit(code=1)


async def _resolve_address(address: str) -> bool:
    """Async implementation of geocode resolve."""
    from discovery_cache.core.config import get_settings
    from discovery_cache.lib.geocoder import normalize_address_key
    from discovery_cache.services.data_service import open_data_service

    async with open_data_service(get_settings()) as service:
        coordinate = await service.geocode_cache.resolve(address)
        stats = service.geocode_cache.stats

    if coordinate is None:
        typer.echo(f"No match for {normalize_address_key(address)!r}", err=True)
        return False

    typer.echo(f"Latitude:  {coordinate.latitude:.6f}")
    typer.echo(f"Longitude: {coordinate.longitude:.6f}")
    typer.echo(f"Cache:     {'hit' if stats['hits'] else 'miss'}")
    return True
