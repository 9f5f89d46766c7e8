"""Feed CLI commands: load, page and distance-filter the event feed."""

import asyncio
from datetime import date, datetime

import typer

from discovery_cache.schemas.records import BusinessRecord, EventRecord
from discovery_cache.services.data_service import LoadOptions

feed_app = typer.Typer()

_DATE_FORMATS = ["%Y-%m-%d"]


def _as_date(value: datetime | None) -> date | None:
    return value.date() if value is not None else None


def _print_events(events: list[EventRecord], businesses: list[BusinessRecord]) -> None:
    names = {business.id: business.name for business in businesses}
    for event in events:
        host = names.get(event.business_id, event.business_id)
        typer.echo(f"{event.date:%Y-%m-%d %H:%M}  {event.title}  ({host})")


@feed_app.command("show")
def show_feed(
    forced_date: datetime | None = typer.Option(None, "--forced-date", formats=_DATE_FORMATS, help="Single day"),  # noqa: B008
    start_date: datetime | None = typer.Option(None, "--start-date", formats=_DATE_FORMATS, help="Range start"),  # noqa: B008
    end_date: datetime | None = typer.Option(None, "--end-date", formats=_DATE_FORMATS, help="Range end (inclusive)"),  # noqa: B008
    business_id: str | None = typer.Option(None, "--business-id", help="Only events of this business"),
    more: int = typer.Option(0, "--more", min=0, help="Extend the window this many times"),
) -> None:
    """Print the event feed, cached unless a date or business filter is given."""
    options = LoadOptions(
        forced_date=_as_date(forced_date),
        start_date=_as_date(start_date),
        end_date=_as_date(end_date),
        business_id=business_id,
    )
    asyncio.run(_show_feed(options, more))


@feed_app.command("nearby")
def nearby_feed(
    max_km: float = typer.Option(..., "--max-km", min=0, help="Search radius in kilometers"),
    lat: float | None = typer.Option(None, "--lat", min=-90, max=90, help="Reference latitude"),
    lon: float | None = typer.Option(None, "--lon", min=-180, max=180, help="Reference longitude"),
) -> None:
    """Print feed events whose business lies within --max-km of a point.

    Without --lat/--lon the persisted device location is used.
    """
    if (lat is None) != (lon is None):
        raise typer.BadParameter("--lat and --lon must be given together")
    asyncio.run(_nearby_feed(max_km, lat, lon))


async def _show_feed(options: LoadOptions, more: int) -> None:
    """Async implementation of feed show."""
    from discovery_cache.core.config import get_settings
    from discovery_cache.lib.remote.base import TransientRemoteError
    from discovery_cache.services.data_service import open_data_service

    try:
        async with open_data_service(get_settings()) as service:
            result = await service.combined_load(options)
            events = result.events
            for _ in range(more if result.from_cache else 0):
                events = await service.load_more()
            _print_events(events, result.businesses)
            suffix = ", more available" if result.has_more and result.from_cache else ""
            typer.echo(f"\n{len(events)} events{suffix}")
    except (TransientRemoteError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e


async def _nearby_feed(max_km: float, lat: float | None, lon: float | None) -> None:
    """Async implementation of feed nearby."""
    from discovery_cache.core.config import get_settings
    from discovery_cache.lib.location.provider import StaticLocationProvider
    from discovery_cache.lib.remote.base import TransientRemoteError
    from discovery_cache.lib.spatial.geometry import Coordinate
    from discovery_cache.services.data_service import open_data_service

    reference = Coordinate(lat, lon) if lat is not None and lon is not None else None
    try:
        async with open_data_service(get_settings(), location_provider=StaticLocationProvider(reference)) as service:
            if reference is None:
                reference = await service.location.get_current_location()
                if reference is None:
                    typer.echo("No device location available; showing the unfiltered feed", err=True)
            result = await service.combined_load()
            events = await service.filter_by_distance(result.events, result.businesses, max_km, reference)
            _print_events(events, result.businesses)
            typer.echo(f"\n{len(events)} of {len(result.events)} events within {max_km:g} km")
    except (TransientRemoteError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e
