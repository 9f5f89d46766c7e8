"""Feed data service: the single entry point the display layer talks to.

Owns one instance of every cache (reference, event window, geocode, distance)
plus the device preferences, and wires them to the remote store, geocoder and
location provider it is constructed with.
"""

import asyncio
from collections.abc import AsyncIterator, Callable, Iterable, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, date, datetime, time
from typing import Any

from loguru import logger

from discovery_cache.core.background import ErrorObserver, InProcessTaskRunner
from discovery_cache.core.config import Settings
from discovery_cache.lib.geocoder import GeocodeCache, get_geocoder
from discovery_cache.lib.geocoder.base import BaseGeocoder
from discovery_cache.lib.kvstore.base import KeyValueStore
from discovery_cache.lib.kvstore.disk import DiskKeyValueStore
from discovery_cache.lib.kvstore.preferences import DevicePreferences
from discovery_cache.lib.location.provider import LocationProvider
from discovery_cache.lib.location.service import LocationService
from discovery_cache.lib.remote.base import (
    DocumentQuery,
    FieldFilter,
    FilterOp,
    RemoteDocumentStore,
    TransientRemoteError,
)
from discovery_cache.lib.remote.firestore import FirestoreDocumentStore
from discovery_cache.lib.spatial.distance_cache import DistanceCache
from discovery_cache.lib.spatial.filter import SpatialFilter
from discovery_cache.lib.spatial.geometry import Coordinate
from discovery_cache.schemas.cache import CacheDiagnostics
from discovery_cache.schemas.records import BusinessRecord, EventRecord, parse_documents
from discovery_cache.services.event_cache import DATE_FIELD, ONE_DAY, EventWindowCache, start_of_day
from discovery_cache.services.reference_cache import BusinessReferenceCache
from discovery_cache.services.refresh import DeltaRefreshChecker

BUSINESS_ID_FIELD = "businessId"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _day_start(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=UTC)


@dataclass(frozen=True)
class LoadOptions:
    """Parameters for a one-off feed query that bypasses the caches."""

    forced_date: date | None = None
    start_date: date | None = None
    end_date: date | None = None
    business_id: str | None = None

    @property
    def is_empty(self) -> bool:
        return (
            self.forced_date is None
            and self.start_date is None
            and self.end_date is None
            and not self.business_id
        )


@dataclass
class FeedResult:
    events: list[EventRecord]
    businesses: list[BusinessRecord]
    has_more: bool = False
    from_cache: bool = True


class FeedDataService:
    """Cache-fronted access to events and businesses.

    Args:
        store: Remote document store holding events and businesses.
        geocoder: Provider used for business addresses without coordinates.
        kv_store: Durable per-device store.
        location_provider: Device location source; None means location is
            unavailable and distance features run unfiltered.
        settings: Tunables; defaults to ``Settings()`` defaults.
        clock: Returns the current UTC time.
        on_background_error: Observer for failed background cache writes.
    """

    def __init__(
        self,
        store: RemoteDocumentStore,
        geocoder: BaseGeocoder,
        kv_store: KeyValueStore,
        *,
        location_provider: LocationProvider | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = _utcnow,
        on_background_error: ErrorObserver | None = None,
    ) -> None:
        settings = settings or Settings(_env_file=None)
        self._settings = settings
        self._store = store
        self._kv_store = kv_store
        self._clock = clock

        self.runner = InProcessTaskRunner(on_error=on_background_error)
        self.preferences = DevicePreferences(kv_store, location_ttl=settings.last_location_ttl, clock=clock)
        self.location = LocationService(location_provider, self.preferences)
        self.geocode_cache = GeocodeCache(
            geocoder,
            kv_store,
            self.runner,
            ttl=settings.geocode_cache_ttl,
            max_entries=settings.geocode_cache_max_entries,
            timeout=settings.geocode_timeout_seconds,
            clock=clock,
        )
        self.distance_cache = DistanceCache(
            kv_store,
            epsilon_km=settings.distance_cache_epsilon_km,
            ttl=settings.distance_cache_ttl,
            max_entries=settings.distance_cache_max_entries,
            km_per_degree=settings.km_per_degree,
            clock=clock,
        )
        self.spatial_filter = SpatialFilter(
            self.geocode_cache,
            self.distance_cache,
            self.location,
            self.runner,
            batch_size=settings.filter_batch_size,
            km_per_degree=settings.km_per_degree,
        )
        self.businesses = BusinessReferenceCache(
            store,
            settings.businesses_collection,
            ttl=settings.reference_cache_ttl,
            clock=clock,
        )
        self.events = EventWindowCache(
            store,
            settings.events_collection,
            ttl=settings.event_cache_ttl,
            target_count=settings.event_target_count,
            max_iterations=settings.event_max_iterations,
            clock=clock,
        )
        self.refresh_checker = DeltaRefreshChecker(self.events, store, settings.events_collection, clock=clock)

    async def combined_load(self, options: LoadOptions | None = None) -> FeedResult:
        """Load the feed: events plus the businesses they reference.

        With no options the cached, progressively loaded window is returned.
        Any option turns the call into a direct, uncached query.

        Raises:
            TransientRemoteError: If the store fails and nothing usable is cached.
        """
        if options is not None and not options.is_empty:
            return await self._direct_load(options)

        events, businesses = await asyncio.gather(self.events.get(), self.businesses.get())
        return FeedResult(events=events, businesses=businesses, has_more=not self.events.exhausted)

    async def load_more(self, additional_count: int | None = None) -> list[EventRecord]:
        """Extend the event window past its current boundary."""
        return await self.events.extend(additional_count)

    async def lightweight_refresh(self) -> bool:
        return await self.refresh_checker.lightweight_refresh()

    async def filter_by_distance(
        self,
        events: Sequence[EventRecord],
        businesses: Sequence[BusinessRecord],
        max_distance_km: float | None,
        reference: Coordinate | None = None,
    ) -> list[EventRecord]:
        return await self.spatial_filter.filter_by_distance(events, businesses, max_distance_km, reference)

    async def filter_by_map_area(
        self,
        events: Sequence[EventRecord],
        businesses: Sequence[BusinessRecord],
        map_center: Coordinate,
        radius_km: float,
    ) -> list[EventRecord]:
        return await self.spatial_filter.filter_by_map_area(events, businesses, map_center, radius_km)

    async def filter_by_preferences(
        self,
        events: Sequence[EventRecord],
        businesses: Sequence[BusinessRecord],
        max_distance_km: float | None,
    ) -> list[EventRecord]:
        """Apply the distance filter if the user turned location filtering on.

        The saved map center is the reference point; without one the device
        location is used.
        """
        if not await self.preferences.get_location_filter_enabled():
            return list(events)
        center = await self.preferences.get_map_center()
        return await self.spatial_filter.filter_by_distance(events, businesses, max_distance_km, center)

    @staticmethod
    def filter_by_interests(events: Iterable[EventRecord], interests: Iterable[str]) -> list[EventRecord]:
        """Keep events tagged with at least one of ``interests`` (case-insensitive)."""
        wanted = {interest.strip().lower() for interest in interests if interest.strip()}
        if not wanted:
            return []
        return [event for event in events if any(tag.strip().lower() in wanted for tag in event.tags)]

    async def check_connection(self) -> bool:
        """Return True if a one-row read of the businesses collection succeeds."""
        query = DocumentQuery(collection=self._settings.businesses_collection, limit=1)
        try:
            await self._store.run_query(query)
        except TransientRemoteError as e:
            logger.warning(f"Remote store connection check failed: {e}")
            return False
        return True

    def diagnostics(self) -> CacheDiagnostics:
        return CacheDiagnostics(
            remote_reads=self._store.read_count,
            businesses=self.businesses.status(),
            events=self.events.status(),
            geocode=self.geocode_cache.stats,
            distance={**self.distance_cache.stats, **self.spatial_filter.stats},
            background_failures=self.runner.failures,
            pending_writes=self.runner.pending,
        )

    async def clear_all(self) -> None:
        """Drop every in-memory cache and the persisted per-device state."""
        self.businesses.clear()
        self.events.clear()
        await self.runner.drain()
        await self.geocode_cache.clear()
        await self.distance_cache.clear()
        await self.preferences.clear()
        logger.info("All caches cleared")

    async def force_refresh_all(self) -> FeedResult:
        """Revalidate businesses and events regardless of their age."""
        events, businesses = await asyncio.gather(self.events.get(force=True), self.businesses.get(force=True))
        return FeedResult(events=events, businesses=businesses, has_more=not self.events.exhausted)

    async def close(self) -> None:
        """Flush pending background writes and release the device store."""
        await self.runner.drain()
        await self._kv_store.close()

    async def _direct_load(self, options: LoadOptions) -> FeedResult:
        filters: list[FieldFilter] = []
        if options.forced_date is not None:
            start = _day_start(options.forced_date)
            filters += [
                FieldFilter(DATE_FIELD, FilterOp.GTE, start),
                FieldFilter(DATE_FIELD, FilterOp.LT, start + ONE_DAY),
            ]
        elif options.start_date is not None or options.end_date is not None:
            if options.start_date is not None:
                filters.append(FieldFilter(DATE_FIELD, FilterOp.GTE, _day_start(options.start_date)))
            if options.end_date is not None:
                filters.append(FieldFilter(DATE_FIELD, FilterOp.LT, _day_start(options.end_date) + ONE_DAY))
        else:
            filters.append(FieldFilter(DATE_FIELD, FilterOp.GTE, start_of_day(self._clock())))
        if options.business_id:
            filters.append(FieldFilter(BUSINESS_ID_FIELD, FilterOp.EQ, options.business_id))

        query = DocumentQuery(
            collection=self._settings.events_collection,
            filters=tuple(filters),
            order_by=DATE_FIELD,
        )
        event_documents, business_documents = await asyncio.gather(
            self._store.run_query(query),
            self._store.fetch_all(self._settings.businesses_collection),
        )
        events = sorted(parse_documents(EventRecord, event_documents), key=lambda event: event.sort_key)
        businesses = parse_documents(BusinessRecord, business_documents)
        logger.debug(f"Direct load returned {len(events)} events for {options}")
        return FeedResult(events=events, businesses=businesses, has_more=False, from_cache=False)


def create_data_service(
    settings: Settings,
    *,
    location_provider: LocationProvider | None = None,
    id_token: str | None = None,
    on_background_error: ErrorObserver | None = None,
) -> FeedDataService:
    """Build a FeedDataService against Firestore, Nominatim and a disk store.

    Raises:
        ValueError: If no Firestore project is configured.
    """
    if not settings.firestore_project_id:
        msg = "FIRESTORE_PROJECT_ID must be set to create the data service"
        raise ValueError(msg)

    store = FirestoreDocumentStore(
        settings.firestore_project_id,
        settings.firestore_database,
        api_key=settings.firestore_api_key,
        id_token=id_token,
        timeout=settings.firestore_timeout,
    )
    geocoder = get_geocoder(
        settings.geocoder_provider,
        timeout=settings.geocode_timeout_seconds,
        email=settings.geocoder_nominatim_email,
        user_agent=settings.geocoder_user_agent,
    )
    kv_store = DiskKeyValueStore(settings.device_store_directory)
    return FeedDataService(
        store,
        geocoder,
        kv_store,
        location_provider=location_provider,
        settings=settings,
        on_background_error=on_background_error,
    )


@asynccontextmanager
async def open_data_service(settings: Settings, **kwargs: Any) -> AsyncIterator[FeedDataService]:
    """Create a data service and close it (flushing background writes) on exit."""
    service = create_data_service(settings, **kwargs)
    try:
        yield service
    finally:
        await service.close()
