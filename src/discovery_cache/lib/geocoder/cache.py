"""Persistent geocode cache in front of a geocoding provider.

Entries are keyed by normalized address and kept in insertion order; when the
collection exceeds its cap the oldest entries are dropped.  The collection is
loaded from the durable store on first use and written back in the background
after each new result.
"""

import asyncio
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import UTC, datetime, timedelta

from loguru import logger
from pydantic import TypeAdapter, ValidationError

from discovery_cache.core.background import BackgroundTaskRunner
from discovery_cache.lib.geocoder.address import normalize_address_key
from discovery_cache.lib.geocoder.base import BaseGeocoder, GeocodingProviderError
from discovery_cache.lib.kvstore.base import KeyValueStore
from discovery_cache.lib.spatial.geometry import Coordinate
from discovery_cache.schemas.cache import GeocodeCacheEntry

GEOCACHE_KEY = "geocodingCache"
DEFAULT_TTL = timedelta(days=7)
DEFAULT_MAX_ENTRIES = 300
DEFAULT_TIMEOUT = 5.0

_ENTRIES_ADAPTER = TypeAdapter(list[GeocodeCacheEntry])


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class GeocodeCacheStats:
    hits: int = 0
    misses: int = 0
    failures: int = 0
    entries: int = 0


class GeocodeCache:
    """Resolve addresses to coordinates, calling the provider only on a miss.

    ``resolve`` never raises: provider errors, timeouts, and no-match results
    all come back as None.

    Args:
        geocoder: Provider used on cache misses.
        store: Durable store holding the persisted entries.
        runner: Background runner used for fire-and-forget persistence.
        ttl: Age after which an entry is ignored.
        max_entries: Cap on retained entries.
        timeout: Seconds allowed per provider call.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        geocoder: BaseGeocoder,
        store: KeyValueStore,
        runner: BackgroundTaskRunner,
        *,
        ttl: timedelta = DEFAULT_TTL,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        timeout: float = DEFAULT_TIMEOUT,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._geocoder = geocoder
        self._store = store
        self._runner = runner
        self._ttl = ttl
        self._max_entries = max_entries
        self._timeout = timeout
        self._clock = clock
        self._entries: tuple[GeocodeCacheEntry, ...] | None = None
        self._stats = GeocodeCacheStats()

    @property
    def stats(self) -> dict[str, int]:
        self._stats.entries = len(self._entries or ())
        return asdict(self._stats)

    async def resolve(self, address: str | None) -> Coordinate | None:
        """Resolve a free-text address to a coordinate.

        Args:
            address: Address as entered by the business.

        Returns:
            Coordinate, or None if the address is blank or unresolvable.
        """
        key = normalize_address_key(address)
        if not key:
            return None

        entries = await self._load()
        now = self._clock()
        for entry in reversed(entries):
            if entry.address == key and now - entry.cached_at < self._ttl:
                self._stats.hits += 1
                return Coordinate(latitude=entry.latitude, longitude=entry.longitude)

        self._stats.misses += 1
        try:
            result = await asyncio.wait_for(self._geocoder.geocode(address.strip()), timeout=self._timeout)
        except TimeoutError:
            self._stats.failures += 1
            logger.debug(f"Geocoding timed out after {self._timeout}s")
            return None
        except (GeocodingProviderError, ValueError) as e:
            self._stats.failures += 1
            logger.debug(f"Geocoding failed: {e}")
            return None
        except Exception as e:
            self._stats.failures += 1
            logger.warning(f"Geocoder {self._geocoder.provider_name!r} raised unexpectedly: {e!r}")
            return None

        if result is None:
            self._stats.failures += 1
            return None

        self._remember(key, result.latitude, result.longitude)
        return result.coordinate

    async def clear(self) -> None:
        """Drop all entries in memory and in the durable store."""
        self._entries = ()
        await self._store.delete(GEOCACHE_KEY)

    async def _load(self) -> tuple[GeocodeCacheEntry, ...]:
        if self._entries is not None:
            return self._entries
        raw = await self._store.get(GEOCACHE_KEY)
        loaded: tuple[GeocodeCacheEntry, ...] = ()
        if raw is not None:
            try:
                loaded = tuple(_ENTRIES_ADAPTER.validate_python(raw))
            except ValidationError:
                logger.warning("Persisted geocode cache is malformed; starting empty")
        # A concurrent resolve may have loaded (and extended) the cache meanwhile.
        if self._entries is None:
            self._entries = loaded
        return self._entries

    def _remember(self, key: str, latitude: float, longitude: float) -> None:
        entry = GeocodeCacheEntry(address=key, latitude=latitude, longitude=longitude, cached_at=self._clock())
        kept = [e for e in (self._entries or ()) if e.address != key]
        kept.append(entry)
        self._entries = tuple(kept[-self._max_entries :])

        payload = [e.model_dump(mode="json", by_alias=True) for e in self._entries]
        self._runner.submit_task(self._store.set(GEOCACHE_KEY, payload), label="geocode-cache-write")
