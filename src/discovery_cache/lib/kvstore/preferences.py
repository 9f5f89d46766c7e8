"""Typed accessors for per-device preferences kept in the durable store.

Each value has its own key and lifetime.  Malformed values read as absent.
"""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from loguru import logger
from pydantic import ValidationError

from discovery_cache.lib.kvstore.base import KeyValueStore
from discovery_cache.lib.spatial.geometry import Coordinate
from discovery_cache.schemas.cache import PersistedLocation

USER_LOCATION_KEY = "userLocationCache"
MAP_CENTER_KEY = "mapCenter"
LOCATION_FILTER_KEY = "locationFilterEnabled"

DEFAULT_LOCATION_TTL = timedelta(hours=2)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _coordinate_from(value: object) -> Coordinate | None:
    if not isinstance(value, dict):
        return None
    try:
        return Coordinate(latitude=float(value["latitude"]), longitude=float(value["longitude"]))
    except (KeyError, TypeError, ValueError):
        return None


class DevicePreferences:
    """Last-known location, map center, and location-filter flag.

    Args:
        store: Durable key-value store.
        location_ttl: How long a persisted device location stays usable.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        location_ttl: timedelta = DEFAULT_LOCATION_TTL,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._location_ttl = location_ttl
        self._clock = clock

    async def get_last_known_location(self) -> Coordinate | None:
        """Return the persisted device location if it is younger than the TTL."""
        raw = await self._store.get(USER_LOCATION_KEY)
        if raw is None:
            return None
        try:
            persisted = PersistedLocation.model_validate(raw)
        except ValidationError:
            logger.debug("Ignoring malformed persisted location")
            return None
        if self._clock() - persisted.cached_at >= self._location_ttl:
            return None
        return Coordinate(latitude=persisted.latitude, longitude=persisted.longitude)

    async def set_last_known_location(self, coordinate: Coordinate) -> None:
        persisted = PersistedLocation(
            latitude=coordinate.latitude,
            longitude=coordinate.longitude,
            cached_at=self._clock(),
        )
        await self._store.set(USER_LOCATION_KEY, persisted.model_dump(mode="json", by_alias=True))

    async def get_map_center(self) -> Coordinate | None:
        return _coordinate_from(await self._store.get(MAP_CENTER_KEY))

    async def set_map_center(self, coordinate: Coordinate) -> None:
        await self._store.set(MAP_CENTER_KEY, coordinate.to_dict())

    async def get_location_filter_enabled(self) -> bool:
        value = await self._store.get(LOCATION_FILTER_KEY)
        return value if isinstance(value, bool) else False

    async def set_location_filter_enabled(self, enabled: bool) -> None:  # noqa: FBT001
        await self._store.set(LOCATION_FILTER_KEY, enabled)

    async def clear(self) -> None:
        """Forget every preference (used on logout)."""
        await self._store.delete_many([USER_LOCATION_KEY, MAP_CENTER_KEY, LOCATION_FILTER_KEY])
