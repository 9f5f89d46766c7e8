"""Location service: device provider plus persisted last-known location."""

from loguru import logger

from discovery_cache.lib.kvstore.preferences import DevicePreferences
from discovery_cache.lib.location.provider import LocationProvider, LocationUnavailableError
from discovery_cache.lib.spatial.geometry import Coordinate


class LocationService:
    """Resolve the device position without ever raising to the caller.

    Args:
        provider: Device location provider, or None when the host has none.
        preferences: Durable preferences holding the last-known location.
    """

    def __init__(self, provider: LocationProvider | None, preferences: DevicePreferences) -> None:
        self._provider = provider
        self._preferences = preferences

    async def last_known_location(self) -> Coordinate | None:
        """Return the freshest position available without requesting a new fix.

        Prefers the persisted location (within its TTL), then the platform's
        cached fix.  A platform fix found here is persisted for next time.
        """
        cached = await self._preferences.get_last_known_location()
        if cached is not None:
            return cached
        if self._provider is None:
            return None
        try:
            fallback = await self._provider.last_known_location()
        except LocationUnavailableError as e:
            logger.debug(f"No last-known location: {e.reason}")
            return None
        if fallback is not None:
            await self._preferences.set_last_known_location(fallback)
        return fallback

    async def get_current_location(self) -> Coordinate | None:
        """Return a usable position, requesting a fresh fix when nothing is cached.

        Order: persisted location, fresh fix, platform last-known fix.  The
        result is persisted.  Returns None when location is unavailable.
        """
        cached = await self._preferences.get_last_known_location()
        if cached is not None:
            return cached
        if self._provider is None:
            return None

        try:
            coordinate = await self._provider.current_location()
        except LocationUnavailableError as e:
            logger.debug(f"Current location unavailable ({e.reason}), trying last known")
            try:
                coordinate = await self._provider.last_known_location()
            except LocationUnavailableError:
                return None
            if coordinate is None:
                return None

        await self._preferences.set_last_known_location(coordinate)
        return coordinate
