"""Device location provider interface.

A provider may be unavailable (permission denied, location services off).
That is a degraded mode, signalled with ``LocationUnavailableError``, not a
failure of the caller.
"""

from abc import ABC, abstractmethod

from discovery_cache.lib.spatial.geometry import Coordinate


class LocationUnavailableError(Exception):
    """Raised when the device cannot report a location.

    Args:
        reason: Short machine-friendly reason (e.g. ``"permission_denied"``).
    """

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Location unavailable: {reason}")


class LocationProvider(ABC):
    """Best-effort access to the device position."""

    @abstractmethod
    async def current_location(self) -> Coordinate:
        """Return a fresh position fix.

        Raises:
            LocationUnavailableError: If no fix can be obtained.
        """

    async def last_known_location(self) -> Coordinate | None:
        """Return the platform's cached fix, if any.  None by default."""
        return None


class StaticLocationProvider(LocationProvider):
    """Provider pinned to a fixed coordinate, or permanently unavailable when None."""

    def __init__(self, coordinate: Coordinate | None = None, *, reason: str = "disabled") -> None:
        self._coordinate = coordinate
        self._reason = reason

    async def current_location(self) -> Coordinate:
        if self._coordinate is None:
            raise LocationUnavailableError(self._reason)
        return self._coordinate

    async def last_known_location(self) -> Coordinate | None:
        return self._coordinate
