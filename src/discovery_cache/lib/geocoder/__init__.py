"""Geocoder library: pluggable address geocoding with a persistent cache.

Public API:
    - normalize_address_key: Normalize a free-text address into a cache key
    - BaseGeocoder: Abstract provider interface
    - GeocodingResult: Result dataclass
    - GeocodingProviderError: Provider transport/service failure
    - NominatimGeocoder: OpenStreetMap Nominatim provider
    - GeocodeCache: Cache-fronted resolver used by the spatial filter
    - get_geocoder: Provider factory/registry
"""

from typing import Any

from discovery_cache.lib.geocoder.address import normalize_address_key
from discovery_cache.lib.geocoder.base import BaseGeocoder, GeocodingProviderError, GeocodingResult
from discovery_cache.lib.geocoder.cache import GeocodeCache
from discovery_cache.lib.geocoder.nominatim import NominatimGeocoder

# Provider registry
_PROVIDERS: dict[str, type[BaseGeocoder]] = {
    "nominatim": NominatimGeocoder,
}


def get_available_providers() -> list[str]:
    """Return the names of all registered geocoder providers."""
    return sorted(_PROVIDERS.keys())


def get_geocoder(provider: str = "nominatim", **kwargs: Any) -> BaseGeocoder:
    """Get a geocoder instance by provider name.

    Args:
        provider: Provider name (e.g., "nominatim").
        **kwargs: Additional arguments forwarded to the provider constructor
            (e.g., ``timeout=2.0``).

    Returns:
        An instance of the requested geocoder provider.

    Raises:
        ValueError: If the provider is not registered.
    """
    cls = _PROVIDERS.get(provider)
    if cls is None:
        msg = f"Unknown geocoder provider: {provider!r}. Available: {list(_PROVIDERS.keys())}"
        raise ValueError(msg)
    return cls(**kwargs)


__all__ = [
    "BaseGeocoder",
    "GeocodeCache",
    "GeocodingProviderError",
    "GeocodingResult",
    "NominatimGeocoder",
    "get_available_providers",
    "get_geocoder",
    "normalize_address_key",
]
