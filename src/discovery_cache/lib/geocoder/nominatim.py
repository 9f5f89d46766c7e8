"""OpenStreetMap Nominatim geocoder provider.

Uses the Nominatim API (https://nominatim.org/release-docs/develop/api/Search/)
for address-to-coordinate resolution. Free but rate-limited to 1 req/sec.
"""

import httpx
from loguru import logger

from discovery_cache.lib.geocoder.base import (
    BaseGeocoder,
    GeocodingProviderError,
    GeocodingResult,
)

NOMINATIM_API_URL = "https://nominatim.openstreetmap.org/search"
DEFAULT_TIMEOUT = 10.0
DEFAULT_USER_AGENT = "discovery-cache/0.1"


class NominatimGeocoder(BaseGeocoder):
    """OpenStreetMap Nominatim geocoder provider."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        email: str = "",
        user_agent: str = DEFAULT_USER_AGENT,
        country_codes: str | None = None,
        base_url: str = NOMINATIM_API_URL,
    ) -> None:
        self._timeout = timeout
        self._email = email
        self._user_agent = user_agent
        self._country_codes = country_codes
        self._base_url = base_url

    @property
    def provider_name(self) -> str:
        return "nominatim"

    async def geocode(self, address: str) -> GeocodingResult | None:
        """Geocode an address using the Nominatim API.

        Args:
            address: Free-text address string.

        Returns:
            GeocodingResult or None if no match found.

        Raises:
            GeocodingProviderError: On transport or service errors.
        """
        params: dict[str, str | int] = {
            "q": address,
            "format": "json",
            "limit": 1,
        }
        if self._country_codes:
            params["countrycodes"] = self._country_codes
        if self._email:
            params["email"] = self._email

        headers = {"User-Agent": self._user_agent}

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(self._base_url, params=params, headers=headers)
                response.raise_for_status()

            return self._parse_response(response.json())

        except httpx.TimeoutException as e:
            logger.warning("Nominatim geocoder timeout for address (redacted)")
            raise GeocodingProviderError("nominatim", "Geocoding request timed out") from e
        except httpx.HTTPStatusError as e:
            logger.warning(f"Nominatim geocoder HTTP error {e.response.status_code}")
            raise GeocodingProviderError(
                "nominatim",
                f"Provider returned HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.TransportError as e:
            logger.warning("Nominatim geocoder connection error")
            raise GeocodingProviderError("nominatim", "Connection to geocoding provider failed") from e
        except ValueError as e:
            logger.warning("Nominatim geocoder returned a non-JSON body")
            raise GeocodingProviderError("nominatim", "Provider returned invalid JSON") from e
        except GeocodingProviderError:
            raise
        except Exception as e:
            logger.exception("Nominatim geocoder unexpected error")
            raise GeocodingProviderError("nominatim", f"Unexpected error: {e}") from e

    def _parse_response(self, data: list[dict]) -> GeocodingResult | None:
        """Parse a Nominatim search response into a GeocodingResult.

        Args:
            data: Raw JSON response (list of results) from Nominatim API.

        Returns:
            GeocodingResult or None if no match found.

        Raises:
            GeocodingProviderError: If the body is not a list of results.
        """
        if not isinstance(data, list):
            msg = f"expected a list of results, got {type(data).__name__}"
            raise GeocodingProviderError("nominatim", msg)
        if not data:
            return None

        best = data[0]
        try:
            lat = float(best["lat"])
            lon = float(best["lon"])
            return GeocodingResult(
                latitude=lat,
                longitude=lon,
                matched_address=best.get("display_name"),
                raw_response={"results": data},
            )
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Failed to parse Nominatim response: {e}")
            raise GeocodingProviderError("nominatim", f"Failed to parse response: {e}") from e
