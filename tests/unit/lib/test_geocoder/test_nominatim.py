"""Unit tests for Nominatim geocoder provider."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from discovery_cache.lib.geocoder import get_available_providers, get_geocoder
from discovery_cache.lib.geocoder.base import GeocodingProviderError
from discovery_cache.lib.geocoder.nominatim import NominatimGeocoder


class TestNominatimResponseParsing:
    """Tests for Nominatim API response parsing."""

    def setup_method(self) -> None:
        self.geocoder = NominatimGeocoder()

    def test_successful_match(self) -> None:
        data = [{"lat": "41.3083", "lon": "-72.9279", "display_name": "Chapel St, New Haven, CT"}]
        result = self.geocoder._parse_response(data)
        assert result is not None
        assert result.latitude == 41.3083
        assert result.longitude == -72.9279
        assert result.matched_address == "Chapel St, New Haven, CT"

    def test_no_results(self) -> None:
        assert self.geocoder._parse_response([]) is None

    def test_missing_lat_raises(self) -> None:
        with pytest.raises(GeocodingProviderError, match="nominatim"):
            self.geocoder._parse_response([{"lon": "-72.9"}])

    def test_out_of_range_coords_raise(self) -> None:
        with pytest.raises(GeocodingProviderError, match="nominatim"):
            self.geocoder._parse_response([{"lat": "141.3", "lon": "-72.9"}])

    def test_error_object_raises(self) -> None:
        with pytest.raises(GeocodingProviderError, match="expected a list"):
            self.geocoder._parse_response({"error": "Unable to geocode"})


class TestNominatimGeocoderErrors:
    """Tests for NominatimGeocoder error differentiation."""

    async def test_timeout_raises_provider_error(self) -> None:
        geocoder = NominatimGeocoder(timeout=0.1)
        with (
            patch("httpx.AsyncClient.get", new_callable=AsyncMock) as mock_get,
            pytest.raises(GeocodingProviderError, match="timed out"),
        ):
            mock_get.side_effect = httpx.TimeoutException("Connection timed out")
            await geocoder.geocode("1 Chapel St, New Haven")

    async def test_http_error_raises_provider_error(self) -> None:
        geocoder = NominatimGeocoder()
        mock_response = httpx.Response(status_code=429, request=httpx.Request("GET", "http://test"))
        with (
            patch("httpx.AsyncClient.get", new_callable=AsyncMock) as mock_get,
            pytest.raises(GeocodingProviderError) as exc_info,
        ):
            mock_get.side_effect = httpx.HTTPStatusError(
                "Rate limited", request=mock_response.request, response=mock_response
            )
            await geocoder.geocode("1 Chapel St, New Haven")
        assert exc_info.value.status_code == 429

    async def test_connection_error_raises_provider_error(self) -> None:
        geocoder = NominatimGeocoder()
        with (
            patch("httpx.AsyncClient.get", new_callable=AsyncMock) as mock_get,
            pytest.raises(GeocodingProviderError, match="nominatim"),
        ):
            mock_get.side_effect = httpx.ConnectError("Connection refused")
            await geocoder.geocode("1 Chapel St, New Haven")

    async def test_invalid_json_raises_provider_error(self) -> None:
        geocoder = NominatimGeocoder()
        mock_response = MagicMock()
        mock_response.raise_for_status = MagicMock()
        mock_response.json.side_effect = ValueError("Expecting value")

        with (
            patch("httpx.AsyncClient.get", new_callable=AsyncMock, return_value=mock_response),
            pytest.raises(GeocodingProviderError, match="invalid JSON"),
        ):
            await geocoder.geocode("1 Chapel St, New Haven")

    async def test_error_body_raises_provider_error(self) -> None:
        """A 200 response carrying an error object is a provider error, not a crash."""
        geocoder = NominatimGeocoder()
        mock_response = MagicMock()
        mock_response.raise_for_status = MagicMock()
        mock_response.json.return_value = {"error": "Unable to geocode"}

        with (
            patch("httpx.AsyncClient.get", new_callable=AsyncMock, return_value=mock_response),
            pytest.raises(GeocodingProviderError, match="expected a list"),
        ):
            await geocoder.geocode("1 Chapel St, New Haven")

    async def test_unexpected_error_wrapped(self) -> None:
        geocoder = NominatimGeocoder()
        with (
            patch("httpx.AsyncClient.get", new_callable=AsyncMock) as mock_get,
            pytest.raises(GeocodingProviderError, match="Unexpected error"),
        ):
            mock_get.side_effect = RuntimeError("event loop closed")
            await geocoder.geocode("1 Chapel St, New Haven")

    async def test_successful_match_sends_query_params(self) -> None:
        geocoder = NominatimGeocoder(email="ops@example.com", country_codes="us")
        mock_response = MagicMock()
        mock_response.json.return_value = [{"lat": "41.3083", "lon": "-72.9279"}]
        mock_response.raise_for_status = MagicMock()

        with patch("httpx.AsyncClient.get", new_callable=AsyncMock, return_value=mock_response) as mock_get:
            result = await geocoder.geocode("1 Chapel St, New Haven")

        assert result is not None
        assert result.coordinate.latitude == 41.3083
        params = mock_get.call_args.kwargs["params"]
        assert params["q"] == "1 Chapel St, New Haven"
        assert params["limit"] == 1
        assert params["email"] == "ops@example.com"
        assert params["countrycodes"] == "us"

    async def test_empty_results_returns_none(self) -> None:
        geocoder = NominatimGeocoder()
        mock_response = MagicMock()
        mock_response.json.return_value = []
        mock_response.raise_for_status = MagicMock()

        with patch("httpx.AsyncClient.get", new_callable=AsyncMock, return_value=mock_response):
            result = await geocoder.geocode("99999 Nonexistent Rd")

        assert result is None


class TestProviderRegistry:
    """Tests for the geocoder provider registry."""

    def test_provider_name(self) -> None:
        assert NominatimGeocoder().provider_name == "nominatim"

    def test_available_providers(self) -> None:
        assert "nominatim" in get_available_providers()

    def test_get_geocoder_passes_kwargs(self) -> None:
        geocoder = get_geocoder("nominatim", timeout=2.0)
        assert isinstance(geocoder, NominatimGeocoder)
        assert geocoder._timeout == 2.0

    def test_unknown_provider_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown geocoder provider"):
            get_geocoder("carrier-pigeon")
