"""Unit tests for persisted device preferences."""

import pytest

from discovery_cache.lib.kvstore.preferences import (
    LOCATION_FILTER_KEY,
    MAP_CENTER_KEY,
    USER_LOCATION_KEY,
    DevicePreferences,
)
from discovery_cache.lib.spatial.geometry import Coordinate

HOME = Coordinate(41.3083, -72.9279)


@pytest.fixture
def preferences(kv_store, clock) -> DevicePreferences:
    return DevicePreferences(kv_store, clock=clock)


class TestLastKnownLocation:
    async def test_round_trip(self, preferences, kv_store) -> None:
        await preferences.set_last_known_location(HOME)
        assert await preferences.get_last_known_location() == HOME
        assert set(kv_store.snapshot()[USER_LOCATION_KEY]) == {"latitude", "longitude", "cachedAt"}

    async def test_expires_after_ttl(self, preferences, clock) -> None:
        await preferences.set_last_known_location(HOME)
        clock.advance(hours=2)
        assert await preferences.get_last_known_location() is None

    async def test_malformed_value_ignored(self, preferences, kv_store) -> None:
        await kv_store.set(USER_LOCATION_KEY, {"latitude": 200, "longitude": 0, "cachedAt": "yesterday"})
        assert await preferences.get_last_known_location() is None


class TestMapCenterAndFilterFlag:
    async def test_map_center_round_trip(self, preferences) -> None:
        assert await preferences.get_map_center() is None
        await preferences.set_map_center(HOME)
        assert await preferences.get_map_center() == HOME

    async def test_map_center_malformed(self, preferences, kv_store) -> None:
        await kv_store.set(MAP_CENTER_KEY, {"latitude": "north"})
        assert await preferences.get_map_center() is None

    async def test_filter_flag_defaults_off(self, preferences, kv_store) -> None:
        assert await preferences.get_location_filter_enabled() is False
        await kv_store.set(LOCATION_FILTER_KEY, "yes")
        assert await preferences.get_location_filter_enabled() is False

    async def test_filter_flag_round_trip(self, preferences) -> None:
        await preferences.set_location_filter_enabled(True)
        assert await preferences.get_location_filter_enabled() is True

    async def test_clear_removes_everything(self, preferences, kv_store) -> None:
        await preferences.set_last_known_location(HOME)
        await preferences.set_map_center(HOME)
        await preferences.set_location_filter_enabled(True)
        await kv_store.set("geocodingCache", [])

        await preferences.clear()

        assert kv_store.snapshot() == {"geocodingCache": []}
