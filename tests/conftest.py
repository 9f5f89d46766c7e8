"""Shared test fixtures: a controllable clock, in-memory stores, and a counting geocoder."""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from discovery_cache.core.background import InProcessTaskRunner
from discovery_cache.core.config import Settings
from discovery_cache.lib.geocoder.base import BaseGeocoder, GeocodingResult
from discovery_cache.lib.kvstore.base import InMemoryKeyValueStore
from discovery_cache.lib.remote.base import Document, DocumentQuery, TransientRemoteError
from discovery_cache.lib.remote.memory import InMemoryDocumentStore

# Monday 09:30 UTC; "today" for every cache test unless the clock is advanced.
NOW = datetime(2025, 6, 2, 9, 30, tzinfo=UTC)
TODAY = datetime(2025, 6, 2, tzinfo=UTC)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = NOW) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FlakyDocumentStore(InMemoryDocumentStore):
    """In-memory store that raises TransientRemoteError while ``failing`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.failing = False

    async def _fetch_all(self, collection: str) -> list[Document]:
        if self.failing:
            raise TransientRemoteError("store offline")
        return await super()._fetch_all(collection)

    async def _run_query(self, query: DocumentQuery) -> list[Document]:
        if self.failing:
            raise TransientRemoteError("store offline")
        return await super()._run_query(query)


class FakeGeocoder(BaseGeocoder):
    """Geocoder answering from a fixed table and recording every call."""

    def __init__(self, addresses: dict[str, tuple[float, float]] | None = None) -> None:
        self.addresses = dict(addresses or {})
        self.calls: list[str] = []
        self.error: Exception | None = None
        self.delay = 0.0

    @property
    def provider_name(self) -> str:
        return "fake"

    async def geocode(self, address: str) -> GeocodingResult | None:
        self.calls.append(address)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        match = self.addresses.get(address)
        if match is None:
            return None
        return GeocodingResult(latitude=match[0], longitude=match[1])


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    """Test settings, isolated from any local .env file."""
    return Settings(_env_file=None, device_store_directory="unused")


@pytest.fixture
def kv_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def remote() -> FlakyDocumentStore:
    return FlakyDocumentStore()


@pytest.fixture
def geocoder() -> FakeGeocoder:
    return FakeGeocoder()


@pytest.fixture
def runner() -> InProcessTaskRunner:
    return InProcessTaskRunner()


@pytest.fixture
def event_doc() -> Callable[..., dict[str, Any]]:
    """Factory for raw event documents as stored remotely."""

    def _make(event_id: str, when: datetime, business_id: str = "b1", **extra: Any) -> dict[str, Any]:
        return {"id": event_id, "businessId": business_id, "title": f"Event {event_id}", "date": when, **extra}

    return _make


@pytest.fixture
def business_doc() -> Callable[..., dict[str, Any]]:
    """Factory for raw business documents as stored remotely."""

    def _make(business_id: str, updated_at: datetime = NOW - timedelta(days=30), **extra: Any) -> dict[str, Any]:
        return {"id": business_id, "name": f"Business {business_id}", "updatedAt": updated_at, **extra}

    return _make
