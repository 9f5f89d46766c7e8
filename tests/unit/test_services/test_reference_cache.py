"""Unit tests for the business reference cache."""

from datetime import UTC, datetime, timedelta

import pytest

from discovery_cache.lib.remote.base import TransientRemoteError
from discovery_cache.schemas.records import BusinessRecord
from discovery_cache.services.reference_cache import BusinessReferenceCache, upsert_records

NOW = datetime(2025, 6, 2, 9, 30, tzinfo=UTC)


@pytest.fixture
def cache(remote, clock) -> BusinessReferenceCache:
    return BusinessReferenceCache(remote, clock=clock)


@pytest.fixture
def seeded(remote, business_doc):
    remote.put_many("businesses", [business_doc("b1"), business_doc("b2"), business_doc("b3")])
    return remote


class TestBusinessReferenceCache:
    async def test_first_get_is_one_full_read(self, cache, seeded) -> None:
        businesses = await cache.get()

        assert [b.id for b in businesses] == ["b1", "b2", "b3"]
        assert seeded.read_count == 1
        assert cache.status().counters["full_fetches"] == 1

    async def test_no_reads_within_ttl(self, cache, seeded, clock) -> None:
        await cache.get()
        clock.advance(hours=5, minutes=59)

        for _ in range(3):
            await cache.get()

        assert seeded.read_count == 1
        assert cache.status().counters["hits"] == 3

    async def test_delta_fetch_upserts_changes(self, cache, seeded, clock, business_doc) -> None:
        await cache.get()
        seeded.put("businesses", business_doc("b2", updated_at=NOW + timedelta(hours=1), name="Renamed"))
        seeded.put("businesses", business_doc("b4", updated_at=NOW + timedelta(hours=2)))

        clock.advance(hours=7)
        businesses = await cache.get()

        assert [b.id for b in businesses] == ["b1", "b2", "b3", "b4"]
        assert businesses[1].name == "Renamed"
        assert seeded.read_count == 2
        counters = cache.status().counters
        assert counters["delta_fetches"] == 1
        assert counters["records_upserted"] == 2

    async def test_delta_watermark_is_fetch_start(self, cache, seeded, clock) -> None:
        await cache.get()
        assert cache.envelope.watermark == NOW

        clock.advance(hours=7)
        await cache.get()
        assert cache.envelope.watermark == NOW + timedelta(hours=7)

    async def test_force_refreshes_within_ttl(self, cache, seeded) -> None:
        await cache.get()
        await cache.get(force=True)
        assert seeded.read_count == 2

    async def test_serves_stale_on_failure(self, cache, seeded, clock) -> None:
        cached = await cache.get()
        seeded.failing = True
        clock.advance(hours=8)

        assert await cache.get() == cached
        assert cache.status().counters["served_stale"] == 1
        assert cache.is_valid is False

    async def test_failure_without_cache_raises(self, cache, remote) -> None:
        remote.failing = True
        with pytest.raises(TransientRemoteError):
            await cache.get()

    async def test_status_reflects_validity(self, cache, seeded, clock) -> None:
        assert cache.status().valid is False
        await cache.get()
        status = cache.status()
        assert status.valid is True
        assert status.cached_count == 3
        assert status.cached_at == NOW

        clock.advance(hours=6)
        assert cache.status().valid is False

    async def test_malformed_documents_skipped(self, cache, remote, business_doc) -> None:
        remote.put("businesses", business_doc("good"))
        remote.put("businesses", business_doc("bad", updated_at="not a date"))

        assert [b.id for b in await cache.get()] == ["good"]

    async def test_clear_forces_full_fetch(self, cache, seeded) -> None:
        await cache.get()
        cache.clear()

        assert cache.envelope is None
        await cache.get()
        assert cache.status().counters["full_fetches"] == 2


class TestUpsertRecords:
    def test_replaces_in_place_and_appends(self) -> None:
        existing = [BusinessRecord(id="a", name="A"), BusinessRecord(id="b", name="B")]
        changed = [BusinessRecord(id="c", name="C"), BusinessRecord(id="a", name="A2")]

        merged = upsert_records(existing, changed)

        assert [(r.id, r.name) for r in merged] == [("a", "A2"), ("b", "B"), ("c", "C")]

    def test_duplicate_new_ids_collapse(self) -> None:
        changed = [BusinessRecord(id="x", name="1"), BusinessRecord(id="x", name="2")]
        assert [r.name for r in upsert_records([], changed)] == ["2"]
