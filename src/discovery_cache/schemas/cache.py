"""Cache envelope types, persisted cache entry schemas, and diagnostics."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Generic, TypeVar

from pydantic import BaseModel, Field

from discovery_cache.schemas.records import EventRecord

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEnvelope(Generic[T]):
    """Immutable snapshot of a cache's payload.

    A refresh builds a new envelope and swaps the owner's reference, so readers
    always see either the previous or the next snapshot, never a mix.
    """

    data: T
    cached_at: datetime
    ttl: timedelta
    watermark: datetime | None = None

    def is_stale(self, now: datetime) -> bool:
        return now - self.cached_at >= self.ttl


@dataclass(frozen=True)
class EventWindow:
    """Payload of the event cache: events scanned up to ``loaded_until``."""

    events: tuple[EventRecord, ...]
    loaded_until: datetime
    exhausted: bool = False


class GeocodeCacheEntry(BaseModel):
    """Persisted geocode result keyed by normalized address."""

    model_config = {"populate_by_name": True}

    address: str
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    cached_at: datetime = Field(alias="cachedAt")


class DistanceCacheEntry(BaseModel):
    """Persisted subject-to-reference distance in kilometers."""

    model_config = {"populate_by_name": True}

    subject_id: str = Field(alias="subjectId")
    reference_latitude: float = Field(alias="referenceLatitude", ge=-90, le=90)
    reference_longitude: float = Field(alias="referenceLongitude", ge=-180, le=180)
    distance: float = Field(ge=0)
    cached_at: datetime = Field(alias="cachedAt")


class PersistedLocation(BaseModel):
    """Last-known device location with the time it was captured."""

    model_config = {"populate_by_name": True}

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    cached_at: datetime = Field(alias="cachedAt")


class CacheStatus(BaseModel):
    """Validity and counters for one in-memory cache."""

    valid: bool
    cached_count: int
    cached_at: datetime | None = None
    counters: dict[str, int] = Field(default_factory=dict)


class EventWindowStatus(CacheStatus):
    """Event cache status including the progressive-load boundary."""

    loaded_until: datetime | None = None
    exhausted: bool = False


class CacheDiagnostics(BaseModel):
    """Snapshot of read counts, hit/miss counters, and validity flags."""

    remote_reads: int
    businesses: CacheStatus
    events: EventWindowStatus
    geocode: dict[str, int]
    distance: dict[str, int]
    background_failures: int
    pending_writes: int
