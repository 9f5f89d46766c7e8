"""Persisted cache of subject-to-reference-point distances.

A stored distance is only meaningful relative to the reference point it was
computed from.  Entries are therefore applicable only while the caller's
reference point stays within ``epsilon_km`` of the stored one (checked with the
cheap planar approximation) and while the entry is younger than ``ttl``.
"""

from collections.abc import Callable, Mapping
from dataclasses import asdict, dataclass
from datetime import UTC, datetime, timedelta

from loguru import logger
from pydantic import TypeAdapter, ValidationError

from discovery_cache.lib.kvstore.base import KeyValueStore
from discovery_cache.lib.spatial.geometry import APPROX_KM_PER_DEGREE, Coordinate, approximate_distance_km
from discovery_cache.schemas.cache import DistanceCacheEntry

DISTANCE_CACHE_KEY = "businessDistanceCache"
DEFAULT_EPSILON_KM = 0.5
DEFAULT_TTL = timedelta(hours=2)
DEFAULT_MAX_ENTRIES = 1000

_ENTRIES_ADAPTER = TypeAdapter(list[DistanceCacheEntry])


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class DistanceCacheStats:
    lookups: int = 0
    applicable: int = 0
    recorded: int = 0
    entries: int = 0


class DistanceCache:
    """Memoize distances per subject, scoped by reference-point proximity.

    Args:
        store: Durable store holding the persisted entries.
        epsilon_km: Max drift between stored and current reference points.
        ttl: Age after which an entry is ignored.
        max_entries: Number of most-recent entries retained.
        km_per_degree: Constant for the planar proximity check.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        epsilon_km: float = DEFAULT_EPSILON_KM,
        ttl: timedelta = DEFAULT_TTL,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        km_per_degree: float = APPROX_KM_PER_DEGREE,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._epsilon_km = epsilon_km
        self._ttl = ttl
        self._max_entries = max_entries
        self._km_per_degree = km_per_degree
        self._clock = clock
        self._entries: tuple[DistanceCacheEntry, ...] | None = None
        self._stats = DistanceCacheStats()

    @property
    def stats(self) -> dict[str, int]:
        self._stats.entries = len(self._entries or ())
        return asdict(self._stats)

    async def applicable(self, reference: Coordinate) -> dict[str, float]:
        """Return ``{subject_id: distance_km}`` for entries usable at ``reference``.

        When several entries for one subject qualify, the most recent wins.
        """
        self._stats.lookups += 1
        entries = await self._load()
        now = self._clock()
        result: dict[str, float] = {}
        for entry in entries:
            if entry.subject_id in result or now - entry.cached_at >= self._ttl:
                continue
            stored = Coordinate(latitude=entry.reference_latitude, longitude=entry.reference_longitude)
            if approximate_distance_km(stored, reference, self._km_per_degree) < self._epsilon_km:
                result[entry.subject_id] = entry.distance
        self._stats.applicable += len(result)
        return result

    async def record(self, reference: Coordinate, distances: Mapping[str, float]) -> None:
        """Merge freshly computed distances and persist the capped collection."""
        if not distances:
            return
        now = self._clock()
        fresh = [
            DistanceCacheEntry(
                subject_id=subject_id,
                reference_latitude=reference.latitude,
                reference_longitude=reference.longitude,
                distance=distance,
                cached_at=now,
            )
            for subject_id, distance in distances.items()
        ]
        existing = await self._load()
        merged = sorted([*fresh, *existing], key=lambda e: e.cached_at, reverse=True)
        self._entries = tuple(merged[: self._max_entries])
        self._stats.recorded += len(fresh)

        payload = [e.model_dump(mode="json", by_alias=True) for e in self._entries]
        await self._store.set(DISTANCE_CACHE_KEY, payload)

    async def clear(self) -> None:
        self._entries = ()
        await self._store.delete(DISTANCE_CACHE_KEY)

    async def _load(self) -> tuple[DistanceCacheEntry, ...]:
        if self._entries is not None:
            return self._entries
        raw = await self._store.get(DISTANCE_CACHE_KEY)
        loaded: tuple[DistanceCacheEntry, ...] = ()
        if raw is not None:
            try:
                loaded = tuple(sorted(_ENTRIES_ADAPTER.validate_python(raw), key=lambda e: e.cached_at, reverse=True))
            except ValidationError:
                logger.warning("Persisted distance cache is malformed; starting empty")
        if self._entries is None:
            self._entries = loaded
        return self._entries
