"""Business reference cache: full snapshot with incremental delta refresh."""

from collections.abc import Callable, Iterable
from dataclasses import asdict, dataclass
from datetime import UTC, datetime, timedelta

from loguru import logger

from discovery_cache.lib.remote.base import (
    DocumentQuery,
    FieldFilter,
    FilterOp,
    RemoteDocumentStore,
    TransientRemoteError,
)
from discovery_cache.schemas.cache import CacheEnvelope, CacheStatus
from discovery_cache.schemas.records import BusinessRecord, parse_documents

DEFAULT_TTL = timedelta(hours=6)
UPDATED_AT_FIELD = "updatedAt"


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class ReferenceCacheStats:
    hits: int = 0
    full_fetches: int = 0
    delta_fetches: int = 0
    records_upserted: int = 0
    served_stale: int = 0


def upsert_records(
    existing: Iterable[BusinessRecord],
    changed: Iterable[BusinessRecord],
) -> tuple[BusinessRecord, ...]:
    """Replace records with a matching id in place, append the rest."""
    merged = list(existing)
    positions = {record.id: index for index, record in enumerate(merged)}
    for record in changed:
        index = positions.get(record.id)
        if index is None:
            positions[record.id] = len(merged)
            merged.append(record)
        else:
            merged[index] = record
    return tuple(merged)


class BusinessReferenceCache:
    """Serve the full business set, re-reading only what changed.

    Args:
        store: Remote document store.
        collection: Collection holding business documents.
        ttl: Age after which the snapshot is revalidated.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        store: RemoteDocumentStore,
        collection: str = "businesses",
        *,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._collection = collection
        self._ttl = ttl
        self._clock = clock
        self._envelope: CacheEnvelope[tuple[BusinessRecord, ...]] | None = None
        self._stats = ReferenceCacheStats()

    @property
    def envelope(self) -> CacheEnvelope[tuple[BusinessRecord, ...]] | None:
        return self._envelope

    @property
    def is_valid(self) -> bool:
        return self._envelope is not None and not self._envelope.is_stale(self._clock())

    async def get(self, *, force: bool = False) -> list[BusinessRecord]:
        """Return every business record.

        A valid snapshot is served without remote reads.  A stale one is
        patched with records updated after its watermark; with no snapshot,
        the whole collection is read.

        Args:
            force: Treat the current snapshot as stale.

        Returns:
            A new list of (immutable) business records.

        Raises:
            TransientRemoteError: If the store fails and nothing is cached.
        """
        envelope = self._envelope
        started = self._clock()
        if envelope is not None and not force and not envelope.is_stale(started):
            self._stats.hits += 1
            return list(envelope.data)

        try:
            if envelope is None:
                data = await self._full_fetch()
            else:
                data = await self._delta_fetch(envelope)
        except TransientRemoteError as e:
            current = self._envelope
            if current is None:
                raise
            self._stats.served_stale += 1
            logger.warning(f"Serving cached businesses after refresh failure: {e}")
            return list(current.data)

        self._envelope = CacheEnvelope(data=data, cached_at=self._clock(), ttl=self._ttl, watermark=started)
        return list(data)

    def clear(self) -> None:
        self._envelope = None

    def status(self) -> CacheStatus:
        envelope = self._envelope
        return CacheStatus(
            valid=self.is_valid,
            cached_count=len(envelope.data) if envelope else 0,
            cached_at=envelope.cached_at if envelope else None,
            counters=asdict(self._stats),
        )

    async def _full_fetch(self) -> tuple[BusinessRecord, ...]:
        documents = await self._store.fetch_all(self._collection)
        self._stats.full_fetches += 1
        records = tuple(parse_documents(BusinessRecord, documents))
        logger.info(f"Loaded {len(records)} businesses (full fetch)")
        return records

    async def _delta_fetch(self, envelope: CacheEnvelope[tuple[BusinessRecord, ...]]) -> tuple[BusinessRecord, ...]:
        watermark = envelope.watermark or envelope.cached_at
        query = DocumentQuery(
            collection=self._collection,
            filters=(FieldFilter(UPDATED_AT_FIELD, FilterOp.GT, watermark),),
            order_by=UPDATED_AT_FIELD,
        )
        documents = await self._store.run_query(query)
        self._stats.delta_fetches += 1
        changed = parse_documents(BusinessRecord, documents)
        self._stats.records_upserted += len(changed)
        logger.debug(f"Delta refresh upserted {len(changed)} businesses")
        return upsert_records(envelope.data, changed)
