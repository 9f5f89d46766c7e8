"""Cheap "anything new?" check in front of a full event refresh."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from loguru import logger

from discovery_cache.lib.remote.base import (
    DocumentQuery,
    FieldFilter,
    FilterOp,
    RemoteDocumentStore,
    TransientRemoteError,
)
from discovery_cache.schemas.records import EventRecord, parse_documents
from discovery_cache.services.event_cache import DATE_FIELD, EventWindowCache, start_of_day


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class RefreshStats:
    checks: int = 0
    unchanged: int = 0
    merged: int = 0
    failures: int = 0


class DeltaRefreshChecker:
    """Check for events newer than the cached high-water mark.

    When nothing is newer the check costs a single one-document read.
    Otherwise the newer events are fetched and merged into the event cache.
    Until the window is exhausted the check stays below ``loaded_until``.
    """

    def __init__(
        self,
        event_cache: EventWindowCache,
        store: RemoteDocumentStore,
        collection: str = "events",
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._event_cache = event_cache
        self._store = store
        self._collection = collection
        self._clock = clock
        self.stats = RefreshStats()

    async def lightweight_refresh(self) -> bool:
        """Check for new events and merge them into the cache.

        Returns:
            True if the cache changed (initial load or merged events), False
            if nothing was newer or the remote check failed.

        Raises:
            TransientRemoteError: If no cache exists and the initial load fails.
        """
        self.stats.checks += 1
        if self._event_cache.envelope is None:
            await self._event_cache.get(force=True)
            return True

        newer = self._newer_than_filters()
        try:
            head = await self._store.run_query(
                DocumentQuery(collection=self._collection, filters=newer, order_by=DATE_FIELD, limit=1)
            )
            if not head:
                self.stats.unchanged += 1
                return False
            documents = await self._store.run_query(
                DocumentQuery(collection=self._collection, filters=newer, order_by=DATE_FIELD)
            )
        except TransientRemoteError as e:
            self.stats.failures += 1
            logger.warning(f"Lightweight refresh skipped: {e}")
            return False

        events = parse_documents(EventRecord, documents)
        if not events:
            self.stats.unchanged += 1
            return False
        self._event_cache.merge_newer(events)
        self.stats.merged += len(events)
        logger.info(f"Merged {len(events)} new events")
        return True

    def _newer_than_filters(self) -> tuple[FieldFilter, ...]:
        high_water_mark = self._event_cache.high_water_mark
        if high_water_mark is None:
            # Empty window: anything from today onwards is new.
            lower = FieldFilter(DATE_FIELD, FilterOp.GTE, start_of_day(self._clock()))
        else:
            lower = FieldFilter(DATE_FIELD, FilterOp.GT, high_water_mark)
        if self._event_cache.exhausted:
            return (lower,)
        # Events past the scanned boundary are picked up by extend(), not here.
        return (lower, FieldFilter(DATE_FIELD, FilterOp.LT, self._event_cache.loaded_until))
