"""Event window cache with a progressive, sparse-calendar-aware loader.

Events are loaded a day at a time.  Each step looks up the next event on or
after the cursor, then reads that whole calendar day, so empty stretches of
the calendar cost one lookup instead of one read per empty day.  The scanned
boundary (``loaded_until``) only moves forward, which lets ``extend`` resume
exactly where the previous load stopped.
"""

from collections.abc import Callable, Iterable
from dataclasses import asdict, dataclass
from datetime import UTC, datetime, timedelta

from loguru import logger
from pydantic import TypeAdapter, ValidationError

from discovery_cache.lib.remote.base import (
    DocumentQuery,
    FieldFilter,
    FilterOp,
    RemoteDocumentStore,
    TransientRemoteError,
)
from discovery_cache.schemas.cache import CacheEnvelope, EventWindow, EventWindowStatus
from discovery_cache.schemas.records import EventRecord, ensure_utc, parse_documents

DEFAULT_TTL = timedelta(hours=2)
DEFAULT_TARGET_COUNT = 20
DEFAULT_MAX_ITERATIONS = 10
DATE_FIELD = "date"
ONE_DAY = timedelta(days=1)

_DATE_ADAPTER = TypeAdapter(datetime)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def start_of_day(value: datetime) -> datetime:
    """Truncate an instant to midnight UTC of the same day."""
    value = ensure_utc(value)
    return datetime(value.year, value.month, value.day, tzinfo=UTC)


def day_range(collection: str, start: datetime, end: datetime) -> DocumentQuery:
    """Query for events with ``start <= date < end``, ordered by date."""
    return DocumentQuery(
        collection=collection,
        filters=(
            FieldFilter(DATE_FIELD, FilterOp.GTE, start),
            FieldFilter(DATE_FIELD, FilterOp.LT, end),
        ),
        order_by=DATE_FIELD,
    )


@dataclass
class EventCacheStats:
    hits: int = 0
    lookups: int = 0
    day_fetches: int = 0
    range_fetches: int = 0
    extends: int = 0
    merges: int = 0
    served_stale: int = 0


class EventWindowCache:
    """Cache of upcoming events, grown progressively from today.

    Args:
        store: Remote document store.
        collection: Collection holding event documents.
        ttl: Age after which the window is revalidated.
        target_count: Events to accumulate per load pass.
        max_iterations: Upper bound on lookup/day-fetch steps per pass.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        store: RemoteDocumentStore,
        collection: str = "events",
        *,
        ttl: timedelta = DEFAULT_TTL,
        target_count: int = DEFAULT_TARGET_COUNT,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if target_count <= 0 or max_iterations <= 0:
            msg = "target_count and max_iterations must be positive"
            raise ValueError(msg)
        self._store = store
        self._collection = collection
        self._ttl = ttl
        self._target_count = target_count
        self._max_iterations = max_iterations
        self._clock = clock
        self._envelope: CacheEnvelope[EventWindow] | None = None
        self._stats = EventCacheStats()

    @property
    def envelope(self) -> CacheEnvelope[EventWindow] | None:
        return self._envelope

    @property
    def loaded_until(self) -> datetime | None:
        return self._envelope.data.loaded_until if self._envelope else None

    @property
    def exhausted(self) -> bool:
        """True when the last pass ran out of events before reaching its target."""
        return self._envelope.data.exhausted if self._envelope else False

    @property
    def is_valid(self) -> bool:
        return self._envelope is not None and not self._envelope.is_stale(self._clock())

    @property
    def high_water_mark(self) -> datetime | None:
        """Latest event date held in the cache."""
        if self._envelope is None or not self._envelope.data.events:
            return None
        return max(event.date for event in self._envelope.data.events)

    async def get(self, *, force: bool = False, start: datetime | None = None) -> list[EventRecord]:
        """Return upcoming events (dated today or later), loading as needed.

        Args:
            force: Treat the current window as stale.
            start: Day to begin the initial scan from; defaults to today.
                Ignored once a window exists.

        Returns:
            Events ordered by date.

        Raises:
            TransientRemoteError: If the store fails and nothing is cached.
        """
        now = self._clock()
        today = start_of_day(now)
        envelope = self._envelope
        if envelope is not None and not force and not envelope.is_stale(now):
            self._stats.hits += 1
            return self._visible(envelope.data, today)

        try:
            if envelope is None:
                cursor = start_of_day(start) if start is not None else today
                window = await self._progressive_load(cursor, (), self._target_count, cursor)
            else:
                window = await self._revalidate(envelope.data, today)
        except TransientRemoteError as e:
            return self._serve_stale(e, today)

        self._envelope = CacheEnvelope(data=window, cached_at=self._clock(), ttl=self._ttl)
        logger.info(
            f"Event window holds {len(window.events)} events through {window.loaded_until.date().isoformat()}"
        )
        return self._visible(window, today)

    async def extend(self, additional_count: int | None = None) -> list[EventRecord]:
        """Scan forward from ``loaded_until`` for more events.

        Args:
            additional_count: New events to look for; defaults to the target count.

        Returns:
            The full extended list of upcoming events.
        """
        envelope = self._envelope
        if envelope is None:
            return await self.get()

        today = start_of_day(self._clock())
        target = additional_count if additional_count and additional_count > 0 else self._target_count
        window = envelope.data
        cursor = max(window.loaded_until, today)
        try:
            extended = await self._progressive_load(cursor, window.events, target, window.loaded_until)
        except TransientRemoteError as e:
            return self._serve_stale(e, today)

        self._stats.extends += 1
        added = len(extended.events) - len(window.events)
        logger.debug(f"Extended event window by {added} events to {extended.loaded_until.date().isoformat()}")
        # Older entries were not re-read, so the snapshot keeps its original age.
        self._envelope = CacheEnvelope(data=extended, cached_at=envelope.cached_at, ttl=self._ttl)
        return self._visible(extended, today)

    def merge_newer(self, events: Iterable[EventRecord]) -> None:
        """Append events dated after the high-water mark and refresh the window age."""
        envelope = self._envelope
        if envelope is None:
            return
        window = envelope.data
        known = {event.id for event in window.events}
        newer = sorted((event for event in events if event.id not in known), key=lambda event: event.sort_key)
        if not newer:
            return
        boundary = max(window.loaded_until, start_of_day(newer[-1].date) + ONE_DAY)
        self._envelope = CacheEnvelope(
            data=EventWindow(
                events=tuple(sorted(window.events + tuple(newer), key=lambda event: event.sort_key)),
                loaded_until=boundary,
                exhausted=window.exhausted,
            ),
            cached_at=self._clock(),
            ttl=self._ttl,
        )
        self._stats.merges += 1

    def clear(self) -> None:
        self._envelope = None

    def status(self) -> EventWindowStatus:
        envelope = self._envelope
        return EventWindowStatus(
            valid=self.is_valid,
            cached_count=len(envelope.data.events) if envelope else 0,
            cached_at=envelope.cached_at if envelope else None,
            counters=asdict(self._stats),
            loaded_until=self.loaded_until,
            exhausted=self.exhausted,
        )

    async def _progressive_load(
        self,
        cursor: datetime,
        existing: tuple[EventRecord, ...],
        target: int,
        loaded_until: datetime,
    ) -> EventWindow:
        accumulated = list(existing)
        seen = {event.id for event in accumulated}
        boundary = loaded_until
        found = 0
        exhausted = False
        next_filter = FieldFilter(DATE_FIELD, FilterOp.GTE, cursor)

        for _ in range(self._max_iterations):
            head = await self._store.run_query(
                DocumentQuery(
                    collection=self._collection,
                    filters=(next_filter,),
                    order_by=DATE_FIELD,
                    limit=1,
                )
            )
            self._stats.lookups += 1
            if not head:
                exhausted = True
                break
            # The day comes from the raw document so a malformed event cannot end the scan.
            raw_date = head[0].get(DATE_FIELD)
            try:
                day = start_of_day(_DATE_ADAPTER.validate_python(raw_date))
            except ValidationError:
                logger.warning(f"Skipping event {head[0].get('id')!r} with unreadable date {raw_date!r}")
                next_filter = FieldFilter(DATE_FIELD, FilterOp.GT, raw_date)
                continue

            documents = await self._store.run_query(day_range(self._collection, day, day + ONE_DAY))
            self._stats.day_fetches += 1
            for event in parse_documents(EventRecord, documents):
                if event.id not in seen:
                    seen.add(event.id)
                    accumulated.append(event)
                    found += 1

            cursor = day + ONE_DAY
            next_filter = FieldFilter(DATE_FIELD, FilterOp.GTE, cursor)
            boundary = max(boundary, cursor)
            if found >= target:
                break

        accumulated.sort(key=lambda event: event.sort_key)
        return EventWindow(events=tuple(accumulated), loaded_until=boundary, exhausted=exhausted)

    async def _revalidate(self, window: EventWindow, today: datetime) -> EventWindow:
        # Re-read the already scanned range in one query so the boundary never
        # moves backwards, then top up if the window has thinned out.
        events: list[EventRecord] = []
        if window.loaded_until > today:
            documents = await self._store.run_query(day_range(self._collection, today, window.loaded_until))
            self._stats.range_fetches += 1
            events = parse_documents(EventRecord, documents)

        refreshed = EventWindow(events=tuple(events), loaded_until=window.loaded_until, exhausted=window.exhausted)
        shortfall = self._target_count - len(events)
        if shortfall <= 0:
            return refreshed
        cursor = max(window.loaded_until, today)
        return await self._progressive_load(cursor, refreshed.events, shortfall, window.loaded_until)

    def _serve_stale(self, error: TransientRemoteError, today: datetime) -> list[EventRecord]:
        current = self._envelope
        if current is None:
            raise error
        self._stats.served_stale += 1
        logger.warning(f"Serving cached events after refresh failure: {error}")
        return self._visible(current.data, today)

    @staticmethod
    def _visible(window: EventWindow, today: datetime) -> list[EventRecord]:
        return [event for event in window.events if event.date >= today]
