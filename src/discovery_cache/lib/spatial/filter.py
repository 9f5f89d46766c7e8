"""Distance filter for events, keyed on the hosting business's location.

Per business, the cheapest available answer wins:

1. a cached distance computed from (roughly) the same reference point;
2. a bounding-box rejection, which needs only the coordinate;
3. a precise haversine distance, which is recorded for next time.

Businesses are processed in small batches with a cooperative yield in between
so a large pass never monopolizes the event loop.
"""

import asyncio
from collections.abc import Sequence
from dataclasses import asdict, dataclass

from loguru import logger

from discovery_cache.core.background import BackgroundTaskRunner
from discovery_cache.lib.geocoder.cache import GeocodeCache
from discovery_cache.lib.location.service import LocationService
from discovery_cache.lib.spatial.distance_cache import DistanceCache
from discovery_cache.lib.spatial.geometry import APPROX_KM_PER_DEGREE, BoundingBox, Coordinate, calculate_distance
from discovery_cache.schemas.records import BusinessRecord, EventRecord

DEFAULT_BATCH_SIZE = 10


@dataclass
class FilterStats:
    passes: int = 0
    cache_hits: int = 0
    unresolved: int = 0
    bbox_rejections: int = 0
    precise_computations: int = 0


class SpatialFilter:
    """Filter events to those whose business lies within a radius.

    Args:
        geocode_cache: Resolver for business addresses without coordinates.
        distance_cache: Persisted distance memo.
        location_service: Source of the device position when no reference is given.
        runner: Background runner for distance-cache writes.
        batch_size: Businesses processed between yields.
        km_per_degree: Constant for the bounding-box pre-filter.
    """

    def __init__(
        self,
        geocode_cache: GeocodeCache,
        distance_cache: DistanceCache,
        location_service: LocationService,
        runner: BackgroundTaskRunner,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        km_per_degree: float = APPROX_KM_PER_DEGREE,
    ) -> None:
        self._geocode_cache = geocode_cache
        self._distance_cache = distance_cache
        self._location_service = location_service
        self._runner = runner
        self._batch_size = batch_size
        self._km_per_degree = km_per_degree
        self._stats = FilterStats()

    @property
    def stats(self) -> dict[str, int]:
        return asdict(self._stats)

    async def filter_by_distance(
        self,
        events: Sequence[EventRecord],
        businesses: Sequence[BusinessRecord],
        max_distance_km: float | None,
        reference: Coordinate | None = None,
    ) -> list[EventRecord]:
        """Keep events whose business is within ``max_distance_km`` of the reference.

        Args:
            events: Candidate events.
            businesses: Business records the events point at.
            max_distance_km: Radius in kilometers; None or 0 means "any distance".
            reference: Search center; defaults to the last-known device location.

        Returns:
            Matching events in input order, or the input unchanged when the
            radius is unset or no reference point is available.
        """
        if not max_distance_km:
            return list(events)

        center = reference or await self._location_service.last_known_location()
        if center is None:
            logger.debug("No reference point available; distance filter disabled")
            return list(events)

        self._stats.passes += 1
        cached = await self._distance_cache.applicable(center)
        box = BoundingBox.around(center, max_distance_km, self._km_per_degree)
        by_id = {business.id: business for business in businesses}
        subject_ids = sorted({event.business_id for event in events})

        included: set[str] = set()
        computed: dict[str, float] = {}

        for start in range(0, len(subject_ids), self._batch_size):
            if start:
                await asyncio.sleep(0)
            for business_id in subject_ids[start : start + self._batch_size]:
                if business_id in cached:
                    self._stats.cache_hits += 1
                    if cached[business_id] <= max_distance_km:
                        included.add(business_id)
                    continue

                business = by_id.get(business_id)
                if business is None:
                    continue
                coordinate = business.coordinates or await self._geocode_cache.resolve(business.address)
                if coordinate is None:
                    self._stats.unresolved += 1
                    continue
                if not box.contains(coordinate):
                    self._stats.bbox_rejections += 1
                    continue

                self._stats.precise_computations += 1
                distance = calculate_distance(center, coordinate, precise=True)
                computed[business_id] = distance
                if distance <= max_distance_km:
                    included.add(business_id)

        if computed:
            self._runner.submit_task(self._distance_cache.record(center, computed), label="distance-cache-write")

        return [event for event in events if event.business_id in included]

    async def filter_by_map_area(
        self,
        events: Sequence[EventRecord],
        businesses: Sequence[BusinessRecord],
        map_center: Coordinate,
        radius_km: float,
    ) -> list[EventRecord]:
        """Filter around an explicit map center; a zero radius means "any distance"."""
        if radius_km == 0:
            return list(events)
        return await self.filter_by_distance(events, businesses, radius_km, map_center)
