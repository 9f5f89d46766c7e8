"""Coordinates, distance formulas, and bounding boxes.

Two distance measures are provided: a precise haversine great-circle distance
and a cheap planar approximation used where only "roughly near" matters
(distance-cache applicability).  Both return kilometers.
"""

import math
from dataclasses import dataclass

EARTH_RADIUS_KM = 6371.0

# Flat-earth conversion; accurate enough for a single mid-latitude region.
APPROX_KM_PER_DEGREE = 111.0


@dataclass(frozen=True)
class Coordinate:
    """A WGS84 latitude/longitude pair in decimal degrees."""

    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not (-90 <= self.latitude <= 90):
            msg = f"latitude must be between -90 and 90, got {self.latitude}"
            raise ValueError(msg)
        if not (-180 <= self.longitude <= 180):
            msg = f"longitude must be between -180 and 180, got {self.longitude}"
            raise ValueError(msg)

    def to_dict(self) -> dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}


def haversine_km(start: Coordinate, end: Coordinate) -> float:
    """Great-circle distance between two coordinates in kilometers."""
    start_lat = math.radians(start.latitude)
    end_lat = math.radians(end.latitude)
    delta_lat = math.radians(end.latitude - start.latitude)
    delta_lng = math.radians(end.longitude - start.longitude)

    a = math.sin(delta_lat / 2) ** 2 + math.cos(start_lat) * math.cos(end_lat) * math.sin(delta_lng / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def approximate_distance_km(
    start: Coordinate,
    end: Coordinate,
    km_per_degree: float = APPROX_KM_PER_DEGREE,
) -> float:
    """Planar Euclidean distance on raw degree deltas, scaled to kilometers.

    Ignores longitude convergence, so it overestimates east-west distances
    away from the equator.  Only suitable for coarse proximity checks.
    """
    lat_diff = end.latitude - start.latitude
    lng_diff = end.longitude - start.longitude
    return math.hypot(lat_diff, lng_diff) * km_per_degree


def calculate_distance(start: Coordinate, end: Coordinate, *, precise: bool = False) -> float:
    """Distance in kilometers, precise (haversine) or approximate (planar)."""
    if precise:
        return haversine_km(start, end)
    return approximate_distance_km(start, end)


def km_to_degrees(km: float, km_per_degree: float = APPROX_KM_PER_DEGREE) -> float:
    """Convert kilometers to degrees using the flat conversion constant."""
    if km <= 0:
        return 0.0
    return km / km_per_degree


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned latitude/longitude rectangle."""

    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    @classmethod
    def around(
        cls,
        center: Coordinate,
        radius_km: float,
        km_per_degree: float = APPROX_KM_PER_DEGREE,
    ) -> "BoundingBox":
        """Build a square box of half-side ``radius_km`` centred on ``center``.

        The same degree radius is applied on both axes, matching the flat
        conversion constant rather than scaling longitude by latitude.
        """
        degrees = km_to_degrees(radius_km, km_per_degree)
        return cls(
            min_lat=center.latitude - degrees,
            max_lat=center.latitude + degrees,
            min_lng=center.longitude - degrees,
            max_lng=center.longitude + degrees,
        )

    def contains(self, point: Coordinate) -> bool:
        return self.min_lat <= point.latitude <= self.max_lat and self.min_lng <= point.longitude <= self.max_lng
