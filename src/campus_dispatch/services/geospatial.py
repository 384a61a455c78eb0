"""Geospatial helper functions and the campus geofence."""

from __future__ import annotations

import logging
import math
import random
from typing import Iterable, Sequence

from shapely.geometry import Point, Polygon

from ..models.domain import Coordinate

EARTH_RADIUS_M = 6371000.0
# Equirectangular approximation used for near-duplicate detection
METERS_PER_DEGREE = 111000.0
MIN_POINT_SPACING_M = 0.5
RANDOM_POINT_ATTEMPTS = 20

logger = logging.getLogger(__name__)


def haversine_m(a: Coordinate, b: Coordinate) -> float:
    """Compute great-circle distance in metres between two coordinates."""

    phi1, phi2 = math.radians(a.lat), math.radians(b.lat)
    d_phi = math.radians(b.lat - a.lat)
    d_lambda = math.radians(b.lng - a.lng)

    h = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(h))


def approx_distance_m(a: Coordinate, b: Coordinate) -> float:
    """Fast planar distance, accurate enough at campus scale."""

    dx = (b.lng - a.lng) * METERS_PER_DEGREE * math.cos(math.radians(a.lat))
    dy = (b.lat - a.lat) * METERS_PER_DEGREE
    return math.sqrt(dx * dx + dy * dy)


def path_length_m(path: Sequence[Coordinate]) -> float:
    return sum(haversine_m(path[i - 1], path[i]) for i in range(1, len(path)))


def collapse_close_points(
    path: Iterable[Coordinate], min_spacing_m: float = MIN_POINT_SPACING_M
) -> list[Coordinate]:
    """Drop points lying within ``min_spacing_m`` of the previously kept point."""

    cleaned: list[Coordinate] = []
    for point in path:
        if cleaned and approx_distance_m(cleaned[-1], point) <= min_spacing_m:
            continue
        cleaned.append(point)
    return cleaned


class GeoFence:
    """Closed polygon bounding every valid vehicle and waypoint position."""

    def __init__(self, ring: Sequence[Coordinate], rng: random.Random | None = None) -> None:
        if len(ring) < 3:
            raise ValueError("A geofence needs at least three vertices.")
        self.ring: tuple[Coordinate, ...] = tuple(Coordinate.parse(point) for point in ring)
        self._polygon = Polygon([(point.lng, point.lat) for point in self.ring])
        self._rng = rng or random.Random()

    def is_inside(self, point: Coordinate) -> bool:
        return self._polygon.contains(Point(point.lng, point.lat))

    def random_point_inside(self) -> Coordinate:
        """Sample a position in the fence's bounding box, retrying until it lands inside.

        After ``RANDOM_POINT_ATTEMPTS`` misses the last sample is returned even
        though it lies outside; callers must not assume strict containment.
        """
        min_lng, min_lat, max_lng, max_lat = self._polygon.bounds
        candidate = Coordinate(min_lng, min_lat)
        for _ in range(RANDOM_POINT_ATTEMPTS):
            candidate = Coordinate(
                self._rng.uniform(min_lng, max_lng),
                self._rng.uniform(min_lat, max_lat),
            )
            if self.is_inside(candidate):
                return candidate
        logger.warning(
            f"No point inside the geofence after {RANDOM_POINT_ATTEMPTS} attempts, "
            f"using ({candidate.lng:.6f}, {candidate.lat:.6f})"
        )
        return candidate
