"""Campus reference data: selectable locations and the operating geofence."""

from __future__ import annotations

import functools
import json
import logging
from pathlib import Path
from typing import Any, Optional

from ..config import settings
from ..models.domain import Coordinate, Location

logger = logging.getLogger(__name__)

DEFAULT_LOCATIONS: tuple[Location, ...] = (
    Location("dorm_a", "Taoyuan Dorms 5-6", "dorm", Coordinate(118.827694, 31.890928)),
    Location("dorm_b", "Taoyuan Dorms 7-8", "dorm", Coordinate(118.82628, 31.890783)),
    Location("dorm_c", "Transportation Building", "office", Coordinate(118.823748, 31.890009)),
    Location("dorm_d", "Lanyuan Dorms", "dorm", Coordinate(118.825223, 31.891883)),
    Location("civil_electronics", "Civil / Electronics Building", "office", Coordinate(118.822881, 31.891321)),
    Location("library", "Library Return Point", "library", Coordinate(118.819181, 31.88836)),
    Location("traffic_experiment", "Traffic Laboratory", "office", Coordinate(118.821637, 31.890095)),
    Location(
        "teaching_south",
        "Teaching Building South Entrance",
        "classroom",
        Coordinate(118.823404, 31.886848),
        enabled=False,
    ),
    Location("material_chem", "Materials / Chemistry Building", "office", Coordinate(118.820567, 31.890035)),
)

DEFAULT_GEOFENCE: tuple[Coordinate, ...] = (
    Coordinate(118.81407, 31.890719),
    Coordinate(118.813826, 31.886345),
    Coordinate(118.81932, 31.886573),
    Coordinate(118.82352, 31.886801),
    Coordinate(118.825095, 31.886879),
    Coordinate(118.828425, 31.887076),
    Coordinate(118.828388, 31.889761),
    Coordinate(118.828401, 31.89115),
    Coordinate(118.828413, 31.89229),
    Coordinate(118.825031, 31.891928),
    Coordinate(118.822272, 31.891461),
    Coordinate(118.820929, 31.891316),
)


def _parse_location(row: dict[str, Any]) -> Location:
    try:
        return Location(
            id=str(row["id"]).strip(),
            name=str(row.get("name") or row["id"]).strip(),
            category=str(row.get("category") or row.get("type") or "other").strip(),
            coordinate=Coordinate.parse(row.get("coordinate") or row["position"]),
            enabled=not row.get("disabled", False) and bool(row.get("enabled", True)),
        )
    except KeyError as exc:
        raise ValueError(f"Location entry missing field {exc}: {row!r}") from exc


def _read_campus_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Campus data file not found: {path}")
    with path.open("r", encoding="utf-8") as handle:
        data = json.load(handle)
    if not isinstance(data, dict):
        raise ValueError(f"Campus data file '{path}' must contain a JSON object.")
    return data


@functools.lru_cache(maxsize=1)
def load_locations(source: Optional[Path] = None) -> tuple[Location, ...]:
    """Load campus locations from the configured file, or the built-in set."""

    path = source or settings.locations_file
    if path is None:
        return DEFAULT_LOCATIONS
    data = _read_campus_file(path)
    rows = data.get("locations")
    if not rows:
        logger.warning(f"No locations in '{path}', using built-in campus locations")
        return DEFAULT_LOCATIONS
    locations = tuple(_parse_location(row) for row in rows)
    ids = [location.id for location in locations]
    if len(set(ids)) != len(ids):
        raise ValueError(f"Duplicate location ids in '{path}'.")
    return locations


@functools.lru_cache(maxsize=1)
def load_geofence_ring(source: Optional[Path] = None) -> tuple[Coordinate, ...]:
    """Load the geofence polygon ring from the configured file, or the built-in ring."""

    path = source or settings.locations_file
    if path is None:
        return DEFAULT_GEOFENCE
    data = _read_campus_file(path)
    ring = data.get("geofence")
    if not ring:
        return DEFAULT_GEOFENCE
    parsed = tuple(Coordinate.parse(point) for point in ring)
    if len(parsed) < 3:
        raise ValueError(f"Geofence in '{path}' needs at least three vertices.")
    return parsed


def find_location(location_id: str, locations: tuple[Location, ...] | None = None) -> Location | None:
    normalized = location_id.strip()
    for location in locations if locations is not None else load_locations():
        if location.id == normalized:
            return location
    return None
