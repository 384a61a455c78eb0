"""Domain models for campus locations, missions and history records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, NamedTuple, Optional


class Coordinate(NamedTuple):
    """Longitude/latitude pair in the campus map reference system."""

    lng: float
    lat: float

    @classmethod
    def parse(cls, value: Any) -> "Coordinate":
        """Accept a Coordinate, a ``[lng, lat]`` pair or a ``{"lng", "lat"}`` mapping."""
        if isinstance(value, Coordinate):
            return value
        if isinstance(value, dict):
            try:
                return cls(float(value["lng"]), float(value["lat"]))
            except KeyError as exc:
                raise ValueError(f"Coordinate mapping missing key: {exc}") from exc
        if hasattr(value, "lng") and hasattr(value, "lat"):
            return cls(float(value.lng), float(value.lat))
        if isinstance(value, (list, tuple)) and len(value) == 2:
            return cls(float(value[0]), float(value[1]))
        raise ValueError(f"Unable to parse coordinate from {value!r}")

    def as_list(self) -> list[float]:
        return [self.lng, self.lat]


@dataclass(frozen=True, slots=True)
class Location:
    """A selectable pickup or delivery point on campus."""

    id: str
    name: str
    category: str
    coordinate: Coordinate
    enabled: bool = True


class MissionState(str, Enum):
    IDLE = "idle"
    CALCULATING = "calculating"
    EN_ROUTE_TO_PICKUP = "en_route_to_pickup"
    WAITING_FOR_LOAD = "waiting_for_load"
    EN_ROUTE_TO_DELIVERY = "en_route_to_delivery"
    ARRIVED = "arrived"
    RETURNING = "returning"
    EMERGENCY_STOPPED = "emergency_stopped"
    ERROR = "error"


@dataclass(slots=True)
class Mission:
    """The single active delivery job."""

    id: str
    pickup: Location
    delivery: Location
    waypoints: tuple[Coordinate, ...]
    transport_code: str
    state: MissionState = MissionState.CALCULATING
    cargo_loaded: bool = False
    created_at: datetime = field(default_factory=datetime.now)
    failure: Optional[str] = None


@dataclass(frozen=True, slots=True)
class HistoryRecord:
    timestamp: str
    pickup: str
    delivery: str
    status: str

    def to_dict(self) -> dict[str, str]:
        return {
            "timestamp": self.timestamp,
            "pickup": self.pickup,
            "delivery": self.delivery,
            "status": self.status,
        }
