"""Routing domain models."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ...models.domain import Coordinate

COMPLETE = "complete"


@dataclass(frozen=True, slots=True)
class ProviderReply:
    """Raw answer of a routing provider for one origin/destination pair."""

    status: str
    result: Any = None

    @property
    def ok(self) -> bool:
        return self.status == COMPLETE


@dataclass(frozen=True, slots=True)
class RouteSegment:
    origin: Coordinate
    destination: Coordinate
    path: tuple[Coordinate, ...]
    distance_m: float
    duration_s: float


@dataclass(frozen=True, slots=True)
class ComposedRoute:
    path: tuple[Coordinate, ...]
    total_distance_m: float
    total_duration_s: float
    legs: tuple[RouteSegment, ...] = ()

    @property
    def leg_count(self) -> int:
        return len(self.legs)
