"""Single-leg planning and sequential multi-leg route composition."""

from __future__ import annotations

import logging
from typing import Any, Sequence

from ...errors import PlanningFailed
from ...models.domain import Coordinate
from ..geospatial import collapse_close_points
from .models import ComposedRoute, RouteSegment
from .osrm_client import RoutingProvider

logger = logging.getLogger(__name__)


def _points(raw_path: Any) -> list[Coordinate]:
    if not raw_path:
        return []
    return [Coordinate.parse(point) for point in raw_path]


def extract_path(route: dict) -> list[Coordinate]:
    """Flatten a provider route into coordinates.

    Riding results nest paths under ``rides`` (optionally with ``steps``),
    walking/driving results under ``steps``; anything else may carry a flat
    ``path``. The first shape that yields points wins.
    """
    path: list[Coordinate] = []

    for ride in route.get("rides") or []:
        path.extend(_points(ride.get("path")))
        for step in ride.get("steps") or []:
            path.extend(_points(step.get("path")))

    if not path:
        for step in route.get("steps") or []:
            path.extend(_points(step.get("path")))

    if not path:
        path.extend(_points(route.get("path")))

    return collapse_close_points(path)


class SegmentPlanner:
    def __init__(self, provider: RoutingProvider) -> None:
        self.provider = provider

    async def plan_leg(self, origin: Coordinate, destination: Coordinate, leg_index: int = 0) -> RouteSegment:
        try:
            reply = await self.provider.search(origin, destination)
        except Exception as exc:
            logger.exception(f"Routing provider raised on leg {leg_index}")
            raise PlanningFailed(leg_index, raw=str(exc)) from exc
        if not reply.ok:
            logger.error(f"Leg {leg_index} planning failed with status '{reply.status}': {reply.result!r}")
            raise PlanningFailed(leg_index, raw=reply.result)

        result = reply.result if isinstance(reply.result, dict) else {}
        routes = result.get("routes")
        if not isinstance(routes, list) or not routes or not isinstance(routes[0], dict):
            raise PlanningFailed(leg_index, raw=reply.result, message=f"No route returned for leg {leg_index}.")
        route = routes[0]

        try:
            path = extract_path(route)
            distance_m = float(route.get("distance") or 0.0)
            duration_s = float(route.get("time") or 0.0)
        except (TypeError, ValueError, AttributeError, KeyError) as exc:
            logger.error(f"Malformed route on leg {leg_index}: {exc}")
            raise PlanningFailed(leg_index, raw=route, message=f"Unreadable route on leg {leg_index}: {exc}") from exc
        if not path:
            raise PlanningFailed(leg_index, raw=route, message=f"Empty path returned for leg {leg_index}.")

        return RouteSegment(
            origin=origin,
            destination=destination,
            path=tuple(path),
            distance_m=distance_m,
            duration_s=duration_s,
        )


class RouteComposer:
    """Chains single-leg plans through optional waypoints.

    Legs are requested strictly one after another; the first failure aborts
    the whole route.
    """

    def __init__(self, planner: SegmentPlanner) -> None:
        self.planner = planner

    async def plan_route(
        self,
        start: Coordinate,
        end: Coordinate,
        waypoints: Sequence[Coordinate] = (),
    ) -> ComposedRoute:
        nodes = [start, *waypoints, end]
        legs: list[RouteSegment] = []
        for leg_index in range(len(nodes) - 1):
            legs.append(await self.planner.plan_leg(nodes[leg_index], nodes[leg_index + 1], leg_index))

        merged: list[Coordinate] = []
        for index, leg in enumerate(legs):
            # each later leg starts where the previous one ended
            merged.extend(leg.path if index == 0 else leg.path[1:])

        route = ComposedRoute(
            path=tuple(collapse_close_points(merged)),
            total_distance_m=sum(leg.distance_m for leg in legs),
            total_duration_s=sum(leg.duration_s for leg in legs),
            legs=tuple(legs),
        )
        logger.info(
            f"Composed route with {len(legs)} legs: {len(route.path)} points, "
            f"{route.total_distance_m:.0f} m, {route.total_duration_s:.0f} s"
        )
        return route
