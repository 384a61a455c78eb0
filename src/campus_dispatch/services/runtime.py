"""Assembles the dispatch service from configuration."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..config import settings
from ..data.locations_repository import load_geofence_ring, load_locations
from ..models.domain import Location
from ..persistence.filesystem import JsonFileStore, KeyValueStore
from ..persistence.history import HistoryRecorder
from .conditions import ServiceConditions
from .geospatial import GeoFence
from .mission.controller import MissionController
from .routing.osrm_client import RoutingProvider, build_routing_provider
from .routing.planner import RouteComposer, SegmentPlanner
from .vehicle.motion import MotionController
from .vehicle.renderer import SimulatedRenderer

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DispatchRuntime:
    controller: MissionController
    renderer: SimulatedRenderer
    provider: RoutingProvider
    history: HistoryRecorder
    locations: tuple[Location, ...]
    geofence: GeoFence

    async def aclose(self) -> None:
        aclose = getattr(self.provider, "aclose", None)
        if aclose is not None:
            await aclose()


def build_runtime(
    provider: RoutingProvider | None = None,
    store: KeyValueStore | None = None,
    renderer: SimulatedRenderer | None = None,
) -> DispatchRuntime:
    locations = load_locations()
    geofence = GeoFence(load_geofence_ring())
    provider = provider or build_routing_provider()
    renderer = renderer or SimulatedRenderer(geofence.random_point_inside())
    history = HistoryRecorder(store or JsonFileStore())

    controller = MissionController(
        locations=locations,
        geofence=geofence,
        composer=RouteComposer(SegmentPlanner(provider)),
        motion=MotionController(renderer),
        history=history,
        conditions=ServiceConditions(),
        vehicle_speed_kmh=settings.vehicle_speed_kmh,
        return_speed_kmh=settings.return_speed_kmh,
        depot_location_id=settings.depot_location_id,
        depot_arrival_radius_m=settings.depot_arrival_radius_m,
        load_confirmation_timeout_s=settings.load_confirmation_timeout_seconds,
    )
    position = renderer.get_position()
    logger.info(
        f"Dispatch runtime ready: {len(locations)} locations, vehicle at "
        f"({position.lng:.6f}, {position.lat:.6f})"
    )
    return DispatchRuntime(
        controller=controller,
        renderer=renderer,
        provider=provider,
        history=history,
        locations=locations,
        geofence=geofence,
    )
