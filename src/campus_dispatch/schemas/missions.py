"""Mission request/response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from ..models.domain import Coordinate, HistoryRecord, Location
from ..services.mission.controller import MissionSnapshot
from ..services.routing.models import ComposedRoute


class CoordinateModel(BaseModel):
    lng: float = Field(..., ge=-180, le=180)
    lat: float = Field(..., ge=-90, le=90)

    @classmethod
    def from_domain(cls, coordinate: Coordinate) -> "CoordinateModel":
        return cls(lng=coordinate.lng, lat=coordinate.lat)

    def to_domain(self) -> Coordinate:
        return Coordinate(self.lng, self.lat)


class LocationModel(BaseModel):
    id: str
    name: str
    category: str
    coordinate: CoordinateModel
    enabled: bool

    @classmethod
    def from_domain(cls, location: Location) -> "LocationModel":
        return cls(
            id=location.id,
            name=location.name,
            category=location.category,
            coordinate=CoordinateModel.from_domain(location.coordinate),
            enabled=location.enabled,
        )


class MissionRequest(BaseModel):
    pickup_id: Optional[str] = None
    delivery_id: Optional[str] = None
    mode: Literal["auto", "custom"] = "auto"
    waypoints: Optional[List[CoordinateModel]] = Field(
        default=None,
        description="Custom-mode waypoints. When omitted in custom mode the drawn waypoint draft is used.",
    )


class WeatherReport(BaseModel):
    condition: str = Field(..., min_length=1, description="Live weather text, e.g. 'light rain'.")


class RouteModel(BaseModel):
    path: List[CoordinateModel]
    total_distance_m: float
    total_duration_s: float
    leg_count: int

    @classmethod
    def from_domain(cls, route: ComposedRoute) -> "RouteModel":
        return cls(
            path=[CoordinateModel.from_domain(point) for point in route.path],
            total_distance_m=route.total_distance_m,
            total_duration_s=route.total_duration_s,
            leg_count=route.leg_count,
        )


class MissionModel(BaseModel):
    id: str
    pickup: LocationModel
    delivery: LocationModel
    waypoints: List[CoordinateModel]
    transport_code: str
    state: str
    cargo_loaded: bool
    created_at: datetime
    failure: Optional[str] = None


class MissionStatusResponse(BaseModel):
    state: str
    prior_state: Optional[str] = None
    mission: Optional[MissionModel] = None
    route: Optional[RouteModel] = None
    vehicle_position: CoordinateModel
    vehicle_moving: bool
    service_degraded: bool
    degraded_reason: Optional[str] = None
    waypoint_draft: List[CoordinateModel]
    weather: Optional[str] = None

    @classmethod
    def from_snapshot(cls, snapshot: MissionSnapshot) -> "MissionStatusResponse":
        mission = snapshot.mission
        return cls(
            state=snapshot.state.value,
            prior_state=snapshot.prior_state.value if snapshot.prior_state else None,
            mission=MissionModel(
                id=mission.id,
                pickup=LocationModel.from_domain(mission.pickup),
                delivery=LocationModel.from_domain(mission.delivery),
                waypoints=[CoordinateModel.from_domain(point) for point in mission.waypoints],
                transport_code=mission.transport_code,
                state=mission.state.value,
                cargo_loaded=mission.cargo_loaded,
                created_at=mission.created_at,
                failure=mission.failure,
            )
            if mission
            else None,
            route=RouteModel.from_domain(snapshot.route) if snapshot.route else None,
            vehicle_position=CoordinateModel.from_domain(snapshot.vehicle_position),
            vehicle_moving=snapshot.vehicle_moving,
            service_degraded=snapshot.service_degraded,
            degraded_reason=snapshot.degraded_reason,
            waypoint_draft=[CoordinateModel.from_domain(point) for point in snapshot.waypoint_draft],
            weather=snapshot.weather,
        )


class HistoryRecordModel(BaseModel):
    timestamp: str
    pickup: str
    delivery: str
    status: str

    @classmethod
    def from_domain(cls, record: HistoryRecord) -> "HistoryRecordModel":
        return cls(**record.to_dict())
