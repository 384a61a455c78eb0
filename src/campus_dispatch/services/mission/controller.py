"""Mission lifecycle orchestration for the single campus vehicle."""

from __future__ import annotations

import asyncio
import logging
import secrets
import uuid
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, Iterable, Optional, Sequence

from ...data.locations_repository import find_location
from ...errors import GeofenceViolation, InvalidTransition, PlanningFailed, ServiceDegraded, ValidationError
from ...models.domain import Coordinate, HistoryRecord, Location, Mission, MissionState
from ...persistence.history import HistoryRecorder
from ..conditions import ServiceConditions
from ..geospatial import GeoFence, haversine_m
from ..routing.models import ComposedRoute
from ..routing.planner import RouteComposer
from ..vehicle.motion import MotionController

logger = logging.getLogger(__name__)

# Pre-load cancellations are logged to history with STATUS_CANCELLED
RECORD_CANCELLED_MISSIONS = True

STATUS_SUCCESS = "success"
STATUS_CANCELLED = "cancelled"
STATUS_EXPIRED = "expired"

TRANSPORT_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
TRANSPORT_CODE_LENGTH = 5

MODE_AUTO = "auto"
MODE_CUSTOM = "custom"

PHASE_PICKUP = "pickup"
PHASE_DELIVERY = "delivery"
PHASE_RETURN = "return"

DEFAULT_VEHICLE_SPEED_KMH = 20.0
DEFAULT_RETURN_SPEED_KMH = 30.0
DEFAULT_DEPOT_RADIUS_M = 100.0

S = MissionState

IN_PROGRESS_STATES = frozenset(
    {S.CALCULATING, S.EN_ROUTE_TO_PICKUP, S.WAITING_FOR_LOAD, S.EN_ROUTE_TO_DELIVERY, S.RETURNING}
)
CANCELLABLE_STATES = (S.CALCULATING, S.EN_ROUTE_TO_PICKUP, S.WAITING_FOR_LOAD, S.ERROR, S.EMERGENCY_STOPPED)

_TRANSITIONS: dict[MissionState, frozenset[MissionState]] = {
    S.IDLE: frozenset({S.CALCULATING, S.RETURNING}),
    S.CALCULATING: frozenset({S.EN_ROUTE_TO_PICKUP, S.EN_ROUTE_TO_DELIVERY, S.ERROR, S.EMERGENCY_STOPPED, S.IDLE}),
    S.EN_ROUTE_TO_PICKUP: frozenset({S.WAITING_FOR_LOAD, S.EMERGENCY_STOPPED, S.IDLE}),
    S.WAITING_FOR_LOAD: frozenset({S.CALCULATING, S.EMERGENCY_STOPPED, S.IDLE}),
    S.EN_ROUTE_TO_DELIVERY: frozenset({S.ARRIVED, S.EMERGENCY_STOPPED}),
    S.ARRIVED: frozenset({S.IDLE}),
    S.RETURNING: frozenset({S.IDLE, S.EMERGENCY_STOPPED}),
    S.EMERGENCY_STOPPED: IN_PROGRESS_STATES | {S.IDLE},
    S.ERROR: frozenset({S.CALCULATING, S.IDLE}),
}

_PHASE_TARGETS = {
    PHASE_PICKUP: S.EN_ROUTE_TO_PICKUP,
    PHASE_DELIVERY: S.EN_ROUTE_TO_DELIVERY,
    PHASE_RETURN: S.RETURNING,
}


def generate_transport_code() -> str:
    """Short pickup code read aloud at handoff; confusable glyphs are excluded."""
    return "".join(secrets.choice(TRANSPORT_CODE_ALPHABET) for _ in range(TRANSPORT_CODE_LENGTH))


@dataclass(slots=True)
class MissionSnapshot:
    state: MissionState
    prior_state: Optional[MissionState]
    mission: Optional[Mission]
    route: Optional[ComposedRoute]
    vehicle_position: Coordinate
    vehicle_moving: bool
    service_degraded: bool
    degraded_reason: Optional[str]
    waypoint_draft: tuple[Coordinate, ...] = field(default_factory=tuple)
    weather: Optional[str] = None


class MissionController:
    """Sole owner and writer of the vehicle and the active mission.

    Every planning request and motion command is tagged with a command token;
    completions carrying an outdated token are dropped. Completions arriving
    while emergency-stopped are held and applied on resume.
    """

    def __init__(
        self,
        *,
        locations: Sequence[Location],
        geofence: GeoFence,
        composer: RouteComposer,
        motion: MotionController,
        history: HistoryRecorder,
        conditions: ServiceConditions | None = None,
        vehicle_speed_kmh: float = DEFAULT_VEHICLE_SPEED_KMH,
        return_speed_kmh: float = DEFAULT_RETURN_SPEED_KMH,
        depot_location_id: str | None = None,
        depot_arrival_radius_m: float = DEFAULT_DEPOT_RADIUS_M,
        load_confirmation_timeout_s: float | None = None,
        code_factory: Callable[[], str] = generate_transport_code,
    ) -> None:
        self.locations: tuple[Location, ...] = tuple(locations)
        self.geofence = geofence
        self.composer = composer
        self.motion = motion
        self.history = history
        self.conditions = conditions or ServiceConditions()
        self.vehicle_speed_kmh = vehicle_speed_kmh
        self.return_speed_kmh = return_speed_kmh
        self.depot_location_id = depot_location_id
        self.depot_arrival_radius_m = depot_arrival_radius_m
        self.load_confirmation_timeout_s = load_confirmation_timeout_s
        self._code_factory = code_factory

        self._state = S.IDLE
        self._prior_state: MissionState | None = None
        self._mission: Mission | None = None
        self._route: ComposedRoute | None = None
        self._phase: str | None = None
        self._token = 0
        self._motion_token: int | None = None
        self._deferred: Callable[[], bool] | None = None
        self._pending_arrival: int | None = None
        self._last_failure: PlanningFailed | None = None
        self._load_timer: asyncio.TimerHandle | None = None
        self._waypoint_draft: list[Coordinate] = []

    # ------------------------------------------------------------------
    # Read-only views

    @property
    def state(self) -> MissionState:
        return self._state

    @property
    def prior_state(self) -> MissionState | None:
        return self._prior_state

    @property
    def mission(self) -> Mission | None:
        return self._mission

    @property
    def route(self) -> ComposedRoute | None:
        return self._route

    @property
    def waypoints(self) -> tuple[Coordinate, ...]:
        return tuple(self._waypoint_draft)

    def snapshot(self) -> MissionSnapshot:
        return MissionSnapshot(
            state=self._state,
            prior_state=self._prior_state,
            mission=self._mission,
            route=self._route,
            vehicle_position=self.motion.current_position(),
            vehicle_moving=self.motion.moving and not self.motion.paused,
            service_degraded=self.conditions.degraded,
            degraded_reason=self.conditions.reason,
            waypoint_draft=self.waypoints,
            weather=self.conditions.weather,
        )

    # ------------------------------------------------------------------
    # Mission request surface

    async def request_mission(
        self,
        pickup_id: str | None,
        delivery_id: str | None,
        mode: str = MODE_AUTO,
        waypoints: Iterable[Any] | None = None,
    ) -> Mission:
        """Accept a new mission and plan the leg from the vehicle to the pickup.

        Raises ``PlanningFailed`` after moving to ``Error`` when that leg
        cannot be planned; the mission is kept for retry or cancel.
        """
        self._require("request_mission", S.IDLE, S.ERROR)
        if self._mission is not None and self._mission.cargo_loaded:
            raise InvalidTransition("request_mission", self._state)
        if self.conditions.degraded:
            raise ServiceDegraded(self.conditions.reason or "service suspended")

        pickup, delivery = self._resolve_pair(pickup_id, delivery_id)
        route_waypoints = self._resolve_waypoints(mode, waypoints)

        if self._mission is not None:
            logger.info(f"Replacing failed mission {self._mission.id}")
            self._release_mission()

        mission = Mission(
            id=uuid.uuid4().hex,
            pickup=pickup,
            delivery=delivery,
            waypoints=tuple(route_waypoints),
            transport_code=self._code_factory(),
        )
        self._mission = mission
        self._set_state(S.CALCULATING)
        logger.info(
            f"Mission {mission.id} accepted: {pickup.id} -> {delivery.id} "
            f"({len(mission.waypoints)} waypoints, code {mission.transport_code})"
        )
        await self._plan_phase(self.motion.current_position(), pickup.coordinate, (), PHASE_PICKUP)
        return mission

    async def confirm_load(self) -> None:
        self._require("confirm_load", S.WAITING_FOR_LOAD)
        mission = self._active_mission("confirm_load")
        self._cancel_load_timeout()
        mission.cargo_loaded = True
        self._set_state(S.CALCULATING)
        await self._plan_phase(mission.pickup.coordinate, mission.delivery.coordinate, mission.waypoints, PHASE_DELIVERY)

    def confirm_delivery(self) -> HistoryRecord:
        self._require("confirm_delivery", S.ARRIVED)
        mission = self._active_mission("confirm_delivery")
        self.motion.stop()
        record = self.history.record(mission.pickup.name, mission.delivery.name, STATUS_SUCCESS)
        logger.info(f"Mission {mission.id} delivered")
        self._release_mission()
        self._set_state(S.IDLE)
        return record

    def cancel_mission(self) -> HistoryRecord | None:
        """Abandon the mission; only possible before the cargo is loaded."""
        self._require("cancel_mission", *CANCELLABLE_STATES)
        mission = self._active_mission("cancel_mission")
        if mission.cargo_loaded:
            raise InvalidTransition("cancel_mission", self._state)
        logger.info(f"Mission {mission.id} cancelled in state {self._state.value}")
        return self._abandon(mission, STATUS_CANCELLED)

    async def retry_mission(self) -> None:
        """Re-plan the phase that failed, keeping the mission and its transport code."""
        self._require("retry_mission", S.ERROR)
        mission = self._active_mission("retry_mission")
        mission.failure = None
        self._last_failure = None
        self._set_state(S.CALCULATING)
        if mission.cargo_loaded:
            await self._plan_phase(
                mission.pickup.coordinate, mission.delivery.coordinate, mission.waypoints, PHASE_DELIVERY
            )
        else:
            await self._plan_phase(self.motion.current_position(), mission.pickup.coordinate, (), PHASE_PICKUP)

    def emergency_stop(self) -> None:
        if self._state is S.EMERGENCY_STOPPED:
            logger.info("Emergency stop requested while already stopped")
            return
        self._require("emergency_stop", *IN_PROGRESS_STATES)
        self._prior_state = self._state
        self._set_state(S.EMERGENCY_STOPPED)
        self._cancel_load_timeout()
        if self.motion.moving:
            self.motion.pause()

    def emergency_resume(self) -> None:
        self._require("emergency_resume", S.EMERGENCY_STOPPED)
        prior = self._prior_state or S.IDLE
        self._prior_state = None
        self._set_state(prior)
        if self.motion.paused:
            self.motion.resume()
        if prior is S.WAITING_FOR_LOAD:
            self._arm_load_timeout()

        deferred, self._deferred = self._deferred, None
        if deferred is not None and deferred():
            raise self._last_failure or PlanningFailed(0)

        pending, self._pending_arrival = self._pending_arrival, None
        if pending is not None:
            self._on_arrival(pending)

    async def return_to_depot(self) -> bool:
        """Drive the idle vehicle back to the depot; False when it is already there."""
        self._require("return_to_depot", S.IDLE)
        depot = self._depot()
        position = self.motion.current_position()
        if haversine_m(position, depot.coordinate) < self.depot_arrival_radius_m:
            logger.info(f"Vehicle already within {self.depot_arrival_radius_m:.0f} m of {depot.id}")
            return False
        self._set_state(S.RETURNING)
        await self._plan_phase(position, depot.coordinate, (), PHASE_RETURN)
        return True

    # ------------------------------------------------------------------
    # Waypoint draft and service conditions

    def add_waypoint(self, point: Any) -> tuple[Coordinate, ...]:
        try:
            coordinate = Coordinate.parse(point)
        except (TypeError, ValueError) as exc:
            raise ValidationError(str(exc)) from exc
        if not self.geofence.is_inside(coordinate):
            raise GeofenceViolation(coordinate.lng, coordinate.lat)
        self._waypoint_draft.append(coordinate)
        return self.waypoints

    def clear_waypoints(self) -> None:
        self._waypoint_draft.clear()

    def report_weather(self, condition: str) -> bool:
        return self.conditions.report_weather(condition)

    def set_service_degraded(self, degraded: bool, reason: str | None = None) -> None:
        self.conditions.set_degraded(degraded, reason)

    # ------------------------------------------------------------------
    # Internals

    def _require(self, operation: str, *states: MissionState) -> None:
        if self._state not in states:
            raise InvalidTransition(operation, self._state)

    def _active_mission(self, operation: str) -> Mission:
        if self._mission is None:
            raise InvalidTransition(operation, self._state)
        return self._mission

    def _set_state(self, new_state: MissionState) -> None:
        old_state = self._state
        if new_state not in _TRANSITIONS[old_state]:
            raise InvalidTransition(f"{old_state.value} -> {new_state.value}", old_state)
        self._state = new_state
        if self._mission is not None:
            self._mission.state = new_state
        logger.info(f"Mission state {old_state.value} -> {new_state.value}")

    def _next_token(self) -> int:
        self._token += 1
        return self._token

    def _resolve_pair(self, pickup_id: str | None, delivery_id: str | None) -> tuple[Location, Location]:
        if not pickup_id or not delivery_id:
            raise ValidationError("Select both a pickup and a delivery location.")
        pickup = find_location(pickup_id, self.locations)
        delivery = find_location(delivery_id, self.locations)
        if pickup is None or delivery is None:
            unknown = pickup_id if pickup is None else delivery_id
            raise ValidationError(f"Unknown location '{unknown}'.")
        if pickup.id == delivery.id:
            raise ValidationError("Pickup and delivery must be different locations.")
        for location in (pickup, delivery):
            if not location.enabled:
                raise ValidationError(f"Location '{location.name}' is not in service.")
        return pickup, delivery

    def _resolve_waypoints(self, mode: str, waypoints: Iterable[Any] | None) -> list[Coordinate]:
        if mode == MODE_AUTO:
            if waypoints:
                logger.debug("Ignoring waypoints in auto mode")
            return []
        if mode != MODE_CUSTOM:
            raise ValidationError(f"Unknown routing mode '{mode}'.")
        if waypoints is None:
            return list(self._waypoint_draft)
        try:
            points = [Coordinate.parse(point) for point in waypoints]
        except (TypeError, ValueError) as exc:
            raise ValidationError(str(exc)) from exc
        for point in points:
            if not self.geofence.is_inside(point):
                raise GeofenceViolation(point.lng, point.lat)
        return points

    def _depot(self) -> Location:
        depot = find_location(self.depot_location_id or "", self.locations)
        if depot is None:
            raise ValidationError(f"Depot location '{self.depot_location_id}' is not configured.")
        return depot

    async def _plan_phase(
        self,
        start: Coordinate,
        end: Coordinate,
        waypoints: Sequence[Coordinate],
        phase: str,
    ) -> None:
        token = self._next_token()
        self._phase = phase
        try:
            route = await self.composer.plan_route(start, end, waypoints)
        except PlanningFailed as exc:
            if self._settle_plan(token, partial(self._fail_phase, phase, exc)):
                raise
            return
        self._settle_plan(token, partial(self._start_phase, phase, route))

    def _settle_plan(self, token: int, apply: Callable[[], bool]) -> bool:
        """Apply a planning outcome now, hold it, or drop it; True when the caller should raise."""
        if token != self._token:
            logger.info(f"Discarding stale planning result (command {token}, current {self._token})")
            return False
        if self._state is S.EMERGENCY_STOPPED:
            logger.info("Planning finished during emergency stop, holding result until resume")
            self._deferred = apply
            return False
        return apply()

    def _start_phase(self, phase: str, route: ComposedRoute) -> bool:
        self._route = route
        target = _PHASE_TARGETS[phase]
        if self._state is not target:
            self._set_state(target)
        speed = self.return_speed_kmh if phase == PHASE_RETURN else self.vehicle_speed_kmh
        self._motion_token = token = self._next_token()
        self.motion.start(route.path, speed, partial(self._on_arrival, token))
        return False

    def _fail_phase(self, phase: str, exc: PlanningFailed) -> bool:
        self._last_failure = exc
        if phase == PHASE_RETURN:
            depot = self._depot()
            logger.error(f"Return route planning failed ({exc}), placing vehicle at {depot.id}")
            self.motion.place_at(depot.coordinate)
            self._phase = None
            self._set_state(S.IDLE)
            return False
        if self._mission is not None:
            self._mission.failure = str(exc)
        logger.error(f"Planning for {phase} phase failed on leg {exc.leg_index}: {exc}")
        self._set_state(S.ERROR)
        return True

    def _on_arrival(self, token: int) -> None:
        if token != self._motion_token:
            logger.debug(f"Ignoring arrival for superseded motion command {token}")
            return
        if self._state is S.EMERGENCY_STOPPED:
            logger.info("Arrival reported during emergency stop, holding until resume")
            self._pending_arrival = token
            return

        self._motion_token = None
        self.motion.stop()
        if self._state is S.EN_ROUTE_TO_PICKUP:
            self._set_state(S.WAITING_FOR_LOAD)
            self._arm_load_timeout()
        elif self._state is S.EN_ROUTE_TO_DELIVERY:
            self._set_state(S.ARRIVED)
        elif self._state is S.RETURNING:
            self._route = None
            self._phase = None
            self._set_state(S.IDLE)
        else:
            logger.warning(f"Unexpected arrival in state {self._state.value}")

    def _arm_load_timeout(self) -> None:
        if not self.load_confirmation_timeout_s or self._mission is None:
            return
        self._cancel_load_timeout()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop, load confirmation timeout not armed")
            return
        self._load_timer = loop.call_later(
            self.load_confirmation_timeout_s, self._expire_waiting_mission, self._mission.id
        )

    def _cancel_load_timeout(self) -> None:
        if self._load_timer is not None:
            self._load_timer.cancel()
            self._load_timer = None

    def _expire_waiting_mission(self, mission_id: str) -> None:
        self._load_timer = None
        mission = self._mission
        if self._state is not S.WAITING_FOR_LOAD or mission is None or mission.id != mission_id:
            return
        logger.warning(f"Mission {mission.id} not loaded within {self.load_confirmation_timeout_s}s, cancelling")
        self._abandon(mission, STATUS_EXPIRED)

    def _abandon(self, mission: Mission, status: str) -> HistoryRecord | None:
        self.motion.stop()
        record = None
        if RECORD_CANCELLED_MISSIONS:
            record = self.history.record(mission.pickup.name, mission.delivery.name, status)
        self._release_mission()
        self._set_state(S.IDLE)
        return record

    def _release_mission(self) -> None:
        # invalidates any in-flight planning or motion completion
        self._next_token()
        self._cancel_load_timeout()
        self._mission = None
        self._route = None
        self._phase = None
        self._prior_state = None
        self._deferred = None
        self._pending_arrival = None
        self._motion_token = None
        self._last_failure = None
        self._waypoint_draft.clear()
