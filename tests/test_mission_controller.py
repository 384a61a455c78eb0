import asyncio
import itertools

import pytest

from src.campus_dispatch.data.locations_repository import DEFAULT_GEOFENCE, DEFAULT_LOCATIONS
from src.campus_dispatch.errors import (
    GeofenceViolation,
    InvalidTransition,
    PlanningFailed,
    ServiceDegraded,
    ValidationError,
)
from src.campus_dispatch.models.domain import Coordinate, MissionState
from src.campus_dispatch.persistence.filesystem import MemoryStore
from src.campus_dispatch.persistence.history import HistoryRecorder
from src.campus_dispatch.services.geospatial import GeoFence, haversine_m
from src.campus_dispatch.services.mission import MODE_CUSTOM, MissionController, generate_transport_code
from src.campus_dispatch.services.mission.controller import TRANSPORT_CODE_ALPHABET
from src.campus_dispatch.services.routing.models import COMPLETE, ProviderReply
from src.campus_dispatch.services.routing.planner import RouteComposer, SegmentPlanner
from src.campus_dispatch.services.vehicle import MotionController, SimulatedRenderer

LOCATIONS = {location.id: location for location in DEFAULT_LOCATIONS}
ENABLED_IDS = [location.id for location in DEFAULT_LOCATIONS if location.enabled]
VEHICLE_START = Coordinate(118.822, 31.889)
INSIDE_POINT = Coordinate(118.8215, 31.8895)
OUTSIDE_POINT = Coordinate(118.80, 31.88)
CODE = "AB3CD"


class FakeProvider:
    """Three-point path per leg; can be gated or made to fail."""

    def __init__(self) -> None:
        self.calls: list[tuple[Coordinate, Coordinate]] = []
        self.failing = False
        self.malformed = False
        self.gate: asyncio.Event | None = None

    async def search(self, origin: Coordinate, destination: Coordinate) -> ProviderReply:
        self.calls.append((origin, destination))
        if self.gate is not None:
            await self.gate.wait()
        if self.failing:
            return ProviderReply(status="error", result="no route")
        if self.malformed:
            return ProviderReply(status=COMPLETE, result={"routes": [{"distance": "n/a", "path": [origin.as_list()]}]})
        middle = Coordinate((origin.lng + destination.lng) / 2, (origin.lat + destination.lat) / 2)
        distance = haversine_m(origin, destination)
        return ProviderReply(
            status=COMPLETE,
            result={
                "routes": [
                    {
                        "distance": distance,
                        "time": distance / 5.0,
                        "path": [origin.as_list(), middle.as_list(), destination.as_list()],
                    }
                ]
            },
        )


class SequentialCodes:
    """Hands out a fresh code on every call so regeneration would be visible."""

    def __init__(self) -> None:
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        return f"CODE{self.calls}"


class CountingRenderer(SimulatedRenderer):
    def __init__(self, position: Coordinate) -> None:
        super().__init__(position)
        self.pause_calls = 0
        self.registered = []

    def pause_move(self) -> None:
        self.pause_calls += 1
        super().pause_move()

    def on_arrival(self, callback) -> None:
        self.registered.append(callback)
        super().on_arrival(callback)


def _controller(provider: FakeProvider | None = None, timeout: float | None = None, codes=None):
    provider = provider or FakeProvider()
    renderer = CountingRenderer(VEHICLE_START)
    history = HistoryRecorder(MemoryStore())
    controller = MissionController(
        locations=DEFAULT_LOCATIONS,
        geofence=GeoFence(DEFAULT_GEOFENCE),
        composer=RouteComposer(SegmentPlanner(provider)),
        motion=MotionController(renderer),
        history=history,
        vehicle_speed_kmh=36.0,
        return_speed_kmh=36.0,
        depot_location_id="dorm_c",
        load_confirmation_timeout_s=timeout,
        code_factory=codes or (lambda: CODE),
    )
    return controller, renderer, provider, history


def _arrive(renderer: SimulatedRenderer) -> None:
    renderer.advance(10_000)


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


def test_generate_transport_code_uses_unambiguous_alphabet() -> None:
    for _ in range(50):
        code = generate_transport_code()
        assert len(code) == 5
        assert set(code) <= set(TRANSPORT_CODE_ALPHABET)
        assert not set(code) & {"0", "O", "1", "I"}


@pytest.mark.parametrize("pickup_id, delivery_id", list(itertools.permutations(ENABLED_IDS, 2)))
def test_every_enabled_pair_can_be_requested(pickup_id, delivery_id) -> None:
    controller, renderer, provider, _ = _controller()

    mission = asyncio.run(controller.request_mission(pickup_id, delivery_id))

    assert controller.state is MissionState.EN_ROUTE_TO_PICKUP
    assert mission.pickup.id == pickup_id
    assert mission.delivery.id == delivery_id
    assert provider.calls == [(VEHICLE_START, LOCATIONS[pickup_id].coordinate)]
    assert renderer.is_moving


@pytest.mark.parametrize(
    "pickup_id, delivery_id",
    [
        ("library", "library"),
        ("dorm_a", "teaching_south"),
        ("", "library"),
        (None, "library"),
        ("dorm_a", "nowhere"),
    ],
)
def test_invalid_selection_is_rejected_without_planning(pickup_id, delivery_id) -> None:
    controller, _, provider, _ = _controller()

    with pytest.raises(ValidationError):
        asyncio.run(controller.request_mission(pickup_id, delivery_id))

    assert controller.state is MissionState.IDLE
    assert controller.mission is None
    assert provider.calls == []


def test_full_delivery_records_success() -> None:
    async def scenario():
        controller, renderer, provider, history = _controller()
        pickup, delivery = LOCATIONS["dorm_a"], LOCATIONS["library"]

        mission = await controller.request_mission("dorm_a", "library")
        assert mission.transport_code == CODE
        assert controller.route.path[0] == VEHICLE_START
        assert controller.route.path[-1] == pickup.coordinate

        _arrive(renderer)
        assert controller.state is MissionState.WAITING_FOR_LOAD
        assert renderer.get_position() == pickup.coordinate

        await controller.confirm_load()
        assert controller.state is MissionState.EN_ROUTE_TO_DELIVERY
        assert mission.cargo_loaded
        assert provider.calls[-1] == (pickup.coordinate, delivery.coordinate)

        _arrive(renderer)
        assert controller.state is MissionState.ARRIVED

        record = controller.confirm_delivery()
        assert record.status == "success"
        assert (record.pickup, record.delivery) == (pickup.name, delivery.name)
        assert history.records() == [record]
        assert controller.state is MissionState.IDLE
        assert controller.mission is None
        assert not renderer.is_moving

    asyncio.run(scenario())


def test_cancel_while_waiting_for_load_records_cancellation() -> None:
    async def scenario():
        controller, renderer, _, history = _controller()
        await controller.request_mission("dorm_d", "traffic_experiment")
        _arrive(renderer)

        record = controller.cancel_mission()

        assert record.status == "cancelled"
        assert history.records() == [record]
        assert controller.state is MissionState.IDLE
        assert controller.mission is None
        assert not renderer.is_moving

    asyncio.run(scenario())


def test_cancel_after_loading_is_forbidden() -> None:
    async def scenario():
        controller, renderer, _, history = _controller()
        await controller.request_mission("dorm_a", "library")
        _arrive(renderer)
        await controller.confirm_load()

        with pytest.raises(InvalidTransition):
            controller.cancel_mission()

        assert controller.state is MissionState.EN_ROUTE_TO_DELIVERY
        assert controller.mission is not None
        assert history.records() == []

    asyncio.run(scenario())


def test_new_request_rejected_while_mission_in_progress() -> None:
    async def scenario():
        controller, _, _, _ = _controller()
        first = await controller.request_mission("dorm_a", "library")

        with pytest.raises(InvalidTransition):
            await controller.request_mission("dorm_b", "library")

        assert controller.mission is first

    asyncio.run(scenario())


@pytest.mark.parametrize(
    "operation",
    ["confirm_load", "confirm_delivery", "cancel_mission", "retry_mission", "emergency_stop", "emergency_resume"],
)
def test_operations_rejected_when_idle(operation) -> None:
    async def scenario():
        controller, _, _, _ = _controller()
        result = getattr(controller, operation)()
        if asyncio.iscoroutine(result):
            await result

    with pytest.raises(InvalidTransition):
        asyncio.run(scenario())


def test_waypoint_outside_geofence_leaves_draft_unchanged() -> None:
    controller, _, _, _ = _controller()
    controller.add_waypoint(INSIDE_POINT)

    with pytest.raises(GeofenceViolation):
        controller.add_waypoint(OUTSIDE_POINT)

    assert controller.waypoints == (INSIDE_POINT,)

    with pytest.raises(ValidationError):
        controller.add_waypoint("not a point")
    assert controller.waypoints == (INSIDE_POINT,)

    controller.clear_waypoints()
    assert controller.waypoints == ()


def test_custom_request_with_outside_waypoint_is_rejected() -> None:
    controller, _, provider, _ = _controller()

    with pytest.raises(GeofenceViolation):
        asyncio.run(controller.request_mission("dorm_a", "library", MODE_CUSTOM, [OUTSIDE_POINT]))

    assert controller.state is MissionState.IDLE
    assert provider.calls == []


def test_custom_mode_routes_delivery_through_drawn_waypoints() -> None:
    async def scenario():
        controller, renderer, provider, _ = _controller()
        controller.add_waypoint([INSIDE_POINT.lng, INSIDE_POINT.lat])

        mission = await controller.request_mission("dorm_a", "library", MODE_CUSTOM)
        assert mission.waypoints == (INSIDE_POINT,)
        # the pickup leg ignores waypoints
        assert controller.route.leg_count == 1

        _arrive(renderer)
        await controller.confirm_load()

        assert controller.route.leg_count == 2
        assert provider.calls[-2:] == [
            (LOCATIONS["dorm_a"].coordinate, INSIDE_POINT),
            (INSIDE_POINT, LOCATIONS["library"].coordinate),
        ]

        _arrive(renderer)
        controller.confirm_delivery()
        assert controller.waypoints == ()

    asyncio.run(scenario())


def test_auto_mode_ignores_supplied_waypoints() -> None:
    controller, _, _, _ = _controller()
    mission = asyncio.run(controller.request_mission("dorm_a", "library", "auto", [INSIDE_POINT]))
    assert mission.waypoints == ()


def test_unknown_mode_is_rejected() -> None:
    controller, _, _, _ = _controller()
    with pytest.raises(ValidationError):
        asyncio.run(controller.request_mission("dorm_a", "library", "scenic"))


def test_emergency_stop_is_idempotent_and_resume_does_not_replan() -> None:
    async def scenario():
        controller, renderer, provider, _ = _controller()
        mission = await controller.request_mission("dorm_a", "library")
        renderer.advance(3.0)
        held_at = renderer.get_position()

        controller.emergency_stop()
        controller.emergency_stop()

        assert controller.state is MissionState.EMERGENCY_STOPPED
        assert controller.prior_state is MissionState.EN_ROUTE_TO_PICKUP
        assert renderer.pause_calls == 1

        renderer.advance(60.0)
        assert renderer.get_position() == held_at

        controller.emergency_resume()
        assert controller.state is MissionState.EN_ROUTE_TO_PICKUP
        assert controller.prior_state is None
        assert controller.mission is mission
        assert mission.transport_code == CODE
        assert len(provider.calls) == 1

        _arrive(renderer)
        assert controller.state is MissionState.WAITING_FOR_LOAD

    asyncio.run(scenario())


def test_stale_arrival_from_superseded_motion_is_ignored() -> None:
    async def scenario():
        controller, renderer, _, history = _controller()
        await controller.request_mission("dorm_a", "library")
        stale_callback = renderer.registered[-1]

        controller.cancel_mission()
        await controller.request_mission("dorm_b", "library")

        stale_callback()

        assert controller.state is MissionState.EN_ROUTE_TO_PICKUP
        assert [record.status for record in history.records()] == ["cancelled"]

    asyncio.run(scenario())


def test_planning_result_during_emergency_stop_is_applied_on_resume() -> None:
    async def scenario():
        provider = FakeProvider()
        provider.gate = asyncio.Event()
        controller, renderer, _, _ = _controller(provider)

        task = asyncio.create_task(controller.request_mission("dorm_a", "library"))
        await _settle()
        assert controller.state is MissionState.CALCULATING

        controller.emergency_stop()
        provider.gate.set()
        await task

        assert controller.state is MissionState.EMERGENCY_STOPPED
        assert not renderer.is_moving

        controller.emergency_resume()
        assert controller.state is MissionState.EN_ROUTE_TO_PICKUP
        assert renderer.is_moving

    asyncio.run(scenario())


def test_failed_planning_during_emergency_stop_surfaces_on_resume() -> None:
    async def scenario():
        provider = FakeProvider()
        provider.gate = asyncio.Event()
        provider.failing = True
        controller, _, _, _ = _controller(provider)

        task = asyncio.create_task(controller.request_mission("dorm_a", "library"))
        await _settle()
        controller.emergency_stop()
        provider.gate.set()
        await task

        with pytest.raises(PlanningFailed):
            controller.emergency_resume()
        assert controller.state is MissionState.ERROR

    asyncio.run(scenario())


def test_cancel_during_planning_discards_late_route() -> None:
    async def scenario():
        provider = FakeProvider()
        provider.gate = asyncio.Event()
        controller, renderer, _, history = _controller(provider)

        task = asyncio.create_task(controller.request_mission("dorm_a", "library"))
        await _settle()
        controller.cancel_mission()
        provider.gate.set()
        await task

        assert controller.state is MissionState.IDLE
        assert controller.route is None
        assert not renderer.is_moving
        assert history.records()[0].status == "cancelled"

    asyncio.run(scenario())


def test_planning_failure_enters_error_and_retry_keeps_code() -> None:
    async def scenario():
        provider = FakeProvider()
        provider.failing = True
        controller, _, _, _ = _controller(provider)

        with pytest.raises(PlanningFailed) as excinfo:
            await controller.request_mission("dorm_a", "library")

        assert excinfo.value.leg_index == 0
        assert controller.state is MissionState.ERROR
        mission = controller.mission
        assert mission.failure

        provider.failing = False
        await controller.retry_mission()

        assert controller.state is MissionState.EN_ROUTE_TO_PICKUP
        assert controller.mission is mission
        assert mission.transport_code == CODE
        assert mission.failure is None

    asyncio.run(scenario())


def test_delivery_planning_failure_retries_delivery_leg() -> None:
    async def scenario():
        controller, renderer, provider, _ = _controller()
        await controller.request_mission("dorm_a", "library")
        _arrive(renderer)

        provider.failing = True
        with pytest.raises(PlanningFailed):
            await controller.confirm_load()
        assert controller.state is MissionState.ERROR

        with pytest.raises(InvalidTransition):
            controller.cancel_mission()

        provider.failing = False
        await controller.retry_mission()
        assert controller.state is MissionState.EN_ROUTE_TO_DELIVERY
        assert provider.calls[-1] == (LOCATIONS["dorm_a"].coordinate, LOCATIONS["library"].coordinate)

    asyncio.run(scenario())


def test_request_from_error_replaces_failed_mission() -> None:
    async def scenario():
        provider = FakeProvider()
        provider.failing = True
        controller, _, _, _ = _controller(provider)
        with pytest.raises(PlanningFailed):
            await controller.request_mission("dorm_a", "library")
        failed = controller.mission

        provider.failing = False
        replacement = await controller.request_mission("dorm_b", "material_chem")

        assert replacement is not failed
        assert controller.mission is replacement
        assert controller.state is MissionState.EN_ROUTE_TO_PICKUP

    asyncio.run(scenario())


def test_hazardous_weather_blocks_new_missions_only() -> None:
    async def scenario():
        controller, renderer, _, _ = _controller()
        await controller.request_mission("dorm_a", "library")

        assert controller.report_weather("Light rain") is True
        _arrive(renderer)
        assert controller.state is MissionState.WAITING_FOR_LOAD
        controller.cancel_mission()

        with pytest.raises(ServiceDegraded):
            await controller.request_mission("dorm_a", "library")
        assert controller.snapshot().service_degraded

        assert controller.report_weather("Sunny") is False
        await controller.request_mission("dorm_a", "library")
        assert controller.state is MissionState.EN_ROUTE_TO_PICKUP

    asyncio.run(scenario())


def test_return_to_depot_drives_idle_vehicle_home() -> None:
    async def scenario():
        controller, renderer, _, history = _controller()
        depot = LOCATIONS["dorm_c"]

        assert await controller.return_to_depot() is True
        assert controller.state is MissionState.RETURNING

        _arrive(renderer)
        assert controller.state is MissionState.IDLE
        assert renderer.get_position() == depot.coordinate
        assert history.records() == []

        assert await controller.return_to_depot() is False
        assert controller.state is MissionState.IDLE

    asyncio.run(scenario())


def test_return_planning_failure_places_vehicle_at_depot() -> None:
    async def scenario():
        provider = FakeProvider()
        provider.failing = True
        controller, renderer, _, _ = _controller(provider)

        await controller.return_to_depot()

        assert controller.state is MissionState.IDLE
        assert renderer.get_position() == LOCATIONS["dorm_c"].coordinate

    asyncio.run(scenario())


def test_return_to_depot_rejected_during_mission() -> None:
    async def scenario():
        controller, _, _, _ = _controller()
        await controller.request_mission("dorm_a", "library")
        with pytest.raises(InvalidTransition):
            await controller.return_to_depot()

    asyncio.run(scenario())


def test_unconfirmed_load_expires() -> None:
    async def scenario():
        controller, renderer, _, history = _controller(timeout=0.01)
        await controller.request_mission("dorm_a", "library")
        _arrive(renderer)
        assert controller.state is MissionState.WAITING_FOR_LOAD

        await asyncio.sleep(0.05)

        assert controller.state is MissionState.IDLE
        assert history.records()[0].status == "expired"

    asyncio.run(scenario())


def test_confirmed_load_is_not_expired() -> None:
    async def scenario():
        controller, renderer, _, history = _controller(timeout=0.01)
        await controller.request_mission("dorm_a", "library")
        _arrive(renderer)
        await controller.confirm_load()

        await asyncio.sleep(0.05)

        assert controller.state is MissionState.EN_ROUTE_TO_DELIVERY
        assert history.records() == []

    asyncio.run(scenario())


def test_snapshot_describes_vehicle_and_mission() -> None:
    async def scenario():
        controller, _, _, _ = _controller()
        idle = controller.snapshot()
        assert idle.state is MissionState.IDLE
        assert idle.mission is None
        assert idle.vehicle_position == VEHICLE_START

        await controller.request_mission("dorm_a", "library")
        snapshot = controller.snapshot()
        assert snapshot.state is MissionState.EN_ROUTE_TO_PICKUP
        assert snapshot.mission.state is MissionState.EN_ROUTE_TO_PICKUP
        assert snapshot.vehicle_moving
        assert snapshot.route.total_distance_m > 0

    asyncio.run(scenario())


def test_manual_suspension_reports_reason() -> None:
    controller, _, _, _ = _controller()
    controller.set_service_degraded(True, "scheduled maintenance")

    with pytest.raises(ServiceDegraded) as excinfo:
        asyncio.run(controller.request_mission("dorm_a", "library"))
    assert excinfo.value.reason == "scheduled maintenance"

    # fair weather does not lift a manual suspension
    controller.report_weather("Sunny")
    assert controller.snapshot().degraded_reason == "scheduled maintenance"

    controller.set_service_degraded(False)
    asyncio.run(controller.request_mission("dorm_a", "library"))
    assert controller.state is MissionState.EN_ROUTE_TO_PICKUP


def test_malformed_delivery_route_enters_error_and_can_be_retried() -> None:
    async def scenario():
        controller, renderer, provider, _ = _controller()
        await controller.request_mission("dorm_a", "library")
        _arrive(renderer)

        provider.malformed = True
        with pytest.raises(PlanningFailed) as excinfo:
            await controller.confirm_load()

        assert excinfo.value.leg_index == 0
        assert controller.state is MissionState.ERROR
        assert controller.mission.cargo_loaded
        assert controller.mission.failure

        provider.malformed = False
        await controller.retry_mission()
        assert controller.state is MissionState.EN_ROUTE_TO_DELIVERY

    asyncio.run(scenario())


def test_stop_resume_and_retry_keep_code_and_route() -> None:
    async def scenario():
        codes = SequentialCodes()
        provider = FakeProvider()
        controller, renderer, _, _ = _controller(provider, codes=codes)

        mission = await controller.request_mission("dorm_a", "library")
        assert mission.transport_code == "CODE1"
        route_before = controller.route

        controller.emergency_stop()
        controller.emergency_resume()

        assert controller.route is route_before
        assert mission.transport_code == "CODE1"

        _arrive(renderer)
        provider.failing = True
        with pytest.raises(PlanningFailed):
            await controller.confirm_load()
        provider.failing = False
        await controller.retry_mission()

        assert controller.mission is mission
        assert mission.transport_code == "CODE1"
        assert codes.calls == 1

    asyncio.run(scenario())


def test_each_new_mission_gets_its_own_code() -> None:
    async def scenario():
        codes = SequentialCodes()
        controller, _, _, _ = _controller(codes=codes)

        first = await controller.request_mission("dorm_a", "library")
        controller.cancel_mission()
        second = await controller.request_mission("dorm_b", "library")

        assert (first.transport_code, second.transport_code) == ("CODE1", "CODE2")
        assert codes.calls == 2

    asyncio.run(scenario())


def test_snapshot_reports_latest_weather() -> None:
    controller, _, _, _ = _controller()
    assert controller.snapshot().weather is None

    controller.report_weather("Overcast")
    assert controller.snapshot().weather == "Overcast"


def test_location_ids_are_matched_after_trimming() -> None:
    controller, _, _, _ = _controller()
    mission = asyncio.run(controller.request_mission(" dorm_a ", "library\n"))
    assert (mission.pickup.id, mission.delivery.id) == ("dorm_a", "library")
