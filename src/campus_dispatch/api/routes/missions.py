"""Mission endpoints."""

from __future__ import annotations

import logging
import inspect
from typing import Callable

from fastapi import APIRouter, Depends, HTTPException, status

from ...errors import DispatchError
from ...schemas.missions import HistoryRecordModel, MissionRequest, MissionStatusResponse, WeatherReport
from ...services.mission.controller import MissionController
from ..dependencies import get_controller, to_http_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/mission", tags=["mission"])


async def _run(controller: MissionController, action: Callable[[], object], label: str) -> MissionStatusResponse:
    try:
        result = action()
        if inspect.isawaitable(result):
            await result
    except DispatchError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:
        logger.exception(f"Error during {label}: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to {label}: {exc}",
        ) from exc
    return MissionStatusResponse.from_snapshot(controller.snapshot())


@router.get("", response_model=MissionStatusResponse)
def get_mission(controller: MissionController = Depends(get_controller)) -> MissionStatusResponse:
    return MissionStatusResponse.from_snapshot(controller.snapshot())


@router.post("", response_model=MissionStatusResponse, status_code=status.HTTP_201_CREATED)
async def request_mission(
    payload: MissionRequest,
    controller: MissionController = Depends(get_controller),
) -> MissionStatusResponse:
    waypoints = [point.to_domain() for point in payload.waypoints] if payload.waypoints is not None else None
    return await _run(
        controller,
        lambda: controller.request_mission(payload.pickup_id, payload.delivery_id, payload.mode, waypoints),
        "request mission",
    )


@router.post("/confirm-load", response_model=MissionStatusResponse)
async def confirm_load(controller: MissionController = Depends(get_controller)) -> MissionStatusResponse:
    return await _run(controller, controller.confirm_load, "confirm load")


@router.post("/confirm-delivery", response_model=HistoryRecordModel)
def confirm_delivery(controller: MissionController = Depends(get_controller)) -> HistoryRecordModel:
    try:
        record = controller.confirm_delivery()
    except DispatchError as exc:
        raise to_http_exception(exc) from exc
    return HistoryRecordModel.from_domain(record)


@router.post("/cancel", response_model=MissionStatusResponse)
async def cancel_mission(controller: MissionController = Depends(get_controller)) -> MissionStatusResponse:
    return await _run(controller, controller.cancel_mission, "cancel mission")


@router.post("/retry", response_model=MissionStatusResponse)
async def retry_mission(controller: MissionController = Depends(get_controller)) -> MissionStatusResponse:
    return await _run(controller, controller.retry_mission, "retry mission")


@router.post("/emergency-stop", response_model=MissionStatusResponse)
async def emergency_stop(controller: MissionController = Depends(get_controller)) -> MissionStatusResponse:
    return await _run(controller, controller.emergency_stop, "stop vehicle")


@router.post("/emergency-resume", response_model=MissionStatusResponse)
async def emergency_resume(controller: MissionController = Depends(get_controller)) -> MissionStatusResponse:
    return await _run(controller, controller.emergency_resume, "resume vehicle")


@router.post("/return-to-depot", response_model=MissionStatusResponse)
async def return_to_depot(controller: MissionController = Depends(get_controller)) -> MissionStatusResponse:
    return await _run(controller, controller.return_to_depot, "return to depot")


service_router = APIRouter(prefix="/service", tags=["service"])


@service_router.post("/weather", response_model=MissionStatusResponse)
def report_weather(
    payload: WeatherReport,
    controller: MissionController = Depends(get_controller),
) -> MissionStatusResponse:
    controller.report_weather(payload.condition)
    return MissionStatusResponse.from_snapshot(controller.snapshot())
