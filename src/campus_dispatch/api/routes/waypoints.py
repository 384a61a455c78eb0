"""Waypoint draft endpoints used by custom routing mode."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status

from ...errors import DispatchError
from ...schemas.missions import CoordinateModel
from ...services.mission.controller import MissionController
from ..dependencies import get_controller, to_http_exception

router = APIRouter(prefix="/waypoints", tags=["waypoints"])


def _draft(controller: MissionController) -> List[CoordinateModel]:
    return [CoordinateModel.from_domain(point) for point in controller.waypoints]


@router.get("", response_model=List[CoordinateModel])
def list_waypoints(controller: MissionController = Depends(get_controller)) -> List[CoordinateModel]:
    return _draft(controller)


@router.post("", response_model=List[CoordinateModel], status_code=status.HTTP_201_CREATED)
def add_waypoint(
    point: CoordinateModel,
    controller: MissionController = Depends(get_controller),
) -> List[CoordinateModel]:
    """Append a point to the draft; points outside the geofence are rejected with 422."""
    try:
        controller.add_waypoint(point.to_domain())
    except DispatchError as exc:
        raise to_http_exception(exc) from exc
    return _draft(controller)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
def clear_waypoints(controller: MissionController = Depends(get_controller)) -> None:
    controller.clear_waypoints()
