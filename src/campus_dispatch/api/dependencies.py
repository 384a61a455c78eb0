"""Shared request dependencies and error translation for the HTTP layer."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from ..errors import (
    DispatchError,
    GeofenceViolation,
    InvalidTransition,
    PlanningFailed,
    ServiceDegraded,
    ValidationError,
)
from ..services.mission.controller import MissionController
from ..services.runtime import DispatchRuntime

_STATUS_CODES: dict[type[DispatchError], int] = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    GeofenceViolation: status.HTTP_422_UNPROCESSABLE_ENTITY,
    InvalidTransition: status.HTTP_409_CONFLICT,
    PlanningFailed: status.HTTP_502_BAD_GATEWAY,
    ServiceDegraded: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def get_runtime(request: Request) -> DispatchRuntime:
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Dispatch service is not initialised.",
        )
    return runtime


def get_controller(request: Request) -> MissionController:
    return get_runtime(request).controller


def to_http_exception(exc: DispatchError) -> HTTPException:
    code = next(
        (status_code for error_type, status_code in _STATUS_CODES.items() if isinstance(exc, error_type)),
        status.HTTP_400_BAD_REQUEST,
    )
    detail: dict = {"error": type(exc).__name__, "message": str(exc)}
    if isinstance(exc, PlanningFailed):
        detail["leg_index"] = exc.leg_index
    return HTTPException(status_code=code, detail=detail)
