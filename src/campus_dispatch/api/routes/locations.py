"""Campus reference data endpoints."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends

from ...schemas.missions import CoordinateModel, LocationModel
from ...services.runtime import DispatchRuntime
from ..dependencies import get_runtime

router = APIRouter(prefix="/locations", tags=["locations"])


@router.get("", response_model=List[LocationModel])
def list_locations(
    include_disabled: bool = True,
    runtime: DispatchRuntime = Depends(get_runtime),
) -> List[LocationModel]:
    return [
        LocationModel.from_domain(location)
        for location in runtime.locations
        if include_disabled or location.enabled
    ]


@router.get("/geofence", response_model=List[CoordinateModel])
def get_geofence(runtime: DispatchRuntime = Depends(get_runtime)) -> List[CoordinateModel]:
    return [CoordinateModel.from_domain(point) for point in runtime.geofence.ring]
