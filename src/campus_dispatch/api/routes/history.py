"""Mission history endpoints."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status

from ...schemas.missions import HistoryRecordModel
from ...services.runtime import DispatchRuntime
from ..dependencies import get_runtime

router = APIRouter(prefix="/history", tags=["history"])


@router.get("", response_model=List[HistoryRecordModel])
def list_history(runtime: DispatchRuntime = Depends(get_runtime)) -> List[HistoryRecordModel]:
    return [HistoryRecordModel.from_domain(record) for record in runtime.history.records()]


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
def clear_history(runtime: DispatchRuntime = Depends(get_runtime)) -> None:
    runtime.history.clear()
