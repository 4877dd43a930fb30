from __future__ import annotations

from fastapi import APIRouter, Depends

from posengine.app.api.deps import get_current_operator, get_services
from posengine.app.schemas.checkout import SyncResult, SyncStatusOut
from posengine.app.services.runtime import PosServices

router = APIRouter()


@router.get("/status", response_model=SyncStatusOut)
async def sync_status(
    services: PosServices = Depends(get_services),
    operator_id: str = Depends(get_current_operator),
) -> SyncStatusOut:
    return SyncStatusOut(
        online=services.monitor.is_online,
        syncing=services.daemon.is_syncing,
        unsynced_count=services.queue.count_unsynced(),
    )


@router.post("/drain", response_model=SyncResult)
async def drain(
    services: PosServices = Depends(get_services),
    operator_id: str = Depends(get_current_operator),
) -> SyncResult:
    """Push queued sales now instead of waiting for the next interval."""
    return await services.daemon.drain()
