"""Batch sync API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from paddysync.core.errors import PaddySyncError
from paddysync.server.api.deps import (
    get_scheduler,
    get_service,
    raise_http_error,
    require_cron_secret,
)
from paddysync.server.scheduler import SyncScheduler
from paddysync.server.schemas import (
    StatsResponse,
    SyncResponse,
    stats_to_response,
    summary_to_response,
)
from paddysync.service import Service

router = APIRouter(prefix="/api/sync", tags=["sync"])


@router.post("", response_model=SyncResponse, dependencies=[Depends(require_cron_secret)])
async def trigger_sync(
    batch_size: int | None = Query(None, ge=1),
    scheduler: SyncScheduler = Depends(get_scheduler),
) -> SyncResponse:
    """Run one batch now."""
    try:
        summary = await scheduler.run_now(batch_size)
    except PaddySyncError as e:
        raise_http_error(e)
    if summary is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Batch sync already running",
        )
    return summary_to_response(summary)


@router.get("/stats", response_model=StatsResponse)
async def sync_stats(service: Service = Depends(get_service)) -> StatsResponse:
    """Queue activity and record counts by status."""
    try:
        stats = await service.stats()
    except PaddySyncError as e:
        raise_http_error(e)
    return stats_to_response(stats)
