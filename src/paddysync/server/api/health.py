"""Health check API route."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from fastapi import APIRouter, Depends, Response, status

from paddysync.core.errors import StoreUnavailableError
from paddysync.server.api.deps import get_service
from paddysync.server.schemas import HealthResponse
from paddysync.service import Service

router = APIRouter(tags=["health"])


async def _answers(ping: Callable[[], None]) -> bool:
    try:
        await asyncio.to_thread(ping)
    except StoreUnavailableError:
        return False
    return True


@router.get("/health", response_model=HealthResponse)
async def health_check(
    response: Response,
    service: Service = Depends(get_service),
) -> HealthResponse:
    """Check both databases and report which remote stores are configured."""
    database, geometry = await asyncio.gather(
        _answers(service.db.ping), _answers(service.spatial.ping)
    )
    object_storage = service.storage is not None
    document_store = service.documents is not None

    if not (database and geometry):
        state = "unhealthy"
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif object_storage and document_store:
        state = "healthy"
    else:
        state = "degraded"

    return HealthResponse(
        status=state,
        database=database,
        geometry_database=geometry,
        object_storage=object_storage,
        document_store=document_store,
    )
