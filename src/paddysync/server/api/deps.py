"""FastAPI dependencies for API routes."""

from __future__ import annotations

import logging
import secrets
from typing import NoReturn

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from paddysync.core.errors import (
    InvalidCoordinatesError,
    LocationNotFoundError,
    PaddySyncError,
)
from paddysync.server.scheduler import SyncScheduler
from paddysync.service import Service

logger = logging.getLogger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)

# Starlette renamed the 422 constant across releases
HTTP_422_UNPROCESSABLE = 422


def get_service(request: Request) -> Service:
    """Get the service container from app state."""
    service: Service = request.app.state.service
    return service


def get_scheduler(request: Request) -> SyncScheduler:
    """Get the sync scheduler from app state."""
    scheduler: SyncScheduler = request.app.state.scheduler
    return scheduler


def require_cron_secret(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> None:
    """Check the bearer token against the cron secret, if one is configured."""
    secret = get_service(request).config.cron_secret
    if not secret:
        return
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not secrets.compare_digest(credentials.credentials, secret):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid cron secret",
            headers={"WWW-Authenticate": "Bearer"},
        )


def raise_http_error(error: PaddySyncError) -> NoReturn:
    """Translate a domain error into an HTTPException."""
    if isinstance(error, InvalidCoordinatesError):
        code = HTTP_422_UNPROCESSABLE
    elif isinstance(error, LocationNotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif error.retryable:
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        logger.error("Request failed: %s", error)
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    raise HTTPException(status_code=code, detail=error.message) from error
