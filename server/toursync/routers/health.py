"""Health, readiness and service information endpoints."""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.database import get_db, ping_db
from ..schemas.health import HealthResponse, HealthStatus, InfoResponse
from ..workers.manager import worker_manager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

SERVICE_NAME = "toursync-api"
SERVICE_VERSION = "1.0.0"


@router.get("/health", response_model=HealthResponse)
async def health_check() -> JSONResponse:
    """
    Liveness check.

    Returns current service status and timestamp without touching dependencies.
    """
    response_data = HealthResponse(
        status=HealthStatus.HEALTHY,
        timestamp=datetime.utcnow(),
        version=SERVICE_VERSION
    )

    logger.debug("Health check requested", extra={"status": response_data.status})

    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.get("/ready", response_model=HealthResponse)
async def readiness_check(db: AsyncSession = Depends(get_db)) -> JSONResponse:
    """Readiness check; answers 503 while the database is unreachable."""
    try:
        await ping_db(db)
        status, database, status_code = HealthStatus.READY, "ok", 200
    except Exception as e:
        logger.warning("Readiness check failed", extra={"error": str(e)})
        status, database, status_code = HealthStatus.NOT_READY, "unavailable", 503

    response_data = HealthResponse(
        status=status,
        timestamp=datetime.utcnow(),
        version=SERVICE_VERSION,
        database=database
    )
    return JSONResponse(status_code=status_code, content=response_data.model_dump(mode="json"))


@router.get("/info", response_model=InfoResponse)
async def service_info() -> JSONResponse:
    """Service information including background worker status."""
    response_data = InfoResponse(
        name=SERVICE_NAME,
        version=SERVICE_VERSION,
        environment=settings.environment,
        workers=worker_manager.get_worker_status() if settings.workers_enabled else {},
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))
