"""Queue router: job queue status and maintenance."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import AdminAuth
from ..core.exceptions import InternalServerError, ProblemDetailsException
from ..schemas.common import ApiResponse
from ..schemas.integration import FixStuckRequest, QueueStatus
from ..services.sync.job_queue import SyncJobQueue
from ..services.sync.stuck_syncs import StuckSyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/queue", tags=["queue"], dependencies=[AdminAuth])


@router.get("/status", response_model=ApiResponse[QueueStatus])
async def queue_status(db: AsyncSession = Depends(get_db)) -> JSONResponse:
    """Job counts per status, running and stuck syncs, and sync locks."""
    try:
        status = await SyncJobQueue(db).status()
        response_data = ApiResponse[QueueStatus](data=QueueStatus(**status))
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error("Unexpected error reading queue status", extra={"error": str(e)}, exc_info=True)
        raise InternalServerError()


@router.post("/fix-stuck", response_model=ApiResponse[dict])
async def fix_stuck(
    request: FixStuckRequest = FixStuckRequest(),
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """Time out stuck syncs and release the locks they held."""
    try:
        stats = await StuckSyncService(db).cancel_stuck(request.timeout_minutes, request.dry_run)
        response_data = ApiResponse[dict](
            data=stats,
            message=f"Cancelled {stats['cancelled']} stuck sync(s)" if not request.dry_run else "Dry run",
        )
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error("Unexpected error fixing stuck syncs", extra={"error": str(e)}, exc_info=True)
        raise InternalServerError()


@router.post("/clear-failed", response_model=ApiResponse[dict])
async def clear_failed(db: AsyncSession = Depends(get_db)) -> JSONResponse:
    try:
        cleared = await SyncJobQueue(db).clear_failed()
        response_data = ApiResponse[dict](data={"cleared": cleared}, message=f"Cleared {cleared} failed job(s)")
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error("Unexpected error clearing failed jobs", extra={"error": str(e)}, exc_info=True)
        raise InternalServerError()
