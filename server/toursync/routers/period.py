"""Period router for departure dates and their offers."""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import AdminAuth
from ..core.exceptions import InternalServerError, ProblemDetailsException
from ..schemas.common import ApiResponse, PaginationMeta
from ..schemas.period import CreatePeriodRequest, Period, UpdatePeriodRequest
from ..services.period_service import PeriodService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["periods"])


@router.get("/periods", response_model=ApiResponse[list[Period]])
async def list_periods(
    tour_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """
    List periods ordered by departure date.

    Supports filtering by tour, status and a departure date range.
    """
    try:
        periods, total = await PeriodService(db).list_periods(
            tour_id=tour_id,
            status=status,
            date_from=date_from,
            date_to=date_to,
            page=page,
            per_page=per_page,
        )
        response_data = ApiResponse[list[Period]](
            data=[Period.model_validate(period) for period in periods],
            meta=PaginationMeta.build(page, per_page, total),
        )
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error listing periods",
            extra={
                "filters": {
                    "tour_id": tour_id,
                    "status": status,
                    "date_from": date_from.isoformat() if date_from else None,
                    "date_to": date_to.isoformat() if date_to else None,
                },
                "error": str(e)
            },
            exc_info=True
        )
        raise InternalServerError()


@router.post("/tours/{tour_id}/periods", response_model=ApiResponse[Period], status_code=201)
async def create_period(
    tour_id: int,
    request: CreatePeriodRequest,
    db: AsyncSession = Depends(get_db),
    user: dict = AdminAuth
) -> JSONResponse:
    try:
        period = await PeriodService(db).create_period(tour_id, request)
        response_data = ApiResponse[Period](data=Period.model_validate(period), message="Period created")

        logger.info(
            "Period created successfully",
            extra={
                "period_id": period.id,
                "tour_id": tour_id,
                "start_date": request.start_date.isoformat(),
                "capacity": request.capacity
            }
        )
        return JSONResponse(status_code=201, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in period creation",
            extra={"tour_id": tour_id, "start_date": request.start_date.isoformat(), "error": str(e)},
            exc_info=True
        )
        raise InternalServerError()


@router.put("/periods/{period_id}", response_model=ApiResponse[Period])
async def update_period(
    period_id: int,
    request: UpdatePeriodRequest,
    db: AsyncSession = Depends(get_db),
    user: dict = AdminAuth
) -> JSONResponse:
    try:
        period = await PeriodService(db).update_period(period_id, request)
        response_data = ApiResponse[Period](data=Period.model_validate(period), message="Period updated")
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in period update",
            extra={"period_id": period_id, "error": str(e)},
            exc_info=True
        )
        raise InternalServerError()


@router.delete("/periods/{period_id}", response_model=ApiResponse[dict])
async def delete_period(
    period_id: int,
    db: AsyncSession = Depends(get_db),
    user: dict = AdminAuth
) -> JSONResponse:
    try:
        await PeriodService(db).delete_period(period_id)
        response_data = ApiResponse[dict](data={"id": period_id}, message="Period deleted")
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in period deletion",
            extra={"period_id": period_id, "error": str(e)},
            exc_info=True
        )
        raise InternalServerError()
