"""Tour router for catalogue reads and admin maintenance."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import AdminAuth
from ..core.exceptions import InternalServerError, ProblemDetailsException
from ..schemas.common import ApiResponse, PaginationMeta
from ..schemas.tour import (
    CreateTourRequest,
    SyncLockRequest,
    TourDetail,
    TourFilters,
    TourSummary,
    UpdateTourRequest,
)
from ..services.tour_service import TourService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tours", tags=["tours"])


@router.get("", response_model=ApiResponse[list[TourSummary]])
async def list_tours(
    search: Optional[str] = Query(None, max_length=255),
    status: Optional[str] = Query(None),
    wholesaler_id: Optional[int] = Query(None),
    country_id: Optional[int] = Query(None),
    data_source: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """List tours with filters and page-based pagination."""
    filters = TourFilters(
        search=search,
        status=status,
        wholesaler_id=wholesaler_id,
        country_id=country_id,
        data_source=data_source,
        page=page,
        per_page=per_page,
    )

    try:
        tours, total = await TourService(db).list_tours(filters)
        response_data = ApiResponse[list[TourSummary]](
            data=[TourSummary.model_validate(tour) for tour in tours],
            meta=PaginationMeta.build(page, per_page, total),
        )

        logger.info(
            "Tour list served",
            extra={"total": total, "page": page, "per_page": per_page}
        )
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error listing tours",
            extra={"filters": filters.model_dump(), "error": str(e)},
            exc_info=True
        )
        raise InternalServerError()


@router.get("/{tour_id}", response_model=ApiResponse[TourDetail])
async def get_tour(
    tour_id: int,
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """Tour with periods, offers and itinerary."""
    try:
        tour = await TourService(db).get_tour_by_id_or_raise(tour_id, with_details=True)
        response_data = ApiResponse[TourDetail](data=TourDetail.model_validate(tour))
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error loading tour",
            extra={"tour_id": tour_id, "error": str(e)},
            exc_info=True
        )
        raise InternalServerError()


@router.post("", response_model=ApiResponse[TourSummary], status_code=201)
async def create_tour(
    request: CreateTourRequest,
    db: AsyncSession = Depends(get_db),
    user: dict = AdminAuth
) -> JSONResponse:
    """Create a manual tour; the tour code is generated when omitted."""
    try:
        tour = await TourService(db).create_tour(request)
        response_data = ApiResponse[TourSummary](
            data=TourSummary.model_validate(tour),
            message="Tour created",
        )
        return JSONResponse(status_code=201, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in tour creation",
            extra={"title": request.title, "user_id": user["user_id"], "error": str(e)},
            exc_info=True
        )
        raise InternalServerError()


@router.put("/{tour_id}", response_model=ApiResponse[TourSummary])
async def update_tour(
    tour_id: int,
    request: UpdateTourRequest,
    db: AsyncSession = Depends(get_db),
    user: dict = AdminAuth
) -> JSONResponse:
    try:
        tour = await TourService(db).update_tour(tour_id, request)
        response_data = ApiResponse[TourSummary](
            data=TourSummary.model_validate(tour),
            message="Tour updated",
        )
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in tour update",
            extra={"tour_id": tour_id, "user_id": user["user_id"], "error": str(e)},
            exc_info=True
        )
        raise InternalServerError()


@router.delete("/{tour_id}", response_model=ApiResponse[dict])
async def delete_tour(
    tour_id: int,
    db: AsyncSession = Depends(get_db),
    user: dict = AdminAuth
) -> JSONResponse:
    try:
        await TourService(db).delete_tour(tour_id)
        response_data = ApiResponse[dict](data={"id": tour_id}, message="Tour deleted")
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in tour deletion",
            extra={"tour_id": tour_id, "user_id": user["user_id"], "error": str(e)},
            exc_info=True
        )
        raise InternalServerError()


@router.post("/{tour_id}/recalculate", response_model=ApiResponse[TourSummary])
async def recalculate_tour(
    tour_id: int,
    db: AsyncSession = Depends(get_db),
    user: dict = AdminAuth
) -> JSONResponse:
    """Recompute price, departure and promotion aggregates from the tour's periods."""
    try:
        tour = await TourService(db).recalculate(tour_id)
        response_data = ApiResponse[TourSummary](
            data=TourSummary.model_validate(tour),
            message="Aggregates recalculated",
        )
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error recalculating tour",
            extra={"tour_id": tour_id, "error": str(e)},
            exc_info=True
        )
        raise InternalServerError()


@router.patch("/{tour_id}/sync-lock", response_model=ApiResponse[TourSummary])
async def set_sync_lock(
    tour_id: int,
    request: SyncLockRequest,
    db: AsyncSession = Depends(get_db),
    user: dict = AdminAuth
) -> JSONResponse:
    """Protect a tour from, or release it to, wholesaler sync."""
    try:
        tour = await TourService(db).set_sync_lock(tour_id, request.sync_locked)
        response_data = ApiResponse[TourSummary](
            data=TourSummary.model_validate(tour),
            message="Sync locked" if tour.sync_locked else "Sync unlocked",
        )
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error changing sync lock",
            extra={"tour_id": tour_id, "error": str(e)},
            exc_info=True
        )
        raise InternalServerError()
