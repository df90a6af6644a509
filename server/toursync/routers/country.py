"""Country router."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.exceptions import InternalServerError, ProblemDetailsException
from ..schemas.common import ApiResponse, PaginationMeta
from ..schemas.country import Country, PopularCountry
from ..services.country_service import CountryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["countries"])


@router.get("/countries", response_model=ApiResponse[list[Country]])
async def list_countries(
    search: Optional[str] = Query(None, max_length=255),
    region: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=250),
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    try:
        countries, total = await CountryService(db).list_countries(search, region, is_active, page, per_page)
        response_data = ApiResponse[list[Country]](
            data=[Country.model_validate(country) for country in countries],
            meta=PaginationMeta.build(page, per_page, total),
        )
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error("Unexpected error listing countries", extra={"error": str(e)}, exc_info=True)
        raise InternalServerError()


@router.get("/popular-countries", response_model=ApiResponse[list[PopularCountry]])
async def popular_countries(db: AsyncSession = Depends(get_db)) -> JSONResponse:
    """
    Top countries by sellable tours.

    A tour counts when it is active, has seats and departs on an open period
    from today on.
    """
    try:
        ranked = await CountryService(db).popular_countries()
        response_data = ApiResponse[list[PopularCountry]](
            data=[
                PopularCountry(**Country.model_validate(country).model_dump(), tour_count=count)
                for country, count in ranked
            ]
        )
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error("Unexpected error ranking countries", extra={"error": str(e)}, exc_info=True)
        raise InternalServerError()
