"""Tour service for business logic operations."""

import logging
from datetime import date
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.exceptions import ConflictError, NotFoundError
from ..models.period import Period
from ..models.tour import Tour
from ..schemas.tour import CreateTourRequest, TourFilters, UpdateTourRequest
from .aggregates import recalculate_tour_aggregates
from .sync.tour_sync_service import generate_tour_code

logger = logging.getLogger(__name__)


class TourService:
    """Service for tour-related operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_tours(self, filters: TourFilters) -> tuple[list[Tour], int]:
        """
        Filter and page tours, most recently updated first.

        Returns:
            The page of tours and the total number of matches
        """
        stmt = select(Tour)
        if filters.search:
            pattern = f"%{filters.search}%"
            stmt = stmt.where(
                or_(
                    Tour.title.ilike(pattern),
                    Tour.tour_code.ilike(pattern),
                    Tour.wholesaler_tour_code.ilike(pattern),
                )
            )
        if filters.status:
            stmt = stmt.where(Tour.status == filters.status)
        if filters.wholesaler_id:
            stmt = stmt.where(Tour.wholesaler_id == filters.wholesaler_id)
        if filters.country_id:
            stmt = stmt.where(Tour.primary_country_id == filters.country_id)
        if filters.data_source:
            stmt = stmt.where(Tour.data_source == filters.data_source)

        total = (
            await self.db.execute(select(func.count()).select_from(stmt.subquery()))
        ).scalar() or 0

        stmt = (
            stmt.order_by(Tour.updated_at.desc(), Tour.id.desc())
            .offset((filters.page - 1) * filters.per_page)
            .limit(filters.per_page)
        )
        tours = list((await self.db.execute(stmt)).scalars().all())
        return tours, total

    async def get_tour_by_id(self, tour_id: int, with_details: bool = False) -> Optional[Tour]:
        """
        Get tour by ID.

        Args:
            tour_id: Tour ID to search for
            with_details: Also load periods with offers and the itinerary

        Returns:
            Tour if found, None otherwise
        """
        stmt = select(Tour).where(Tour.id == tour_id)
        if with_details:
            stmt = stmt.options(
                selectinload(Tour.periods).selectinload(Period.offer),
                selectinload(Tour.itineraries),
            ).execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_tour_by_id_or_raise(self, tour_id: int, with_details: bool = False) -> Tour:
        """
        Get tour by ID or raise NotFoundError.

        Raises:
            NotFoundError: If tour not found
        """
        tour = await self.get_tour_by_id(tour_id, with_details)
        if not tour:
            logger.warning(
                "Tour not found",
                extra={"tour_id": tour_id}
            )
            raise NotFoundError(
                resource_type="tour",
                resource_id=str(tour_id)
            )
        return tour

    async def get_tour_by_code(self, tour_code: str) -> Optional[Tour]:
        result = await self.db.execute(select(Tour).where(Tour.tour_code == tour_code))
        return result.scalar_one_or_none()

    async def create_tour(self, request: CreateTourRequest) -> Tour:
        """
        Create a manually maintained tour.

        Raises:
            ConflictError: If the tour code is already taken
        """
        if request.tour_code:
            existing_tour = await self.get_tour_by_code(request.tour_code)
            if existing_tour:
                logger.warning(
                    "Tour creation failed - tour code already exists",
                    extra={"tour_code": request.tour_code, "existing_tour_id": existing_tour.id}
                )
                raise ConflictError(
                    detail=f"Tour with code '{request.tour_code}' already exists",
                    conflicting_resource={
                        "id": existing_tour.id,
                        "tour_code": existing_tour.tour_code,
                        "title": existing_tour.title,
                    }
                )

        values = request.model_dump(exclude_none=True)
        values["tour_code"] = request.tour_code or await generate_tour_code(self.db)
        if values.get("duration_days") and "duration_nights" not in values:
            values["duration_nights"] = max(0, values["duration_days"] - 1)

        tour = Tour(data_source="manual", **values)
        try:
            self.db.add(tour)
            await self.db.commit()
            await self.db.refresh(tour)
        except IntegrityError as e:
            await self.db.rollback()
            logger.error(
                "Tour creation failed due to integrity constraint",
                extra={"tour_code": values["tour_code"], "error": str(e)}
            )
            raise ConflictError(detail="Tour creation failed due to constraint violation")

        logger.info(
            "Tour created successfully",
            extra={"tour_id": tour.id, "tour_code": tour.tour_code, "title": tour.title}
        )
        return tour

    async def update_tour(self, tour_id: int, request: UpdateTourRequest) -> Tour:
        tour = await self.get_tour_by_id_or_raise(tour_id)
        changes = request.model_dump(exclude_unset=True)
        for field, value in changes.items():
            setattr(tour, field, value)

        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.error("Tour update failed", extra={"tour_id": tour_id, "error": str(e)})
            raise ConflictError(detail="Tour update failed due to constraint violation")

        await self.db.refresh(tour)
        logger.info("Tour updated", extra={"tour_id": tour_id, "fields": sorted(changes)})
        return tour

    async def delete_tour(self, tour_id: int) -> None:
        """Delete the tour with its periods, offers and itinerary."""
        tour = await self.get_tour_by_id_or_raise(tour_id, with_details=True)
        await self.db.delete(tour)
        await self.db.commit()
        logger.info("Tour deleted", extra={"tour_id": tour_id, "tour_code": tour.tour_code})

    async def recalculate(self, tour_id: int, today: Optional[date] = None) -> Tour:
        tour = await self.get_tour_by_id_or_raise(tour_id)
        await recalculate_tour_aggregates(self.db, tour, today)
        await self.db.commit()
        await self.db.refresh(tour)
        return tour

    async def set_sync_lock(self, tour_id: int, locked: bool) -> Tour:
        """Lock or unlock a tour against sync overwrites."""
        tour = await self.get_tour_by_id_or_raise(tour_id)
        tour.sync_locked = locked
        await self.db.commit()
        await self.db.refresh(tour)
        logger.info("Tour sync lock changed", extra={"tour_id": tour_id, "sync_locked": locked})
        return tour
