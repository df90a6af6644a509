"""Period service: manual period and offer maintenance."""

import logging
from datetime import date
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.config import settings
from ..core.exceptions import NotFoundError, ValidationError
from ..models.period import Offer, Period
from ..models.tour import Tour
from ..schemas.period import CreatePeriodRequest, OfferData, UpdatePeriodRequest
from .aggregates import recalculate_tour_aggregates

logger = logging.getLogger(__name__)


class PeriodService:
    """Create, update and list periods; every write refreshes the tour aggregates."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_periods(
        self,
        tour_id: Optional[int] = None,
        status: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> tuple[list[Period], int]:
        stmt = select(Period)
        if tour_id:
            stmt = stmt.where(Period.tour_id == tour_id)
        if status:
            stmt = stmt.where(Period.status == status)
        if date_from:
            stmt = stmt.where(Period.start_date >= date_from)
        if date_to:
            stmt = stmt.where(Period.start_date <= date_to)

        total = (
            await self.db.execute(select(func.count()).select_from(stmt.subquery()))
        ).scalar() or 0

        stmt = (
            stmt.options(selectinload(Period.offer))
            .order_by(Period.start_date, Period.id)
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        periods = list((await self.db.execute(stmt)).scalars().all())
        return periods, total

    async def get_period_or_raise(self, period_id: int) -> Period:
        result = await self.db.execute(
            select(Period)
            .options(selectinload(Period.offer))
            .where(Period.id == period_id)
            .execution_options(populate_existing=True)
        )
        period = result.scalar_one_or_none()
        if period is None:
            raise NotFoundError(resource_type="period", resource_id=str(period_id))
        return period

    async def create_period(self, tour_id: int, request: CreatePeriodRequest) -> Period:
        """
        Add a period to a tour.

        Raises:
            NotFoundError: If the tour does not exist
        """
        tour = await self.db.get(Tour, tour_id)
        if tour is None:
            raise NotFoundError(resource_type="tour", resource_id=str(tour_id))

        values = request.model_dump(exclude={"offer", "available"})
        period = Period(tour_id=tour_id, **values)
        if request.available is None:
            period.update_availability()
        else:
            period.available = min(request.available, request.capacity)
        if not period.period_code:
            period.period_code = f"P{period.start_date.strftime('%y%m%d')}"

        self.db.add(period)
        if request.offer is not None:
            period.offer = self._build_offer(request.offer)

        await recalculate_tour_aggregates(self.db, tour)
        await self.db.commit()

        logger.info(
            "Period created",
            extra={"period_id": period.id, "tour_id": tour_id, "start_date": period.start_date.isoformat()}
        )
        return await self.get_period_or_raise(period.id)

    async def update_period(self, period_id: int, request: UpdatePeriodRequest) -> Period:
        period = await self.get_period_or_raise(period_id)
        changes = request.model_dump(exclude_unset=True, exclude={"offer"})
        for field, value in changes.items():
            setattr(period, field, value)

        if period.end_date < period.start_date:
            raise ValidationError(detail="end_date must not be before start_date")
        if "available" not in changes and ({"capacity", "booked"} & changes.keys()):
            period.update_availability()

        if request.offer is not None:
            offer_values = request.offer.model_dump(exclude_unset=True)
            if period.offer is None:
                period.offer = self._build_offer(request.offer)
            else:
                for field, value in offer_values.items():
                    setattr(period.offer, field, value)

        tour = await self.db.get(Tour, period.tour_id)
        await recalculate_tour_aggregates(self.db, tour)
        await self.db.commit()

        logger.info("Period updated", extra={"period_id": period_id, "fields": sorted(changes)})
        return await self.get_period_or_raise(period_id)

    async def delete_period(self, period_id: int) -> None:
        period = await self.get_period_or_raise(period_id)
        tour_id = period.tour_id
        await self.db.delete(period)
        await self.db.flush()

        tour = await self.db.get(Tour, tour_id)
        if tour is not None:
            await recalculate_tour_aggregates(self.db, tour)
        await self.db.commit()
        logger.info("Period deleted", extra={"period_id": period_id, "tour_id": tour_id})

    @staticmethod
    def _build_offer(data: OfferData) -> Offer:
        values = data.model_dump(exclude_none=True)
        values.setdefault("currency", settings.default_currency)
        return Offer(**values)
