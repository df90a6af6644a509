"""Country listing and popularity ranking."""

import logging
from datetime import date
from typing import Optional

from sqlalchemy import case, exists, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.location import Country
from ..models.period import Period
from ..models.tour import Tour

logger = logging.getLogger(__name__)

POPULAR_COUNTRY_LIMIT = 6


class CountryService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_countries(
        self,
        search: Optional[str] = None,
        region: Optional[str] = None,
        is_active: Optional[bool] = None,
        page: int = 1,
        per_page: int = 50,
    ) -> tuple[list[Country], int]:
        """Active countries first, then by English name."""
        stmt = select(Country)
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(
                or_(
                    Country.iso2.ilike(pattern),
                    Country.iso3.ilike(pattern),
                    Country.name_en.ilike(pattern),
                    Country.name_th.ilike(pattern),
                )
            )
        if region:
            stmt = stmt.where(Country.region == region)
        if is_active is not None:
            stmt = stmt.where(Country.is_active.is_(is_active))

        total = (
            await self.db.execute(select(func.count()).select_from(stmt.subquery()))
        ).scalar() or 0

        stmt = (
            stmt.order_by(case((Country.is_active.is_(True), 0), else_=1), Country.name_en)
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        return list((await self.db.execute(stmt)).scalars().all()), total

    async def popular_countries(
        self,
        today: Optional[date] = None,
        limit: int = POPULAR_COUNTRY_LIMIT,
    ) -> list[tuple[Country, int]]:
        """
        Active countries ranked by their sellable tours.

        A tour counts when it is active, has seats left and has at least one
        open period departing today or later. Countries without such tours are
        left out.
        """
        today = today or date.today()
        upcoming = exists().where(
            Period.tour_id == Tour.id,
            Period.status == "open",
            Period.start_date >= today,
        )
        tour_count = func.count(Tour.id).label("tour_count")

        stmt = (
            select(Country, tour_count)
            .join(Tour, Tour.primary_country_id == Country.id)
            .where(
                Country.is_active.is_(True),
                Tour.status == "active",
                Tour.available_seats > 0,
                upcoming,
            )
            .group_by(Country.id)
            .having(func.count(Tour.id) > 0)
            .order_by(tour_count.desc(), Country.name_en)
            .limit(limit)
        )
        rows = (await self.db.execute(stmt)).all()
        logger.debug("Popular countries computed", extra={"count": len(rows)})
        return [(country, count) for country, count in rows]
