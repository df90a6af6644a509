"""Close periods that have departed and tours with nothing left to sell."""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Optional

from sqlalchemy import and_, exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.observability import metrics_collector
from ..models.period import Period
from ..models.tour import Tour
from .settings_service import AUTO_CLOSE, get_setting

logger = logging.getLogger(__name__)

DEFAULT_AUTO_CLOSE = {
    "enabled": False,
    "periods": True,
    "tours": True,
    "threshold_days": 0,
}
CLOSED_PERIOD_STATUSES = ("closed", "cancelled")
CLOSED_TOUR_STATUSES = ("closed", "disabled", "inactive")


class AutoCloseService:
    """Global auto-close driven by the ``auto_close`` setting."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_settings(self) -> dict[str, Any]:
        return await get_setting(self.db, AUTO_CLOSE, DEFAULT_AUTO_CLOSE)

    async def close_expired_periods(self, threshold_date: date) -> int:
        """Close every period that started before ``threshold_date`` and is still open."""
        result = await self.db.execute(
            update(Period)
            .where(
                Period.start_date < threshold_date,
                Period.status.not_in(CLOSED_PERIOD_STATUSES),
            )
            .values(status="closed", updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        count = result.rowcount or 0
        if count:
            logger.info(
                "Closed expired periods",
                extra={"count": count, "threshold_date": threshold_date.isoformat()}
            )
        return count

    async def close_expired_tours(self, today: date) -> int:
        """Close tours that have periods but none upcoming and still open."""
        upcoming = exists().where(
            and_(
                Period.tour_id == Tour.id,
                Period.start_date >= today,
                Period.status.not_in(CLOSED_PERIOD_STATUSES),
            )
        )
        any_period = exists().where(Period.tour_id == Tour.id)

        tours = (
            await self.db.execute(
                select(Tour).where(
                    Tour.status.not_in(CLOSED_TOUR_STATUSES),
                    any_period,
                    ~upcoming,
                )
            )
        ).scalars().all()

        for tour in tours:
            tour.status = "closed"
            logger.debug(
                "Closed tour with no upcoming periods",
                extra={"tour_id": tour.id, "tour_code": tour.tour_code}
            )

        if tours:
            logger.info("Closed tours with all periods expired", extra={"count": len(tours)})
        return len(tours)

    async def run(self, today: Optional[date] = None, force: bool = False) -> dict[str, Any]:
        """
        Apply the configured auto-close and commit.

        Args:
            today: Reference date, defaults to the current date
            force: Run even when auto-close is disabled in settings

        Returns:
            ``{"enabled", "periods_closed", "tours_closed", "threshold_date"}``
        """
        today = today or date.today()
        config = await self.get_settings()
        stats: dict[str, Any] = {
            "enabled": bool(config.get("enabled")),
            "periods_closed": 0,
            "tours_closed": 0,
            "threshold_date": None,
        }

        if not (stats["enabled"] or force):
            logger.info("Auto-close is disabled, skipping")
            return stats

        threshold_days = max(0, int(config.get("threshold_days") or 0))
        threshold_date = today - timedelta(days=threshold_days)
        stats["threshold_date"] = threshold_date.isoformat()

        if config.get("periods", True):
            stats["periods_closed"] = await self.close_expired_periods(threshold_date)
        if config.get("tours", True):
            stats["tours_closed"] = await self.close_expired_tours(today)

        await self.db.commit()
        metrics_collector.record_auto_closed(stats["periods_closed"], stats["tours_closed"])
        logger.info("Auto-close completed", extra=stats)
        return stats
