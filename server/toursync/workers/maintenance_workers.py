"""Scheduling and maintenance workers."""

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select

from ..core.database import async_session_factory
from ..models.wholesaler import WholesalerApiConfig
from ..services.auto_close_service import AutoCloseService
from ..services.sync.job_queue import SyncJobQueue
from ..services.sync.stuck_syncs import StuckSyncService
from .base import BaseWorker

logger = logging.getLogger(__name__)


class ScheduledSyncWorker(BaseWorker):
    """Queues an incremental sync for each enabled wholesaler whose interval has elapsed."""

    def __init__(self, interval_seconds: int = 60):
        super().__init__(name="ScheduledSync", interval_seconds=interval_seconds)

    async def process(self) -> Optional[dict[str, Any]]:
        now = datetime.utcnow()
        dispatched = 0

        async with async_session_factory() as db:
            configs = (
                await db.execute(
                    select(WholesalerApiConfig).where(WholesalerApiConfig.sync_enabled.is_(True))
                )
            ).scalars().all()

            queue = SyncJobQueue(db)
            for config in configs:
                if not config.is_due(now):
                    continue
                if await queue.has_active_job(config.wholesaler_id):
                    logger.debug(
                        "Scheduled sync already queued",
                        extra={"wholesaler_id": config.wholesaler_id}
                    )
                    continue
                await queue.dispatch(config.wholesaler_id, sync_type="incremental", now=now)
                dispatched += 1

        return {"dispatched": dispatched} if dispatched else None


class StuckSyncWorker(BaseWorker):
    """Times out running syncs that stopped sending heartbeats."""

    def __init__(self, interval_seconds: int = 300):
        super().__init__(name="StuckSync", interval_seconds=interval_seconds)

    async def process(self) -> Optional[dict[str, Any]]:
        async with async_session_factory() as db:
            stats = await StuckSyncService(db).cancel_stuck()
        if not stats["found"]:
            return None
        return {key: stats[key] for key in ("found", "cancelled", "locks_released", "jobs_failed")}


class AutoCloseWorker(BaseWorker):
    """Closes departed periods and tours without upcoming periods."""

    def __init__(self, interval_seconds: int = 3600):
        super().__init__(name="AutoClose", interval_seconds=interval_seconds)

    async def process(self) -> Optional[dict[str, Any]]:
        async with async_session_factory() as db:
            stats = await AutoCloseService(db).run()
        if not stats["enabled"]:
            return None
        return {"periods_closed": stats["periods_closed"], "tours_closed": stats["tours_closed"]}
