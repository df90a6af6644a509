"""Recover syncs that stopped sending heartbeats."""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ...core.config import settings
from ...core.exceptions import ConflictError, NotFoundError
from ...core.locks import CacheLockService, sync_lock_key
from ...core.observability import metrics_collector
from ...models.sync import SyncJob, SyncLog

logger = logging.getLogger(__name__)


class StuckSyncService:
    """Find, time out and cancel running syncs."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_stuck(
        self,
        timeout_minutes: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> list[SyncLog]:
        """
        Running syncs whose last heartbeat (or start, without one) is older than the timeout.

        Without ``timeout_minutes`` each row's own ``heartbeat_timeout_minutes`` applies.
        """
        now = now or datetime.utcnow()
        stmt = select(SyncLog).where(SyncLog.status == "running").order_by(SyncLog.started_at)

        if timeout_minutes is not None:
            cutoff = now - timedelta(minutes=timeout_minutes)
            stmt = stmt.where(
                or_(
                    SyncLog.last_heartbeat_at < cutoff,
                    (SyncLog.last_heartbeat_at.is_(None)) & (SyncLog.started_at < cutoff),
                )
            )
            return list((await self.db.execute(stmt)).scalars().all())

        running = (await self.db.execute(stmt)).scalars().all()
        return [log for log in running if log.is_stuck(now)]

    async def cancel_stuck(
        self,
        timeout_minutes: Optional[int] = None,
        dry_run: bool = False,
        now: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """
        Mark stuck syncs as ``timeout`` and free what they held.

        Each affected wholesaler's lock is force-released and its running jobs
        are failed. Expired ``sync_lock`` rows are purged afterwards.

        Returns:
            ``{"found", "cancelled", "locks_released", "locks_purged", "jobs_failed", "syncs"}``
        """
        now = now or datetime.utcnow()
        timeout_minutes = timeout_minutes or settings.heartbeat_timeout_minutes
        stuck = await self.find_stuck(timeout_minutes, now)

        stats: dict[str, Any] = {
            "found": len(stuck),
            "cancelled": 0,
            "locks_released": 0,
            "locks_purged": 0,
            "jobs_failed": 0,
            "dry_run": dry_run,
            "syncs": [
                {"id": log.id, "sync_id": log.sync_id, "wholesaler_id": log.wholesaler_id}
                for log in stuck
            ],
        }
        if dry_run or not stuck:
            return stats

        reason = f"Heartbeat timeout after {timeout_minutes} minutes of inactivity"
        wholesaler_ids = set()
        for log in stuck:
            log.status = "timeout"
            log.cancelled_at = now
            log.cancel_reason = reason
            log.completed_at = now
            wholesaler_ids.add(log.wholesaler_id)
            stats["cancelled"] += 1
            logger.warning(
                "Stuck sync timed out",
                extra={
                    "sync_log_id": log.id,
                    "wholesaler_id": log.wholesaler_id,
                    "last_heartbeat_at": log.last_heartbeat_at.isoformat() if log.last_heartbeat_at else None,
                }
            )

        result = await self.db.execute(
            update(SyncJob)
            .where(SyncJob.wholesaler_id.in_(wholesaler_ids), SyncJob.status == "running")
            .values(status="failed", finished_at=now, last_error=reason)
            .execution_options(synchronize_session=False)
        )
        stats["jobs_failed"] = result.rowcount or 0
        await self.db.commit()

        locks = CacheLockService(self.db)
        for wholesaler_id in sorted(wholesaler_ids):
            if await locks.force_release(sync_lock_key(wholesaler_id)):
                stats["locks_released"] += 1
        stats["locks_purged"] = await locks.purge_expired("sync_lock", now)

        metrics_collector.record_stuck_cancelled(stats["cancelled"])
        logger.info(
            "Stuck syncs cancelled",
            extra={k: v for k, v in stats.items() if k != "syncs"}
        )
        return stats

    async def request_cancel(self, sync_log_id: int, reason: str = "User requested") -> SyncLog:
        """
        Ask a running sync to stop at its next checkpoint.

        Raises:
            NotFoundError: No such sync log
            ConflictError: The sync is not running
        """
        sync_log = await self.db.get(SyncLog, sync_log_id)
        if sync_log is None:
            raise NotFoundError("SyncLog", str(sync_log_id))
        if not sync_log.is_running:
            raise ConflictError(
                detail=f"Sync {sync_log.sync_id} is not running (status: {sync_log.status})"
            )

        sync_log.cancel_requested = True
        sync_log.cancel_reason = reason[:500]
        await self.db.commit()

        logger.info(
            "Sync cancellation requested",
            extra={"sync_log_id": sync_log.id, "wholesaler_id": sync_log.wholesaler_id}
        )
        return sync_log
