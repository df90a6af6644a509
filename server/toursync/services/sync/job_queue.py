"""Database-backed queue of sync jobs."""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ...core.config import settings
from ...core.locks import CacheLockService
from ...models.sync import SyncJob, SyncLog
from .stuck_syncs import StuckSyncService

logger = logging.getLogger(__name__)

JOB_STATUSES = ("pending", "running", "completed", "failed", "skipped")
ACTIVE_STATUSES = ("pending", "running")
RETRY_BASE_SECONDS = 30


def retry_delay(attempts: int) -> timedelta:
    """Backoff before the next attempt: 30s, 60s, 120s, ..."""
    return timedelta(seconds=RETRY_BASE_SECONDS * 2 ** max(0, attempts - 1))


class SyncJobQueue:
    """Dispatch, claim and settle ``SyncJob`` rows."""

    def __init__(self, db: AsyncSession, max_attempts: Optional[int] = None):
        self.db = db
        self.max_attempts = max_attempts or settings.sync_job_max_attempts

    async def dispatch(
        self,
        wholesaler_id: int,
        sync_type: str = "incremental",
        limit: Optional[int] = None,
        payload: Optional[Any] = None,
        delay_seconds: int = 0,
        now: Optional[datetime] = None,
    ) -> SyncJob:
        now = now or datetime.utcnow()
        job = SyncJob(
            wholesaler_id=wholesaler_id,
            sync_type=sync_type,
            limit=limit,
            payload=payload,
            status="pending",
            attempts=0,
            available_at=now + timedelta(seconds=delay_seconds),
        )
        self.db.add(job)
        await self.db.commit()
        await self.db.refresh(job)

        logger.info(
            "Sync job dispatched",
            extra={"job_id": job.id, "wholesaler_id": wholesaler_id, "sync_type": sync_type}
        )
        return job

    async def has_active_job(self, wholesaler_id: int) -> bool:
        """Whether the wholesaler already has a pending or running job."""
        result = await self.db.execute(
            select(func.count(SyncJob.id)).where(
                SyncJob.wholesaler_id == wholesaler_id,
                SyncJob.status.in_(ACTIVE_STATUSES),
            )
        )
        return (result.scalar() or 0) > 0

    async def claim_next(self, now: Optional[datetime] = None) -> Optional[SyncJob]:
        """Reserve the oldest available pending job, or return None when the queue is idle."""
        now = now or datetime.utcnow()
        result = await self.db.execute(
            select(SyncJob)
            .where(SyncJob.status == "pending", SyncJob.available_at <= now)
            .order_by(SyncJob.available_at, SyncJob.id)
            .limit(1)
            .with_for_update(skip_locked=True)
        )
        job = result.scalar_one_or_none()
        if job is None:
            return None

        job.status = "running"
        job.reserved_at = now
        job.attempts = (job.attempts or 0) + 1
        await self.db.commit()

        logger.info(
            "Sync job claimed",
            extra={"job_id": job.id, "wholesaler_id": job.wholesaler_id, "attempt": job.attempts}
        )
        return job

    async def complete(self, job: SyncJob, sync_log_id: Optional[int] = None) -> SyncJob:
        job.status = "completed"
        job.finished_at = datetime.utcnow()
        job.sync_log_id = sync_log_id
        job.last_error = None
        await self.db.commit()
        return job

    async def fail(self, job: SyncJob, error: str, now: Optional[datetime] = None) -> SyncJob:
        """Put the job back with a backoff, or mark it failed once attempts run out."""
        now = now or datetime.utcnow()
        job.last_error = error[:2000]
        job.reserved_at = None

        if (job.attempts or 0) < self.max_attempts:
            job.status = "pending"
            job.available_at = now + retry_delay(job.attempts or 0)
            logger.warning(
                "Sync job will be retried",
                extra={"job_id": job.id, "attempt": job.attempts, "retry_at": job.available_at.isoformat()}
            )
        else:
            job.status = "failed"
            job.finished_at = now
            logger.error(
                "Sync job failed",
                extra={"job_id": job.id, "attempts": job.attempts, "error": error}
            )

        await self.db.commit()
        return job

    async def skip(self, job: SyncJob, reason: str) -> SyncJob:
        """Finish a job that could not run, without retrying it."""
        job.status = "skipped"
        job.finished_at = datetime.utcnow()
        job.last_error = reason
        await self.db.commit()
        logger.info("Sync job skipped", extra={"job_id": job.id, "reason": reason})
        return job

    async def status(self, now: Optional[datetime] = None) -> dict[str, Any]:
        now = now or datetime.utcnow()
        rows = await self.db.execute(
            select(SyncJob.status, func.count(SyncJob.id)).group_by(SyncJob.status)
        )
        jobs = {status: 0 for status in JOB_STATUSES}
        for status, count in rows.all():
            jobs[status] = count

        running = (
            await self.db.execute(select(func.count(SyncLog.id)).where(SyncLog.status == "running"))
        ).scalar() or 0

        stuck = await StuckSyncService(self.db).find_stuck(now=now)
        locks = await CacheLockService(self.db).list_locks()

        return {
            "jobs": jobs,
            "running_syncs": running,
            "stuck_syncs": [
                {
                    "id": log.id,
                    "sync_id": log.sync_id,
                    "wholesaler_id": log.wholesaler_id,
                    "started_at": log.started_at,
                    "last_heartbeat_at": log.last_heartbeat_at,
                }
                for log in stuck
            ],
            "locks": [
                {
                    "key": lock.key,
                    "owner": lock.owner,
                    "expiration": lock.expiration,
                    "expired": lock.is_expired(now),
                }
                for lock in locks
            ],
        }

    async def clear_failed(self) -> int:
        result = await self.db.execute(delete(SyncJob).where(SyncJob.status == "failed"))
        await self.db.commit()
        logger.info("Failed sync jobs cleared", extra={"count": result.rowcount})
        return result.rowcount
