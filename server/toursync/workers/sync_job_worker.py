"""Background worker that runs queued sync jobs."""

import logging
from typing import Any, Optional

from ..core.database import async_session_factory
from ..core.exceptions import SyncInProgressError
from ..models.sync import SyncJob
from ..services.sync.job_queue import SyncJobQueue
from ..services.sync.sync_runner import SyncToursRunner
from .base import BaseWorker

logger = logging.getLogger(__name__)


class SyncJobWorker(BaseWorker):
    """
    Claims pending ``SyncJob`` rows and runs each through ``SyncToursRunner``.

    The queue bookkeeping and the sync itself use separate sessions, since
    the runner rolls back its own session when a tour fails.
    """

    def __init__(self, interval_seconds: int = 5, max_jobs_per_iteration: int = 5):
        super().__init__(name="SyncJob", interval_seconds=interval_seconds)
        self.max_jobs_per_iteration = max_jobs_per_iteration

    async def process(self) -> Optional[dict[str, Any]]:
        counts = {"completed": 0, "failed": 0, "skipped": 0}

        for _ in range(self.max_jobs_per_iteration):
            async with async_session_factory() as db:
                queue = SyncJobQueue(db)
                job = await queue.claim_next()
                if job is None:
                    break
                outcome = await self.run_job(queue, job)
                counts[outcome] += 1

        return counts if any(counts.values()) else None

    async def run_job(self, queue: SyncJobQueue, job: SyncJob) -> str:
        """Run one claimed job and settle it; returns completed, failed or skipped."""
        try:
            async with async_session_factory() as sync_db:
                runner = SyncToursRunner(
                    sync_db,
                    job.wholesaler_id,
                    sync_type=job.sync_type,
                    limit=job.limit,
                    transformed_data=job.payload,
                )
                sync_log = await runner.run()

        except SyncInProgressError as e:
            await queue.fail(job, e.problem_details.get("detail", "Sync already running"))
            return "failed"

        except Exception as e:
            logger.error(
                "Sync job raised",
                extra={"job_id": job.id, "wholesaler_id": job.wholesaler_id, "error": str(e)},
                exc_info=True
            )
            await queue.fail(job, str(e))
            return "failed"

        if sync_log is None:
            await queue.skip(job, "Wholesaler has no API config")
            return "skipped"

        await queue.complete(job, sync_log.id)
        logger.info(
            "Sync job completed",
            extra={"job_id": job.id, "sync_id": sync_log.sync_id, "status": sync_log.status}
        )
        return "completed"
