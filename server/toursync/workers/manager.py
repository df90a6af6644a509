"""Worker manager for coordinating background tasks."""

import asyncio
import logging
from typing import Any, Dict

from ..core.config import settings
from .base import BaseWorker
from .maintenance_workers import AutoCloseWorker, ScheduledSyncWorker, StuckSyncWorker
from .sync_job_worker import SyncJobWorker

logger = logging.getLogger(__name__)


class WorkerManager:
    """
    Manages background workers for the application.

    Coordinates starting, stopping, and monitoring of all background workers.
    """

    def __init__(self):
        self.workers: Dict[str, BaseWorker] = {}
        self._setup_workers()

    def _setup_workers(self) -> None:
        """Initialize all workers with intervals from settings."""
        self.workers["sync_jobs"] = SyncJobWorker(interval_seconds=settings.sync_job_poll_seconds)
        self.workers["scheduled_sync"] = ScheduledSyncWorker(
            interval_seconds=settings.scheduled_sync_check_seconds
        )
        self.workers["stuck_sync"] = StuckSyncWorker(interval_seconds=settings.stuck_sync_check_seconds)
        self.workers["auto_close"] = AutoCloseWorker(interval_seconds=settings.auto_close_interval_seconds)

        logger.info(f"Initialized {len(self.workers)} workers")

    async def start_all(self) -> None:
        """Start all workers."""
        logger.info("Starting all workers")

        for name, worker in self.workers.items():
            try:
                await worker.start()
            except Exception as e:
                logger.error(f"Failed to start worker {name}: {str(e)}", exc_info=True)

        logger.info(f"Started {len(self.workers)} workers")

    async def stop_all(self) -> None:
        """Stop all running workers gracefully."""
        logger.info("Stopping all workers")

        running = {name: worker for name, worker in self.workers.items() if worker.is_running}
        results = await asyncio.gather(
            *(worker.stop() for worker in running.values()),
            return_exceptions=True,
        )

        for name, result in zip(running.keys(), results):
            if isinstance(result, Exception):
                logger.error(f"Error stopping worker {name}: {str(result)}")

        logger.info("All workers stopped")

    def get_worker(self, name: str) -> BaseWorker:
        """
        Get a specific worker by name.

        Raises:
            KeyError: If worker not found
        """
        return self.workers[name]

    def get_worker_status(self) -> Dict[str, Dict[str, Any]]:
        return {name: worker.status() for name, worker in self.workers.items()}


# Global worker manager instance
worker_manager = WorkerManager()
