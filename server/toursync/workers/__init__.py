"""Background workers for the tour sync backend."""

from .maintenance_workers import AutoCloseWorker, ScheduledSyncWorker, StuckSyncWorker
from .sync_job_worker import SyncJobWorker

__all__ = ["AutoCloseWorker", "ScheduledSyncWorker", "StuckSyncWorker", "SyncJobWorker"]
