"""Tour sync pipeline: runner, job queue and recovery."""

from .error_handler import SyncErrorHandler
from .job_queue import SyncJobQueue
from .periods_sync import PeriodsSyncService
from .progress_tracker import SyncProgressTracker
from .rate_limiter import SyncRateLimiter
from .stuck_syncs import StuckSyncService
from .sync_runner import SyncToursRunner
from .tour_sync_service import TourSyncService

__all__ = [
    "PeriodsSyncService",
    "StuckSyncService",
    "SyncErrorHandler",
    "SyncJobQueue",
    "SyncProgressTracker",
    "SyncRateLimiter",
    "SyncToursRunner",
    "TourSyncService",
]
