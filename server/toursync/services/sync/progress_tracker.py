"""Progress, heartbeat and cancellation state of a running sync."""

import logging
import math
import time
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ...core.config import settings
from ...models.sync import SyncLog

logger = logging.getLogger(__name__)


class SyncProgressTracker:
    """
    Writes progress counters and heartbeats onto a ``SyncLog``.

    Each update is committed so that the API and the stuck-sync worker see
    it while the sync is still running.
    """

    def __init__(
        self,
        db: AsyncSession,
        sync_log: SyncLog,
        heartbeat_interval: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.db = db
        self.sync_log = sync_log
        self.heartbeat_interval = heartbeat_interval or settings.heartbeat_interval_seconds
        self._clock = clock
        self._last_heartbeat = clock()

    async def initialize(self, total_items: int, chunk_size: int = 50) -> "SyncProgressTracker":
        log = self.sync_log
        log.total_items = total_items
        log.processed_items = 0
        log.progress_percent = 0
        log.chunk_size = chunk_size
        log.total_chunks = math.ceil(total_items / chunk_size) if chunk_size else 0
        log.current_chunk = 0
        log.last_heartbeat_at = datetime.utcnow()
        self._last_heartbeat = self._clock()
        await self.db.commit()
        return self

    async def increment_progress(self, current_item_code: Optional[str] = None) -> "SyncProgressTracker":
        log = self.sync_log
        log.processed_items = (log.processed_items or 0) + 1
        if log.total_items:
            log.progress_percent = min(100, round(log.processed_items / log.total_items * 100))
        if current_item_code:
            log.current_item_code = current_item_code[:100]

        if self._clock() - self._last_heartbeat >= self.heartbeat_interval:
            log.last_heartbeat_at = datetime.utcnow()
            self._last_heartbeat = self._clock()

        await self.db.commit()
        return self

    async def next_chunk(self) -> "SyncProgressTracker":
        self.sync_log.current_chunk = (self.sync_log.current_chunk or 0) + 1
        return await self.update_heartbeat()

    async def update_heartbeat(self) -> "SyncProgressTracker":
        self.sync_log.last_heartbeat_at = datetime.utcnow()
        self._last_heartbeat = self._clock()
        await self.db.commit()
        return self

    def increment_api_call(self, count: int = 1) -> "SyncProgressTracker":
        self.sync_log.api_calls_count = (self.sync_log.api_calls_count or 0) + count
        return self

    async def is_cancelled(self) -> bool:
        """Reload the row and report whether someone asked the sync to stop."""
        await self.db.refresh(self.sync_log, ["cancel_requested", "cancel_reason", "status"])
        if self.sync_log.cancel_requested:
            logger.info("Sync cancellation requested", extra={"sync_log_id": self.sync_log.id})
            return True
        return False

    def progress(self) -> dict[str, Any]:
        log = self.sync_log
        return {
            "total_items": log.total_items,
            "processed_items": log.processed_items,
            "progress_percent": log.progress_percent,
            "current_item_code": log.current_item_code,
            "current_chunk": log.current_chunk,
            "total_chunks": log.total_chunks,
            "api_calls_count": log.api_calls_count,
        }

    async def complete(self, stats: Optional[dict[str, Any]] = None) -> None:
        stats = stats or {}
        log = self.sync_log
        log.status = "completed"
        log.completed_at = datetime.utcnow()
        log.progress_percent = 100
        log.tours_created = stats.get("tours_created", log.tours_created or 0)
        log.tours_updated = stats.get("tours_updated", log.tours_updated or 0)
        log.tours_failed = stats.get("errors", log.tours_failed or 0)
        await self.db.commit()

    async def fail(self, error_message: str) -> None:
        log = self.sync_log
        log.status = "failed"
        log.completed_at = datetime.utcnow()
        log.error_summary = {**(log.error_summary or {}), "message": error_message}
        await self.db.commit()

    async def mark_cancelled(self, reason: str = "User requested") -> None:
        now = datetime.utcnow()
        log = self.sync_log
        log.status = "cancelled"
        log.cancelled_at = now
        log.cancel_reason = reason
        log.completed_at = now
        await self.db.commit()

    async def mark_timeout(self) -> None:
        now = datetime.utcnow()
        log = self.sync_log
        log.status = "timeout"
        log.cancelled_at = now
        log.cancel_reason = "Heartbeat timeout - no activity detected"
        log.completed_at = now
        await self.db.commit()
