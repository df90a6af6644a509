"""One complete tour sync for one wholesaler."""

import logging
import time
from datetime import date, datetime
from typing import Any, Callable, Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ...core.config import settings
from ...core.exceptions import SyncError, SyncInProgressError, SyncLockLostError
from ...core.locks import CacheLockService, sync_lock_key
from ...core.observability import metrics_collector
from ...models.mapping import WholesalerFieldMapping
from ...models.sync import SyncCursor, SyncLog
from ...models.wholesaler import WholesalerApiConfig
from ..adapters.base import BaseAdapter
from ..adapters.factory import AdapterFactory
from ..mapping.lookup_resolver import LookupResolver
from ..mapping.tour_transformer import TourTransformer
from .error_handler import SyncErrorHandler
from .periods_sync import PeriodsSyncService
from .progress_tracker import SyncProgressTracker
from .rate_limiter import SyncRateLimiter
from .tour_sync_service import TourSyncService

logger = logging.getLogger(__name__)

CURSOR_SYNC_TYPE = "tours"


def _tour_code(tour_data: dict[str, Any]) -> Optional[str]:
    section = tour_data.get("tour") or {}
    code = section.get("tour_code") or section.get("wholesaler_tour_code") or section.get("external_id")
    return str(code) if code is not None else None


class SyncToursRunner:
    """
    Fetch, map and store a wholesaler's tours under the wholesaler's sync lock.

    ``transformed_data`` skips fetching and mapping: the records are taken as
    already transformed (manual sync from the mapping editor). Each tour is
    committed on its own so one bad record only costs that record.
    """

    def __init__(
        self,
        db: AsyncSession,
        wholesaler_id: int,
        sync_type: str = "manual",
        limit: Optional[int] = None,
        transformed_data: Optional[Any] = None,
        adapter: Optional[BaseAdapter] = None,
        today: Optional[date] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.db = db
        self.wholesaler_id = wholesaler_id
        self.sync_type = sync_type
        self.limit = limit
        self.transformed_data = transformed_data
        self.adapter = adapter
        self._owns_adapter = adapter is None
        self.today = today or date.today()
        self._clock = clock
        self._locks = CacheLockService(db)
        self._lock_key = sync_lock_key(wholesaler_id)
        self._lock_owner: Optional[str] = None

        self.config: Optional[WholesalerApiConfig] = None
        self.sync_log: Optional[SyncLog] = None
        self.transformer: Optional[TourTransformer] = None
        self.synced_codes: list[str] = []
        self.stats = {
            "received": 0,
            "created": 0,
            "updated": 0,
            "skipped": 0,
            "errors": 0,
            "periods_received": 0,
            "periods_created": 0,
            "periods_updated": 0,
        }

    async def run(self) -> Optional[SyncLog]:
        """
        Execute the sync and return its log.

        Returns:
            The finished ``SyncLog``, or None when the wholesaler has no API config

        Raises:
            SyncInProgressError: Another sync holds the wholesaler's lock
        """
        logger.info(
            "Tour sync starting",
            extra={
                "wholesaler_id": self.wholesaler_id,
                "sync_type": self.sync_type,
                "has_transformed_data": self.transformed_data is not None,
            }
        )

        self.config = await AdapterFactory.get_config(self.db, self.wholesaler_id)
        if self.config is None:
            logger.error("Tour sync aborted, no API config", extra={"wholesaler_id": self.wholesaler_id})
            return None

        owner = await self._locks.acquire(self._lock_key, settings.sync_lock_ttl_seconds, now=self._clock())
        if owner is None:
            metrics_collector.record_lock_contention(self.wholesaler_id)
            logger.warning("Tour sync already running", extra={"wholesaler_id": self.wholesaler_id})
            raise SyncInProgressError(self.wholesaler_id, self._lock_key)
        self._lock_owner = owner

        started = time.monotonic()
        metrics_collector.sync_started()
        try:
            return await self._run_locked()
        finally:
            await self._locks.release(self._lock_key, owner)
            metrics_collector.sync_stopped()
            if self.sync_log is not None:
                metrics_collector.record_sync_finished(
                    self.wholesaler_id, self.sync_log.status, time.monotonic() - started
                )
            if self.adapter is not None and self._owns_adapter:
                await self.adapter.close()

    async def _run_locked(self) -> SyncLog:
        now = datetime.utcnow()
        self.sync_log = SyncLog(
            sync_id=SyncLog.new_sync_id(now),
            wholesaler_id=self.wholesaler_id,
            sync_type=self.sync_type,
            status="running",
            started_at=now,
            last_heartbeat_at=now,
            heartbeat_timeout_minutes=settings.heartbeat_timeout_minutes,
        )
        self.db.add(self.sync_log)
        await self.db.commit()

        tracker = SyncProgressTracker(self.db, self.sync_log)
        error_handler = SyncErrorHandler(self.db, self.sync_log)

        try:
            tours_data = await self._collect_tours(tracker)
            await self._keep_lock()

            limit = self.limit if self.limit is not None else self.config.sync_limit
            if limit and limit > 0 and len(tours_data) > limit:
                logger.info(
                    "Limiting synced records",
                    extra={
                        "wholesaler_id": self.wholesaler_id,
                        "limit": limit,
                        "original_count": len(tours_data),
                    }
                )
                tours_data = tours_data[:limit]

            cancelled = await self._process_tours(tours_data, tracker, error_handler)
            if cancelled:
                logger.info("Tour sync cancelled", extra={"sync_id": self.sync_log.sync_id})
                return self.sync_log

            await self._acknowledge()
            await self._finish(error_handler)
            return self.sync_log

        except Exception as e:
            logger.error(
                "Tour sync failed",
                extra={"wholesaler_id": self.wholesaler_id, "error": str(e)},
                exc_info=True
            )
            await self._recover_session()
            self._write_counters()
            self.sync_log.status = "failed"
            self.sync_log.completed_at = datetime.utcnow()
            self.sync_log.duration_seconds = self._duration()
            self.sync_log.error_summary = {"message": str(e)[:1000], **error_handler.summary()}
            await self.db.commit()
            raise

    async def _get_adapter(self) -> BaseAdapter:
        if self.adapter is None:
            self.adapter = await AdapterFactory.create(
                self.db,
                self.wholesaler_id,
                rate_limiter=SyncRateLimiter(self.config.rate_limit_per_minute),
            )
        return self.adapter

    async def _get_transformer(self) -> TourTransformer:
        if self.transformer is None:
            mappings = (
                await self.db.execute(
                    select(WholesalerFieldMapping).where(
                        WholesalerFieldMapping.wholesaler_id == self.wholesaler_id,
                        WholesalerFieldMapping.is_active.is_(True),
                    )
                )
            ).scalars().all()
            # Detached so the per-tour rollback in _process_tours cannot expire them
            for mapping in mappings:
                self.db.expunge(mapping)
            resolver = LookupResolver(self.db)
            await resolver.preload_countries()
            self.transformer = TourTransformer(mappings, self.config.aggregation_config, resolver)
        return self.transformer

    async def _collect_tours(self, tracker: SyncProgressTracker) -> list[dict[str, Any]]:
        if self.transformed_data is not None:
            data = self.transformed_data
            if isinstance(data, dict):
                data = [data] if "tour" in data else list(data.values())
            logger.info("Using transformed data", extra={"tour_count": len(data)})
            return [item for item in data if isinstance(item, dict)]

        adapter = await self._get_adapter()
        cursor = (
            await self.db.execute(
                select(SyncCursor).where(
                    SyncCursor.wholesaler_id == self.wholesaler_id,
                    SyncCursor.sync_type == CURSOR_SYNC_TYPE,
                )
            )
        ).scalar_one_or_none()
        cursor_value = None if self.sync_type == "full" or cursor is None else cursor.cursor_value

        calls_before = adapter.request_count
        result = await adapter.fetch_tours(cursor_value)
        tracker.increment_api_call(adapter.request_count - calls_before)
        if not result.success:
            raise SyncError(f"Failed to fetch tours: {result.error_message}")

        transformer = await self._get_transformer()
        mapped = []
        for raw in result.tours:
            transformed = await transformer.transform(raw)
            if transformer.is_mappable(transformed):
                mapped.append(transformed)

        logger.info(
            "Mapped fetched tours",
            extra={
                "wholesaler_id": self.wholesaler_id,
                "raw_count": len(result.tours),
                "mapped_count": len(mapped),
            }
        )

        if result.next_cursor:
            if cursor is None:
                cursor = SyncCursor(wholesaler_id=self.wholesaler_id, sync_type=CURSOR_SYNC_TYPE, total_received=0)
                self.db.add(cursor)
            cursor.cursor_value = result.next_cursor
            cursor.last_synced_at = datetime.utcnow()
            cursor.total_received = (cursor.total_received or 0) + len(result.tours)
        await self.db.commit()
        return mapped

    async def _process_tours(
        self,
        tours_data: list[dict[str, Any]],
        tracker: SyncProgressTracker,
        error_handler: SyncErrorHandler,
    ) -> bool:
        """Store every tour; returns True when the sync was cancelled part way."""
        if not tours_data:
            return False

        tour_sync = TourSyncService(self.db, self.config, error_handler, self.today)
        periods_sync = None
        if self.config.sync_mode == "two_phase":
            periods_sync = PeriodsSyncService(
                await self._get_adapter(), tour_sync, await self._get_transformer()
            )

        await tracker.initialize(len(tours_data))

        for index, tour_data in enumerate(tours_data):
            await self._keep_lock()
            if index and index % tracker.sync_log.chunk_size == 0:
                await tracker.next_chunk()

            if await tracker.is_cancelled():
                self._write_counters()
                await tracker.mark_cancelled(self.sync_log.cancel_reason or "User requested")
                return True

            code = _tour_code(tour_data)
            self.stats["received"] += 1
            try:
                result = await tour_sync.process_tour(tour_data)
                periods = {k: result[k] for k in ("periods_received", "periods_created", "periods_updated")}

                if periods_sync is not None and result["tour"] is not None and result["action"] != "skipped":
                    calls_before = periods_sync.adapter.request_count
                    phase_two = await periods_sync.sync_tour_periods(result["tour"])
                    tracker.increment_api_call(periods_sync.adapter.request_count - calls_before)
                    for key in periods:
                        periods[key] += phase_two[key]

                await self.db.commit()
            except Exception as e:
                await self._recover_session()
                self.stats["errors"] += 1
                await error_handler.handle(e, "tour", code, raw_data=jsonable_encoder(tour_data))
                await self.db.commit()
                logger.warning(
                    "Failed to process tour",
                    extra={"wholesaler_id": self.wholesaler_id, "tour_code": code, "error": str(e)}
                )
            else:
                action = result["action"]
                self.stats[action] += 1
                for key, value in periods.items():
                    self.stats[key] += value
                metrics_collector.record_tour(self.wholesaler_id, action)
                metrics_collector.record_periods(self.wholesaler_id, "created", periods["periods_created"])
                metrics_collector.record_periods(self.wholesaler_id, "updated", periods["periods_updated"])
                if action != "skipped" and code:
                    self.synced_codes.append(code)

            self._write_counters()
            await tracker.increment_progress(code)

        return False

    async def _keep_lock(self) -> None:
        """Renew the wholesaler lock; raises once another holder has taken it."""
        renewed = await self._locks.extend(
            self._lock_key, self._lock_owner, settings.sync_lock_ttl_seconds, now=self._clock()
        )
        if not renewed:
            raise SyncLockLostError(f"Sync lock {self._lock_key} was lost during the run")

    async def _acknowledge(self) -> None:
        if self.config.sync_method != "ack_callback" or not self.synced_codes or self.adapter is None:
            return
        acknowledged = await self.adapter.acknowledge_synced(self.synced_codes, self.sync_log.sync_id)
        if not acknowledged:
            logger.warning(
                "Wholesaler did not accept acknowledgement",
                extra={"wholesaler_id": self.wholesaler_id, "sync_id": self.sync_log.sync_id}
            )

    async def _finish(self, error_handler: SyncErrorHandler) -> None:
        log = self.sync_log
        self._write_counters()
        log.status = "partial" if self.stats["errors"] else "completed"
        log.completed_at = datetime.utcnow()
        log.duration_seconds = self._duration()
        log.progress_percent = 100
        if error_handler.error_count:
            log.error_summary = {
                **error_handler.summary(),
                "should_retry": error_handler.should_retry_sync(),
            }
        self.config.last_sync_at = log.completed_at
        await self.db.commit()

        logger.info(
            "Tour sync completed",
            extra={"wholesaler_id": self.wholesaler_id, "sync_id": log.sync_id, "status": log.status, **self.stats}
        )

    def _write_counters(self) -> None:
        log = self.sync_log
        log.tours_received = self.stats["received"]
        log.tours_created = self.stats["created"]
        log.tours_updated = self.stats["updated"]
        log.tours_skipped = self.stats["skipped"]
        log.tours_failed = self.stats["errors"]
        log.error_count = self.stats["errors"]
        log.periods_received = self.stats["periods_received"]
        log.periods_created = self.stats["periods_created"]
        log.periods_updated = self.stats["periods_updated"]

    def _duration(self) -> float:
        return round((datetime.utcnow() - self.sync_log.started_at).total_seconds(), 3)

    async def _recover_session(self) -> None:
        """Roll back the failed unit of work and reload the rows the run keeps using."""
        await self.db.rollback()
        await self.db.refresh(self.sync_log)
        await self.db.refresh(self.config)
