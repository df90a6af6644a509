"""Wholesaler integrations: configuration, mappings, sync control and health checks."""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.exceptions import (
    IntegrationDisabledError,
    NotFoundError,
    SyncInProgressError,
    UnsupportedApiFormatError,
    ValidationError,
    WholesalerApiError,
)
from ..core.locks import CacheLockService, sync_lock_key
from ..models.mapping import WholesalerFieldMapping
from ..models.period import Period
from ..models.sync import SyncCursor, SyncErrorLog, SyncJob, SyncLog
from ..models.tour import Tour
from ..models.wholesaler import WholesalerApiConfig
from ..schemas.integration import FieldMapping, SyncNowRequest, UpdateIntegrationRequest
from .adapters.factory import AdapterFactory
from .mapping.section_mapper import SectionMapper
from .sync.job_queue import SyncJobQueue
from .sync.stuck_syncs import StuckSyncService

logger = logging.getLogger(__name__)

SYNC_HISTORY_LIMIT = 50
ERROR_WINDOW_DAYS = 7


class IntegrationService:
    """Operations on one ``WholesalerApiConfig``, addressed by its id."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_config_or_raise(self, config_id: int) -> WholesalerApiConfig:
        result = await self.db.execute(
            select(WholesalerApiConfig)
            .options(selectinload(WholesalerApiConfig.wholesaler))
            .where(WholesalerApiConfig.id == config_id)
        )
        config = result.scalar_one_or_none()
        if config is None:
            logger.warning("Integration not found", extra={"integration_id": config_id})
            raise NotFoundError(resource_type="integration", resource_id=str(config_id))
        return config

    async def _last_sync(self, wholesaler_id: int) -> Optional[SyncLog]:
        result = await self.db.execute(
            select(SyncLog)
            .where(SyncLog.wholesaler_id == wholesaler_id)
            .order_by(SyncLog.started_at.desc(), SyncLog.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _summary(self, config: WholesalerApiConfig) -> dict[str, Any]:
        last_sync = await self._last_sync(config.wholesaler_id)
        error_count = (
            await self.db.execute(
                select(func.count(SyncLog.id)).where(
                    SyncLog.wholesaler_id == config.wholesaler_id,
                    SyncLog.status == "failed",
                    SyncLog.started_at >= datetime.utcnow() - timedelta(days=ERROR_WINDOW_DAYS),
                )
            )
        ).scalar() or 0

        return {
            "id": config.id,
            "wholesaler_id": config.wholesaler_id,
            "wholesaler_name": config.wholesaler.name if config.wholesaler else None,
            "wholesaler_code": config.wholesaler.code if config.wholesaler else None,
            "api_base_url": config.api_base_url,
            "api_format": config.api_format,
            "auth_type": config.auth_type,
            "sync_enabled": config.sync_enabled,
            "sync_method": config.sync_method,
            "sync_mode": config.sync_mode,
            "sync_interval_minutes": config.sync_interval_minutes,
            "sync_limit": config.sync_limit,
            "rate_limit_per_minute": config.rate_limit_per_minute,
            "past_period_handling": config.past_period_handling,
            "past_period_threshold_days": config.past_period_threshold_days,
            "last_sync_at": config.last_sync_at,
            "last_sync_status": last_sync.status if last_sync else None,
            "last_health_check_at": config.last_health_check_at,
            "last_health_check_status": config.last_health_check_status,
            "errors_last_7_days": error_count,
        }

    async def list_integrations(self) -> list[dict[str, Any]]:
        configs = (
            await self.db.execute(
                select(WholesalerApiConfig)
                .options(selectinload(WholesalerApiConfig.wholesaler))
                .order_by(WholesalerApiConfig.id)
            )
        ).scalars().all()
        return [await self._summary(config) for config in configs]

    async def get_detail(self, config_id: int) -> dict[str, Any]:
        config = await self.get_config_or_raise(config_id)
        wholesaler_id = config.wholesaler_id

        tours_count = (
            await self.db.execute(select(func.count(Tour.id)).where(Tour.wholesaler_id == wholesaler_id))
        ).scalar() or 0
        periods_count = (
            await self.db.execute(
                select(func.count(Period.id)).join(Tour, Period.tour_id == Tour.id).where(
                    Tour.wholesaler_id == wholesaler_id
                )
            )
        ).scalar() or 0
        cursor = (
            await self.db.execute(select(SyncCursor).where(SyncCursor.wholesaler_id == wholesaler_id))
        ).scalars().first()
        running = (
            await self.db.execute(
                select(SyncLog.sync_id).where(
                    SyncLog.wholesaler_id == wholesaler_id, SyncLog.status == "running"
                )
            )
        ).scalars().first()

        return {
            **await self._summary(config),
            "auth_header_name": config.auth_header_name,
            "connect_timeout_seconds": config.connect_timeout_seconds,
            "request_timeout_seconds": config.request_timeout_seconds,
            "retry_attempts": config.retry_attempts,
            "aggregation_config": config.aggregation_config or {},
            "endpoints": config.endpoints,
            "notes": config.notes,
            "tours_count": tours_count,
            "periods_count": periods_count,
            "cursor_value": cursor.cursor_value if cursor else None,
            "running_sync_id": running,
        }

    async def update(self, config_id: int, request: UpdateIntegrationRequest) -> dict[str, Any]:
        config = await self.get_config_or_raise(config_id)
        changes = request.model_dump(exclude_unset=True)
        for field, value in changes.items():
            setattr(config, field, value)
        await self.db.commit()

        logger.info(
            "Integration updated",
            extra={"integration_id": config_id, "fields": sorted(changes)}
        )
        return await self.get_detail(config_id)

    async def toggle_sync(self, config_id: int) -> bool:
        config = await self.get_config_or_raise(config_id)
        config.sync_enabled = not config.sync_enabled
        await self.db.commit()
        logger.info(
            "Integration sync toggled",
            extra={"integration_id": config_id, "sync_enabled": config.sync_enabled}
        )
        return config.sync_enabled

    async def dispatch_sync(self, config_id: int, request: SyncNowRequest) -> SyncJob:
        """
        Queue a sync for the integration's wholesaler.

        Raises:
            IntegrationDisabledError: Fetching sync requested while sync is switched off
            SyncInProgressError: A sync already holds the wholesaler's lock
        """
        config = await self.get_config_or_raise(config_id)
        if request.sync_type != "manual" and not config.sync_enabled:
            raise IntegrationDisabledError(config.wholesaler_id)

        lock_key = sync_lock_key(config.wholesaler_id)
        if await CacheLockService(self.db).is_locked(lock_key):
            raise SyncInProgressError(config.wholesaler_id, lock_key)

        return await SyncJobQueue(self.db).dispatch(
            config.wholesaler_id,
            sync_type=request.sync_type,
            limit=request.limit,
            payload=request.transformed_data,
        )

    async def sync_history(self, config_id: int, limit: int = SYNC_HISTORY_LIMIT) -> list[SyncLog]:
        config = await self.get_config_or_raise(config_id)
        result = await self.db.execute(
            select(SyncLog)
            .where(SyncLog.wholesaler_id == config.wholesaler_id)
            .order_by(SyncLog.started_at.desc(), SyncLog.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def _sync_log_or_raise(self, config: WholesalerApiConfig, sync_log_id: int) -> SyncLog:
        sync_log = await self.db.get(SyncLog, sync_log_id)
        if sync_log is None or sync_log.wholesaler_id != config.wholesaler_id:
            raise NotFoundError(resource_type="sync_log", resource_id=str(sync_log_id))
        return sync_log

    async def sync_errors(self, config_id: int, sync_log_id: int) -> list[SyncErrorLog]:
        config = await self.get_config_or_raise(config_id)
        await self._sync_log_or_raise(config, sync_log_id)
        result = await self.db.execute(
            select(SyncErrorLog)
            .where(SyncErrorLog.sync_log_id == sync_log_id)
            .order_by(SyncErrorLog.id)
        )
        return list(result.scalars().all())

    async def cancel_sync(self, config_id: int, sync_log_id: int, reason: str) -> SyncLog:
        config = await self.get_config_or_raise(config_id)
        await self._sync_log_or_raise(config, sync_log_id)
        return await StuckSyncService(self.db).request_cancel(sync_log_id, reason)

    async def health_check(self, config_id: int) -> dict[str, Any]:
        config = await self.get_config_or_raise(config_id)
        try:
            adapter = await AdapterFactory.create(self.db, config.wholesaler_id)
        except UnsupportedApiFormatError as e:
            raise ValidationError(detail=str(e))

        async with adapter:
            result = await adapter.health_check()
        await self.db.commit()

        logger.info(
            "Integration health checked",
            extra={"integration_id": config_id, "healthy": result["healthy"]}
        )
        return {**result, "checked_at": config.last_health_check_at}

    async def fetch_sample(self, config_id: int) -> dict[str, Any]:
        """
        Fetch the first tour the wholesaler returns, unmapped.

        Raises:
            WholesalerApiError: The wholesaler API call failed
        """
        config = await self.get_config_or_raise(config_id)
        try:
            adapter = await AdapterFactory.create(self.db, config.wholesaler_id)
        except UnsupportedApiFormatError as e:
            raise ValidationError(detail=str(e))

        async with adapter:
            result = await adapter.fetch_tours()
        if not result.success:
            upstream = int(result.error_code) if (result.error_code or "").isdigit() else None
            raise WholesalerApiError(detail=result.error_message or "Fetch failed", upstream_status=upstream)

        return {
            "total": len(result.tours),
            "sample": result.tours[0] if result.tours else None,
            "has_more": result.has_more,
        }

    async def get_mappings(self, config_id: int) -> list[WholesalerFieldMapping]:
        config = await self.get_config_or_raise(config_id)
        result = await self.db.execute(
            select(WholesalerFieldMapping)
            .where(WholesalerFieldMapping.wholesaler_id == config.wholesaler_id)
            .order_by(WholesalerFieldMapping.section_name, WholesalerFieldMapping.sort_order)
        )
        return list(result.scalars().all())

    async def save_mappings(self, config_id: int, mappings: list[FieldMapping]) -> list[WholesalerFieldMapping]:
        """Replace every mapping of the integration's wholesaler."""
        config = await self.get_config_or_raise(config_id)

        seen = set()
        for mapping in mappings:
            key = (mapping.section_name, mapping.our_field)
            if key in seen:
                raise ValidationError(
                    detail=f"Duplicate mapping for {mapping.section_name}.{mapping.our_field}"
                )
            seen.add(key)

        await self.db.execute(
            delete(WholesalerFieldMapping).where(
                WholesalerFieldMapping.wholesaler_id == config.wholesaler_id
            )
        )
        for sort_order, mapping in enumerate(mappings):
            values = mapping.model_dump()
            if values["sort_order"] is None:
                values["sort_order"] = sort_order
            self.db.add(WholesalerFieldMapping(wholesaler_id=config.wholesaler_id, **values))
        await self.db.commit()

        logger.info(
            "Field mappings saved",
            extra={"integration_id": config_id, "count": len(mappings)}
        )
        return await self.get_mappings(config_id)

    async def preview_mapping(self, config_id: int, sample: dict[str, Any]) -> dict[str, Any]:
        config = await self.get_config_or_raise(config_id)
        return await SectionMapper(self.db).preview(sample, config.wholesaler_id)
