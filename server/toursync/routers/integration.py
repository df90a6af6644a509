"""Integration router: wholesaler API configuration, mappings and sync control."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import AdminAuth
from ..core.exceptions import InternalServerError, ProblemDetailsException
from ..schemas.common import ApiResponse
from ..schemas.integration import (
    CancelSyncRequest,
    FieldMapping,
    HealthCheckResult,
    Integration,
    IntegrationDetail,
    PreviewMappingRequest,
    SaveMappingsRequest,
    SyncDispatched,
    SyncErrorLog,
    SyncLog,
    SyncNowRequest,
    UpdateIntegrationRequest,
)
from ..services.integration_service import IntegrationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/integrations", tags=["integrations"], dependencies=[AdminAuth])


def _ok(response_data: ApiResponse, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=response_data.model_dump(mode="json"))


def _unexpected(action: str, integration_id: int, e: Exception) -> InternalServerError:
    logger.error(
        f"Unexpected error in integration {action}",
        extra={"integration_id": integration_id, "error": str(e)},
        exc_info=True
    )
    return InternalServerError()


@router.get("", response_model=ApiResponse[list[Integration]])
async def list_integrations(db: AsyncSession = Depends(get_db)) -> JSONResponse:
    try:
        integrations = await IntegrationService(db).list_integrations()
        return _ok(ApiResponse[list[Integration]](data=[Integration(**item) for item in integrations]))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("listing", 0, e)


@router.get("/{integration_id}", response_model=ApiResponse[IntegrationDetail])
async def get_integration(integration_id: int, db: AsyncSession = Depends(get_db)) -> JSONResponse:
    try:
        detail = await IntegrationService(db).get_detail(integration_id)
        return _ok(ApiResponse[IntegrationDetail](data=IntegrationDetail(**detail)))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("detail", integration_id, e)


@router.put("/{integration_id}", response_model=ApiResponse[IntegrationDetail])
async def update_integration(
    integration_id: int,
    request: UpdateIntegrationRequest,
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    try:
        detail = await IntegrationService(db).update(integration_id, request)
        return _ok(ApiResponse[IntegrationDetail](
            data=IntegrationDetail(**detail),
            message="Integration updated successfully",
        ))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("update", integration_id, e)


@router.post("/{integration_id}/sync-now", response_model=ApiResponse[SyncDispatched], status_code=202)
async def sync_now(
    integration_id: int,
    request: SyncNowRequest,
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """
    Queue a sync job for the integration.

    With ``transformed_data`` the job stores the given records without
    calling the wholesaler. Returns 409 when a sync is already running.
    """
    try:
        job = await IntegrationService(db).dispatch_sync(integration_id, request)

        logger.info(
            "Sync job dispatched from API",
            extra={
                "integration_id": integration_id,
                "job_id": job.id,
                "sync_type": request.sync_type,
                "limit": request.limit,
            }
        )
        return _ok(
            ApiResponse[SyncDispatched](
                data=SyncDispatched(
                    job_id=job.id,
                    sync_type=job.sync_type,
                    has_transformed_data=bool(request.transformed_data),
                    limit=job.limit,
                ),
                message="Sync job dispatched successfully",
            ),
            status_code=202,
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("sync dispatch", integration_id, e)


@router.get("/{integration_id}/sync-history", response_model=ApiResponse[list[SyncLog]])
async def sync_history(integration_id: int, db: AsyncSession = Depends(get_db)) -> JSONResponse:
    """The 50 most recent sync runs."""
    try:
        logs = await IntegrationService(db).sync_history(integration_id)
        return _ok(ApiResponse[list[SyncLog]](data=[SyncLog.model_validate(log) for log in logs]))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("sync history", integration_id, e)


@router.get("/{integration_id}/sync-logs/{sync_log_id}/errors", response_model=ApiResponse[list[SyncErrorLog]])
async def sync_errors(
    integration_id: int,
    sync_log_id: int,
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    try:
        errors = await IntegrationService(db).sync_errors(integration_id, sync_log_id)
        return _ok(ApiResponse[list[SyncErrorLog]](data=[SyncErrorLog.model_validate(e) for e in errors]))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("sync errors", integration_id, e)


@router.post("/{integration_id}/sync-logs/{sync_log_id}/cancel", response_model=ApiResponse[SyncLog])
async def cancel_sync(
    integration_id: int,
    sync_log_id: int,
    request: CancelSyncRequest = CancelSyncRequest(),
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """Ask a running sync to stop after the tour it is processing."""
    try:
        sync_log = await IntegrationService(db).cancel_sync(integration_id, sync_log_id, request.reason)
        return _ok(ApiResponse[SyncLog](data=SyncLog.model_validate(sync_log), message="Cancellation requested"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("sync cancel", integration_id, e)


@router.post("/{integration_id}/toggle-sync", response_model=ApiResponse[dict])
async def toggle_sync(integration_id: int, db: AsyncSession = Depends(get_db)) -> JSONResponse:
    try:
        enabled = await IntegrationService(db).toggle_sync(integration_id)
        return _ok(ApiResponse[dict](
            data={"sync_enabled": enabled},
            message="Sync enabled" if enabled else "Sync disabled",
        ))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("toggle", integration_id, e)


@router.post("/{integration_id}/health-check", response_model=ApiResponse[HealthCheckResult])
async def health_check(integration_id: int, db: AsyncSession = Depends(get_db)) -> JSONResponse:
    try:
        result = await IntegrationService(db).health_check(integration_id)
        return _ok(ApiResponse[HealthCheckResult](data=HealthCheckResult(**result)))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("health check", integration_id, e)


@router.get("/{integration_id}/fetch-sample", response_model=ApiResponse[dict])
async def fetch_sample(integration_id: int, db: AsyncSession = Depends(get_db)) -> JSONResponse:
    """First raw record from the wholesaler, for building mappings."""
    try:
        sample = await IntegrationService(db).fetch_sample(integration_id)
        return _ok(ApiResponse[dict](data=sample))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("sample fetch", integration_id, e)


@router.get("/{integration_id}/mappings", response_model=ApiResponse[list[FieldMapping]])
async def get_mappings(integration_id: int, db: AsyncSession = Depends(get_db)) -> JSONResponse:
    try:
        mappings = await IntegrationService(db).get_mappings(integration_id)
        return _ok(ApiResponse[list[FieldMapping]](data=[FieldMapping.model_validate(m) for m in mappings]))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("mapping read", integration_id, e)


@router.put("/{integration_id}/mappings", response_model=ApiResponse[list[FieldMapping]])
async def save_mappings(
    integration_id: int,
    request: SaveMappingsRequest,
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    try:
        mappings = await IntegrationService(db).save_mappings(integration_id, request.mappings)
        return _ok(ApiResponse[list[FieldMapping]](
            data=[FieldMapping.model_validate(m) for m in mappings],
            message="Field mappings saved successfully",
        ))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("mapping save", integration_id, e)


@router.post("/{integration_id}/preview-mapping", response_model=ApiResponse[dict])
async def preview_mapping(
    integration_id: int,
    request: PreviewMappingRequest,
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """Map one sample record with the saved mappings without storing anything."""
    try:
        preview = await IntegrationService(db).preview_mapping(integration_id, request.sample_data)
        return _ok(ApiResponse[dict](data=preview))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("mapping preview", integration_id, e)
