"""Categorised, persisted error reporting for a sync run."""

import logging
import traceback
from typing import Any, Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ...core.exceptions import WholesalerRequestError
from ...models.sync import SyncErrorLog, SyncLog

logger = logging.getLogger(__name__)

TYPE_MAPPING = "mapping"
TYPE_VALIDATION = "validation"
TYPE_LOOKUP = "lookup"
TYPE_TYPE_CAST = "type_cast"
TYPE_API = "api"
TYPE_DATABASE = "database"
TYPE_RATE_LIMIT = "rate_limit"
TYPE_TIMEOUT = "timeout"
TYPE_UNKNOWN = "unknown"

ERROR_TYPES = (
    TYPE_MAPPING,
    TYPE_VALIDATION,
    TYPE_LOOKUP,
    TYPE_TYPE_CAST,
    TYPE_API,
    TYPE_DATABASE,
    TYPE_RATE_LIMIT,
    TYPE_TIMEOUT,
    TYPE_UNKNOWN,
)
RETRYABLE_TYPES = frozenset({TYPE_API, TYPE_DATABASE, TYPE_RATE_LIMIT, TYPE_TIMEOUT})

MAX_MESSAGE_LENGTH = 1000
STACK_FRAMES = 5


def truncate_message(message: str, max_length: int = MAX_MESSAGE_LENGTH) -> str:
    if len(message) > max_length:
        return message[: max_length - 3] + "..."
    return message


def short_stack_trace(exc: BaseException, frames: int = STACK_FRAMES) -> str:
    """The innermost ``frames`` frames of the exception's traceback."""
    summary = traceback.extract_tb(exc.__traceback__)[-frames:]
    return "".join(traceback.format_list(summary)).rstrip()


class SyncErrorHandler:
    """Writes ``SyncErrorLog`` rows for one sync and keeps counts for the summary."""

    def __init__(self, db: AsyncSession, sync_log: SyncLog):
        self.db = db
        self.sync_log = sync_log
        self.errors: list[dict[str, Any]] = []

    @staticmethod
    def categorize(exc: BaseException) -> str:
        message = str(exc).lower()

        if isinstance(exc, SQLAlchemyError):
            return TYPE_DATABASE
        if isinstance(exc, WholesalerRequestError):
            if exc.status_code == 429:
                return TYPE_RATE_LIMIT
            return TYPE_API
        if isinstance(exc, (httpx.TimeoutException, TimeoutError)):
            return TYPE_TIMEOUT
        if isinstance(exc, httpx.HTTPError):
            return TYPE_API
        if "rate limit" in message or "too many requests" in message:
            return TYPE_RATE_LIMIT
        if "timeout" in message or "timed out" in message:
            return TYPE_TIMEOUT
        if isinstance(exc, (TypeError, ValueError)):
            return TYPE_TYPE_CAST
        if isinstance(exc, KeyError):
            return TYPE_MAPPING
        return TYPE_UNKNOWN

    @staticmethod
    def is_retryable(error_type: str) -> bool:
        return error_type in RETRYABLE_TYPES

    async def handle(
        self,
        exc: BaseException,
        entity_type: str = "tour",
        entity_code: Optional[str] = None,
        raw_data: Optional[dict[str, Any]] = None,
        error_type: Optional[str] = None,
    ) -> SyncErrorLog:
        """Record an exception raised while syncing one entity."""
        error_type = error_type or self.categorize(exc)
        error_log = await self._write(
            str(exc), error_type, entity_type, entity_code, raw_data, short_stack_trace(exc)
        )
        logger.warning(
            "Sync error recorded",
            extra={
                "sync_log_id": self.sync_log.id,
                "error_type": error_type,
                "entity_type": entity_type,
                "entity_code": entity_code,
                "error": str(exc),
            }
        )
        return error_log

    async def log_error(
        self,
        message: str,
        error_type: str = TYPE_UNKNOWN,
        entity_type: str = "tour",
        entity_code: Optional[str] = None,
        raw_data: Optional[dict[str, Any]] = None,
        field_name: Optional[str] = None,
    ) -> SyncErrorLog:
        """Record a problem that did not come from an exception."""
        return await self._write(message, error_type, entity_type, entity_code, raw_data, None, field_name)

    async def _write(
        self,
        message: str,
        error_type: str,
        entity_type: str,
        entity_code: Optional[str],
        raw_data: Optional[dict[str, Any]],
        stack_trace: Optional[str],
        field_name: Optional[str] = None,
    ) -> SyncErrorLog:
        error_log = SyncErrorLog(
            sync_log_id=self.sync_log.id,
            wholesaler_id=self.sync_log.wholesaler_id,
            entity_type=entity_type,
            entity_code=entity_code or "unknown",
            error_type=error_type,
            error_message=truncate_message(message),
            field_name=field_name,
            raw_data=raw_data,
            stack_trace=stack_trace,
            is_retryable=self.is_retryable(error_type),
        )
        self.db.add(error_log)
        await self.db.flush()

        self.errors.append({
            "id": error_log.id,
            "type": error_type,
            "code": entity_code,
            "message": message,
        })
        return error_log

    def should_retry_sync(self) -> bool:
        """Suggest rerunning the sync when most errors were transient."""
        if not self.errors:
            return False
        retryable = sum(1 for error in self.errors if self.is_retryable(error["type"]))
        return retryable / len(self.errors) > 0.5

    def summary(self) -> dict[str, Any]:
        by_type: dict[str, int] = {}
        for error in self.errors:
            by_type[error["type"]] = by_type.get(error["type"], 0) + 1
        return {"total": len(self.errors), "by_type": by_type}

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def clear(self) -> None:
        self.errors = []
