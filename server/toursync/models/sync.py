"""Sync bookkeeping models: runs, per-record errors, cursors and queued jobs."""

import uuid
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base


SYNC_STATUSES = ("running", "completed", "partial", "failed", "cancelled", "timeout")
TERMINAL_SYNC_STATUSES = ("completed", "partial", "failed", "cancelled", "timeout")
SYNC_TYPES = ("manual", "incremental", "full")
JOB_STATUSES = ("pending", "running", "completed", "failed", "skipped")


class SyncLog(Base):
    """One sync run for one wholesaler, with counters and heartbeat."""

    __tablename__ = "sync_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sync_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    wholesaler_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("wholesalers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sync_type: Mapped[str] = mapped_column(String(20), nullable=False, default="incremental")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="running", index=True)
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    duration_seconds: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Counters
    tours_received: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tours_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tours_updated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tours_skipped: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tours_failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    periods_received: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    periods_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    periods_updated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_summary: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)

    # Progress
    last_heartbeat_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    heartbeat_timeout_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    total_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processed_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    progress_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_item_code: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    chunk_size: Mapped[int] = mapped_column(Integer, nullable=False, default=50)
    current_chunk: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_chunks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    api_calls_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Cancellation
    cancel_requested: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cancel_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "progress_percent >= 0 AND progress_percent <= 100",
            name="ck_sync_log_progress_range",
        ),
    )

    errors: Mapped[list["SyncErrorLog"]] = relationship(
        "SyncErrorLog",
        back_populates="sync_log",
        cascade="all, delete-orphan",
    )

    @staticmethod
    def new_sync_id(now: datetime) -> str:
        return f"sync_{now.strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:13]}"

    @property
    def is_running(self) -> bool:
        return self.status == "running"

    def is_stuck(self, now: datetime) -> bool:
        """A running sync whose last sign of life is older than its heartbeat timeout."""
        if not self.is_running:
            return False
        last_seen = self.last_heartbeat_at or self.started_at
        if last_seen is None:
            return False
        return last_seen < now - timedelta(minutes=self.heartbeat_timeout_minutes or 30)

    def __repr__(self) -> str:
        return f"<SyncLog(sync_id='{self.sync_id}', wholesaler_id={self.wholesaler_id}, status='{self.status}')>"


class SyncErrorLog(Base):
    """An error raised while syncing one record."""

    __tablename__ = "sync_error_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sync_log_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("sync_logs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    wholesaler_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False, default="tour")
    entity_code: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    error_type: Mapped[str] = mapped_column(String(20), nullable=False, default="unknown")
    error_message: Mapped[str] = mapped_column(Text, nullable=False)
    field_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    raw_data: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    stack_trace: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_retryable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())

    sync_log: Mapped["SyncLog"] = relationship("SyncLog", back_populates="errors")

    def __repr__(self) -> str:
        return f"<SyncErrorLog(sync_log_id={self.sync_log_id}, type='{self.error_type}')>"


class SyncCursor(Base):
    """Incremental-sync position per wholesaler and sync kind."""

    __tablename__ = "sync_cursors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wholesaler_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("wholesalers.id", ondelete="CASCADE"), nullable=False
    )
    sync_type: Mapped[str] = mapped_column(String(20), nullable=False, default="tours")
    cursor_value: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    total_received: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("wholesaler_id", "sync_type", name="uq_sync_cursor_wholesaler_type"),
    )

    def __repr__(self) -> str:
        return f"<SyncCursor(wholesaler_id={self.wholesaler_id}, cursor='{self.cursor_value}')>"


class SyncJob(Base):
    """A queued sync request picked up by the sync job worker."""

    __tablename__ = "sync_jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wholesaler_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("wholesalers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sync_type: Mapped[str] = mapped_column(String(20), nullable=False, default="incremental")
    limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    payload: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", index=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    available_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    reserved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sync_log_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("sync_logs.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())

    def __repr__(self) -> str:
        return f"<SyncJob(id={self.id}, wholesaler_id={self.wholesaler_id}, status='{self.status}')>"
