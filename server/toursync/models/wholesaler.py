"""Wholesaler and wholesaler API configuration models."""

from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .mapping import WholesalerFieldMapping
    from .tour import Tour


API_FORMATS = ("rest", "soap", "graphql")
AUTH_TYPES = ("none", "api_key", "bearer", "basic", "oauth2", "custom")
SYNC_METHODS = ("cursor", "ack_callback", "last_modified")
SYNC_MODES = ("single", "two_phase")
PAST_PERIOD_HANDLING = ("skip", "close", "keep")


class Wholesaler(Base):
    """An upstream tour-package supplier."""

    __tablename__ = "wholesalers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False, server_default=func.now(), onupdate=func.now()
    )

    api_config: Mapped[Optional["WholesalerApiConfig"]] = relationship(
        "WholesalerApiConfig",
        back_populates="wholesaler",
        uselist=False,
        cascade="all, delete-orphan",
    )
    field_mappings: Mapped[list["WholesalerFieldMapping"]] = relationship(
        "WholesalerFieldMapping",
        back_populates="wholesaler",
        cascade="all, delete-orphan",
    )
    tours: Mapped[list["Tour"]] = relationship("Tour", back_populates="wholesaler")

    def __repr__(self) -> str:
        return f"<Wholesaler(id={self.id}, code='{self.code}')>"


class WholesalerApiConfig(Base):
    """How to reach and sync one wholesaler's API."""

    __tablename__ = "wholesaler_api_configs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wholesaler_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("wholesalers.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )

    # Connection
    api_base_url: Mapped[str] = mapped_column(String(500), nullable=False)
    api_format: Mapped[str] = mapped_column(String(20), nullable=False, default="rest")
    auth_type: Mapped[str] = mapped_column(String(20), nullable=False, default="none")
    auth_credentials: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    auth_header_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    rate_limit_per_minute: Mapped[int] = mapped_column(Integer, nullable=False, default=60)
    connect_timeout_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    request_timeout_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    retry_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3)

    # Sync behaviour
    sync_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sync_method: Mapped[str] = mapped_column(String(20), nullable=False, default="cursor")
    sync_mode: Mapped[str] = mapped_column(String(20), nullable=False, default="single")
    sync_interval_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=60)
    sync_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    aggregation_config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    past_period_handling: Mapped[str] = mapped_column(String(10), nullable=False, default="skip")
    past_period_threshold_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Status
    last_health_check_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_health_check_status: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    last_sync_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("retry_attempts >= 1", name="ck_api_config_retry_attempts_positive"),
        CheckConstraint("rate_limit_per_minute > 0", name="ck_api_config_rate_limit_positive"),
        CheckConstraint(
            "past_period_threshold_days >= 0 AND past_period_threshold_days <= 365",
            name="ck_api_config_past_threshold_range",
        ),
    )

    wholesaler: Mapped["Wholesaler"] = relationship("Wholesaler", back_populates="api_config")

    @property
    def endpoints(self) -> dict[str, str]:
        """Endpoint overrides stored under ``auth_credentials.endpoints``."""
        return dict((self.auth_credentials or {}).get("endpoints") or {})

    @property
    def data_structure(self) -> dict[str, Any]:
        return dict((self.aggregation_config or {}).get("data_structure") or {})

    def data_structure_path(self, key: str) -> Optional[str]:
        """Configured array path for ``departures``, ``itineraries`` or ``cities``, if any."""
        section = self.data_structure.get(key) or {}
        return section.get("path") or None

    def is_due(self, now: datetime) -> bool:
        """True when a scheduled sync should run."""
        if not self.sync_enabled:
            return False
        if self.last_sync_at is None:
            return True
        elapsed = (now - self.last_sync_at).total_seconds()
        return elapsed >= self.sync_interval_minutes * 60

    def __repr__(self) -> str:
        return (
            f"<WholesalerApiConfig(wholesaler_id={self.wholesaler_id}, "
            f"format='{self.api_format}', mode='{self.sync_mode}')>"
        )
