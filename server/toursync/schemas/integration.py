"""Wholesaler integration, mapping and sync Pydantic schemas."""

from datetime import datetime
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator

SyncType = Literal["manual", "incremental", "full"]


class Integration(BaseModel):
    """A wholesaler's API configuration with its latest sync outcome."""

    id: int
    wholesaler_id: int
    wholesaler_name: Optional[str] = None
    wholesaler_code: Optional[str] = None
    api_base_url: str
    api_format: str
    auth_type: str
    sync_enabled: bool
    sync_method: str
    sync_mode: str
    sync_interval_minutes: int
    sync_limit: Optional[int] = None
    rate_limit_per_minute: int
    past_period_handling: str
    past_period_threshold_days: int
    last_sync_at: Optional[datetime] = None
    last_sync_status: Optional[str] = None
    last_health_check_at: Optional[datetime] = None
    last_health_check_status: Optional[bool] = None
    errors_last_7_days: int = 0


class IntegrationDetail(Integration):
    """Integration with configuration and catalogue counts."""

    auth_header_name: Optional[str] = None
    connect_timeout_seconds: int
    request_timeout_seconds: int
    retry_attempts: int
    aggregation_config: dict[str, Any] = Field(default_factory=dict)
    endpoints: dict[str, str] = Field(default_factory=dict)
    notes: Optional[str] = None
    tours_count: int = 0
    periods_count: int = 0
    cursor_value: Optional[str] = None
    running_sync_id: Optional[str] = None


class UpdateIntegrationRequest(BaseModel):
    """Request schema for a partial integration update; credentials are replaced whole."""

    api_base_url: Optional[str] = Field(None, max_length=500, pattern=r"^https?://")
    api_format: Optional[Literal["rest", "soap", "graphql"]] = None
    auth_type: Optional[Literal["none", "api_key", "oauth2", "basic", "bearer", "custom"]] = None
    auth_credentials: Optional[dict[str, Any]] = None
    auth_header_name: Optional[str] = Field(None, max_length=100)
    rate_limit_per_minute: Optional[int] = Field(None, ge=1, le=1000)
    connect_timeout_seconds: Optional[int] = Field(None, ge=1, le=60)
    request_timeout_seconds: Optional[int] = Field(None, ge=5, le=120)
    retry_attempts: Optional[int] = Field(None, ge=0, le=10)
    sync_enabled: Optional[bool] = None
    sync_method: Optional[Literal["cursor", "ack_callback", "last_modified"]] = None
    sync_mode: Optional[Literal["single", "two_phase"]] = None
    sync_interval_minutes: Optional[int] = Field(None, ge=1, le=10080)
    sync_limit: Optional[int] = Field(None, ge=1, le=1000)
    aggregation_config: Optional[dict[str, Any]] = None
    past_period_handling: Optional[Literal["skip", "close", "keep"]] = None
    past_period_threshold_days: Optional[int] = Field(None, ge=0, le=365)
    notes: Optional[str] = None


class SyncNowRequest(BaseModel):
    """Request schema for queueing a sync."""

    sync_type: Optional[SyncType] = Field(None, description="Defaults to manual with transformed_data, else incremental")
    limit: Optional[int] = Field(None, ge=1, le=1000, description="Maximum tours to process")
    transformed_data: Optional[Union[list[dict[str, Any]], dict[str, Any]]] = Field(
        None, description="Records already mapped to sections; skips fetching"
    )

    @model_validator(mode="after")
    def default_sync_type(self) -> "SyncNowRequest":
        if self.sync_type is None:
            self.sync_type = "manual" if self.transformed_data else "incremental"
        return self


class SyncDispatched(BaseModel):
    job_id: int
    sync_type: str
    has_transformed_data: bool
    limit: Optional[int] = None


class SyncLog(BaseModel):
    """Sync run response schema."""

    id: int
    sync_id: str
    wholesaler_id: int
    sync_type: str
    status: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    tours_received: int
    tours_created: int
    tours_updated: int
    tours_skipped: int
    tours_failed: int
    periods_received: int
    periods_created: int
    periods_updated: int
    error_count: int
    error_summary: Optional[dict[str, Any]] = None
    last_heartbeat_at: Optional[datetime] = None
    total_items: int
    processed_items: int
    progress_percent: int
    current_item_code: Optional[str] = None
    api_calls_count: int
    cancel_requested: bool
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None

    class Config:
        from_attributes = True


class SyncErrorLog(BaseModel):
    id: int
    entity_type: str
    entity_code: Optional[str] = None
    error_type: str
    error_message: str
    field_name: Optional[str] = None
    raw_data: Optional[dict[str, Any]] = None
    stack_trace: Optional[str] = None
    is_retryable: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CancelSyncRequest(BaseModel):
    reason: str = Field("User requested", max_length=500)


class HealthCheckResult(BaseModel):
    healthy: bool
    error: Optional[str] = None
    response_time_ms: Optional[float] = None
    checked_at: datetime


class FieldMapping(BaseModel):
    """One wholesaler field mapped onto one of our fields."""

    section_name: Literal[
        "tour", "period", "pricing", "content", "media", "seo", "departure", "itinerary", "city"
    ]
    our_field: str = Field(..., min_length=1, max_length=100)
    their_field: Optional[str] = Field(None, max_length=255)
    their_field_path: Optional[str] = Field(None, max_length=500)
    transform_type: Literal[
        "direct", "value_map", "formula", "split", "concat", "lookup", "date_format", "custom"
    ] = "direct"
    transform_config: Optional[dict[str, Any]] = None
    default_value: Optional[str] = Field(None, max_length=500)
    is_active: bool = True
    sort_order: Optional[int] = Field(None, ge=0)

    class Config:
        from_attributes = True


class SaveMappingsRequest(BaseModel):
    """Replaces every mapping of the wholesaler."""

    mappings: list[FieldMapping]


class PreviewMappingRequest(BaseModel):
    sample_data: dict[str, Any] = Field(..., description="One raw record as the wholesaler returns it")


class QueueStatus(BaseModel):
    jobs: dict[str, int]
    running_syncs: int
    stuck_syncs: list[dict[str, Any]]
    locks: list[dict[str, Any]]


class FixStuckRequest(BaseModel):
    timeout_minutes: Optional[int] = Field(None, ge=1, le=1440)
    dry_run: bool = False
