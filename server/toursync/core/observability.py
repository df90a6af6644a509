"""Observability setup for OpenTelemetry, metrics, and structured logging."""

import logging

from opentelemetry import trace, metrics
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CollectorRegistry
import structlog

from .config import settings

SERVICE_NAME = "toursync-api"

# Prometheus metrics
REGISTRY = CollectorRegistry()

# Request metrics
REQUEST_COUNT = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code'],
    registry=REGISTRY
)

REQUEST_DURATION = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    registry=REGISTRY
)

# Sync metrics
SYNC_RUNS = Counter(
    'wholesaler_sync_runs_total',
    'Finished wholesaler sync runs',
    ['wholesaler_id', 'status'],
    registry=REGISTRY
)

SYNC_DURATION = Histogram(
    'wholesaler_sync_duration_seconds',
    'Wholesaler sync duration in seconds',
    ['wholesaler_id'],
    buckets=(1, 5, 15, 30, 60, 120, 300, 600, 1800, 3600),
    registry=REGISTRY
)

TOURS_SYNCED = Counter(
    'wholesaler_tours_synced_total',
    'Tours processed by sync, by action',
    ['wholesaler_id', 'action'],
    registry=REGISTRY
)

PERIODS_SYNCED = Counter(
    'wholesaler_periods_synced_total',
    'Periods processed by sync, by action',
    ['wholesaler_id', 'action'],
    registry=REGISTRY
)

WHOLESALER_API_REQUESTS = Counter(
    'wholesaler_api_requests_total',
    'Outbound wholesaler API requests',
    ['wholesaler_id', 'action', 'outcome'],
    registry=REGISTRY
)

SYNC_LOCK_CONTENTION = Counter(
    'wholesaler_sync_lock_contention_total',
    'Sync attempts skipped because the wholesaler lock was held',
    ['wholesaler_id'],
    registry=REGISTRY
)

STUCK_SYNCS_CANCELLED = Counter(
    'wholesaler_stuck_syncs_cancelled_total',
    'Running syncs cancelled after heartbeat timeout',
    registry=REGISTRY
)

RUNNING_SYNCS = Gauge(
    'wholesaler_syncs_running',
    'Syncs currently running in this process',
    registry=REGISTRY
)

PERIODS_AUTO_CLOSED = Counter(
    'periods_auto_closed_total',
    'Periods closed because their departure date passed',
    registry=REGISTRY
)

TOURS_AUTO_CLOSED = Counter(
    'tours_auto_closed_total',
    'Tours closed because no upcoming period remained',
    registry=REGISTRY
)


def setup_structured_logging():
    """Configure structured logging with structlog."""

    def add_trace_context(logger, method_name, event_dict):
        """Add trace context to log events."""
        span = trace.get_current_span()
        if span and span.is_recording():
            ctx = span.get_span_context()
            event_dict['trace_id'] = format(ctx.trace_id, '032x')
            event_dict['span_id'] = format(ctx.span_id, '016x')
        return event_dict

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_trace_context,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level)
        ),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _resource() -> Resource:
    return Resource.create({
        "service.name": SERVICE_NAME,
        "service.version": "1.0.0",
        "environment": settings.environment,
    })


def setup_tracing():
    """Setup OpenTelemetry tracing."""
    trace.set_tracer_provider(TracerProvider(resource=_resource()))

    if settings.otlp_endpoint:
        otlp_exporter = OTLPSpanExporter(endpoint=settings.otlp_endpoint)
        span_processor = BatchSpanProcessor(otlp_exporter)
        trace.get_tracer_provider().add_span_processor(span_processor)

    return trace.get_tracer(__name__)


def setup_metrics():
    """Setup OpenTelemetry metrics."""
    if settings.otlp_endpoint:
        otlp_exporter = OTLPMetricExporter(endpoint=settings.otlp_endpoint)
        reader = PeriodicExportingMetricReader(exporter=otlp_exporter, export_interval_millis=60000)
        metrics.set_meter_provider(MeterProvider(resource=_resource(), metric_readers=[reader]))

    return metrics.get_meter(__name__)


def instrument_fastapi(app):
    """Instrument FastAPI with OpenTelemetry."""
    FastAPIInstrumentor.instrument_app(app)


def instrument_sqlalchemy():
    """Instrument SQLAlchemy with OpenTelemetry."""
    SQLAlchemyInstrumentor().instrument()


class MetricsCollector:
    """Collector for sync pipeline metrics."""

    @staticmethod
    def record_request(method: str, endpoint: str, status_code: int, duration_seconds: float):
        """Record one served HTTP request."""
        REQUEST_COUNT.labels(method=method, endpoint=endpoint, status_code=str(status_code)).inc()
        REQUEST_DURATION.labels(method=method, endpoint=endpoint).observe(duration_seconds)

    @staticmethod
    def record_sync_finished(wholesaler_id: int, status: str, duration_seconds: float):
        """Record a sync run reaching a terminal status."""
        SYNC_RUNS.labels(wholesaler_id=str(wholesaler_id), status=status).inc()
        SYNC_DURATION.labels(wholesaler_id=str(wholesaler_id)).observe(duration_seconds)

    @staticmethod
    def record_tour(wholesaler_id: int, action: str):
        """Record a tour created, updated, skipped or failed by sync."""
        TOURS_SYNCED.labels(wholesaler_id=str(wholesaler_id), action=action).inc()

    @staticmethod
    def record_periods(wholesaler_id: int, action: str, count: int = 1):
        """Record periods created or updated by sync."""
        if count:
            PERIODS_SYNCED.labels(wholesaler_id=str(wholesaler_id), action=action).inc(count)

    @staticmethod
    def record_api_request(wholesaler_id: int, action: str, outcome: str):
        """Record an outbound wholesaler API call."""
        WHOLESALER_API_REQUESTS.labels(
            wholesaler_id=str(wholesaler_id), action=action, outcome=outcome
        ).inc()

    @staticmethod
    def record_lock_contention(wholesaler_id: int):
        """Record a sync refused because another one holds the lock."""
        SYNC_LOCK_CONTENTION.labels(wholesaler_id=str(wholesaler_id)).inc()

    @staticmethod
    def record_stuck_cancelled(count: int):
        """Record stuck syncs cancelled by maintenance."""
        if count:
            STUCK_SYNCS_CANCELLED.inc(count)

    @staticmethod
    def sync_started():
        RUNNING_SYNCS.inc()

    @staticmethod
    def sync_stopped():
        RUNNING_SYNCS.dec()

    @staticmethod
    def record_auto_closed(periods: int, tours: int):
        """Record periods and tours closed by the auto-close job."""
        if periods:
            PERIODS_AUTO_CLOSED.inc(periods)
        if tours:
            TOURS_AUTO_CLOSED.inc(tours)


def get_prometheus_metrics():
    """Get Prometheus metrics for the /metrics endpoint."""
    return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()
