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
from prometheus_client import Counter, Histogram, generate_latest, CollectorRegistry
import structlog

from .config import settings

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

# Business metrics
BOOKINGS_CREATED = Counter(
    'bookings_created_total',
    'Total bookings created',
    ['capacity_model', 'source'],
    registry=REGISTRY
)

BOOKINGS_CANCELLED = Counter(
    'bookings_cancelled_total',
    'Total bookings cancelled',
    registry=REGISTRY
)

BOOKINGS_RESCHEDULED = Counter(
    'bookings_rescheduled_total',
    'Total bookings rescheduled',
    registry=REGISTRY
)

CAPACITY_CONFLICTS = Counter(
    'schedule_capacity_conflicts_total',
    'Guarded capacity reservations rejected because the schedule was full',
    registry=REGISTRY
)

BULK_OPERATION_ITEMS = Counter(
    'booking_bulk_operation_items_total',
    'Items processed by bulk booking operations',
    ['operation', 'outcome'],
    registry=REGISTRY
)

BACKGROUND_TASK_FAILURES = Counter(
    'background_task_failures_total',
    'Fire-and-forget background tasks that raised',
    ['task'],
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

    # Configure structlog
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


def setup_tracing(app_name: str = "tour-crm-api"):
    """Setup OpenTelemetry tracing."""

    # Create resource
    resource = Resource.create({
        "service.name": app_name,
        "service.version": "1.0.0",
        "environment": settings.environment,
    })

    # Setup tracer provider
    trace.set_tracer_provider(TracerProvider(resource=resource))

    # Setup OTLP exporter (if OTLP endpoint is configured)
    if settings.otlp_endpoint:
        otlp_exporter = OTLPSpanExporter(endpoint=settings.otlp_endpoint)
        span_processor = BatchSpanProcessor(otlp_exporter)
        trace.get_tracer_provider().add_span_processor(span_processor)

    # Get tracer
    tracer = trace.get_tracer(__name__)
    return tracer


def setup_metrics(app_name: str = "tour-crm-api"):
    """Setup OpenTelemetry metrics."""

    # Create resource
    resource = Resource.create({
        "service.name": app_name,
        "service.version": "1.0.0",
        "environment": settings.environment,
    })

    # Setup OTLP metric exporter (if configured)
    if settings.otlp_endpoint:
        otlp_exporter = OTLPMetricExporter(endpoint=settings.otlp_endpoint)
        reader = PeriodicExportingMetricReader(exporter=otlp_exporter, export_interval_millis=60000)
        metrics.set_meter_provider(MeterProvider(resource=resource, metric_readers=[reader]))

    # Get meter
    meter = metrics.get_meter(__name__)
    return meter


def instrument_fastapi(app):
    """Instrument FastAPI with OpenTelemetry."""
    FastAPIInstrumentor.instrument_app(app)


def instrument_sqlalchemy():
    """Instrument SQLAlchemy with OpenTelemetry."""
    SQLAlchemyInstrumentor().instrument()


class MetricsCollector:
    """Collector for business metrics."""

    @staticmethod
    def record_booking_created(capacity_model: str, source: str):
        """Record a booking creation."""
        BOOKINGS_CREATED.labels(capacity_model=capacity_model, source=source).inc()

    @staticmethod
    def record_booking_cancelled(count: int = 1):
        """Record booking cancellations."""
        BOOKINGS_CANCELLED.inc(count)

    @staticmethod
    def record_booking_rescheduled():
        """Record a booking reschedule."""
        BOOKINGS_RESCHEDULED.inc()

    @staticmethod
    def record_capacity_conflict():
        """Record a reservation rejected by the capacity guard."""
        CAPACITY_CONFLICTS.inc()

    @staticmethod
    def record_bulk_items(operation: str, succeeded: int, failed: int):
        """Record the outcome split of a bulk operation."""
        if succeeded:
            BULK_OPERATION_ITEMS.labels(operation=operation, outcome="succeeded").inc(succeeded)
        if failed:
            BULK_OPERATION_ITEMS.labels(operation=operation, outcome="failed").inc(failed)

    @staticmethod
    def record_background_task_failure(task: str):
        """Record a failed background task."""
        BACKGROUND_TASK_FAILURES.labels(task=task).inc()


def get_prometheus_metrics():
    """Get Prometheus metrics for the /metrics endpoint."""
    return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()


class StructuredLogger:
    """Structured logger with business context."""

    def __init__(self, name: str, logger=None):
        self.name = name
        self.logger = logger if logger is not None else structlog.get_logger(name)

    def info(self, message: str, **kwargs):
        """Log info message with context."""
        self.logger.info(message, **kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message with context."""
        self.logger.warning(message, **kwargs)

    def error(self, message: str, **kwargs):
        """Log error message with context."""
        self.logger.error(message, **kwargs)

    def debug(self, message: str, **kwargs):
        """Log debug message with context."""
        self.logger.debug(message, **kwargs)

    def with_context(self, **kwargs) -> "StructuredLogger":
        """Return a logger that binds ``kwargs`` to every event."""
        return StructuredLogger(self.name, self.logger.bind(**kwargs))


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance."""
    return StructuredLogger(name)
