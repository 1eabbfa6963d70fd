"""Observability setup for OpenTelemetry, metrics, and structured logging."""

import logging

import structlog
from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

from .. import __version__
from .config import settings

SERVICE_NAME = "petcare-booking-api"

# Prometheus metrics
REGISTRY = CollectorRegistry()

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
RESERVATIONS_CREATED = Counter(
    'reservations_created_total',
    'Reservations admitted by the availability ledger',
    ['kind'],
    registry=REGISTRY
)

RESERVATION_CONFLICTS = Counter(
    'reservation_conflicts_total',
    'Reservations rejected for slot conflict or capacity',
    ['kind', 'code'],
    registry=REGISTRY
)

RESERVATION_TRANSITIONS = Counter(
    'reservation_transitions_total',
    'Reservation status transitions',
    ['kind', 'status'],
    registry=REGISTRY
)

REMINDERS_DISPATCHED = Counter(
    'reminders_dispatched_total',
    'Reminder jobs processed by the sweep',
    ['outcome'],
    registry=REGISTRY
)

NOTIFICATIONS_CREATED = Counter(
    'notifications_created_total',
    'Notifications persisted',
    ['type'],
    registry=REGISTRY
)

LIVE_CHANNELS_OPEN = Gauge(
    'live_channels_open',
    'Currently open live notification channels',
    registry=REGISTRY
)

LIVE_EVENTS_DROPPED = Counter(
    'live_events_dropped_total',
    'Live events not delivered because the channel was closed or full',
    registry=REGISTRY
)


def add_trace_context(logger, method_name, event_dict):
    """Add trace context to log events."""
    span = trace.get_current_span()
    if span and span.is_recording():
        ctx = span.get_span_context()
        event_dict['trace_id'] = format(ctx.trace_id, '032x')
        event_dict['span_id'] = format(ctx.span_id, '016x')
    return event_dict


def setup_structured_logging():
    """Configure structured logging with structlog."""
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


def _resource(app_name: str) -> Resource:
    return Resource.create({
        "service.name": app_name,
        "service.version": __version__,
        "environment": settings.environment,
    })


def setup_tracing(app_name: str = SERVICE_NAME):
    """Setup OpenTelemetry tracing."""
    provider = TracerProvider(resource=_resource(app_name))
    trace.set_tracer_provider(provider)

    if settings.otlp_endpoint:
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint))
        )

    return trace.get_tracer(__name__)


def setup_metrics(app_name: str = SERVICE_NAME):
    """Setup OpenTelemetry metrics."""
    if settings.otlp_endpoint:
        reader = PeriodicExportingMetricReader(
            exporter=OTLPMetricExporter(endpoint=settings.otlp_endpoint),
            export_interval_millis=60000,
        )
        metrics.set_meter_provider(
            MeterProvider(resource=_resource(app_name), metric_readers=[reader])
        )

    return metrics.get_meter(__name__)


def instrument_fastapi(app):
    """Instrument FastAPI with OpenTelemetry."""
    FastAPIInstrumentor.instrument_app(app)


def instrument_sqlalchemy():
    """Instrument SQLAlchemy with OpenTelemetry."""
    SQLAlchemyInstrumentor().instrument()


class MetricsCollector:
    """Collector for business metrics."""

    @staticmethod
    def record_reservation_created(kind: str):
        RESERVATIONS_CREATED.labels(kind=kind).inc()

    @staticmethod
    def record_reservation_conflict(kind: str, code: str):
        RESERVATION_CONFLICTS.labels(kind=kind, code=code).inc()

    @staticmethod
    def record_transition(kind: str, status: str):
        RESERVATION_TRANSITIONS.labels(kind=kind, status=status).inc()

    @staticmethod
    def record_reminder(outcome: str, count: int = 1):
        """Record reminder sweep outcomes (sent, failed, skipped)."""
        if count:
            REMINDERS_DISPATCHED.labels(outcome=outcome).inc(count)

    @staticmethod
    def record_notification_created(notification_type: str):
        NOTIFICATIONS_CREATED.labels(type=notification_type).inc()

    @staticmethod
    def set_live_channels(count: int):
        LIVE_CHANNELS_OPEN.set(count)

    @staticmethod
    def record_live_event_dropped():
        LIVE_EVENTS_DROPPED.inc()


def get_prometheus_metrics():
    """Get Prometheus metrics for the /metrics endpoint."""
    return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()
