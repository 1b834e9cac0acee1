"""Observability setup for OpenTelemetry, Prometheus metrics, and structured logging."""

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

from .config import settings

SERVICE_NAME = "club-outings-api"
SERVICE_VERSION = "1.0.0"

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
RESERVATIONS_CREATED = Counter(
    'reservations_created_total',
    'Reservations created, by assigned status',
    ['status'],
    registry=REGISTRY
)

RESERVATIONS_CANCELLED = Counter(
    'reservations_cancelled_total',
    'Reservations cancelled by members',
    registry=REGISTRY
)

WAITLIST_PROMOTIONS = Counter(
    'waitlist_promotions_total',
    'Waitlisted reservations promoted to confirmed',
    registry=REGISTRY
)

CARPOOL_BOOKINGS = Counter(
    'carpool_bookings_total',
    'Carpool seats booked',
    registry=REGISTRY
)

CARPOOL_BOOKINGS_REJECTED = Counter(
    'carpool_bookings_rejected_total',
    'Carpool seat bookings rejected',
    ['reason'],
    registry=REGISTRY
)

NOTIFICATIONS_SENT = Counter(
    'notifications_sent_total',
    'Member emails accepted by the email provider',
    ['template'],
    registry=REGISTRY
)

NOTIFICATIONS_FAILED = Counter(
    'notifications_failed_total',
    'Member emails that could not be delivered',
    ['template'],
    registry=REGISTRY
)

CAPACITY_UTILIZATION = Gauge(
    'outing_capacity_utilization',
    'Confirmed seats as a percentage of outing capacity',
    ['outing_id'],
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
        "service.version": SERVICE_VERSION,
        "environment": settings.environment,
    })


def setup_tracing():
    """Setup OpenTelemetry tracing, exporting over OTLP when configured."""
    provider = TracerProvider(resource=_resource())
    if settings.otlp_endpoint:
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint))
        )
    trace.set_tracer_provider(provider)
    return trace.get_tracer(__name__)


def setup_metrics():
    """Setup OpenTelemetry metrics, exporting over OTLP when configured."""
    if settings.otlp_endpoint:
        reader = PeriodicExportingMetricReader(
            exporter=OTLPMetricExporter(endpoint=settings.otlp_endpoint),
            export_interval_millis=60000,
        )
        metrics.set_meter_provider(MeterProvider(resource=_resource(), metric_readers=[reader]))
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
    def record_reservation_created(status: str):
        RESERVATIONS_CREATED.labels(status=status).inc()

    @staticmethod
    def record_reservation_cancelled():
        RESERVATIONS_CANCELLED.inc()

    @staticmethod
    def record_promotion():
        WAITLIST_PROMOTIONS.inc()

    @staticmethod
    def record_carpool_booking():
        CARPOOL_BOOKINGS.inc()

    @staticmethod
    def record_carpool_rejection(reason: str):
        CARPOOL_BOOKINGS_REJECTED.labels(reason=reason).inc()

    @staticmethod
    def record_notification(template: str, delivered: bool):
        if delivered:
            NOTIFICATIONS_SENT.labels(template=template).inc()
        else:
            NOTIFICATIONS_FAILED.labels(template=template).inc()

    @staticmethod
    def set_capacity_utilization(outing_id: str, confirmed: int, capacity: int):
        """Set confirmed/capacity as a percentage for an outing."""
        utilization = (confirmed / capacity * 100) if capacity else 0.0
        CAPACITY_UTILIZATION.labels(outing_id=outing_id).set(utilization)


def get_prometheus_metrics():
    """Get Prometheus metrics for the /metrics endpoint."""
    return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()
