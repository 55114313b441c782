"""Observability setup for OpenTelemetry, Prometheus metrics, and structured logging."""

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

from .config import Settings

SERVICE_NAME = "roombroker"

REGISTRY = CollectorRegistry()

# Worker metrics
WORKER_RUNS = Counter(
    'worker_runs_total',
    'Total worker ticks by outcome',
    ['worker', 'outcome'],
    registry=REGISTRY
)

WORKER_RUN_DURATION = Histogram(
    'worker_run_duration_seconds',
    'Worker tick duration in seconds',
    ['worker'],
    registry=REGISTRY
)

WORKER_RESTARTS = Counter(
    'worker_restarts_total',
    'Workers restarted by the supervisor health monitor',
    ['worker'],
    registry=REGISTRY
)

WORKER_HEALTHY = Gauge(
    'worker_healthy',
    '1 when the worker passed its last health check',
    ['worker'],
    registry=REGISTRY
)

# Business metrics
SUPPLIER_SEARCHES = Counter(
    'supplier_searches_total',
    'Supplier searches by outcome',
    ['supplier', 'outcome'],
    registry=REGISTRY
)

PURCHASES = Counter(
    'room_purchases_total',
    'Rooms purchased (or simulated in dry-run)',
    ['mode'],
    registry=REGISTRY
)

CANCELLATIONS = Counter(
    'booking_cancellations_total',
    'Automated booking cancellations by outcome',
    ['outcome'],
    registry=REGISTRY
)

CHANNEL_PUSHES = Counter(
    'channel_push_attempts_total',
    'Downstream push attempts',
    ['push_type', 'outcome'],
    registry=REGISTRY
)

AUDIT_PROBLEMS = Gauge(
    'audit_problems',
    'Problems found by the latest audit run',
    ['problem_type'],
    registry=REGISTRY
)

PUSH_VERIFICATIONS = Counter(
    'push_verifications_total',
    'Push queue items verified against the push log',
    ['outcome'],
    registry=REGISTRY
)

CANCELLATION_DISCREPANCIES = Gauge(
    'cancellation_discrepancies',
    'Local and supplier cancellation states that disagree, as of the latest check',
    registry=REGISTRY
)


def setup_structured_logging(settings: Settings) -> None:
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


def _resource(settings: Settings) -> Resource:
    return Resource.create({
        "service.name": SERVICE_NAME,
        "service.version": "1.0.0",
        "environment": settings.environment,
    })


def setup_tracing(settings: Settings):
    """Setup OpenTelemetry tracing."""
    trace.set_tracer_provider(TracerProvider(resource=_resource(settings)))

    if settings.otlp_endpoint:
        otlp_exporter = OTLPSpanExporter(endpoint=settings.otlp_endpoint)
        span_processor = BatchSpanProcessor(otlp_exporter)
        trace.get_tracer_provider().add_span_processor(span_processor)

    return trace.get_tracer(__name__)


def setup_metrics(settings: Settings):
    """Setup OpenTelemetry metrics."""
    if settings.otlp_endpoint:
        otlp_exporter = OTLPMetricExporter(endpoint=settings.otlp_endpoint)
        reader = PeriodicExportingMetricReader(exporter=otlp_exporter, export_interval_millis=60000)
        metrics.set_meter_provider(MeterProvider(resource=_resource(settings), metric_readers=[reader]))

    return metrics.get_meter(__name__)


def instrument_fastapi(app):
    """Instrument FastAPI with OpenTelemetry."""
    FastAPIInstrumentor.instrument_app(app)


def instrument_sqlalchemy():
    """Instrument SQLAlchemy with OpenTelemetry."""
    SQLAlchemyInstrumentor().instrument()


class MetricsCollector:
    """Collector for worker and business metrics."""

    @staticmethod
    def record_worker_run(worker: str, outcome: str, duration_seconds: float):
        WORKER_RUNS.labels(worker=worker, outcome=outcome).inc()
        WORKER_RUN_DURATION.labels(worker=worker).observe(duration_seconds)

    @staticmethod
    def record_worker_restart(worker: str):
        WORKER_RESTARTS.labels(worker=worker).inc()

    @staticmethod
    def set_worker_health(worker: str, healthy: bool):
        WORKER_HEALTHY.labels(worker=worker).set(1 if healthy else 0)

    @staticmethod
    def record_supplier_search(supplier: str, success: bool):
        SUPPLIER_SEARCHES.labels(supplier=supplier, outcome="success" if success else "failure").inc()

    @staticmethod
    def record_purchase(dry_run: bool):
        PURCHASES.labels(mode="dry_run" if dry_run else "live").inc()

    @staticmethod
    def record_cancellation(success: bool):
        CANCELLATIONS.labels(outcome="success" if success else "failure").inc()

    @staticmethod
    def record_push_attempt(push_type: str, success: bool):
        CHANNEL_PUSHES.labels(push_type=push_type, outcome="success" if success else "failure").inc()

    @staticmethod
    def set_audit_problems(counts: dict[str, int]):
        """Set the per-type problem gauge; types absent from counts are zeroed."""
        from ..schemas.audit import AuditProblemType

        for problem_type in AuditProblemType:
            AUDIT_PROBLEMS.labels(problem_type=problem_type.value).set(counts.get(problem_type.value, 0))

    @staticmethod
    def record_push_verification(outcome: str):
        PUSH_VERIFICATIONS.labels(outcome=outcome).inc()

    @staticmethod
    def set_cancellation_discrepancies(count: int):
        CANCELLATION_DISCREPANCIES.set(count)


def get_prometheus_metrics():
    """Get Prometheus metrics for the /metrics endpoint."""
    return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()
