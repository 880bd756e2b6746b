"""Monitoring and observability setup.

Tracing and metrics are exported over OTLP gRPC. When TELEMETRY_ENABLED is
false no SDK provider is installed, so the tracer and every instrument below
fall back to the OpenTelemetry no-op implementations. Services can record
metrics unconditionally.

Exemplars are attached automatically to the histograms (checkout amount,
payment duration) when they are recorded inside an active trace.
"""
import logging
from opentelemetry import trace, metrics
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
import pyroscope

from config import (
    OTEL_EXPORTER_OTLP_ENDPOINT,
    PYROSCOPE_SERVER,
    SERVICE_NAME,
    TELEMETRY_ENABLED
)

logger = logging.getLogger(__name__)


def init_tracing() -> trace.Tracer:
    """
    Initialize OpenTelemetry tracing.

    Returns:
        Tracer instance
    """
    if TELEMETRY_ENABLED:
        resource = Resource.create({"service.name": SERVICE_NAME})

        tracer_provider = TracerProvider(resource=resource)
        otlp_span_exporter = OTLPSpanExporter(
            endpoint=OTEL_EXPORTER_OTLP_ENDPOINT,
            insecure=True
        )
        tracer_provider.add_span_processor(BatchSpanProcessor(otlp_span_exporter))
        trace.set_tracer_provider(tracer_provider)

        logger.info(f"Tracing initialized with endpoint: {OTEL_EXPORTER_OTLP_ENDPOINT}")

    return trace.get_tracer(__name__)


def init_metrics() -> metrics.Meter:
    """
    Initialize OpenTelemetry metrics.

    Returns:
        Meter instance
    """
    if TELEMETRY_ENABLED:
        resource = Resource.create({"service.name": SERVICE_NAME})

        otlp_metric_reader = PeriodicExportingMetricReader(
            OTLPMetricExporter(endpoint=OTEL_EXPORTER_OTLP_ENDPOINT, insecure=True),
            export_interval_millis=5000
        )
        meter_provider = MeterProvider(
            resource=resource,
            metric_readers=[otlp_metric_reader]
        )
        metrics.set_meter_provider(meter_provider)

        logger.info("Metrics initialized with OTLP exporter")

    return metrics.get_meter(__name__)


def init_profiling() -> None:
    """Initialize Pyroscope profiling."""
    if not TELEMETRY_ENABLED:
        return
    try:
        pyroscope.configure(
            application_name=SERVICE_NAME,
            server_address=PYROSCOPE_SERVER,
            tags={"env": "production"}
        )
        logger.info(f"Profiling initialized with server: {PYROSCOPE_SERVER}")
    except Exception as e:
        logger.warning(f"Failed to initialize profiling: {e}")


tracer = init_tracing()
meter = init_metrics()

# Cart metrics
cart_mutations_counter = meter.create_counter(
    "market.cart.mutations",
    description="Cart mutations by operation (add, update, remove, clear)",
    unit="1"
)

restocked_units_counter = meter.create_counter(
    "market.products.restocked_units",
    description="Product units returned to stock from removed cart items",
    unit="1"
)

# Checkout metrics
checkout_counter = meter.create_counter(
    "market.checkouts",
    description="Total number of checkouts by mode and status",
    unit="1"
)

checkout_amount_histogram = meter.create_histogram(
    "market.checkout.amount",
    description="Checkout amount",
    unit="USD"
)

payment_duration_histogram = meter.create_histogram(
    "market.payment.duration",
    description="Payment provider call duration",
    unit="s"
)

# Security monitoring metrics
auth_attempts_counter = meter.create_counter(
    "market.auth.attempts",
    description="Total number of authentication attempts",
    unit="1"
)

auth_failures_counter = meter.create_counter(
    "market.auth.failures",
    description="Total number of authentication failures",
    unit="1"
)

tokens_issued_counter = meter.create_counter(
    "market.auth.tokens_issued",
    description="Email verification and password reset tokens issued",
    unit="1"
)

rate_limit_exceeded_counter = meter.create_counter(
    "market.rate_limit.exceeded",
    description="Total number of rate limit violations",
    unit="1"
)

suspicious_activity_counter = meter.create_counter(
    "market.security.suspicious_activity",
    description="Total number of suspicious activity detections",
    unit="1"
)

# Notification metrics
notification_deliveries_counter = meter.create_counter(
    "market.notifications.deliveries",
    description="Notification deliveries by channel (push, email) and status",
    unit="1"
)

# External service call metrics
external_call_duration_histogram = meter.create_histogram(
    "market.external.duration",
    description="Duration of calls to external systems",
    unit="s"
)
