"""
Observability setup:
  - OpenTelemetry distributed tracing → Jaeger (via OTLP gRPC)
  - Prometheus metrics: BaaS call latency/errors, relationship actions,
    realtime events, feed latency

Metrics are module-level; tracing is configured once at startup when
OTEL is enabled.
"""
import logging

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor
from prometheus_client import Counter, Histogram

from unfriendable.config import settings

logger = logging.getLogger(__name__)

# ─────────────────────────── Prometheus Metrics ───────────────────────────
BAAS_REQUEST_LATENCY = Histogram(
    "baas_request_latency_seconds",
    "Latency of calls to the backend-as-a-service",
    ["operation"],  # 'select' | 'insert' | 'update' | 'delete' | 'rpc' | 'auth'
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0],
)

BAAS_ERRORS_TOTAL = Counter(
    "baas_errors_total",
    "Calls to the backend-as-a-service that failed (service error or transport)",
    ["operation"],
)

RELATIONSHIP_ACTIONS_TOTAL = Counter(
    "relationship_actions_total",
    "Relationship actions performed through the profile view",
    ["action"],
)

REALTIME_EVENTS_TOTAL = Counter(
    "realtime_events_total",
    "postgres_changes notifications received from the realtime broker",
    ["table"],
)

FEED_LATENCY = Histogram(
    "feed_latency_seconds",
    "End-to-end latency of a feed load",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0],
)


# ─────────────────────────── OpenTelemetry Setup ──────────────────────────
def setup_tracing() -> None:
    """Configure the global OTel TracerProvider with OTLP/Jaeger export."""
    resource = Resource.create(
        {
            "service.name": settings.service_name,
            "deployment.environment": settings.environment,
        }
    )

    provider = TracerProvider(resource=resource)

    try:
        otlp_exporter = OTLPSpanExporter(
            endpoint=settings.otel_exporter_otlp_endpoint,
            insecure=True,
        )
        provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
        logger.info(
            "OTel tracing configured → %s", settings.otel_exporter_otlp_endpoint
        )
    except Exception as exc:
        logger.warning("Could not connect to OTLP exporter: %s, traces disabled", exc)

    trace.set_tracer_provider(provider)

    # BaaS calls go through httpx; sessions through redis
    HTTPXClientInstrumentor().instrument()
    RedisInstrumentor().instrument()


def instrument_app(app) -> None:  # noqa: ANN001
    """Call after app is created to add FastAPI request spans."""
    FastAPIInstrumentor.instrument_app(app)
