"""
Observability setup:
  - OpenTelemetry distributed tracing → Jaeger (via OTLP gRPC)
  - Prometheus metrics for edge toggles, notification flow, degraded reads
    and feed latency

Services create spans through ``trace.get_tracer``; until ``setup_tracing``
installs a provider those spans are no-ops, which is what the tests run with.
"""
import logging

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import Counter, Histogram

from social_feed.config import Settings

logger = logging.getLogger(__name__)

# ─────────────────────────── Prometheus Metrics ───────────────────────────
FEED_LATENCY = Histogram(
    "feed_latency_seconds",
    "Latency of feed page computation",
    ["feed"],  # 'public' | 'following' | 'author' | 'replies'
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0],
)

EDGE_TOGGLES_TOTAL = Counter(
    "edge_toggles_total",
    "Follow / like edge toggles",
    ["edge", "action"],  # edge: follow|like, action: created|deleted|already_applied
)

NOTIFICATIONS_CREATED_TOTAL = Counter(
    "notifications_created_total",
    "Notifications persisted",
    ["type"],
)

NOTIFICATIONS_SUPPRESSED_TOTAL = Counter(
    "notifications_suppressed_total",
    "Notifications not persisted",
    ["reason"],  # 'self' | 'duplicate'
)

NOTIFICATION_DISPATCH_FAILURES_TOTAL = Counter(
    "notification_dispatch_failures_total",
    "Best-effort notification side effects that failed",
)

DEGRADED_READS_TOTAL = Counter(
    "degraded_reads_total",
    "Advisory reads that fell back to a default after a storage error",
    ["operation"],
)


# ─────────────────────────── OpenTelemetry Setup ──────────────────────────
def setup_tracing(settings: Settings) -> None:
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
            "OTel tracing configured -> %s", settings.otel_exporter_otlp_endpoint
        )
    except Exception as exc:
        logger.warning("Could not connect to OTLP exporter: %s - traces disabled", exc)

    trace.set_tracer_provider(provider)


def instrument_app(app) -> None:  # noqa: ANN001
    """Call after app is created to add FastAPI request spans."""
    FastAPIInstrumentor.instrument_app(app)


def instrument_engine(engine) -> None:  # noqa: ANN001
    """SQL statement spans for an async engine."""
    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)
