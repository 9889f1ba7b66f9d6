"""
Distributed Tracing with OpenTelemetry.

HTTP requests and SQL statements are traced automatically. The format
pipeline opens its own ``format_pipeline`` span and tags it with the caller
(never the credential) and, on failure, the error kind. Probe endpoints
(/health, /metrics) are excluded so scrapers do not flood the collector.
"""

from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Span, Status, StatusCode, Tracer

from speedformat.config import settings
from speedformat.exceptions import FormatterServiceError
from speedformat.models.domain import CallerIdentity

# Comma-separated URL patterns skipped by the FastAPI instrumentation
UNTRACED_URLS = "health,metrics"


def setup_tracing() -> None:
    """Install a TracerProvider exporting to the OTLP collector (TRACING_ENABLED)."""
    if not settings.tracing_enabled:
        return

    resource = Resource.create(
        {
            "service.name": settings.service_name,
            "service.version": settings.api_version,
            "deployment.environment": settings.environment,
        }
    )

    provider = TracerProvider(resource=resource)
    provider.add_span_processor(
        BatchSpanProcessor(
            OTLPSpanExporter(endpoint=settings.otlp_endpoint, insecure=settings.otlp_insecure)
        )
    )
    trace.set_tracer_provider(provider)


def instrument_fastapi(app: Any) -> None:
    """Trace every route except the probe endpoints."""
    if not settings.tracing_enabled:
        return

    FastAPIInstrumentor.instrument_app(app, excluded_urls=UNTRACED_URLS)


def instrument_sqlalchemy(engine: Any) -> None:
    """Trace queries on one async engine (called for the writer and the replica)."""
    if not settings.tracing_enabled:
        return

    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


def get_tracer(name: str) -> Tracer:
    return trace.get_tracer(name)


def caller_span_attributes(identity: CallerIdentity) -> dict[str, Any]:
    """Span attributes describing a resolved caller. API keys are never included."""
    return {
        "caller.auth_type": identity.auth_type.value,
        "caller.plan": identity.plan_label,
        "caller.account_id": identity.account_id,
        "caller.api_key_id": identity.api_key_id,
    }


def add_span_attributes(span: Span, **attributes: Any) -> None:
    """Add attributes to a span, skipping None and stringifying non-primitives."""
    for key, value in attributes.items():
        if value is not None:
            if isinstance(value, (str, int, float, bool)):
                span.set_attribute(key, value)
            else:
                span.set_attribute(key, str(value))


def set_span_error(span: Span, error: Exception) -> None:
    """Mark span as error, tagging service errors with their stable kind."""
    if isinstance(error, FormatterServiceError):
        span.set_attribute("error.kind", error.kind.value)
    span.set_status(Status(StatusCode.ERROR, str(error)))
    span.record_exception(error)
