"""
Tracing

OpenTelemetry bootstrap plus TraceSpanRunner, the one way application
code opens spans.

TraceSpanRunner.run(name, attributes, fn) awaits fn(span) inside a span
that is *current* for the duration, so any run() issued from within fn
becomes a child without callers passing context around:

    async def create(span):
        span.set_attribute("reviewId", review.id)
        return review

    review = await runner.run("CreateReview", {"bookId": 1}, create)

Status rules:
- OK when fn returns
- ERROR when fn raises; the exception is recorded on the span and
  re-raised unchanged
- the span is ended on every path
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from functools import lru_cache
from typing import Any, TypeVar

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Span, Status, StatusCode, Tracer

from app import __version__
from app.config import Settings

logger = logging.getLogger(__name__)

APP_TRACER_NAME = "observability-test"
APP_TRACER_VERSION = "1.0.0"

T = TypeVar("T")

AttributeValue = str | bool | int | float


def _clean_attributes(attributes: Mapping[str, Any] | None) -> dict[str, AttributeValue]:
    """Drop None values; OpenTelemetry rejects them."""
    return {key: value for key, value in (attributes or {}).items() if value is not None}


class TraceSpanRunner:
    """
    Executes units of work inside named spans.

    Args:
        tracer: Tracer to start spans from. Defaults to the application
            tracer on the global provider; tests pass a tracer from their
            own TracerProvider with an in-memory exporter.
    """

    def __init__(self, tracer: Tracer | None = None):
        self._tracer = tracer or trace.get_tracer(APP_TRACER_NAME, APP_TRACER_VERSION)

    async def run(
        self,
        name: str,
        attributes: Mapping[str, Any] | None,
        fn: Callable[[Span], Awaitable[T]],
    ) -> T:
        with self._tracer.start_as_current_span(
            name,
            attributes=_clean_attributes(attributes),
            record_exception=False,
            set_status_on_exception=False,
        ) as span:
            try:
                result = await fn(span)
            except asyncio.CancelledError:
                span.set_status(Status(StatusCode.ERROR, "cancelled"))
                raise
            except Exception as exc:
                span.record_exception(exc)
                span.set_status(Status(StatusCode.ERROR, str(exc) or type(exc).__name__))
                raise
            span.set_status(Status(StatusCode.OK))
            return result


@lru_cache
def get_span_runner() -> TraceSpanRunner:
    """Process-wide runner bound to the application tracer."""
    return TraceSpanRunner()


# =============================================================================
# Provider Bootstrap
# =============================================================================
def configure_tracing(settings: Settings) -> TracerProvider:
    """
    Install the SDK tracer provider for this process.

    Called once from the application lifespan. Exporters:
    - OTLP/HTTP when OTEL_EXPORTER_OTLP_ENDPOINT is set
    - console when OTEL_CONSOLE_EXPORTER is true
    With neither, spans are created (so context still propagates) but not
    exported.
    """
    resource = Resource.create(
        {
            SERVICE_NAME: settings.otel_service_name,
            SERVICE_VERSION: __version__,
            "deployment.environment": settings.environment,
        }
    )
    provider = TracerProvider(resource=resource)

    if settings.otel_exporter_otlp_endpoint:
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint))
        )
        logger.info(f"Exporting spans to {settings.otel_exporter_otlp_endpoint}")
    if settings.otel_console_exporter:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
        logger.info("Exporting spans to console")

    trace.set_tracer_provider(provider)
    return provider
