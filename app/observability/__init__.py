"""
Observability Package

- metrics.py: MetricRegistry over prometheus_client, plus the metric names
  the alert rules depend on
- tracing.py: OpenTelemetry provider bootstrap and TraceSpanRunner
"""

from app.observability.metrics import MetricRegistry, get_metric_registry
from app.observability.tracing import TraceSpanRunner, configure_tracing, get_span_runner

__all__ = [
    "MetricRegistry",
    "get_metric_registry",
    "TraceSpanRunner",
    "configure_tracing",
    "get_span_runner",
]
