"""
Metric Registry

Prometheus instruments keyed by a stable name. Alert rules and dashboards
query these names directly, so they are defined once here and looked up
through the registry instead of being created ad hoc in routers.

Two guarantees callers rely on:

1. Lookups are idempotent. Asking twice for the same name returns the
   same instrument; nothing is registered twice.
2. Recording never raises. A bad label set or a broken collector is
   logged and dropped; it must not turn a successful request into a 500.

The process-wide registry is backed by prometheus_client's default
CollectorRegistry (what /metrics exposes). Tests build their own:

    registry = MetricRegistry(CollectorRegistry())
"""

import logging
import threading
from collections.abc import Mapping, Sequence
from functools import lru_cache

from prometheus_client import REGISTRY, CollectorRegistry
from prometheus_client import Counter as PromCounter
from prometheus_client import Histogram as PromHistogram

logger = logging.getLogger(__name__)


# =============================================================================
# Metric Names
# =============================================================================
# Consumed verbatim by the alert rules:
#   errors_total / requests_total > 2% over 5m
#   histogram_quantile(0.95, duration_seconds) > 0.5 over 5m
#   increase(requests_total[5m]) == 0
MULTI_STEP_REQUESTS_TOTAL = "multi_step_review_book_update_requests_total"
MULTI_STEP_ERRORS_TOTAL = "multi_step_review_book_update_errors_total"
MULTI_STEP_DURATION_SECONDS = "multi_step_review_book_update_duration_seconds"

REVIEWS_CREATED_TOTAL = "reviews_created_total"
REVIEW_CREATION_DURATION_SECONDS = "review_creation_duration_seconds"
BOOKS_FETCHED_TOTAL = "books_fetched_total"
SIMULATED_ERRORS_TOTAL = "simulated_errors_total"
SLOW_ENDPOINT_REQUESTS_TOTAL = "slow_endpoint_requests_total"
SLOW_ENDPOINT_DURATION_SECONDS = "slow_endpoint_duration_seconds"
LATENCY_SIMULATION_SECONDS = "latency_simulation_seconds"
DATABASE_HEAVY_REQUESTS_TOTAL = "database_heavy_requests_total"
DATABASE_HEAVY_DURATION_SECONDS = "database_heavy_duration_seconds"
DATABASE_QUERY_EXECUTION_SECONDS = "database_query_execution_seconds"

Labels = Mapping[str, str] | None


class Counter:
    """Monotonic counter that swallows and logs recording failures."""

    def __init__(self, name: str, metric: PromCounter, labelnames: Sequence[str]):
        self.name = name
        self._metric = metric
        self.labelnames = tuple(labelnames)

    def add(self, amount: float = 1, labels: Labels = None) -> None:
        try:
            if self.labelnames:
                self._metric.labels(**dict(labels or {})).inc(amount)
            else:
                self._metric.inc(amount)
        except Exception as exc:
            logger.warning(f"Dropped counter increment for {self.name}: {exc}")


class Histogram:
    """Histogram that swallows and logs recording failures."""

    def __init__(self, name: str, metric: PromHistogram, labelnames: Sequence[str]):
        self.name = name
        self._metric = metric
        self.labelnames = tuple(labelnames)

    def record(self, value: float, labels: Labels = None) -> None:
        try:
            if self.labelnames:
                self._metric.labels(**dict(labels or {})).observe(value)
            else:
                self._metric.observe(value)
        except Exception as exc:
            logger.warning(f"Dropped histogram observation for {self.name}: {exc}")


class MetricRegistry:
    """
    Name-keyed cache of instruments on top of a CollectorRegistry.

    Args:
        collector_registry: Where instruments are registered. Defaults to
            prometheus_client's global registry.
    """

    def __init__(self, collector_registry: CollectorRegistry | None = None):
        self.collector_registry = REGISTRY if collector_registry is None else collector_registry
        self._instruments: dict[str, Counter | Histogram] = {}
        self._lock = threading.Lock()

    def counter(
        self,
        name: str,
        help: str,
        labelnames: Sequence[str] = (),
    ) -> Counter:
        """Return the counter called ``name``, registering it on first use."""
        with self._lock:
            instrument = self._instruments.get(name)
            if instrument is None:
                instrument = Counter(
                    name,
                    PromCounter(
                        name,
                        help,
                        labelnames=tuple(labelnames),
                        registry=self.collector_registry,
                    ),
                    labelnames,
                )
                self._instruments[name] = instrument
            elif not isinstance(instrument, Counter):
                raise ValueError(f"Metric {name} is already registered as a histogram")
            return instrument

    def histogram(
        self,
        name: str,
        help: str,
        labelnames: Sequence[str] = (),
        buckets: Sequence[float] = PromHistogram.DEFAULT_BUCKETS,
    ) -> Histogram:
        """
        Return the histogram called ``name``, registering it on first use.

        The default buckets include 0.5s, the boundary of the p95 latency
        alert.
        """
        with self._lock:
            instrument = self._instruments.get(name)
            if instrument is None:
                instrument = Histogram(
                    name,
                    PromHistogram(
                        name,
                        help,
                        labelnames=tuple(labelnames),
                        buckets=tuple(buckets),
                        registry=self.collector_registry,
                    ),
                    labelnames,
                )
                self._instruments[name] = instrument
            elif not isinstance(instrument, Histogram):
                raise ValueError(f"Metric {name} is already registered as a counter")
            return instrument

    def sample(self, name: str, labels: Labels = None) -> float | None:
        """Current value of one exposed sample, e.g. ``foo_total`` or ``bar_count``."""
        return self.collector_registry.get_sample_value(name, dict(labels or {}))


@lru_cache
def get_metric_registry() -> MetricRegistry:
    """
    Process-wide registry.

    Cached like get_settings(): initialized on first use at startup, lives
    until the process exits.
    """
    return MetricRegistry()
