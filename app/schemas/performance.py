"""
Performance Simulation Schemas

Request/response bodies for the endpoints that drive the latency
dashboards and the p95 alert:
- SlowRequest / SlowResponse: artificial latency, labelled by the kind of
  operation being simulated
- DatabaseHeavyRequest / DatabaseHeavyResponse: expensive queries against
  the real tables
"""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class SlowOperationType(StrEnum):
    DATABASE = "database"
    EXTERNAL_API = "external_api"
    COMPUTATION = "computation"
    GENERIC = "generic"


class HeavyOperationType(StrEnum):
    COMPLEX_JOIN = "complex_join"
    AGGREGATION = "aggregation"
    STATS = "stats"
    SLOW_QUERY = "slow_query"


class AggregationType(StrEnum):
    RATING_ANALYSIS = "rating_analysis"
    AUTHOR_POPULARITY = "author_popularity"
    TEMPORAL_ANALYSIS = "temporal_analysis"
    GENERIC = "generic"


class PerformanceImpact(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# =============================================================================
# Slow Endpoint
# =============================================================================


class SlowRequest(BaseModel):
    """Requested artificial latency."""

    latency_ms: int = Field(
        default=1000,
        ge=100,
        le=5000,
        description="Milliseconds to wait before responding (100-5000)",
        examples=[250, 1200],
    )
    operation_type: SlowOperationType = Field(
        default=SlowOperationType.GENERIC,
        description="Kind of work being simulated; used as a metric label",
    )


class SlowResponse(BaseModel):
    """What the slow endpoint actually did."""

    requested_latency_ms: int
    actual_latency_ms: float
    operation_type: SlowOperationType
    timestamp: datetime


# =============================================================================
# Database Heavy Endpoint
# =============================================================================


class DatabaseHeavyRequest(BaseModel):
    """
    Which expensive query to run.

    Example request body:
    {
        "operation_type": "aggregation",
        "aggregation_type": "author_popularity"
    }
    """

    operation_type: HeavyOperationType = Field(
        default=HeavyOperationType.COMPLEX_JOIN,
        description="Query family to run",
    )
    limit: int | None = Field(
        default=None,
        ge=1,
        le=1000,
        description="Row limit for complex_join (default 50)",
    )
    delay_seconds: float | None = Field(
        default=None,
        ge=0.1,
        le=10,
        description="Server-side delay for slow_query (default 1)",
    )
    aggregation_type: AggregationType | None = Field(
        default=None,
        description="Aggregation to run for the aggregation operation (default generic)",
    )


class HeavyMetadata(BaseModel):
    timestamp: datetime
    record_count: int
    performance_impact: PerformanceImpact


class DatabaseHeavyResponse(BaseModel):
    """Query result plus how expensive it was."""

    operation_type: HeavyOperationType
    execution_time_ms: float
    data: Any
    metadata: HeavyMetadata
