"""
Database Heavy Operations

Runs the query family picked in a DatabaseHeavyRequest against a
PerformanceStore and classifies how hard it hit the database:

- complex_join: high above 100 rows, medium otherwise
- stats: always high (several queries at once)
- aggregation: high for temporal_analysis, medium otherwise
- slow_query: high above 5s, medium above 2s, low otherwise

Store errors propagate as StoreError; the router turns them into a 500.
"""

import logging
import time
from datetime import UTC, datetime

from app.schemas.performance import (
    AggregationType,
    DatabaseHeavyRequest,
    DatabaseHeavyResponse,
    HeavyMetadata,
    HeavyOperationType,
    PerformanceImpact,
)
from app.stores.base import PerformanceStore
from app.stores.performance import DEFAULT_JOIN_LIMIT

logger = logging.getLogger(__name__)

DEFAULT_DELAY_SECONDS = 1.0


def slow_query_impact(delay_seconds: float) -> PerformanceImpact:
    if delay_seconds > 5:
        return PerformanceImpact.HIGH
    if delay_seconds > 2:
        return PerformanceImpact.MEDIUM
    return PerformanceImpact.LOW


class DatabaseHeavyService:
    """
    Dispatch heavy queries and time them.

    Args:
        store: Where the queries run
    """

    def __init__(self, store: PerformanceStore):
        self._store = store

    async def run(self, request: DatabaseHeavyRequest) -> DatabaseHeavyResponse:
        started = time.perf_counter()

        match request.operation_type:
            case HeavyOperationType.COMPLEX_JOIN:
                limit = request.limit or DEFAULT_JOIN_LIMIT
                data = await self._store.find_books_with_complex_join(limit)
                record_count = len(data)
                impact = PerformanceImpact.HIGH if limit > 100 else PerformanceImpact.MEDIUM
            case HeavyOperationType.STATS:
                data = await self._store.get_database_stats()
                record_count = 1
                impact = PerformanceImpact.HIGH
            case HeavyOperationType.AGGREGATION:
                aggregation_type = request.aggregation_type or AggregationType.GENERIC
                data = await self._store.heavy_aggregation(aggregation_type)
                record_count = data["result_count"]
                impact = (
                    PerformanceImpact.HIGH
                    if aggregation_type == AggregationType.TEMPORAL_ANALYSIS
                    else PerformanceImpact.MEDIUM
                )
            case HeavyOperationType.SLOW_QUERY:
                delay = request.delay_seconds or DEFAULT_DELAY_SECONDS
                data = await self._store.simulate_slow_query(delay)
                record_count = 1
                impact = slow_query_impact(delay)

        execution_time_ms = round((time.perf_counter() - started) * 1000, 2)
        logger.info(
            f"Heavy {request.operation_type} finished in {execution_time_ms}ms "
            f"({record_count} records, {impact} impact)"
        )
        return DatabaseHeavyResponse(
            operation_type=request.operation_type,
            execution_time_ms=execution_time_ms,
            data=data,
            metadata=HeavyMetadata(
                timestamp=datetime.now(UTC),
                record_count=record_count,
                performance_impact=impact,
            ),
        )
