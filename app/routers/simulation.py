"""
Simulation Router

Endpoints that exist to generate signals for the dashboards and alerts:
- GET /simulate-error - Always fails with a 500 inside an errored span
- POST /performance/slow - Responds after the requested latency
- POST /performance/heavy - Runs an expensive query against the database
"""

import asyncio
import logging
import time
from datetime import UTC, datetime

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from opentelemetry.trace import Span

from app.dependencies import HeavyOperations, Metrics, SpanRunner
from app.exceptions import StoreError
from app.observability.metrics import (
    DATABASE_HEAVY_DURATION_SECONDS,
    DATABASE_HEAVY_REQUESTS_TOTAL,
    DATABASE_QUERY_EXECUTION_SECONDS,
    LATENCY_SIMULATION_SECONDS,
    SIMULATED_ERRORS_TOTAL,
    SLOW_ENDPOINT_DURATION_SECONDS,
    SLOW_ENDPOINT_REQUESTS_TOTAL,
)
from app.schemas import DatabaseHeavyRequest, DatabaseHeavyResponse, SlowRequest, SlowResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Simulation"])


class SimulatedFailure(Exception):
    """Raised on purpose by /simulate-error."""
    pass


@router.get(
    "/simulate-error",
    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    summary="Trigger a simulated error",
)
async def simulate_error(metrics: Metrics, span_runner: SpanRunner) -> JSONResponse:
    """Fail on purpose so error dashboards and alerts have something to show."""

    async def fail(span: Span) -> None:
        span.set_attribute("simulated", True)
        raise SimulatedFailure("Simulated failure for testing observability")

    try:
        await span_runner.run("SimulateError", {"route": "/simulate-error"}, fail)
    except SimulatedFailure as exc:
        metrics.counter(
            SIMULATED_ERRORS_TOTAL,
            "Total number of simulated errors triggered manually",
            labelnames=("route",),
        ).add(1, {"route": "/simulate-error"})
        logger.error(f"Simulated error triggered: {exc}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": str(exc)},
        )


@router.post(
    "/performance/slow",
    response_model=SlowResponse,
    summary="Respond after an artificial delay",
)
async def slow_endpoint(
    request_data: SlowRequest,
    metrics: Metrics,
    span_runner: SpanRunner,
) -> SlowResponse:
    """Sleep for latency_ms without blocking the event loop."""
    operation_type = request_data.operation_type.value
    latency_ms = request_data.latency_ms

    metrics.counter(
        SLOW_ENDPOINT_REQUESTS_TOTAL,
        "Total number of slow endpoint requests",
        labelnames=("operation_type", "route"),
    ).add(1, {"operation_type": operation_type, "route": "/performance/slow"})
    duration = metrics.histogram(
        SLOW_ENDPOINT_DURATION_SECONDS,
        "Duration of slow endpoint requests in seconds",
        labelnames=("operation_type", "success"),
    )
    started = time.perf_counter()

    async def wait(span: Span) -> float:
        simulation_started = time.perf_counter()
        await asyncio.sleep(latency_ms / 1000)
        simulated = time.perf_counter() - simulation_started

        metrics.histogram(
            LATENCY_SIMULATION_SECONDS,
            "Time spent in simulated latency in seconds",
            labelnames=("operation_type",),
        ).record(simulated, {"operation_type": operation_type})
        span.add_event(
            "latency_simulation_completed",
            {"requested_ms": latency_ms, "actual_ms": round(simulated * 1000, 2)},
        )
        return simulated

    try:
        await span_runner.run(
            f"SlowEndpoint.{operation_type}",
            {
                "operation.type": operation_type,
                "operation.latency_ms": latency_ms,
                "endpoint.name": "slow",
                "test.scenario": "performance",
            },
            wait,
        )
    except Exception:
        duration.record(
            time.perf_counter() - started,
            {"operation_type": operation_type, "success": "false"},
        )
        raise

    elapsed = time.perf_counter() - started
    duration.record(elapsed, {"operation_type": operation_type, "success": "true"})
    logger.info(f"Slow endpoint ({operation_type}) answered after {elapsed * 1000:.0f}ms")

    return SlowResponse(
        requested_latency_ms=latency_ms,
        actual_latency_ms=round(elapsed * 1000, 2),
        operation_type=request_data.operation_type,
        timestamp=datetime.now(UTC),
    )


@router.post(
    "/performance/heavy",
    response_model=DatabaseHeavyResponse,
    summary="Run an expensive database query",
)
async def database_heavy(
    request_data: DatabaseHeavyRequest,
    service: HeavyOperations,
    metrics: Metrics,
    span_runner: SpanRunner,
) -> DatabaseHeavyResponse:
    """
    Put real load on the database.

    Store failures are re-raised after the failure is recorded and end up
    as a 500 from the StoreError handler.
    """
    operation_type = request_data.operation_type.value

    metrics.counter(
        DATABASE_HEAVY_REQUESTS_TOTAL,
        "Total number of database heavy operation requests",
        labelnames=("operation_type", "route"),
    ).add(1, {"operation_type": operation_type, "route": "/performance/heavy"})
    duration = metrics.histogram(
        DATABASE_HEAVY_DURATION_SECONDS,
        "Duration of database heavy operations in seconds",
        labelnames=("operation_type", "success"),
    )
    started = time.perf_counter()

    async def run_query(span: Span) -> DatabaseHeavyResponse:
        result = await service.run(request_data)
        impact = result.metadata.performance_impact.value
        span.add_event(
            "database_operation_completed",
            {
                "execution_time_ms": result.execution_time_ms,
                "record_count": result.metadata.record_count,
                "performance_impact": impact,
            },
        )
        metrics.histogram(
            DATABASE_QUERY_EXECUTION_SECONDS,
            "Execution time of heavy database queries in seconds",
            labelnames=("operation_type", "performance_impact"),
        ).record(
            result.execution_time_ms / 1000,
            {"operation_type": operation_type, "performance_impact": impact},
        )
        return result

    attributes = {
        "operation.type": operation_type,
        "operation.limit": request_data.limit,
        "operation.delay_seconds": request_data.delay_seconds,
        "operation.aggregation_type": (
            request_data.aggregation_type.value if request_data.aggregation_type else None
        ),
        "endpoint.name": "heavy",
        "test.scenario": "database_performance",
    }
    try:
        result = await span_runner.run(f"DatabaseHeavy.{operation_type}", attributes, run_query)
    except StoreError:
        duration.record(
            time.perf_counter() - started,
            {"operation_type": operation_type, "success": "false"},
        )
        raise

    duration.record(
        time.perf_counter() - started,
        {"operation_type": operation_type, "success": "true"},
    )
    return result
