"""
Database Performance Tests

- SqlPerformanceStore queries against SQLite
- DatabaseHeavyService: dispatch and performance impact classification
- POST /api/v1/performance/heavy: metrics, span and status mapping
"""

from datetime import UTC, datetime

import pytest
from fastapi import status
from fastapi.testclient import TestClient
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from app.exceptions import StoreError
from app.models import Book
from app.observability.metrics import (
    DATABASE_HEAVY_DURATION_SECONDS,
    DATABASE_HEAVY_REQUESTS_TOTAL,
    DATABASE_QUERY_EXECUTION_SECONDS,
    MetricRegistry,
)
from app.schemas import AggregationType, DatabaseHeavyRequest, SlowRequest
from app.services.database_heavy import DatabaseHeavyService, slow_query_impact
from app.stores import SqlPerformanceStore
from tests.conftest import CannedPerformanceStore

HEAVY_URL = "/api/v1/performance/heavy"


async def add_unreviewed_book(session_factory, title: str = "Neuromancer") -> Book:
    async with session_factory() as session:
        async with session.begin():
            book = Book(title=title, author="William Gibson")
            session.add(book)
    return book


# =============================================================================
# SQL Store
# =============================================================================


class TestComplexJoin:
    """Tests for SqlPerformanceStore.find_books_with_complex_join()."""

    @pytest.mark.asyncio
    async def test_most_reviewed_first(self, session_factory, sql_book: Book):
        await add_unreviewed_book(session_factory)

        rows = await SqlPerformanceStore(session_factory).find_books_with_complex_join()

        assert [r["title"] for r in rows] == ["Dune", "Neuromancer"]
        assert rows[0]["review_count"] == 2
        assert rows[0]["avg_rating"] == 3.0
        assert rows[0]["unique_reviewers"] == 1
        assert rows[0]["latest_review_date"] is not None
        assert rows[1]["review_count"] == 0
        assert rows[1]["avg_rating"] is None

    @pytest.mark.asyncio
    async def test_limit(self, session_factory, sql_book: Book):
        await add_unreviewed_book(session_factory)

        rows = await SqlPerformanceStore(session_factory).find_books_with_complex_join(limit=1)

        assert len(rows) == 1


class TestDatabaseStats:
    """Tests for SqlPerformanceStore.get_database_stats()."""

    @pytest.mark.asyncio
    async def test_stats(self, session_factory, sql_book: Book):
        stats = await SqlPerformanceStore(session_factory).get_database_stats()

        assert stats == {
            "total_books": 1,
            "total_reviews": 2,
            "avg_rating": 3.0,
            "most_reviewed_book": {"title": "Dune", "review_count": 2},
            "recent_activity_count": 2,
        }

    @pytest.mark.asyncio
    async def test_empty_database(self, session_factory):
        stats = await SqlPerformanceStore(session_factory).get_database_stats()

        assert stats["total_books"] == 0
        assert stats["avg_rating"] == 0.0
        assert stats["most_reviewed_book"] is None


class TestHeavyAggregation:
    """Tests for SqlPerformanceStore.heavy_aggregation()."""

    @pytest.mark.asyncio
    async def test_rating_analysis(self, session_factory, sql_book: Book):
        result = await SqlPerformanceStore(session_factory).heavy_aggregation(
            AggregationType.RATING_ANALYSIS
        )

        assert result["operation_type"] == "rating_analysis"
        assert result["result_count"] == 2
        assert result["data"] == [
            {"rating": 4, "count": 1, "author_count": 1},
            {"rating": 2, "count": 1, "author_count": 1},
        ]
        assert result["execution_time_ms"] >= 0

    @pytest.mark.asyncio
    async def test_author_popularity(self, session_factory, sql_book: Book):
        await add_unreviewed_book(session_factory)

        result = await SqlPerformanceStore(session_factory).heavy_aggregation(
            AggregationType.AUTHOR_POPULARITY
        )

        herbert, gibson = result["data"]
        assert herbert["author"] == "Frank Herbert"
        assert herbert["books_count"] == 1
        assert herbert["total_reviews"] == 2
        assert herbert["avg_rating"] == 3.0
        assert gibson["total_reviews"] == 0

    @pytest.mark.asyncio
    async def test_temporal_analysis(self, session_factory, sql_book: Book):
        result = await SqlPerformanceStore(session_factory).heavy_aggregation(
            AggregationType.TEMPORAL_ANALYSIS
        )

        (month,) = result["data"]
        assert month["month"] == datetime.now(UTC).strftime("%Y-%m")
        assert month["review_count"] == 2
        assert month["active_users"] == 1
        assert month["books_reviewed"] == 1

    @pytest.mark.asyncio
    async def test_generic_book_analysis(self, session_factory, sql_book: Book):
        await add_unreviewed_book(session_factory)

        result = await SqlPerformanceStore(session_factory).heavy_aggregation(
            AggregationType.GENERIC
        )

        categories = {row["title"]: row["rating_category"] for row in result["data"]}
        assert categories == {"Dune": "good", "Neuromancer": "unrated"}


class TestSlowQuery:
    """Tests for SqlPerformanceStore.simulate_slow_query()."""

    @pytest.mark.asyncio
    async def test_holds_for_the_delay(self, session_factory):
        result = await SqlPerformanceStore(session_factory).simulate_slow_query(0.1)

        assert result["duration_ms"] >= 100


# =============================================================================
# Service
# =============================================================================


class TestDatabaseHeavyService:
    """Tests for DatabaseHeavyService.run()."""

    @pytest.mark.asyncio
    async def test_complex_join_default_limit(self, performance_store: CannedPerformanceStore):
        result = await DatabaseHeavyService(performance_store).run(DatabaseHeavyRequest())

        assert performance_store.calls == [("complex_join", 50)]
        assert result.metadata.record_count == 1
        assert result.metadata.performance_impact == "medium"

    @pytest.mark.asyncio
    async def test_large_join_is_high_impact(self, performance_store: CannedPerformanceStore):
        result = await DatabaseHeavyService(performance_store).run(
            DatabaseHeavyRequest(operation_type="complex_join", limit=101)
        )

        assert result.metadata.performance_impact == "high"

    @pytest.mark.asyncio
    async def test_aggregation_defaults_to_generic(
        self, performance_store: CannedPerformanceStore
    ):
        result = await DatabaseHeavyService(performance_store).run(
            DatabaseHeavyRequest(operation_type="aggregation")
        )

        assert performance_store.calls == [("aggregation", AggregationType.GENERIC)]
        assert result.metadata.record_count == 3
        assert result.metadata.performance_impact == "medium"

    @pytest.mark.asyncio
    async def test_temporal_analysis_is_high_impact(
        self, performance_store: CannedPerformanceStore
    ):
        result = await DatabaseHeavyService(performance_store).run(
            DatabaseHeavyRequest(operation_type="aggregation", aggregation_type="temporal_analysis")
        )

        assert result.metadata.performance_impact == "high"

    @pytest.mark.asyncio
    async def test_stats(self, performance_store: CannedPerformanceStore):
        result = await DatabaseHeavyService(performance_store).run(
            DatabaseHeavyRequest(operation_type="stats")
        )

        assert result.data["total_books"] == 1
        assert result.metadata.record_count == 1
        assert result.metadata.performance_impact == "high"

    @pytest.mark.asyncio
    async def test_slow_query_default_delay(self, performance_store: CannedPerformanceStore):
        result = await DatabaseHeavyService(performance_store).run(
            DatabaseHeavyRequest(operation_type="slow_query")
        )

        assert performance_store.calls == [("slow_query", 1.0)]
        assert result.metadata.performance_impact == "low"

    @pytest.mark.asyncio
    async def test_store_error_propagates(self, performance_store: CannedPerformanceStore):
        performance_store.error = StoreError("connection refused")

        with pytest.raises(StoreError):
            await DatabaseHeavyService(performance_store).run(DatabaseHeavyRequest())

    @pytest.mark.parametrize(
        "delay,impact",
        [(0.1, "low"), (2.0, "low"), (2.5, "medium"), (5.0, "medium"), (5.5, "high")],
    )
    def test_slow_query_impact(self, delay: float, impact: str):
        assert slow_query_impact(delay) == impact


class TestPerformanceSchemas:
    """Request defaults and bounds."""

    def test_slow_request_defaults(self):
        request = SlowRequest()

        assert request.latency_ms == 1000
        assert request.operation_type == "generic"

    def test_heavy_request_defaults(self):
        request = DatabaseHeavyRequest()

        assert request.operation_type == "complex_join"
        assert request.limit is None
        assert request.delay_seconds is None
        assert request.aggregation_type is None


# =============================================================================
# Endpoint
# =============================================================================


class TestDatabaseHeavyEndpoint:
    """Tests for POST /api/v1/performance/heavy"""

    def test_default_operation(
        self,
        client: TestClient,
        metric_registry: MetricRegistry,
    ):
        response = client.post(HEAVY_URL, json={})

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["operation_type"] == "complex_join"
        assert data["data"] == [{"id": 1, "title": "Dune", "review_count": 2}]
        assert data["metadata"]["record_count"] == 1
        assert data["metadata"]["performance_impact"] == "medium"

        assert (
            metric_registry.sample(
                DATABASE_HEAVY_REQUESTS_TOTAL,
                {"operation_type": "complex_join", "route": "/performance/heavy"},
            )
            == 1.0
        )
        assert (
            metric_registry.sample(
                f"{DATABASE_HEAVY_DURATION_SECONDS}_count",
                {"operation_type": "complex_join", "success": "true"},
            )
            == 1.0
        )
        assert (
            metric_registry.sample(
                f"{DATABASE_QUERY_EXECUTION_SECONDS}_count",
                {"operation_type": "complex_join", "performance_impact": "medium"},
            )
            == 1.0
        )

    def test_span(self, client: TestClient, span_exporter: InMemorySpanExporter):
        client.post(
            HEAVY_URL,
            json={"operation_type": "aggregation", "aggregation_type": "author_popularity"},
        )

        (span,) = span_exporter.get_finished_spans()
        assert span.name == "DatabaseHeavy.aggregation"
        assert span.status.status_code == StatusCode.OK
        assert span.attributes["operation.aggregation_type"] == "author_popularity"
        assert span.attributes["endpoint.name"] == "heavy"
        assert span.attributes["test.scenario"] == "database_performance"
        assert "operation.limit" not in span.attributes

        (event,) = span.events
        assert event.name == "database_operation_completed"
        assert event.attributes["record_count"] == 3
        assert event.attributes["performance_impact"] == "medium"

    def test_slow_query(
        self,
        client: TestClient,
        performance_store: CannedPerformanceStore,
        metric_registry: MetricRegistry,
    ):
        response = client.post(HEAVY_URL, json={"operation_type": "slow_query", "delay_seconds": 6})

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["metadata"]["performance_impact"] == "high"
        assert performance_store.calls == [("slow_query", 6.0)]
        assert (
            metric_registry.sample(
                f"{DATABASE_QUERY_EXECUTION_SECONDS}_count",
                {"operation_type": "slow_query", "performance_impact": "high"},
            )
            == 1.0
        )

    def test_store_failure(
        self,
        client: TestClient,
        performance_store: CannedPerformanceStore,
        metric_registry: MetricRegistry,
        span_exporter: InMemorySpanExporter,
    ):
        performance_store.error = StoreError("connection refused")

        response = client.post(HEAVY_URL, json={"operation_type": "stats"})

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert (
            metric_registry.sample(
                f"{DATABASE_HEAVY_DURATION_SECONDS}_count",
                {"operation_type": "stats", "success": "false"},
            )
            == 1.0
        )
        assert (
            metric_registry.sample(
                DATABASE_HEAVY_REQUESTS_TOTAL,
                {"operation_type": "stats", "route": "/performance/heavy"},
            )
            == 1.0
        )
        (span,) = span_exporter.get_finished_spans()
        assert span.status.status_code == StatusCode.ERROR

    @pytest.mark.parametrize(
        "body",
        [
            {"operation_type": "full_scan"},
            {"limit": 0},
            {"limit": 1001},
            {"operation_type": "slow_query", "delay_seconds": 0.05},
            {"operation_type": "slow_query", "delay_seconds": 11},
            {"operation_type": "aggregation", "aggregation_type": "by_genre"},
        ],
    )
    def test_invalid_body(
        self,
        client: TestClient,
        performance_store: CannedPerformanceStore,
        body: dict,
    ):
        response = client.post(HEAVY_URL, json=body)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert performance_store.calls == []
