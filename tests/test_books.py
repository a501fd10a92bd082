"""
Tests for the Books, Simulation and Health Endpoints

- GET /api/v1/books, GET /api/v1/books/{id}
- GET /api/v1/simulate-error
- POST /api/v1/performance/slow
- GET /health, GET /
"""

from datetime import date

from fastapi import status
from fastapi.testclient import TestClient
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from app.observability.metrics import (
    BOOKS_FETCHED_TOTAL,
    LATENCY_SIMULATION_SECONDS,
    SIMULATED_ERRORS_TOTAL,
    SLOW_ENDPOINT_DURATION_SECONDS,
    SLOW_ENDPOINT_REQUESTS_TOTAL,
    MetricRegistry,
)
from app.schemas import BookResponse
from app.stores import InMemoryBookStore

# =============================================================================
# Books
# =============================================================================


class TestListBooks:
    """Tests for GET /api/v1/books"""

    def test_list_books_empty(self, client: TestClient):
        response = client.get("/api/v1/books")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"items": [], "total": 0}

    def test_list_books_newest_first(
        self, client: TestClient, sample_book: BookResponse, book_store: InMemoryBookStore
    ):
        newer = book_store.add_book("Animal Farm", "George Orwell", published_at=date(1945, 8, 17))

        response = client.get("/api/v1/books")

        data = response.json()
        assert data["total"] == 2
        assert [b["id"] for b in data["items"]] == [newer.id, sample_book.id]
        assert data["items"][1]["review_count"] == 2

    def test_list_books_limit(self, client: TestClient, book_store: InMemoryBookStore):
        for i in range(5):
            book_store.add_book(f"Book {i}", "Anon")

        response = client.get("/api/v1/books?limit=2")

        assert response.json()["total"] == 2

    def test_list_books_invalid_limit(self, client: TestClient):
        response = client.get("/api/v1/books?limit=0")

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_list_books_counts_fetches(self, client: TestClient, metric_registry: MetricRegistry):
        client.get("/api/v1/books")
        client.get("/api/v1/books")

        assert metric_registry.sample(BOOKS_FETCHED_TOTAL, {"route": "/books"}) == 2.0


class TestGetBook:
    """Tests for GET /api/v1/books/{book_id}"""

    def test_get_book(self, client: TestClient, sample_book: BookResponse):
        response = client.get(f"/api/v1/books/{sample_book.id}")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["title"] == "1984"
        assert data["author"] == "George Orwell"
        assert data["published_at"] == "1949-06-08"
        assert "rating_total" not in data

    def test_get_book_not_found(self, client: TestClient):
        response = client.get("/api/v1/books/99999")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert "not found" in response.json()["detail"]


# =============================================================================
# Simulation
# =============================================================================


class TestSimulateError:
    """Tests for GET /api/v1/simulate-error"""

    def test_simulate_error(
        self,
        client: TestClient,
        metric_registry: MetricRegistry,
        span_exporter: InMemorySpanExporter,
    ):
        response = client.get("/api/v1/simulate-error")

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert "Simulated failure" in response.json()["detail"]
        assert (
            metric_registry.sample(SIMULATED_ERRORS_TOTAL, {"route": "/simulate-error"}) == 1.0
        )

        (span,) = span_exporter.get_finished_spans()
        assert span.name == "SimulateError"
        assert span.status.status_code == StatusCode.ERROR


class TestSlowEndpoint:
    """Tests for POST /api/v1/performance/slow"""

    def test_slow_endpoint(self, client: TestClient, metric_registry: MetricRegistry):
        response = client.post("/api/v1/performance/slow", json={"latency_ms": 100})

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["requested_latency_ms"] == 100
        assert data["actual_latency_ms"] >= 100
        assert data["operation_type"] == "generic"
        assert "timestamp" in data

        assert (
            metric_registry.sample(
                SLOW_ENDPOINT_REQUESTS_TOTAL,
                {"operation_type": "generic", "route": "/performance/slow"},
            )
            == 1.0
        )
        assert (
            metric_registry.sample(
                f"{SLOW_ENDPOINT_DURATION_SECONDS}_count",
                {"operation_type": "generic", "success": "true"},
            )
            == 1.0
        )
        assert (
            metric_registry.sample(
                f"{LATENCY_SIMULATION_SECONDS}_count", {"operation_type": "generic"}
            )
            == 1.0
        )

    def test_slow_endpoint_span(self, client: TestClient, span_exporter: InMemorySpanExporter):
        client.post(
            "/api/v1/performance/slow", json={"latency_ms": 150, "operation_type": "database"}
        )

        (span,) = span_exporter.get_finished_spans()
        assert span.name == "SlowEndpoint.database"
        assert span.status.status_code == StatusCode.OK
        assert span.attributes["operation.type"] == "database"
        assert span.attributes["operation.latency_ms"] == 150
        assert span.attributes["endpoint.name"] == "slow"

        (event,) = span.events
        assert event.name == "latency_simulation_completed"
        assert event.attributes["requested_ms"] == 150
        assert event.attributes["actual_ms"] > 0

    def test_unknown_operation_type(self, client: TestClient):
        response = client.post(
            "/api/v1/performance/slow", json={"latency_ms": 100, "operation_type": "disk"}
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_latency_below_range(self, client: TestClient):
        response = client.post("/api/v1/performance/slow", json={"latency_ms": 50})

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_latency_above_range(self, client: TestClient):
        response = client.post("/api/v1/performance/slow", json={"latency_ms": 5001})

        assert response.status_code == status.HTTP_400_BAD_REQUEST


# =============================================================================
# Health
# =============================================================================


class TestHealth:
    """Tests for GET /health and GET /"""

    def test_health(self, client: TestClient):
        response = client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "ok"
        assert "timestamp" in data

    def test_root(self, client: TestClient):
        response = client.get("/")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["metrics"] == "/metrics"
