"""
pytest Fixtures for the Observability Library API Tests

This file contains shared fixtures used across all test files.

Two kinds of backing stores are used:

- In-memory stores (InMemoryBookStore / InMemoryReviewStore) for the
  workflow and route tests. They behave like the SQL stores, including
  yielding to the event loop, so concurrency tests are meaningful.
- SQL stores over a throwaway SQLite file (aiosqlite) for the store tests.
  A file, not :memory:, so that several connections see the same data and
  concurrent writers can actually race.

Instrumentation is isolated per test:

- metric_registry wraps a fresh CollectorRegistry, so counters start at 0
- span_exporter collects finished spans in memory from a private
  TracerProvider; the global provider is never touched
"""

# =============================================================================
# TEST ENVIRONMENT SETUP
# =============================================================================
# IMPORTANT: Set environment variables BEFORE importing the app
import os

os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test_library.db"

import asyncio
from collections.abc import AsyncGenerator, Generator
from datetime import date
from decimal import Decimal

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from prometheus_client import CollectorRegistry
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.database import create_tables, drop_tables
from app.dependencies import get_book_store, get_performance_store, get_review_store
from app.exceptions import ConflictError, StoreError
from app.main import app
from app.models import Book, Review, User
from app.observability.metrics import MetricRegistry, get_metric_registry
from app.observability.tracing import TraceSpanRunner, get_span_runner
from app.schemas import AggregationType, BookResponse, ReviewCreate, ReviewResponse
from app.services.review_workflow import ReviewAndBookUpdateWorkflow
from app.stores import InMemoryBookStore, InMemoryReviewStore

KNOWN_USER_IDS = set(range(1, 101))


# =============================================================================
# STAND-IN STORES
# =============================================================================
# Stand-ins for a database that breaks at a specific step, or that answers
# with fixed data.


class FailingReviewStore(InMemoryReviewStore):
    """Review inserts always fail (Step A)."""

    async def create(self, review: ReviewCreate) -> ReviewResponse:
        await asyncio.sleep(0)
        raise StoreError("connection reset by peer")


class FailingBookStore(InMemoryBookStore):
    """Lookups work, aggregate updates always lose the race (Step B)."""

    async def recompute_and_store(self, book_id: int, rating: int) -> BookResponse:
        await asyncio.sleep(0)
        raise ConflictError(book_id, 3)


class BlockingBookStore(InMemoryBookStore):
    """Aggregate updates hang until cancelled."""

    def __init__(self):
        super().__init__()
        self.entered = asyncio.Event()

    async def recompute_and_store(self, book_id: int, rating: int) -> BookResponse:
        self.entered.set()
        await asyncio.Event().wait()


class CannedPerformanceStore:
    """
    PerformanceStore returning fixed results and remembering its calls.

    Set ``error`` to make every query raise it.
    """

    def __init__(self):
        self.calls: list[tuple] = []
        self.error: Exception | None = None

    def _called(self, *call) -> None:
        self.calls.append(call)
        if self.error is not None:
            raise self.error

    async def find_books_with_complex_join(self, limit: int = 50) -> list[dict]:
        self._called("complex_join", limit)
        return [{"id": 1, "title": "Dune", "review_count": 2}]

    async def get_database_stats(self) -> dict:
        self._called("stats")
        return {"total_books": 1, "total_reviews": 2, "avg_rating": 3.0}

    async def heavy_aggregation(self, aggregation_type: AggregationType) -> dict:
        self._called("aggregation", aggregation_type)
        return {
            "operation_type": aggregation_type.value,
            "result_count": 3,
            "execution_time_ms": 1.0,
            "data": [{}, {}, {}],
        }

    async def simulate_slow_query(self, delay_seconds: float) -> dict:
        self._called("slow_query", delay_seconds)
        return {"duration_ms": delay_seconds * 1000}


# =============================================================================
# INSTRUMENTATION FIXTURES
# =============================================================================


@pytest.fixture
def metric_registry() -> MetricRegistry:
    """Metric registry backed by a private CollectorRegistry."""
    return MetricRegistry(CollectorRegistry())


@pytest.fixture
def span_exporter() -> InMemorySpanExporter:
    return InMemorySpanExporter()


@pytest.fixture
def tracer_provider(span_exporter: InMemorySpanExporter) -> Generator[TracerProvider, None, None]:
    """
    Private tracer provider exporting synchronously to span_exporter.

    SimpleSpanProcessor exports each span as it ends, so assertions can
    read get_finished_spans() right after the code under test returns.
    """
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    yield provider
    provider.shutdown()


@pytest.fixture
def span_runner(tracer_provider: TracerProvider) -> TraceSpanRunner:
    return TraceSpanRunner(tracer_provider.get_tracer("tests"))


# =============================================================================
# IN-MEMORY STORE FIXTURES
# =============================================================================


@pytest.fixture
def book_store() -> InMemoryBookStore:
    return InMemoryBookStore()


@pytest.fixture
def sample_book(book_store: InMemoryBookStore) -> BookResponse:
    """A book with two reviews averaging 3.0 (ratings 2 and 4)."""
    return book_store.add_book(
        title="1984",
        author="George Orwell",
        published_at=date(1949, 6, 8),
        ratings=[2, 4],
    )


@pytest.fixture
def review_store(book_store: InMemoryBookStore) -> InMemoryReviewStore:
    return InMemoryReviewStore(book_store, user_ids=KNOWN_USER_IDS)


@pytest.fixture
def workflow(
    review_store: InMemoryReviewStore,
    book_store: InMemoryBookStore,
    metric_registry: MetricRegistry,
    span_runner: TraceSpanRunner,
) -> ReviewAndBookUpdateWorkflow:
    """Workflow wired to in-memory stores and isolated instrumentation."""
    return ReviewAndBookUpdateWorkflow(
        review_store=review_store,
        book_store=book_store,
        metrics=metric_registry,
        span_runner=span_runner,
    )


# =============================================================================
# SQL FIXTURES
# =============================================================================


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """
    Session factory over a fresh SQLite file with all tables created.

    NullPool gives every session its own connection, like separate
    requests against a real database. SQLite only enforces foreign keys
    when asked to, once per connection.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'library.db'}",
        poolclass=NullPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    await create_tables(engine)
    yield async_sessionmaker(engine, expire_on_commit=False, autoflush=False)
    await drop_tables(engine)
    await engine.dispose()


@pytest_asyncio.fixture
async def sql_user(session_factory: async_sessionmaker[AsyncSession]) -> User:
    async with session_factory() as session:
        async with session.begin():
            user = User(email="reader@example.com", name="Test Reader")
            session.add(user)
    return user


@pytest_asyncio.fixture
async def sql_book(session_factory: async_sessionmaker[AsyncSession], sql_user: User) -> Book:
    """A stored book with two reviews (ratings 2 and 4) and a matching aggregate."""
    async with session_factory() as session:
        async with session.begin():
            book = Book(
                title="Dune",
                author="Frank Herbert",
                published_at=date(1965, 8, 1),
                review_count=2,
                rating_total=6,
                average_rating=Decimal("3"),
            )
            session.add(book)
            await session.flush()
            session.add_all(
                Review(user_id=sql_user.id, book_id=book.id, rating=rating)
                for rating in (2, 4)
            )
    return book


# =============================================================================
# HTTP CLIENT FIXTURES
# =============================================================================


def _client_for(
    review_store: InMemoryReviewStore,
    book_store: InMemoryBookStore,
    metric_registry: MetricRegistry,
    span_runner: TraceSpanRunner,
    performance_store: CannedPerformanceStore,
) -> Generator[TestClient, None, None]:
    # Override the dependencies
    app.dependency_overrides[get_review_store] = lambda: review_store
    app.dependency_overrides[get_book_store] = lambda: book_store
    app.dependency_overrides[get_performance_store] = lambda: performance_store
    app.dependency_overrides[get_metric_registry] = lambda: metric_registry
    app.dependency_overrides[get_span_runner] = lambda: span_runner

    with TestClient(app) as test_client:
        yield test_client

    # Remove overrides after test
    app.dependency_overrides.clear()


@pytest.fixture
def performance_store() -> CannedPerformanceStore:
    return CannedPerformanceStore()


@pytest.fixture
def client(
    review_store: InMemoryReviewStore,
    book_store: InMemoryBookStore,
    metric_registry: MetricRegistry,
    span_runner: TraceSpanRunner,
    performance_store: CannedPerformanceStore,
) -> Generator[TestClient, None, None]:
    """
    Test client running the real app against in-memory stores.

    The stores, metric registry and span runner are the same objects the
    test receives, so it can seed data and inspect metrics and spans.
    """
    yield from _client_for(
        review_store, book_store, metric_registry, span_runner, performance_store
    )


@pytest.fixture
def failing_book_store() -> FailingBookStore:
    return FailingBookStore()


@pytest.fixture
def partial_failure_client(
    failing_book_store: FailingBookStore,
    metric_registry: MetricRegistry,
    span_runner: TraceSpanRunner,
) -> Generator[TestClient, None, None]:
    """Client whose book aggregate updates always fail after the review is stored."""
    review_store = InMemoryReviewStore(failing_book_store, user_ids=KNOWN_USER_IDS)
    yield from _client_for(
        review_store, failing_book_store, metric_registry, span_runner, CannedPerformanceStore()
    )
