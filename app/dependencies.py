"""
FastAPI Dependencies Module

Dependencies are reusable components injected into route handlers.
FastAPI's Depends() function manages their lifecycle.

Each request gets fresh store objects and a fresh workflow wired from
them; the session factory, metric registry and span runner underneath
are process-wide. Tests swap any of these through
app.dependency_overrides, e.g. in-memory stores instead of SQL ones.

Type Aliases with Annotated
===========================
Instead of writing:
    def create(workflow: ReviewAndBookUpdateWorkflow = Depends(get_review_workflow)):

You can write:
    def create(workflow: ReviewWorkflow):
"""

import logging
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import Settings, get_settings
from app.database import get_session_factory
from app.observability.metrics import MetricRegistry, get_metric_registry
from app.observability.tracing import TraceSpanRunner, get_span_runner
from app.services.database_heavy import DatabaseHeavyService
from app.services.review_workflow import ReviewAndBookUpdateWorkflow
from app.stores.base import BookStore, PerformanceStore, ReviewStore
from app.stores.books import SqlBookStore
from app.stores.performance import SqlPerformanceStore
from app.stores.reviews import SqlReviewStore

AppSettings = Annotated[Settings, Depends(get_settings)]
SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]
Metrics = Annotated[MetricRegistry, Depends(get_metric_registry)]
SpanRunner = Annotated[TraceSpanRunner, Depends(get_span_runner)]


# =============================================================================
# Stores
# =============================================================================
def get_review_store(session_factory: SessionFactory) -> ReviewStore:
    """Review store for this request."""
    return SqlReviewStore(session_factory)


def get_book_store(session_factory: SessionFactory, settings: AppSettings) -> BookStore:
    """Book store for this request, with the configured retry budget."""
    return SqlBookStore(session_factory, max_attempts=settings.aggregate_update_max_attempts)


def get_performance_store(session_factory: SessionFactory) -> PerformanceStore:
    return SqlPerformanceStore(session_factory)


ReviewStoreDep = Annotated[ReviewStore, Depends(get_review_store)]
BookStoreDep = Annotated[BookStore, Depends(get_book_store)]
PerformanceStoreDep = Annotated[PerformanceStore, Depends(get_performance_store)]


# =============================================================================
# Logging
# =============================================================================
def get_workflow_logger() -> logging.Logger:
    """Logger handed to the workflow."""
    return logging.getLogger("app.workflow")


# =============================================================================
# Workflow
# =============================================================================
def get_review_workflow(
    review_store: ReviewStoreDep,
    book_store: BookStoreDep,
    metrics: Metrics,
    span_runner: SpanRunner,
    logger: Annotated[logging.Logger, Depends(get_workflow_logger)],
) -> ReviewAndBookUpdateWorkflow:
    """Wire a workflow from the request's stores and the shared instrumentation."""
    return ReviewAndBookUpdateWorkflow(
        review_store=review_store,
        book_store=book_store,
        metrics=metrics,
        span_runner=span_runner,
        logger=logger,
    )


ReviewWorkflow = Annotated[ReviewAndBookUpdateWorkflow, Depends(get_review_workflow)]


# =============================================================================
# Performance
# =============================================================================
def get_database_heavy_service(store: PerformanceStoreDep) -> DatabaseHeavyService:
    return DatabaseHeavyService(store)


HeavyOperations = Annotated[DatabaseHeavyService, Depends(get_database_heavy_service)]
