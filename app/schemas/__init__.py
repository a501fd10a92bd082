"""
Pydantic Schemas Package

This package contains Pydantic models for request/response validation.

WHY Separate Schemas from SQLAlchemy Models?
============================================
1. Control exactly what data is exposed in API responses
2. Stores hand schemas (not ORM rows) back to callers, so nothing outlives
   the session that loaded it
3. Schemas generate OpenAPI documentation

Schema Naming Convention:
- XxxCreate: Fields required when creating a new record
- XxxResponse: Fields returned in API responses
"""

from app.schemas.book import BookListResponse, BookResponse
from app.schemas.performance import (
    AggregationType,
    DatabaseHeavyRequest,
    DatabaseHeavyResponse,
    HeavyOperationType,
    PerformanceImpact,
    SlowOperationType,
    SlowRequest,
    SlowResponse,
)
from app.schemas.review import (
    PartialSuccessDetail,
    ReviewAndBookResponse,
    ReviewCreate,
    ReviewResponse,
)

__all__ = [
    # Book schemas
    "BookResponse",
    "BookListResponse",
    # Review schemas
    "ReviewCreate",
    "ReviewResponse",
    "ReviewAndBookResponse",
    "PartialSuccessDetail",
    # Performance schemas
    "SlowOperationType",
    "SlowRequest",
    "SlowResponse",
    "HeavyOperationType",
    "AggregationType",
    "PerformanceImpact",
    "DatabaseHeavyRequest",
    "DatabaseHeavyResponse",
]
