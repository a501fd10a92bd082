"""
Observability Library API Application Package

A book catalogue with reviews whose main job is to exercise an
observability pipeline: request/error counters, latency histograms and
distributed traces feeding alert rules and dashboards.

Package Structure:
- config.py: Application configuration using Pydantic Settings
- database.py: Async SQLAlchemy engine and session factory
- main.py: FastAPI application factory and configuration
- dependencies.py: Dependency injection functions
- exceptions.py: Store error types
- models/: SQLAlchemy ORM models
- schemas/: Pydantic request/response schemas
- stores/: Review and book persistence (SQL and in-memory)
- services/: The create-review-and-update-book workflow
- observability/: Metric registry and tracing
- routers/: API route handlers
"""

__version__ = "0.1.0"
