"""
Stores Package

Persistence behind narrow interfaces (base.py):
- reviews.py: SqlReviewStore, owner of review rows
- books.py: SqlBookStore, owner of the book rating aggregate
- performance.py: SqlPerformanceStore, heavy read queries for load tests
- memory.py: in-memory twins used by tests
"""

from app.stores.base import BookStore, PerformanceStore, ReviewStore
from app.stores.books import SqlBookStore, average_rating
from app.stores.memory import InMemoryBookStore, InMemoryReviewStore
from app.stores.performance import SqlPerformanceStore
from app.stores.reviews import SqlReviewStore

__all__ = [
    "BookStore",
    "ReviewStore",
    "PerformanceStore",
    "SqlBookStore",
    "SqlReviewStore",
    "SqlPerformanceStore",
    "InMemoryBookStore",
    "InMemoryReviewStore",
    "average_rating",
]
