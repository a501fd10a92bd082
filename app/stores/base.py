"""
Store Interfaces

The workflow depends on these protocols, not on SQLAlchemy. Each has a
database-backed implementation (reviews.py, books.py) and an in-memory
one (memory.py) for tests and local experiments.
"""

from typing import Protocol

from app.schemas.book import BookResponse
from app.schemas.performance import AggregationType
from app.schemas.review import ReviewCreate, ReviewResponse


class ReviewStore(Protocol):
    """Owns review rows."""

    async def create(self, review: ReviewCreate) -> ReviewResponse:
        """
        Insert a review and return it with its generated id.

        Raises:
            ConstraintError: book_id or user_id does not reference a row
            RatingOutOfRangeError: rating outside 1-5
        """
        ...

    async def list_for_book(self, book_id: int) -> list[ReviewResponse]:
        ...


class BookStore(Protocol):
    """Owns the book rating aggregate."""

    async def get(self, book_id: int) -> BookResponse:
        """Raises NotFoundError for unknown ids."""
        ...

    async def list_books(self, limit: int = 100) -> list[BookResponse]:
        ...

    async def recompute_and_store(self, book_id: int, rating: int) -> BookResponse:
        """
        Bring the book's aggregate up to date with a newly stored review.

        The count and total are recounted from the stored reviews, so the
        result is count + 1 and total + rating when the aggregate was
        consistent, and a review already counted is never added twice.

        Linearizable per book: concurrent calls for the same book apply
        one after the other, never from the same stale snapshot.

        Raises:
            NotFoundError: unknown book
            ConflictError: retry budget exhausted under contention
        """
        ...


class PerformanceStore(Protocol):
    """Expensive read queries used to load-test the database."""

    async def find_books_with_complex_join(self, limit: int = 50) -> list[dict]:
        ...

    async def get_database_stats(self) -> dict:
        ...

    async def heavy_aggregation(self, aggregation_type: AggregationType) -> dict:
        ...

    async def simulate_slow_query(self, delay_seconds: float) -> dict:
        ...
