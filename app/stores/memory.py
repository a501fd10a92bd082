"""
In-Memory Stores

Dictionary-backed ReviewStore and BookStore with the same contracts and
error types as the SQL stores. The review store reports each stored
rating to its book store, which recounts them on every aggregate update
as the SQL store recounts the reviews table. Every operation yields to the event loop
at least once, like a database round trip would, so concurrent tasks
genuinely interleave; the per-book asyncio.Lock is what keeps the
aggregate update linearizable.
"""

import asyncio
import itertools
from collections import defaultdict
from datetime import UTC, date, datetime

from app.exceptions import ConstraintError, NotFoundError, RatingOutOfRangeError
from app.schemas.book import BookResponse
from app.schemas.review import ReviewCreate, ReviewResponse
from app.stores.books import average_rating


class InMemoryBookStore:
    """Books held in a dict, keyed by id."""

    def __init__(self):
        self._books: dict[int, BookResponse] = {}
        self._rating_totals: dict[int, int] = {}
        self._ratings: defaultdict[int, list[int]] = defaultdict(list)
        self._locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._ids = itertools.count(1)

    def add_book(
        self,
        title: str,
        author: str,
        published_at: date | None = None,
        ratings: list[int] | None = None,
    ) -> BookResponse:
        """Seed a book, optionally with the ratings it already has."""
        ratings = ratings or []
        book = BookResponse(
            id=next(self._ids),
            title=title,
            author=author,
            published_at=published_at,
            average_rating=average_rating(sum(ratings), len(ratings)),
            review_count=len(ratings),
            created_at=datetime.now(UTC),
        )
        self._books[book.id] = book
        self._rating_totals[book.id] = sum(ratings)
        self._ratings[book.id] = list(ratings)
        return book

    def has_book(self, book_id: int) -> bool:
        return book_id in self._books

    def rating_total(self, book_id: int) -> int:
        return self._rating_totals[book_id]

    def record_rating(self, book_id: int, rating: int) -> None:
        """Register a stored review's rating; the aggregate is not updated."""
        self._ratings[book_id].append(rating)

    async def get(self, book_id: int) -> BookResponse:
        await asyncio.sleep(0)
        if book_id not in self._books:
            raise NotFoundError("Book", book_id)
        return self._books[book_id]

    async def list_books(self, limit: int = 100) -> list[BookResponse]:
        await asyncio.sleep(0)
        return sorted(self._books.values(), key=lambda b: b.id, reverse=True)[:limit]

    async def recompute_and_store(self, book_id: int, rating: int) -> BookResponse:
        if not 1 <= rating <= 5:
            raise RatingOutOfRangeError(rating)

        async with self._locks[book_id]:
            book = await self.get(book_id)
            ratings = list(self._ratings[book_id])
            new_count = len(ratings)
            new_total = sum(ratings)
            # Suspend between read and write as a real store would
            await asyncio.sleep(0)
            updated = book.model_copy(
                update={
                    "review_count": new_count,
                    "average_rating": average_rating(new_total, new_count),
                }
            )
            self._books[book_id] = updated
            self._rating_totals[book_id] = new_total
            return updated


class InMemoryReviewStore:
    """
    Reviews held in a dict.

    Args:
        book_store: Used to enforce the book foreign key
        user_ids: Known users; None accepts any user id
    """

    def __init__(self, book_store: InMemoryBookStore, user_ids: set[int] | None = None):
        self._book_store = book_store
        self._user_ids = user_ids
        self._reviews: dict[int, ReviewResponse] = {}
        self._ids = itertools.count(1)

    @property
    def reviews(self) -> list[ReviewResponse]:
        return list(self._reviews.values())

    async def create(self, review: ReviewCreate) -> ReviewResponse:
        if not 1 <= review.rating <= 5:
            raise RatingOutOfRangeError(review.rating)
        await asyncio.sleep(0)
        if not self._book_store.has_book(review.book_id):
            raise ConstraintError(f"Book {review.book_id} does not exist")
        if self._user_ids is not None and review.user_id not in self._user_ids:
            raise ConstraintError(f"User {review.user_id} does not exist")

        stored = ReviewResponse(
            id=next(self._ids),
            user_id=review.user_id,
            book_id=review.book_id,
            rating=review.rating,
            comment=review.comment,
            created_at=datetime.now(UTC),
        )
        self._reviews[stored.id] = stored
        self._book_store.record_rating(stored.book_id, stored.rating)
        return stored

    async def list_for_book(self, book_id: int) -> list[ReviewResponse]:
        await asyncio.sleep(0)
        return [r for r in self._reviews.values() if r.book_id == book_id]
