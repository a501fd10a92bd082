"""
Book Store (SQLAlchemy)

Maintains the denormalized rating fields on the books table:
- average_rating: mean of all review ratings (4 decimals, 0 without reviews)
- review_count: number of reviews
- rating_total: sum of ratings, so the next average is computed exactly

Concurrency
===========
recompute_and_store() is a read-modify-write that must be linearizable per
book. Two mechanisms cooperate:

1. The read takes a row lock (SELECT ... FOR UPDATE) on databases that
   support it, so a concurrent writer for the same book waits.
2. The write is a compare-and-swap: the UPDATE only matches if
   review_count and rating_total still hold the values that were read.
   If another writer got in first (no row lock available, e.g. SQLite)
   zero rows match and the whole read-modify-write is retried.

Retries are bounded (max_attempts, default 3) and only cover contention:
a lost compare-and-swap or a database OperationalError such as a lock
timeout or deadlock. Exhausting the budget raises ConflictError.

The new values are recounted from the reviews table under the row lock
rather than added to the old ones. With a consistent aggregate that is
the same as count + 1 and total + rating, but it also makes the update
idempotent: a reconcile() that already counted the new review, or a
concurrent writer that counted it first, leaves nothing to add twice.
Call it after the review has been stored.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func, select, update
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.exceptions import ConflictError, NotFoundError, RatingOutOfRangeError, StoreError
from app.models.book import Book
from app.models.review import Review
from app.schemas.book import BookResponse

logger = logging.getLogger(__name__)

AVERAGE_QUANTUM = Decimal("0.0001")
DEFAULT_MAX_ATTEMPTS = 3


def average_rating(rating_total: int, review_count: int) -> Decimal:
    """
    Mean rating rounded half-up to 4 decimals; 0 when there are no reviews.

    >>> average_rating(11, 3)
    Decimal('3.6667')
    """
    if review_count == 0:
        return Decimal("0")
    return (Decimal(rating_total) / Decimal(review_count)).quantize(
        AVERAGE_QUANTUM, rounding=ROUND_HALF_UP
    )


class SqlBookStore:
    """
    Book persistence and rating aggregate updates.

    Args:
        session_factory: Source of per-operation sessions
        max_attempts: Read-modify-write attempts before ConflictError
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self._session_factory = session_factory
        self.max_attempts = max_attempts

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------
    async def get(self, book_id: int) -> BookResponse:
        try:
            async with self._session_factory() as session:
                book = await session.get(Book, book_id)
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not load book {book_id}") from exc
        if book is None:
            raise NotFoundError("Book", book_id)
        return BookResponse.model_validate(book)

    async def list_books(self, limit: int = 100) -> list[BookResponse]:
        stmt = select(Book).order_by(Book.id.desc()).limit(limit)
        try:
            async with self._session_factory() as session:
                books = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            raise StoreError("Could not list books") from exc
        logger.info(f"{len(books)} books found")
        return [BookResponse.model_validate(b) for b in books]

    # -------------------------------------------------------------------------
    # Aggregate Update
    # -------------------------------------------------------------------------
    async def recompute_and_store(self, book_id: int, rating: int) -> BookResponse:
        if not 1 <= rating <= 5:
            raise RatingOutOfRangeError(rating)

        last_exc: OperationalError | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                updated = await self._fold_rating(book_id, rating)
            except OperationalError as exc:
                logger.warning(
                    f"Transient error updating rating of book {book_id} "
                    f"(attempt {attempt}/{self.max_attempts}): {exc.orig}"
                )
                last_exc = exc
                continue
            except SQLAlchemyError as exc:
                raise StoreError(f"Could not update rating of book {book_id}") from exc

            if updated is not None:
                return updated
            logger.warning(
                f"Rating of book {book_id} changed concurrently "
                f"(attempt {attempt}/{self.max_attempts})"
            )

        raise ConflictError(book_id, self.max_attempts) from last_exc

    async def _read_for_update(self, session: AsyncSession, book_id: int) -> Book | None:
        stmt = select(Book).where(Book.id == book_id).with_for_update()
        return (await session.execute(stmt)).scalar_one_or_none()

    async def _count_reviews(self, session: AsyncSession, book_id: int) -> tuple[int, int]:
        """Sum and number of the book's stored ratings."""
        stmt = select(
            func.coalesce(func.sum(Review.rating), 0),
            func.count(Review.id),
        ).where(Review.book_id == book_id)
        rating_total, review_count = (await session.execute(stmt)).one()
        return int(rating_total), review_count

    async def _fold_rating(self, book_id: int, rating: int) -> BookResponse | None:
        """
        One read-modify-write attempt.

        Returns None when the compare-and-swap lost to another writer.
        """
        async with self._session_factory() as session:
            async with session.begin():
                book = await self._read_for_update(session, book_id)
                if book is None:
                    raise NotFoundError("Book", book_id)

                seen_count = book.review_count
                seen_total = book.rating_total
                new_total, new_count = await self._count_reviews(session, book_id)
                if (new_count, new_total) != (seen_count + 1, seen_total + rating):
                    logger.info(
                        f"Book {book_id} aggregate caught up: {seen_count} -> {new_count} reviews"
                    )

                result = await session.execute(
                    update(Book)
                    .where(
                        Book.id == book_id,
                        Book.review_count == seen_count,
                        Book.rating_total == seen_total,
                    )
                    .values(
                        review_count=new_count,
                        rating_total=new_total,
                        average_rating=average_rating(new_total, new_count),
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    return None

                await session.refresh(book)
                return BookResponse.model_validate(book)

    # -------------------------------------------------------------------------
    # Reconciliation
    # -------------------------------------------------------------------------
    async def reconcile(self, book_id: int) -> BookResponse:
        """
        Rebuild a book's aggregate from all of its stored reviews.

        Repairs books left stale by a failed aggregate update (the review
        was stored, the book was not updated).
        """
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    book = await self._read_for_update(session, book_id)
                    if book is None:
                        raise NotFoundError("Book", book_id)

                    rating_total, review_count = await self._count_reviews(session, book_id)
                    book.rating_total = rating_total
                    book.review_count = review_count
                    book.average_rating = average_rating(rating_total, review_count)
                    await session.flush()
                    await session.refresh(book)
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not reconcile rating of book {book_id}") from exc

        logger.info(f"Reconciled book {book_id}: {book.review_count} reviews, average {book.average_rating}")
        return BookResponse.model_validate(book)

    async def reconcile_all(self) -> int:
        """Reconcile every book. Returns the number of books processed."""
        try:
            async with self._session_factory() as session:
                book_ids = (await session.execute(select(Book.id))).scalars().all()
        except SQLAlchemyError as exc:
            raise StoreError("Could not list books for reconciliation") from exc

        for book_id in book_ids:
            await self.reconcile(book_id)
        return len(book_ids)
