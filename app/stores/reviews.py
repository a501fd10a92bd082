"""
Review Store (SQLAlchemy)

One session and transaction per call. Database errors are translated to
app.exceptions types at this boundary; callers never see SQLAlchemy
exceptions.
"""

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.exceptions import ConstraintError, RatingOutOfRangeError, StoreError
from app.models.review import Review
from app.schemas.review import ReviewCreate, ReviewResponse

logger = logging.getLogger(__name__)


class SqlReviewStore:
    """Review persistence backed by the reviews table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create(self, review: ReviewCreate) -> ReviewResponse:
        # Schema validation normally catches this; the check constraint
        # would too, but with a less useful error.
        if not 1 <= review.rating <= 5:
            raise RatingOutOfRangeError(review.rating)

        row = Review(
            user_id=review.user_id,
            book_id=review.book_id,
            rating=review.rating,
            comment=review.comment,
        )
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(row)
                    await session.flush()
                    # Load server-generated created_at
                    await session.refresh(row)
        except IntegrityError as exc:
            logger.warning(
                f"Review insert rejected for book {review.book_id}, user {review.user_id}: {exc.orig}"
            )
            raise ConstraintError(
                f"Book {review.book_id} or user {review.user_id} does not exist"
            ) from exc
        except SQLAlchemyError as exc:
            logger.error(f"Error creating review: {exc}")
            raise StoreError("Could not persist review") from exc

        logger.info(f"Review created: {row.id}")
        return ReviewResponse.model_validate(row)

    async def list_for_book(self, book_id: int) -> list[ReviewResponse]:
        stmt = select(Review).where(Review.book_id == book_id).order_by(Review.id)
        try:
            async with self._session_factory() as session:
                reviews = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not load reviews for book {book_id}") from exc
        return [ReviewResponse.model_validate(r) for r in reviews]
