"""
Performance Store (SQLAlchemy)

Deliberately expensive read queries over books, reviews and users, used
by POST /performance/heavy to put real load on the database and give the
query-latency dashboards something to plot.

Queries are built with SQLAlchemy Core so they run on PostgreSQL and on
SQLite. Two spots differ per dialect:
- Month buckets: to_char(date_trunc(...)) on PostgreSQL, strftime on SQLite
- The slow query: pg_sleep() on PostgreSQL; SQLite has no sleep function,
  so the delay is awaited before a trivial query
"""

import asyncio
import logging
import time
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from sqlalchemy import Select, case, desc, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.exceptions import StoreError
from app.models.book import Book
from app.models.review import Review
from app.models.user import User
from app.schemas.performance import AggregationType

logger = logging.getLogger(__name__)

DEFAULT_JOIN_LIMIT = 50
AGGREGATION_ROW_LIMIT = 100


def _avg(value: Decimal | float | None) -> float | None:
    """AVG() is a Decimal on PostgreSQL and a float on SQLite."""
    return None if value is None else round(float(value), 2)


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


class SqlPerformanceStore:
    """Heavy queries, one session per query."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def _rows(self, stmt: Select) -> list:
        async with self._session_factory() as session:
            return list((await session.execute(stmt)).all())

    async def _scalar(self, stmt: Select):
        async with self._session_factory() as session:
            return (await session.execute(stmt)).scalar()

    async def _dialect(self) -> str:
        async with self._session_factory() as session:
            return session.bind.dialect.name

    # -------------------------------------------------------------------------
    # Complex Join
    # -------------------------------------------------------------------------
    async def find_books_with_complex_join(self, limit: int = DEFAULT_JOIN_LIMIT) -> list[dict]:
        """Books of the last year with review and reviewer statistics, most reviewed first."""
        since = datetime.now(UTC) - timedelta(days=365)
        review_count = func.count(Review.id).label("review_count")
        stmt = (
            select(
                Book.id,
                Book.title,
                Book.author,
                Book.created_at,
                review_count,
                func.avg(Review.rating).label("avg_rating"),
                func.count(func.distinct(User.id)).label("unique_reviewers"),
                func.max(Review.created_at).label("latest_review_date"),
            )
            .select_from(Book)
            .outerjoin(Review, Review.book_id == Book.id)
            .outerjoin(User, User.id == Review.user_id)
            .where(Book.created_at >= since)
            .group_by(Book.id, Book.title, Book.author, Book.created_at)
            .order_by(desc(review_count), Book.title)
            .limit(limit)
        )
        try:
            rows = await self._rows(stmt)
        except SQLAlchemyError as exc:
            raise StoreError("Could not run complex join") from exc

        return [
            {
                "id": row.id,
                "title": row.title,
                "author": row.author,
                "created_at": row.created_at,
                "review_count": row.review_count,
                "avg_rating": _avg(row.avg_rating),
                "unique_reviewers": row.unique_reviewers,
                "latest_review_date": row.latest_review_date,
            }
            for row in rows
        ]

    # -------------------------------------------------------------------------
    # Stats
    # -------------------------------------------------------------------------
    async def get_database_stats(self) -> dict:
        """Catalogue-wide counters, fetched with concurrent queries."""
        week_ago = datetime.now(UTC) - timedelta(days=7)
        most_reviewed = (
            select(Book.title, func.count(Review.id).label("review_count"))
            .join(Review, Review.book_id == Book.id)
            .group_by(Book.id, Book.title)
            .order_by(desc("review_count"), Book.title)
            .limit(1)
        )
        try:
            total_books, total_reviews, avg_rating, top, recent = await asyncio.gather(
                self._scalar(select(func.count(Book.id))),
                self._scalar(select(func.count(Review.id))),
                self._scalar(select(func.avg(Review.rating))),
                self._rows(most_reviewed),
                self._scalar(select(func.count(Review.id)).where(Review.created_at >= week_ago)),
            )
        except SQLAlchemyError as exc:
            raise StoreError("Could not collect database stats") from exc

        return {
            "total_books": total_books,
            "total_reviews": total_reviews,
            "avg_rating": _avg(avg_rating) or 0.0,
            "most_reviewed_book": (
                {"title": top[0].title, "review_count": top[0].review_count} if top else None
            ),
            "recent_activity_count": recent,
        }

    # -------------------------------------------------------------------------
    # Aggregations
    # -------------------------------------------------------------------------
    async def heavy_aggregation(self, aggregation_type: AggregationType) -> dict:
        """
        Run one of the GROUP BY analyses.

        Returns:
            {"operation_type", "result_count", "execution_time_ms", "data"}
        """
        started = time.perf_counter()
        try:
            match aggregation_type:
                case AggregationType.RATING_ANALYSIS:
                    data = await self._rating_analysis()
                case AggregationType.AUTHOR_POPULARITY:
                    data = await self._author_popularity()
                case AggregationType.TEMPORAL_ANALYSIS:
                    data = await self._temporal_analysis()
                case _:
                    data = await self._book_analysis()
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not run {aggregation_type} aggregation") from exc

        return {
            "operation_type": aggregation_type.value,
            "result_count": len(data),
            "execution_time_ms": _elapsed_ms(started),
            "data": data,
        }

    async def _rating_analysis(self) -> list[dict]:
        stmt = (
            select(
                Review.rating,
                func.count(Review.id).label("reviews"),
                func.count(func.distinct(Book.author)).label("author_count"),
            )
            .join(Book, Book.id == Review.book_id)
            .group_by(Review.rating)
            .order_by(Review.rating.desc())
        )
        return [
            {"rating": row.rating, "count": row.reviews, "author_count": row.author_count}
            for row in await self._rows(stmt)
        ]

    async def _author_popularity(self) -> list[dict]:
        total_reviews = func.count(Review.id).label("total_reviews")
        stmt = (
            select(
                Book.author,
                func.count(func.distinct(Book.id)).label("books_count"),
                total_reviews,
                func.avg(Review.rating).label("avg_rating"),
                func.max(Review.created_at).label("last_review_date"),
            )
            .select_from(Book)
            .outerjoin(Review, Review.book_id == Book.id)
            .group_by(Book.author)
            .order_by(desc(total_reviews), Book.author)
            .limit(AGGREGATION_ROW_LIMIT)
        )
        return [
            {
                "author": row.author,
                "books_count": row.books_count,
                "total_reviews": row.total_reviews,
                "avg_rating": _avg(row.avg_rating),
                "last_review_date": row.last_review_date,
            }
            for row in await self._rows(stmt)
        ]

    async def _temporal_analysis(self) -> list[dict]:
        if await self._dialect() == "postgresql":
            month = func.to_char(func.date_trunc("month", Review.created_at), "YYYY-MM")
        else:
            month = func.strftime("%Y-%m", Review.created_at)

        since = datetime.now(UTC) - timedelta(days=365)
        stmt = (
            select(
                month.label("month"),
                func.count(Review.id).label("review_count"),
                func.avg(Review.rating).label("avg_rating"),
                func.count(func.distinct(Review.user_id)).label("active_users"),
                func.count(func.distinct(Review.book_id)).label("books_reviewed"),
            )
            .where(Review.created_at >= since)
            .group_by("month")
            .order_by(desc("month"))
        )
        return [
            {
                "month": row.month,
                "review_count": row.review_count,
                "avg_rating": _avg(row.avg_rating),
                "active_users": row.active_users,
                "books_reviewed": row.books_reviewed,
            }
            for row in await self._rows(stmt)
        ]

    async def _book_analysis(self) -> list[dict]:
        review_count = func.count(Review.id).label("review_count")
        mean = func.avg(Review.rating)
        category = case(
            (func.count(Review.id) == 0, "unrated"),
            (mean >= 4, "excellent"),
            (mean >= 3, "good"),
            (mean >= 2, "fair"),
            else_="poor",
        )
        stmt = (
            select(
                Book.id,
                Book.title,
                Book.author,
                review_count,
                mean.label("avg_rating"),
                category.label("rating_category"),
            )
            .select_from(Book)
            .outerjoin(Review, Review.book_id == Book.id)
            .group_by(Book.id, Book.title, Book.author)
            .order_by(desc(review_count), Book.title)
            .limit(AGGREGATION_ROW_LIMIT)
        )
        return [
            {
                "id": row.id,
                "title": row.title,
                "author": row.author,
                "review_count": row.review_count,
                "avg_rating": _avg(row.avg_rating),
                "rating_category": row.rating_category,
            }
            for row in await self._rows(stmt)
        ]

    # -------------------------------------------------------------------------
    # Slow Query
    # -------------------------------------------------------------------------
    async def simulate_slow_query(self, delay_seconds: float) -> dict:
        """Hold a database connection for delay_seconds."""
        started = time.perf_counter()
        try:
            async with self._session_factory() as session:
                if session.bind.dialect.name == "postgresql":
                    await session.execute(select(func.pg_sleep(delay_seconds)))
                else:
                    await asyncio.sleep(delay_seconds)
                    await session.execute(select(func.count(Book.id)))
        except SQLAlchemyError as exc:
            raise StoreError("Slow query failed") from exc

        duration_ms = _elapsed_ms(started)
        logger.info(f"Slow query held the database for {duration_ms}ms")
        return {"duration_ms": duration_ms}
