"""
Book Model

The catalogue entry that reviews point at.

Rating Aggregate
================
average_rating, review_count and rating_total are a denormalized
aggregate over the book's reviews. They are written only by the
aggregate-update path in app.stores.books, which keeps:

    rating_total == sum(review.rating for review in book.reviews)
    review_count == len(book.reviews)
    average_rating == rating_total / review_count   (0 when no reviews)

rating_total makes the fold exact: the new average is computed from an
integer sum instead of multiplying a rounded average back out.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Date, DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base

if TYPE_CHECKING:
    from app.models.review import Review


class Book(Base):
    """
    Book model representing books in the library.

    Table: books

    Example:
        book = Book(
            title="1984",
            author="George Orwell",
            published_at=date(1949, 6, 8),
        )
    """

    __tablename__ = "books"

    # -------------------------------------------------------------------------
    # Primary Key
    # -------------------------------------------------------------------------
    id: Mapped[int] = mapped_column(primary_key=True)

    # -------------------------------------------------------------------------
    # Basic Fields
    # -------------------------------------------------------------------------
    title: Mapped[str] = mapped_column(
        String(500),
        unique=True,
        index=True,
        nullable=False,
        comment="Book title"
    )

    author: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Author name"
    )

    published_at: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
        comment="Date of publication"
    )

    # -------------------------------------------------------------------------
    # Rating Aggregate
    # -------------------------------------------------------------------------
    # Numeric(5, 4): 0.0000 - 5.0000, four decimals so 11/3 reads 3.6667
    average_rating: Mapped[Decimal] = mapped_column(
        Numeric(5, 4),
        default=Decimal("0"),
        server_default="0",
        nullable=False,
        comment="Mean review rating, 0 when there are no reviews"
    )

    review_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
        server_default="0",
        nullable=False,
        comment="Number of reviews for this book"
    )

    rating_total: Mapped[int] = mapped_column(
        Integer,
        default=0,
        server_default="0",
        nullable=False,
        comment="Sum of all review ratings for this book"
    )

    # -------------------------------------------------------------------------
    # Timestamps
    # -------------------------------------------------------------------------
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    # -------------------------------------------------------------------------
    # Relationships
    # -------------------------------------------------------------------------
    reviews: Mapped[list["Review"]] = relationship(
        "Review",
        back_populates="book",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"Book(id={self.id}, title='{self.title}', review_count={self.review_count})"
