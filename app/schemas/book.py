"""
Book Pydantic Schemas

Read-only schemas: books are seeded, not created through the API. The
rating aggregate is exposed as-is; rating_total stays internal.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class BookResponse(BaseModel):
    """
    Schema for book responses.

    Also the value returned by BookStore operations, so the workflow and
    routers never hold ORM instances after their session closes.
    """

    id: int = Field(..., description="Unique book identifier")
    title: str = Field(..., description="Book title")
    author: str = Field(..., description="Author name")
    average_rating: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        le=5,
        description="Mean review rating (0 means no reviews)",
    )
    review_count: int = Field(default=0, ge=0, description="Number of reviews")
    published_at: date | None = Field(default=None, description="Date of publication")
    created_at: datetime = Field(..., description="When the book was added")

    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": 1,
                "title": "1984",
                "author": "George Orwell",
                "average_rating": "3.6667",
                "review_count": 3,
                "published_at": "1949-06-08",
                "created_at": "2024-01-15T10:30:00Z",
            }
        },
    )


class BookListResponse(BaseModel):
    """Schema for book list responses."""

    items: list[BookResponse] = Field(..., description="Books, newest first")
    total: int = Field(..., ge=0, description="Number of books returned")
