"""
Review Pydantic Schemas

Schemas:
- ReviewCreate: Review submission (also the workflow input)
- ReviewResponse: Stored review
- ReviewAndBookResponse: Result of the create-and-update-book workflow
- PartialSuccessDetail: Error body when the review was stored but the
  book aggregate could not be updated

Business Rules:
- Rating must be 1-5 (validated at schema level and again by the store)
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.schemas.book import BookResponse


class ReviewBase(BaseModel):
    """Shared review fields and validation."""

    user_id: int = Field(..., gt=0, description="ID of the reviewing user")
    book_id: int = Field(..., gt=0, description="ID of the reviewed book")
    rating: int = Field(
        ...,
        ge=1,
        le=5,
        description="Rating from 1 to 5 stars",
        examples=[4, 5],
    )
    comment: str | None = Field(
        default=None,
        max_length=5000,
        description="Review text content",
        examples=["This book changed my perspective on..."],
    )

    @field_validator("comment")
    @classmethod
    def comment_must_not_be_empty_if_provided(cls, v: str | None) -> str | None:
        """Whitespace-only comments are stored as no comment."""
        if v is not None:
            v = v.strip()
            if not v:
                return None
        return v


class ReviewCreate(ReviewBase):
    """
    Schema for submitting a review.

    Example request body:
    {
        "user_id": 7,
        "book_id": 42,
        "rating": 5,
        "comment": "One of the best books I've ever read..."
    }
    """

    pass


class ReviewResponse(ReviewBase):
    """Stored review, returned by ReviewStore and by the API."""

    id: int = Field(..., description="Unique review identifier")
    created_at: datetime = Field(..., description="When the review was created")

    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": 1,
                "user_id": 7,
                "book_id": 42,
                "rating": 5,
                "comment": "A must-read classic!",
                "created_at": "2024-01-15T10:30:00Z",
            }
        },
    )


class ReviewAndBookResponse(BaseModel):
    """Successful create-and-update-book result."""

    review: ReviewResponse
    book: BookResponse


class PartialSuccessDetail(BaseModel):
    """
    Error detail for a review that was stored while the book aggregate
    was not. Carries what a reconciliation pass needs to repair the book.
    """

    error: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable description")
    stage: str = Field(..., description="Workflow stage that failed")
    review_id: int = Field(..., description="ID of the review that was stored")
    book_id: int = Field(..., description="ID of the book with a stale aggregate")
    partial_success: bool = Field(default=True)
