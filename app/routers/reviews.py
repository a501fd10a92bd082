"""
Reviews Router

Endpoints:
- POST /reviews - Create a review only (book aggregate untouched)
- POST /reviews/create-and-update-book - Create a review and update the
  book's rating aggregate (the multi-step workflow)

Error mapping for the workflow:
- request validation      -> 400 (handled in main.py)
- BookNotFound            -> 404
- ReviewPersistFailed     -> 500, nothing written
- AggregateUpdateFailed   -> 500, review written, detail carries review_id
  and partial_success=true for reconciliation
"""

import logging
import time

from fastapi import APIRouter, HTTPException, status

from app.dependencies import Metrics, ReviewStoreDep, ReviewWorkflow
from app.exceptions import ConstraintError, RatingOutOfRangeError
from app.observability.metrics import (
    REVIEW_CREATION_DURATION_SECONDS,
    REVIEWS_CREATED_TOTAL,
)
from app.schemas import (
    PartialSuccessDetail,
    ReviewAndBookResponse,
    ReviewCreate,
    ReviewResponse,
)
from app.services.review_workflow import (
    AggregateUpdateFailed,
    BookNotFound,
    WorkflowError,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/reviews",
    tags=["Reviews"],
)


@router.post(
    "",
    response_model=ReviewResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a review",
    description="Store a review without touching the book's rating aggregate.",
    responses={400: {"description": "Book or user does not exist"}},
)
async def create_review(
    review_data: ReviewCreate,
    review_store: ReviewStoreDep,
    metrics: Metrics,
) -> ReviewResponse:
    """Single-step review creation."""
    created_counter = metrics.counter(
        REVIEWS_CREATED_TOTAL,
        "Total number of reviews created",
        labelnames=("route",),
    )
    duration = metrics.histogram(
        REVIEW_CREATION_DURATION_SECONDS,
        "Duration to create a review in seconds",
        labelnames=("success",),
    )

    started = time.perf_counter()
    try:
        review = await review_store.create(review_data)
    except (ConstraintError, RatingOutOfRangeError) as exc:
        duration.record(time.perf_counter() - started, {"success": "false"})
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except Exception:
        duration.record(time.perf_counter() - started, {"success": "false"})
        raise

    duration.record(time.perf_counter() - started, {"success": "true"})
    created_counter.add(1, {"route": "/reviews"})
    return review


@router.post(
    "/create-and-update-book",
    response_model=ReviewAndBookResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a review and update the book rating",
    description=(
        "Store the review, then fold its rating into the book's average. "
        "If the second step fails the review is kept and the 500 response "
        "carries its id."
    ),
    responses={
        404: {"description": "Book not found"},
        500: {"model": PartialSuccessDetail, "description": "Review or aggregate update failed"},
    },
)
async def create_review_and_update_book(
    review_data: ReviewCreate,
    workflow: ReviewWorkflow,
) -> ReviewAndBookResponse:
    """Run the multi-step workflow and translate its errors to HTTP."""
    try:
        result = await workflow.execute(review_data)
    except BookNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.to_detail())
    except AggregateUpdateFailed as exc:
        logger.error(
            f"Partial success: review {exc.review_id} stored, book {exc.book_id} needs reconciliation"
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=exc.to_detail(),
        )
    except WorkflowError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=exc.to_detail(),
        )

    return ReviewAndBookResponse(review=result.review, book=result.book)
